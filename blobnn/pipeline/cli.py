"""Argument parser construction and postprocessing for the blobnn CLI.

Contains build_parser() which defines all CLI arguments, and postprocess_args()
which fills environment defaults and validates argument combinations.
"""

import argparse
from pathlib import Path

from blobnn.models.manager import DEVICE_CHOICES
from blobnn.utils.config import DEFAULT_CONFIG, get_default_path


def build_parser():
    """Build the argument parser for the blobnn CLI.

    Returns:
        argparse.ArgumentParser with all arguments configured
    """
    parser = argparse.ArgumentParser(
        prog='blobnn',
        description='Segment blobs in pre-extracted ROIs and measure their intensity statistics',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            'SOURCE is the output directory of the ROI extraction step. It must\n'
            'contain rois.tsv and sources/<uid>.jpg; raw.tsv, stats.tsv,\n'
            'annots/ and masks/ are written next to them.'
        ),
    )

    parser.add_argument('source', metavar='SOURCE', type=str, nargs='?', default=None,
                        help='Output directory holding rois.tsv and sources/')

    # uid range (inclusive)
    parser.add_argument('--start', type=int, default=1, metavar='M',
                        help='First uid to process (default: 1)')
    parser.add_argument('--end', type=int, default=None, metavar='N',
                        help='Last uid to process (default: no upper bound)')

    # Model
    parser.add_argument('--model', type=str, default=None, metavar='PT',
                        help='TorchScript segmentation model (default: $BLOBNN_MODEL_PATH)')
    parser.add_argument('--device', type=str, default='auto', choices=list(DEVICE_CHOICES),
                        help='Inference device: auto (CUDA when usable), cpu, or cuda (default: auto)')
    parser.add_argument('--show-device', action='store_true',
                        help='Print the accelerator capability report and exit')

    # Detection parameters (override blobnn.json in SOURCE)
    parser.add_argument('--cutoff', type=int, default=None,
                        help=f'Probability map threshold, 0-255 (default: {DEFAULT_CONFIG["cutoff"]})')
    parser.add_argument('--min-area', type=float, default=None,
                        help=f'Exclusive lower contour area bound (default: {DEFAULT_CONFIG["min_area"]})')
    parser.add_argument('--max-area', type=float, default=None,
                        help=f'Exclusive upper contour area bound (default: {DEFAULT_CONFIG["max_area"]})')
    parser.add_argument('--padding', type=int, default=None,
                        help=f'Background inset and strict erosion iterations (default: {DEFAULT_CONFIG["padding"]})')

    # Logging / progress
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write log messages to this file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose/debug logging')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')

    return parser


def postprocess_args(args, parser):
    """Fill defaults and validate argument combinations.

    Args:
        args: Parsed args from parser.parse_args()
        parser: The ArgumentParser (for calling parser.error())

    Returns:
        args: Modified args namespace
    """
    if args.show_device:
        return args

    if args.source is None:
        parser.error("SOURCE is required")

    if args.model is None:
        args.model = get_default_path('model_path') or None
    if args.model is None:
        parser.error("--model is required (or set BLOBNN_MODEL_PATH)")

    if args.start < 1:
        parser.error(f"--start must be a positive uid, got {args.start}")
    if args.end is not None and args.end < args.start:
        parser.error(f"--end ({args.end}) must not be less than --start ({args.start})")

    args.source = str(Path(args.source))
    args.model = str(Path(args.model))
    return args
