"""
Sequential blobnn run over one output directory.

Order of work:
    1. check the output directory, build and validate the configuration
    2. read the manifest and select the uid range
    3. select the device, load the model and verify its output contract
    4. load both ledgers and process ROIs in uid order, committing both
       ledgers and writing artifacts after every record
    5. drop in-range rows that were not recomputed and save a run snapshot

Every fatal condition in steps 1-3 is raised before a ledger is opened for
writing.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from blobnn.detection.blob_masks import BlobMaskBuilder, BlobMasks, placeholder_masks
from blobnn.errors import BlobnnError, ConfigValidationError
from blobnn.io.artifacts import ensure_artifact_dirs, write_artifacts
from blobnn.io.ledger import Ledger
from blobnn.io.manifest import load_roi, manifest_path, max_uid, read_manifest, select_range
from blobnn.models.manager import (
    SegmentationModel,
    describe_accelerator,
    probe_accelerator,
    select_device,
)
from blobnn.pipeline.cli import build_parser, postprocess_args
from blobnn.reporting.stats import DetectionRecord, StatRecord, compute_records
from blobnn.utils.config import (
    OUTPUT_LAYOUT,
    create_run_config,
    load_config,
    save_config,
    validate_config,
    validate_uid_range,
)
from blobnn.utils.logging import ProcessingTimer, get_logger, log_parameters, setup_logging
from blobnn.utils.schemas import ManifestRow

logger = get_logger(__name__)


def _new_counts() -> Dict[str, int]:
    return {
        'processed': 0,
        'upstream_failures': 0,
        'missing_sources': 0,
        'with_foreground': 0,
        'stats_rows': 0,
        'artifact_failures': 0,
    }


@dataclass
class RunContext:
    """Everything one run needs, built once at startup."""
    output_dir: Path
    config: Dict[str, Any]
    start_id: int
    end_id: Optional[int]
    model: SegmentationModel
    builder: BlobMaskBuilder
    raw_ledger: Optional[Ledger] = None
    stats_ledger: Optional[Ledger] = None
    show_progress: bool = True
    counts: Dict[str, int] = field(default_factory=_new_counts)


def build_detection_config(output_dir: Path, args) -> Dict[str, Any]:
    """
    Defaults, then <output_dir>/blobnn.json, then command-line overrides.

    Raises:
        ConfigValidationError: Invalid values
    """
    config = load_config(
        output_dir,
        cutoff=getattr(args, 'cutoff', None),
        min_area=getattr(args, 'min_area', None),
        max_area=getattr(args, 'max_area', None),
        padding=getattr(args, 'padding', None),
    )
    result = validate_config(config)
    for warning in result['warnings']:
        logger.warning(warning)
    if not result['valid']:
        raise ConfigValidationError(
            "Configuration validation failed: " + "; ".join(result['errors'])
        )
    return config


def verify_model(model: SegmentationModel, output_dir: Path, rows: List[ManifestRow]) -> None:
    """
    Load the model and check its output contract on the first ROI that will
    be sent through it.
    """
    model.load()
    for row in rows:
        if not row.det_success:
            continue
        roi = load_roi(output_dir, row.uid)
        if roi is None:
            continue
        height, width = roi.shape[:2]
        model.verify_contract(height, width)
        return
    logger.info("No ROI in range needs inference; output contract not probed")


def process_row(ctx: RunContext, row: ManifestRow) -> Tuple[DetectionRecord, Optional[StatRecord], BlobMasks]:
    """Masks and records for one manifest row."""
    roi: Optional[np.ndarray] = None
    if not row.det_success:
        logger.warning(f"detection {row.uid} failed upstream; writing placeholder record")
        ctx.counts['upstream_failures'] += 1
        masks = placeholder_masks()
    else:
        roi = load_roi(ctx.output_dir, row.uid)
        if roi is None:
            ctx.counts['missing_sources'] += 1
            masks = placeholder_masks()
        else:
            prob_map = ctx.model.predict(roi)
            masks = ctx.builder.build(roi, prob_map)
            logger.debug(f"uid {row.uid}: {masks.summary()}")

    detection, stat = compute_records(row, roi, masks, ctx.config)
    return detection, stat, masks


def record_row(ctx: RunContext, detection: DetectionRecord, stat: Optional[StatRecord], masks: BlobMasks) -> None:
    """Fold one record into both ledgers, commit them, and write its images."""
    uid = detection.uid
    ctx.raw_ledger.upsert(uid, detection.to_line())
    if stat is not None:
        ctx.stats_ledger.upsert(uid, stat.to_line())
        ctx.counts['stats_rows'] += 1
    else:
        ctx.stats_ledger.discard(uid)
    ctx.raw_ledger.commit()
    ctx.stats_ledger.commit()

    if detection.has_foreground:
        ctx.counts['with_foreground'] += 1
    if not write_artifacts(ctx.output_dir, uid, masks.overlay, masks.prob_map):
        ctx.counts['artifact_failures'] += 1


def process_rows(ctx: RunContext, rows: List[ManifestRow], manifest_max_uid: int) -> List[int]:
    """
    Run the per-record loop over ``rows`` (already in uid order).

    Returns:
        uids processed
    """
    ctx.raw_ledger = Ledger.load(ctx.output_dir / OUTPUT_LAYOUT["raw_ledger"])
    ctx.stats_ledger = Ledger.load(ctx.output_dir / OUTPUT_LAYOUT["stats_ledger"])
    for ledger in (ctx.raw_ledger, ctx.stats_ledger):
        ledger.begin(ctx.start_id, ctx.end_id, manifest_max_uid)

    ensure_artifact_dirs(ctx.output_dir)

    processed = []
    for row in tqdm(rows, desc="Processing ROIs", unit="roi", disable=not ctx.show_progress):
        t0 = time.time()
        detection, stat, masks = process_row(ctx, row)
        record_row(ctx, detection, stat, masks)
        processed.append(row.uid)
        ctx.counts['processed'] += 1
        logger.debug(f"uid {row.uid}: {time.time() - t0:.3f}s")

    ctx.raw_ledger.finish(processed)
    ctx.stats_ledger.finish(processed)
    return processed


def run_pipeline(args) -> Dict[str, int]:
    """
    Process one output directory as described by ``args``.

    Returns:
        Run counters (processed, upstream_failures, missing_sources,
        with_foreground, stats_rows, artifact_failures)

    Raises:
        BlobnnError: Any fatal condition
    """
    output_dir = Path(args.source)
    if not output_dir.is_dir():
        raise ConfigValidationError(f"output directory not found: {output_dir}")

    start_id = args.start
    end_id = args.end
    validate_uid_range(start_id, end_id)
    config = build_detection_config(output_dir, args)

    log_parameters(logger, {
        'output_dir': output_dir,
        'model': args.model,
        'device': args.device,
        'uid_range': f"[{start_id}, {end_id if end_id is not None else 'max'}]",
        'cutoff': config['cutoff'],
        'area_band': f"({config['min_area']}, {config['max_area']})",
        'padding': config['padding'],
    }, title="blobnn run")

    rows = read_manifest(manifest_path(output_dir))
    manifest_max_uid = max_uid(rows)
    selected = select_range(rows, start_id, end_id)
    logger.info(f"{len(selected)} of {len(rows)} ROI(s) in range")

    device = select_device(args.device)
    logger.info(f"Using device: {device}")

    with SegmentationModel(args.model, device=device) as model:
        verify_model(model, output_dir, selected)

        ctx = RunContext(
            output_dir=output_dir,
            config=config,
            start_id=start_id,
            end_id=end_id,
            model=model,
            builder=BlobMaskBuilder.from_config(config),
            show_progress=not getattr(args, 'no_progress', False),
        )

        with ProcessingTimer(logger, "blob detection") as timer:
            process_rows(ctx, selected, manifest_max_uid)
            for key, value in ctx.counts.items():
                timer.add_result(key, value)

    snapshot = create_run_config(
        config, args.model, str(device), start_id, end_id,
        counts=ctx.counts,
        duration_seconds=timer.duration,
    )
    save_config(output_dir, snapshot)
    return ctx.counts


def main(argv=None) -> int:
    """Command-line entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level="DEBUG" if args.verbose else "INFO",
        log_file=args.log_file,
    )

    if args.show_device:
        for line in describe_accelerator(probe_accelerator()):
            print(line)
        return 0

    args = postprocess_args(args, parser)

    try:
        run_pipeline(args)
    except BlobnnError as e:
        logger.error(str(e))
        return 1
    return 0
