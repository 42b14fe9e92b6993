"""
blobnn: model-driven blob segmentation and intensity statistics for
pre-extracted ROI micrographs.

For each ROI listed in ``rois.tsv`` a TorchScript model produces a
foreground probability map; blobnn builds foreground and background masks
from it, measures intensities, and maintains the uid-keyed ``raw.tsv`` and
``stats.tsv`` ledgers together with overlay and mask images.

Usage:
    from blobnn.models import SegmentationModel, select_device
    from blobnn.detection import BlobMaskBuilder
    from blobnn.reporting import compute_records
    from blobnn.io import Ledger, read_manifest
    from blobnn.utils import get_logger, setup_logging, load_config
"""

__version__ = "0.1.0"

# Submodules are imported explicitly:
#   from blobnn.io import Ledger
#   from blobnn.utils.logging import get_logger

__all__ = [
    "detection",
    "errors",
    "io",
    "models",
    "pipeline",
    "reporting",
    "utils",
]
