"""
I/O module for blobnn.

Provides:
- manifest: rois.tsv parsing and source crop loading
- ledger: uid-keyed raw/stats ledgers with atomic rewrites
- artifacts: overlay and probability map images
"""

from .manifest import (
    read_manifest,
    parse_manifest_lines,
    max_uid,
    select_range,
    load_roi,
    manifest_path,
    source_image_path,
)
from .ledger import Ledger, line_uid, split_lines
from .artifacts import write_artifacts, annotation_path, mask_path, ensure_artifact_dirs

__all__ = [
    'read_manifest',
    'parse_manifest_lines',
    'max_uid',
    'select_range',
    'load_roi',
    'manifest_path',
    'source_image_path',
    'Ledger',
    'line_uid',
    'split_lines',
    'write_artifacts',
    'annotation_path',
    'mask_path',
    'ensure_artifact_dirs',
]
