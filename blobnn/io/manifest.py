"""
Reading the ROI manifest (rois.tsv) and the per-uid source crops.

The manifest is written by the upstream ROI extraction step: one
tab-separated row per uid, ascending, with the columns listed in
``blobnn.utils.schemas.MANIFEST_COLUMNS``. Source crops live at
``<output_dir>/sources/<uid>.jpg``.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import cv2
import numpy as np
from pydantic import ValidationError

from blobnn.errors import ManifestError
from blobnn.utils.config import OUTPUT_LAYOUT
from blobnn.utils.logging import get_logger
from blobnn.utils.schemas import ManifestRow

logger = get_logger(__name__)


def manifest_path(output_dir: Union[str, Path]) -> Path:
    return Path(output_dir) / OUTPUT_LAYOUT["manifest"]


def source_image_path(output_dir: Union[str, Path], uid: int) -> Path:
    """Path of the grayscale source crop for ``uid``."""
    return Path(output_dir) / OUTPUT_LAYOUT["sources_dir"] / f"{uid}{OUTPUT_LAYOUT['image_suffix']}"


def parse_manifest_lines(lines: Iterable[str], source: str = "rois.tsv") -> List[ManifestRow]:
    """
    Parse manifest lines into rows sorted by uid.

    Blank lines are skipped. Columns past the eighth are ignored.

    Raises:
        ManifestError: Malformed row or duplicate uid
    """
    rows: List[ManifestRow] = []
    seen = {}
    for lineno, line in enumerate(lines, start=1):
        text = line.rstrip("\r\n")
        if not text.strip():
            continue
        try:
            row = ManifestRow.from_columns(text.split("\t"))
        except (ValidationError, ValueError) as e:
            raise ManifestError(f"{source}:{lineno}: invalid manifest row: {e}") from e
        if row.uid in seen:
            raise ManifestError(
                f"{source}:{lineno}: duplicate uid {row.uid} (first seen on line {seen[row.uid]})"
            )
        seen[row.uid] = lineno
        rows.append(row)

    uids = [r.uid for r in rows]
    if uids != sorted(uids):
        logger.warning(f"{source} is not in ascending uid order; processing in uid order")
        rows.sort(key=lambda r: r.uid)
    return rows


def read_manifest(path: Union[str, Path]) -> List[ManifestRow]:
    """
    Read rois.tsv.

    Bytes that are not valid UTF-8 are kept as surrogate escapes, so sample
    names in other encodings reach the ledgers unchanged.

    Raises:
        ManifestError: File missing, unreadable, or malformed
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"manifest not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8', errors='surrogateescape') as f:
            lines = f.readlines()
    except OSError as e:
        raise ManifestError(f"cannot read manifest {path}: {e}") from e
    rows = parse_manifest_lines(lines, source=path.name)
    logger.info(f"Read {len(rows)} ROI(s) from {path}")
    return rows


def max_uid(rows: List[ManifestRow]) -> int:
    """Largest uid in the manifest (0 when empty)."""
    return max((r.uid for r in rows), default=0)


def select_range(rows: List[ManifestRow], start_id: int, end_id: Optional[int]) -> List[ManifestRow]:
    """Rows with start_id <= uid <= end_id (end_id None means unbounded)."""
    return [
        r for r in rows
        if r.uid >= start_id and (end_id is None or r.uid <= end_id)
    ]


def load_roi(output_dir: Union[str, Path], uid: int) -> Optional[np.ndarray]:
    """
    Load the source crop for ``uid`` as an 8-bit grayscale raster.

    Returns:
        (H, W) uint8 array, or None if the file is missing or unreadable
    """
    path = source_image_path(output_dir, uid)
    if not path.is_file():
        logger.warning(f"source image missing for uid {uid}: {path}")
        return None
    image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if image is None:
        logger.warning(f"source image unreadable for uid {uid}: {path}")
    return image
