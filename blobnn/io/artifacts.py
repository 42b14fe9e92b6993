"""
Per-uid visualization artifacts.

Writes ``annots/<uid>.jpg`` (overlay) and ``masks/<uid>.jpg`` (the raw 8-bit
probability map, before thresholding) under the output directory.
"""

from pathlib import Path
from typing import Union

import cv2
import numpy as np

from blobnn.utils.config import OUTPUT_LAYOUT
from blobnn.utils.logging import get_logger

logger = get_logger(__name__)


def annotation_path(output_dir: Union[str, Path], uid: int) -> Path:
    return Path(output_dir) / OUTPUT_LAYOUT["annots_dir"] / f"{uid}{OUTPUT_LAYOUT['image_suffix']}"


def mask_path(output_dir: Union[str, Path], uid: int) -> Path:
    return Path(output_dir) / OUTPUT_LAYOUT["masks_dir"] / f"{uid}{OUTPUT_LAYOUT['image_suffix']}"


def ensure_artifact_dirs(output_dir: Union[str, Path]) -> None:
    """Create annots/ and masks/ if needed."""
    for key in ("annots_dir", "masks_dir"):
        (Path(output_dir) / OUTPUT_LAYOUT[key]).mkdir(parents=True, exist_ok=True)


def _write_image(path: Path, image: np.ndarray) -> bool:
    try:
        ok = cv2.imwrite(str(path), image)
    except cv2.error as e:
        logger.error(f"Failed to write {path}: {e}")
        return False
    if not ok:
        logger.error(f"Failed to write {path}")
    return bool(ok)


def write_artifacts(
    output_dir: Union[str, Path],
    uid: int,
    overlay: np.ndarray,
    prob_map: np.ndarray,
) -> bool:
    """
    Write the overlay and probability map for one uid.

    Returns:
        True if both images were written
    """
    ensure_artifact_dirs(output_dir)
    wrote_overlay = _write_image(annotation_path(output_dir, uid), overlay)
    wrote_mask = _write_image(mask_path(output_dir, uid), prob_map)
    return wrote_overlay and wrote_mask
