"""
Intensity statistics for one ROI.

Computes masked intensity means and pixel counts from the masks produced by
``blobnn.detection.blob_masks`` and derives the log-domain feature vector
written to the stats ledger.

Every processed uid yields a ``DetectionRecord`` (raw ledger). A ``StatRecord``
(stats ledger) is produced only when all of the following hold, which keeps
every natural log defined and the contrast term meaningful::

    det_success and scale_success and has_foreground
    foreground_size > 0 and foreground_mean > 0
    strict_bg_mean - foreground_mean > 0
    scale_light > 0 and scale_dark > 0 and scale_light > scale_dark
    loose_bg_mean > 0 and strict_bg_mean > 0
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from blobnn.detection.blob_masks import BlobMasks
from blobnn.utils.config import DEFAULT_CONFIG
from blobnn.utils.schemas import ManifestRow, flag_token

# Column order of the stats ledger's feature block
STAT_FEATURES = [
    "log_abs",
    "log_delta",
    "log_light",
    "log_dark",
    "log_back_loose",
    "log_back_strict",
    "log_mean",
    "log_size",
]

RAW_LEDGER_COLUMNS = [
    "uid", "filename", "sample_id", "sample_name", "det_success",
    "scale_success", "has_foreground", "foreground_mean", "foreground_size",
    "strict_bg_mean", "loose_bg_mean", "scale_dark", "scale_light",
]

STATS_LEDGER_COLUMNS = ["uid", "filename", "sample_id"] + STAT_FEATURES + ["sample_name"]

# Value written in place of the foreground mean / size when there is none
ABSENT = -1

RAW_ROW_FORMAT = "%d\t%s\t%d\t%s\t%s\t%s\t%s\t%.2f\t%d\t%.2f\t%.2f\t%d\t%d\n"
STAT_ROW_FORMAT = "%d\t%s\t%d\t" + "%.5f\t" * len(STAT_FEATURES) + "%s\n"

_KERNEL_3X3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


@dataclass
class DetectionRecord:
    """
    Per-uid measurements, written to the raw ledger for every processed uid.

    foreground_mean / foreground_size are None when no foreground was found.
    """
    row: ManifestRow
    has_foreground: bool
    strict_bg_mean: float
    loose_bg_mean: float
    foreground_mean: Optional[float] = None
    foreground_size: Optional[int] = None

    @property
    def uid(self) -> int:
        return self.row.uid

    def to_line(self) -> str:
        """One raw ledger line, newline-terminated."""
        r = self.row
        return RAW_ROW_FORMAT % (
            r.uid,
            r.filename,
            r.sample_id,
            r.sample_name,
            flag_token(r.det_success),
            flag_token(r.scale_success),
            flag_token(self.has_foreground),
            ABSENT if self.foreground_mean is None else self.foreground_mean,
            ABSENT if self.foreground_size is None else self.foreground_size,
            self.strict_bg_mean,
            self.loose_bg_mean,
            r.scale_dark,
            r.scale_light,
        )


@dataclass
class StatRecord:
    """Log-domain feature vector for one uid, keyed by STAT_FEATURES."""
    row: ManifestRow
    features: Dict[str, float] = field(default_factory=dict)

    @property
    def uid(self) -> int:
        return self.row.uid

    def values(self) -> List[float]:
        return [self.features[name] for name in STAT_FEATURES]

    def to_line(self) -> str:
        """One stats ledger line, newline-terminated."""
        r = self.row
        return STAT_ROW_FORMAT % (
            (r.uid, r.filename, r.sample_id) + tuple(self.values()) + (r.sample_name,)
        )


def masked_mean(image: np.ndarray, mask: np.ndarray) -> float:
    """Mean of ``image`` where ``mask`` is non-zero (0.0 for an empty mask)."""
    if image.shape[:2] != mask.shape[:2]:
        raise ValueError(f"mask shape {mask.shape[:2]} does not match image shape {image.shape[:2]}")
    return float(cv2.mean(image, mask=mask)[0])


def measure_foreground(
    roi: np.ndarray,
    foreground: np.ndarray,
    dilation_iterations: int = DEFAULT_CONFIG["foreground_dilation_iterations"],
) -> Tuple[float, int]:
    """
    Mean intensity and pixel count of the foreground after growing it.

    Thresholding understates blob extent, so the mask is dilated with a 3x3
    element before sampling.

    Returns:
        Tuple of (mean, pixel count)
    """
    if dilation_iterations > 0:
        measured = cv2.dilate(foreground, _KERNEL_3X3, iterations=dilation_iterations)
    else:
        measured = foreground
    return masked_mean(roi, measured), int(cv2.countNonZero(measured))


def stats_preconditions_hold(record: DetectionRecord) -> bool:
    """True when every log feature of ``record`` is defined and meaningful."""
    r = record.row
    if not (r.det_success and r.scale_success and record.has_foreground):
        return False
    if record.foreground_size is None or record.foreground_mean is None:
        return False
    return (
        record.foreground_size > 0
        and record.foreground_mean > 0
        and (record.strict_bg_mean - record.foreground_mean) > 0
        and r.scale_light > 0
        and r.scale_dark > 0
        and r.scale_light > r.scale_dark
        and record.loose_bg_mean > 0
        and record.strict_bg_mean > 0
    )


def compute_stat_record(record: DetectionRecord) -> Optional[StatRecord]:
    """Log features for ``record``, or None if any precondition fails."""
    if not stats_preconditions_hold(record):
        return None
    r = record.row
    contrast = record.strict_bg_mean - record.foreground_mean
    features = {
        "log_abs": math.log(contrast * record.foreground_size),
        "log_delta": math.log(r.scale_light - r.scale_dark),
        "log_light": math.log(r.scale_light),
        "log_dark": math.log(r.scale_dark),
        "log_back_loose": math.log(record.loose_bg_mean),
        "log_back_strict": math.log(record.strict_bg_mean),
        "log_mean": math.log(record.foreground_mean),
        "log_size": math.log(record.foreground_size),
    }
    return StatRecord(row=r, features=features)


def compute_records(
    row: ManifestRow,
    roi: Optional[np.ndarray],
    masks: BlobMasks,
    config: Optional[Dict[str, Any]] = None,
) -> Tuple[DetectionRecord, Optional[StatRecord]]:
    """
    Measure one ROI.

    Args:
        row: Manifest row of the ROI
        roi: (H, W) grayscale ROI, or None when it was never loaded
        masks: Output of the mask builder, or placeholder masks
        config: Detection config (for foreground_dilation_iterations)

    Returns:
        Tuple of (DetectionRecord, StatRecord or None)
    """
    iterations = (config or DEFAULT_CONFIG).get(
        "foreground_dilation_iterations", DEFAULT_CONFIG["foreground_dilation_iterations"]
    )

    if roi is None or masks.is_placeholder:
        detection = DetectionRecord(
            row=row, has_foreground=False, strict_bg_mean=0.0, loose_bg_mean=0.0
        )
        return detection, None

    detection = DetectionRecord(
        row=row,
        has_foreground=masks.has_foreground,
        strict_bg_mean=masked_mean(roi, masks.strict_background),
        loose_bg_mean=masked_mean(roi, masks.loose_background),
    )
    if masks.has_foreground:
        detection.foreground_mean, detection.foreground_size = measure_foreground(
            roi, masks.foreground, iterations
        )

    return detection, compute_stat_record(detection)
