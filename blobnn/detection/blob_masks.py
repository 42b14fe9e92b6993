"""
Foreground and background mask construction for one ROI.

The model's probability map is thresholded and its contours are filtered by
area. Every contour inside the area band contributes to the foreground: a
model may report one physical blob as an outer and an inner boundary (a
hollow ring), and both are unioned rather than treated as competing
detections.

Two background masks are derived per ROI:

- loose background: the ROI inset by ``padding`` pixels, minus every accepted
  contour and minus the band from each contour's bounding-box right edge to
  the ROI's right edge (darker artifact lines sit right of the blob);
- strict background: the loose background eroded ``padding`` times with a
  3x3 element, pulling it away from every boundary to avoid edge bias.

The foreground and loose background are disjoint by construction, and the
strict background is a subset of the loose one.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from blobnn.utils.config import DEFAULT_CONFIG
from blobnn.utils.logging import get_logger

logger = get_logger(__name__)

# Size of the blank raster standing in for masks when detection was skipped
PLACEHOLDER_SHAPE = (3, 3)

_KERNEL_3X3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))


@dataclass
class ContourInfo:
    """
    One contour extracted from the binarized probability map.

    Attributes:
        points: OpenCV contour array (N, 1, 2)
        area: Polygon area from cv2.contourArea
        perimeter: Closed arc length from cv2.arcLength
        accepted: Whether the area fell inside the accepted band
    """
    points: np.ndarray
    area: float
    perimeter: float
    accepted: bool

    @property
    def bounding_rect(self) -> Tuple[int, int, int, int]:
        """(x, y, width, height) of the contour."""
        return cv2.boundingRect(self.points)


@dataclass
class BlobMasks:
    """
    Masks and visualizations computed for one ROI.

    All masks are uint8 rasters holding 0 or 255. For ROIs whose upstream
    detection failed they are 3x3 blank placeholders instead.
    """
    foreground: np.ndarray
    loose_background: np.ndarray
    strict_background: np.ndarray
    prob_map: np.ndarray
    overlay: np.ndarray
    has_foreground: bool = False
    contours: List[ContourInfo] = field(default_factory=list)
    is_placeholder: bool = False

    @property
    def accepted_contours(self) -> List[ContourInfo]:
        return [c for c in self.contours if c.accepted]

    def summary(self) -> Dict[str, Any]:
        """Counts for logging (no arrays)."""
        return {
            'has_foreground': self.has_foreground,
            'n_contours': len(self.contours),
            'n_accepted': len(self.accepted_contours),
            'foreground_px': int(np.count_nonzero(self.foreground)),
            'loose_background_px': int(np.count_nonzero(self.loose_background)),
            'strict_background_px': int(np.count_nonzero(self.strict_background)),
        }


def placeholder_masks() -> BlobMasks:
    """Blank 3x3 masks for an ROI that is not sent through the model."""
    return BlobMasks(
        foreground=_blank(),
        loose_background=_blank(),
        strict_background=_blank(),
        prob_map=_blank(),
        overlay=_blank(),
        has_foreground=False,
        is_placeholder=True,
    )


def _blank() -> np.ndarray:
    return np.zeros(PLACEHOLDER_SHAPE, dtype=np.uint8)


def binarize(prob_map: np.ndarray, cutoff: int) -> np.ndarray:
    """255 where prob_map > cutoff, else 0."""
    _, binary = cv2.threshold(prob_map, cutoff, 255, cv2.THRESH_BINARY)
    return binary


def is_accepted_area(area: float, min_area: float, max_area: float) -> bool:
    """Area band test, exclusive at both ends."""
    return min_area < area < max_area


def extract_contours(binary: np.ndarray, min_area: float, max_area: float) -> List[ContourInfo]:
    """
    All contours of a binary map (full hierarchy, simple chain encoding),
    each tagged with its area, perimeter and band decision.
    """
    contours, _ = cv2.findContours(binary, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    infos = []
    for cnt in contours:
        area = cv2.contourArea(cnt, False)
        perimeter = cv2.arcLength(cnt, True)
        infos.append(ContourInfo(
            points=cnt,
            area=float(area),
            perimeter=float(perimeter),
            accepted=is_accepted_area(area, min_area, max_area),
        ))
    return infos


def _fill_polygon(mask: np.ndarray, corners: Sequence[Tuple[int, int]], value: int) -> None:
    polygon = np.array(corners, dtype=np.int32).reshape(-1, 1, 2)
    cv2.drawContours(mask, [polygon], 0, value, cv2.FILLED)


def initial_loose_background(shape: Tuple[int, int], padding: int) -> np.ndarray:
    """The ROI rectangle inset by ``padding`` on every side, filled."""
    height, width = shape
    mask = np.zeros((height, width), dtype=np.uint8)
    _fill_polygon(mask, [
        (padding, padding),
        (width - padding, padding),
        (width - padding, height - padding),
        (padding, height - padding),
    ], 255)
    return mask


def carve_contour(loose_background: np.ndarray, contour: ContourInfo) -> None:
    """
    Remove one accepted contour from the loose background (in-place): its
    filled area, and the full-height band from its bounding-box right edge
    to the ROI's right edge.
    """
    height, width = loose_background.shape
    x, _, w, _ = contour.bounding_rect
    right_edge = x + w
    _fill_polygon(loose_background, [
        (right_edge, 0),
        (width, 0),
        (width, height),
        (right_edge, height),
    ], 0)
    cv2.drawContours(loose_background, [contour.points], 0, 0, cv2.FILLED)


def strict_from_loose(loose_background: np.ndarray, padding: int) -> np.ndarray:
    """Erode the loose background ``padding`` times with a 3x3 rectangle."""
    if padding <= 0:
        return loose_background.copy()
    return cv2.morphologyEx(
        loose_background, cv2.MORPH_ERODE, _KERNEL_3X3, iterations=padding
    )


def blend_masked(image: np.ndarray, mask: np.ndarray, color: Sequence[int], alpha: float) -> np.ndarray:
    """
    Blend a solid ``color`` fill, cut to ``mask``, over the whole image.

    Pixels outside the mask are blended with black, so each pass also dims
    the rest of the image by ``1 - alpha``.
    """
    tint = np.empty_like(image)
    tint[:] = np.array(color, dtype=image.dtype)
    tint = cv2.bitwise_and(tint, tint, mask=mask)
    return cv2.addWeighted(tint, alpha, image, 1.0 - alpha, 0)


class BlobMaskBuilder:
    """
    Builds foreground / loose background / strict background masks and the
    diagnostic overlay from a probability map.

    Parameters:
        cutoff: Probability threshold, strictly-greater-than (default 180)
        min_area: Exclusive lower bound on accepted contour area (default 1000)
        max_area: Exclusive upper bound on accepted contour area (default 50000)
        padding: Background inset and strict-erosion iterations (default 5)

    Example:
        builder = BlobMaskBuilder.from_config(config)
        masks = builder.build(roi, prob_map)
    """

    def __init__(
        self,
        cutoff: int = DEFAULT_CONFIG["cutoff"],
        min_area: float = DEFAULT_CONFIG["min_area"],
        max_area: float = DEFAULT_CONFIG["max_area"],
        padding: int = DEFAULT_CONFIG["padding"],
        overlay_alpha: float = DEFAULT_CONFIG["overlay_alpha"],
        loose_background_color: Sequence[int] = tuple(DEFAULT_CONFIG["loose_background_color"]),
        strict_background_color: Sequence[int] = tuple(DEFAULT_CONFIG["strict_background_color"]),
        foreground_color: Sequence[int] = tuple(DEFAULT_CONFIG["foreground_color"]),
        rejected_contour_color: Sequence[int] = tuple(DEFAULT_CONFIG["rejected_contour_color"]),
        accepted_contour_thickness: int = DEFAULT_CONFIG["accepted_contour_thickness"],
        rejected_contour_thickness: int = DEFAULT_CONFIG["rejected_contour_thickness"],
    ):
        self.cutoff = cutoff
        self.min_area = min_area
        self.max_area = max_area
        self.padding = padding
        self.overlay_alpha = overlay_alpha
        self.loose_background_color = tuple(loose_background_color)
        self.strict_background_color = tuple(strict_background_color)
        self.foreground_color = tuple(foreground_color)
        self.rejected_contour_color = tuple(rejected_contour_color)
        self.accepted_contour_thickness = accepted_contour_thickness
        self.rejected_contour_thickness = rejected_contour_thickness

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "BlobMaskBuilder":
        """Create a builder from a (possibly partial) config dict."""
        params = dict(DEFAULT_CONFIG)
        if config:
            params.update(config)
        return cls(
            cutoff=params["cutoff"],
            min_area=params["min_area"],
            max_area=params["max_area"],
            padding=params["padding"],
            overlay_alpha=params["overlay_alpha"],
            loose_background_color=params["loose_background_color"],
            strict_background_color=params["strict_background_color"],
            foreground_color=params["foreground_color"],
            rejected_contour_color=params["rejected_contour_color"],
            accepted_contour_thickness=params["accepted_contour_thickness"],
            rejected_contour_thickness=params["rejected_contour_thickness"],
        )

    def build(self, roi: np.ndarray, prob_map: np.ndarray) -> BlobMasks:
        """
        Compute all masks for one ROI.

        Args:
            roi: (H, W) uint8 grayscale ROI as captured
            prob_map: (H, W) uint8 foreground-likelihood map from the model

        Returns:
            BlobMasks with foreground, both backgrounds, overlay and contours
        """
        if roi.shape[:2] != prob_map.shape[:2]:
            raise ValueError(
                f"probability map shape {prob_map.shape[:2]} does not match ROI shape {roi.shape[:2]}"
            )

        binary = binarize(prob_map, self.cutoff)
        contours = extract_contours(binary, self.min_area, self.max_area)

        foreground = np.zeros(roi.shape[:2], dtype=np.uint8)
        loose = initial_loose_background(roi.shape[:2], self.padding)

        # Foreground is the union of every accepted component
        for contour in contours:
            if not contour.accepted:
                continue
            cv2.drawContours(foreground, [contour.points], 0, 255, cv2.FILLED)
            carve_contour(loose, contour)

        strict = strict_from_loose(loose, self.padding)
        has_foreground = any(c.accepted for c in contours)

        masks = BlobMasks(
            foreground=foreground,
            loose_background=loose,
            strict_background=strict,
            prob_map=prob_map,
            overlay=self.render_overlay(roi, foreground, loose, strict, contours),
            has_foreground=has_foreground,
            contours=contours,
        )

        for c in contours:
            logger.debug(
                f"contour area={c.area:.1f} perimeter={c.perimeter:.1f} "
                f"{'accepted' if c.accepted else 'rejected'}"
            )
        return masks

    def render_overlay(
        self,
        roi: np.ndarray,
        foreground: np.ndarray,
        loose_background: np.ndarray,
        strict_background: np.ndarray,
        contours: List[ContourInfo],
    ) -> np.ndarray:
        """
        BGR overlay: contour outlines (accepted in the foreground color,
        rejected in the neutral color), then tints for loose background,
        strict background and foreground, in that order. Each tint pass
        blends over the whole image, so unmasked pixels end at
        ``(1 - alpha) ** 3`` of their gray value and tints stack.
        """
        overlay = cv2.cvtColor(roi, cv2.COLOR_GRAY2BGR)

        for contour in contours:
            if contour.accepted:
                cv2.drawContours(overlay, [contour.points], 0,
                                 self.foreground_color, self.accepted_contour_thickness)
            else:
                cv2.drawContours(overlay, [contour.points], 0,
                                 self.rejected_contour_color, self.rejected_contour_thickness)

        alpha = self.overlay_alpha
        overlay = blend_masked(overlay, loose_background, self.loose_background_color, alpha)
        overlay = blend_masked(overlay, strict_background, self.strict_background_color, alpha)
        overlay = blend_masked(overlay, foreground, self.foreground_color, alpha)
        return overlay
