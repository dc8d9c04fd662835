"""
Foreground extraction and morphological cleanup.

ForegroundExtractor turns (frame, background) into a binary mask of pixels
that changed enough to be a dart, using a threshold that adapts to the
current frame's difference statistics. MorphologyFilter then closes the
mask so a thin shaft stays one connected shape.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

# Dynamic threshold = max(static floor, mean + SIGMA_SCALE * std)
SIGMA_SCALE = 1.2

# 4-neighbourhood structuring element
CROSS_KERNEL = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))


@dataclass(frozen=True)
class ROI:
    """Circular region of interest in pixel space. radius 0 disables it."""
    cx: float = 0.0
    cy: float = 0.0
    radius: int = 0

    @property
    def enabled(self) -> bool:
        return self.radius > 0


def roi_mask(roi: ROI, width: int, height: int) -> np.ndarray:
    """Boolean (h, w) mask of pixels inside ``roi`` (all True when disabled)."""
    if not roi.enabled:
        return np.ones((height, width), dtype=bool)
    ys, xs = np.ogrid[:height, :width]
    dx = xs - roi.cx
    dy = ys - roi.cy
    return (dx * dx + dy * dy) <= float(roi.radius) * float(roi.radius)


class ForegroundExtractor:
    """
    Binary foreground mask with a lighting-adaptive threshold.

    Buffers are sized to the current resolution and reused between calls.
    """

    def __init__(self, threshold: float = 28.0):
        self.threshold = threshold
        self._shape: Optional[Tuple[int, int]] = None
        self._roi: Optional[ROI] = None
        self._roi_mask: Optional[np.ndarray] = None
        self._valid: Optional[np.ndarray] = None
        self._mask: Optional[np.ndarray] = None
        self.last_threshold = threshold

    def _ensure(self, roi: ROI, height: int, width: int) -> None:
        if self._shape != (height, width):
            self._shape = (height, width)
            self._valid = np.empty((height, width), dtype=bool)
            self._mask = np.empty((height, width), dtype=np.uint8)
            self._roi = None
        if self._roi != roi:
            self._roi = roi
            self._roi_mask = roi_mask(roi, width, height)

    def dynamic_threshold(self, diff: np.ndarray, valid: np.ndarray) -> float:
        """
        max(static floor, mu + 1.2 * sigma) over the ``valid`` pixels.

        Args:
            diff: absolute background difference
            valid: pixels that take part in the statistics (in ROI, not glare)
        """
        samples = diff[valid]
        if samples.size == 0:
            return float(self.threshold)
        mu = float(samples.mean(dtype=np.float64))
        var = max(0.0, float(np.square(samples, dtype=np.float64).mean()) - mu * mu)
        return max(float(self.threshold), mu + SIGMA_SCALE * float(np.sqrt(var)))

    def extract(self, diff: np.ndarray, highlights: np.ndarray, roi: ROI) -> np.ndarray:
        """
        Build the foreground mask.

        Args:
            diff: float32 |gray - background|
            highlights: boolean specular-highlight flags
            roi: region of interest

        Returns:
            uint8 mask (1 = foreground), a reused buffer owned by this extractor
        """
        h, w = diff.shape
        self._ensure(roi, h, w)

        valid = self._valid
        np.logical_not(highlights, out=valid)
        np.logical_and(valid, self._roi_mask, out=valid)

        self.last_threshold = self.dynamic_threshold(diff, valid)

        mask = self._mask
        np.greater(diff, self.last_threshold, out=mask, casting="unsafe")
        mask &= valid
        return mask


class MorphologyFilter:
    """One dilation then one erosion with a cross kernel (closing)."""

    def __init__(self, iterations: int = 1):
        self.iterations = iterations

    def close(self, mask: np.ndarray) -> np.ndarray:
        dilated = cv2.dilate(mask, CROSS_KERNEL, iterations=self.iterations)
        return cv2.erode(dilated, CROSS_KERNEL, iterations=self.iterations)
