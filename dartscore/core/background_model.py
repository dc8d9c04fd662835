"""
Background Model for Dart Detection

A per-pixel running average of the grayscale frame. Whatever differs from
it is a candidate for a newly-arrived dart.

Key concepts:
1. Seed: bg = gray (first frame, resolution change, explicit reset)
2. Running average: bg = alpha * current + (1 - alpha) * bg
3. Region blend: same update restricted to a bounding box, used when a
   dart is accepted so it stops showing up as foreground
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Learning rates
SEED_ALPHA = 1.0
DRIFT_ALPHA = 0.02    # no detection: slowly follow ambient light
DEFAULT_ALPHA = 0.05  # explicit update_background() without alpha
ACCEPT_ALPHA = 0.5    # accepted dart: absorb it quickly


@dataclass
class BackgroundModel:
    """Grayscale running mean owned by a single detector."""

    width: int = 0
    height: int = 0

    # Running average (float32 for precision)
    mean: Optional[np.ndarray] = None

    # False until the first frame has been copied in
    initialized: bool = False

    # Number of frames blended in since the last reseed
    frame_count: int = 0

    def reset(self, width: int, height: int) -> None:
        """Allocate a fresh buffer for the given resolution (uninitialized)."""
        self.width = width
        self.height = height
        self.mean = np.zeros((height, width), dtype=np.float32)
        self.initialized = False
        self.frame_count = 0

    def matches(self, width: int, height: int) -> bool:
        return self.mean is not None and self.width == width and self.height == height

    def update(self, gray: np.ndarray, alpha: float = DEFAULT_ALPHA) -> None:
        """
        Blend a grayscale frame into the model.

        Args:
            gray: float32 grayscale frame of the model's resolution
            alpha: learning rate; ignored (treated as 1.0) while uninitialized
        """
        h, w = gray.shape
        if not self.matches(w, h):
            logger.debug(f"Background resolution change {self.width}x{self.height} -> {w}x{h}")
            self.reset(w, h)

        if not self.initialized or alpha >= 1.0:
            np.copyto(self.mean, gray)
            self.initialized = True
            self.frame_count = 1
            return

        # bg = (1 - alpha) * bg + alpha * gray, in place
        self.mean *= (1.0 - alpha)
        self.mean += alpha * gray
        self.frame_count += 1

    def blend_region(self, gray: np.ndarray, bbox: Tuple[int, int, int, int],
                     alpha: float = ACCEPT_ALPHA) -> None:
        """Blend only the pixels inside ``bbox`` (x, y, w, h), clipped to the frame."""
        if not self.initialized or self.mean is None:
            return
        x, y, bw, bh = bbox
        x0, y0 = max(0, int(x)), max(0, int(y))
        x1 = min(self.width, int(x) + int(bw))
        y1 = min(self.height, int(y) + int(bh))
        if x0 >= x1 or y0 >= y1:
            return
        region = self.mean[y0:y1, x0:x1]
        region *= (1.0 - alpha)
        region += alpha * gray[y0:y1, x0:x1]

    def absdiff(self, gray: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """|gray - bg| as float32."""
        if out is None:
            out = np.empty_like(self.mean)
        np.subtract(gray, self.mean, out=out)
        np.abs(out, out=out)
        return out

    def snapshot(self) -> Optional[np.ndarray]:
        """Current background as uint8 (for debugging/preview)."""
        if not self.initialized or self.mean is None:
            return None
        return np.clip(self.mean, 0, 255).astype(np.uint8)
