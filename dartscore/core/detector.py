"""
Dart Detector - finds a newly-arrived dart in a video frame.

Strategy:
- Keep a grayscale running-average background of the empty board
- Diff each frame against it with a lighting-adaptive threshold, ignoring
  specular highlights and anything outside the circular board ROI
- Close the mask (dilate, erode) and keep the largest 4-connected blob
- PCA on the blob gives the shaft axis; the tip is the blob pixel furthest
  out along it, away from the board centre
- Require the tip to hold still across frames, then debounce between darts

One DartDetector per camera session. It owns its background buffer and
stabiliser state; nothing is shared between instances.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from dartscore.core.background_model import (
    ACCEPT_ALPHA,
    DEFAULT_ALPHA,
    DRIFT_ALPHA,
    SEED_ALPHA,
    BackgroundModel,
)
from dartscore.core.blobs import BlobFinder
from dartscore.core.clock import Clock, MonotonicClock
from dartscore.core.foreground import ROI, ForegroundExtractor, MorphologyFilter
from dartscore.core.frame import highlight_mask, to_gray, validate_frame
from dartscore.core.orientation import estimate_shaft, locate_tip, score_confidence
from dartscore.core.stabilizer import Stabilizer

logger = logging.getLogger(__name__)


@dataclass
class DetectorConfig:
    """Detector tuning. Defaults match a 640x480-ish board view."""
    threshold: float = 28.0     # static floor for the foreground threshold
    min_area: int = 90          # min connected pixels to consider a dart
    max_area: int = 6000        # guard against a hand or arm in frame
    require_stable_n: int = 1   # consecutive consistent sightings required
    cooldown_ms: float = 600.0  # quiet period after an accepted dart


@dataclass
class Detection:
    """A dart tip candidate that passed every check."""
    tip: Tuple[float, float]
    area: int
    bbox: Tuple[int, int, int, int]  # x, y, w, h
    confidence: float  # 0..1 heuristic
    axis: Optional[Tuple[float, float, float, float]] = None  # x1, y1, x2, y2

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["tip"] = {"x": self.tip[0], "y": self.tip[1]}
        x, y, w, h = self.bbox
        data["bbox"] = {"x": x, "y": y, "w": w, "h": h}
        if self.axis is not None:
            x1, y1, x2, y2 = self.axis
            data["axis"] = {"x1": x1, "y1": y1, "x2": x2, "y2": y2}
        return data


class DartDetector:
    """
    Background-differencing dart detector.

    Call ``set_roi`` once calibration is known, feed every frame to
    ``detect``, and call ``accept`` once the caller has used a detection.
    """

    def __init__(self, config: Optional[DetectorConfig] = None, clock: Optional[Clock] = None):
        self.config = config or DetectorConfig()
        self.clock = clock or MonotonicClock()

        self.background = BackgroundModel()
        self.extractor = ForegroundExtractor(threshold=self.config.threshold)
        self.morphology = MorphologyFilter()
        self.blobs = BlobFinder(min_area=self.config.min_area, max_area=self.config.max_area)
        self.stabilizer = Stabilizer(
            require_stable_n=self.config.require_stable_n,
            cooldown_ms=self.config.cooldown_ms,
            clock=self.clock,
        )
        self._roi = ROI()

        # Per-resolution scratch buffers
        self._gray: Optional[np.ndarray] = None
        self._diff: Optional[np.ndarray] = None
        self._highlight: Optional[np.ndarray] = None

    # --- configuration ---

    @property
    def roi(self) -> ROI:
        return self._roi

    @property
    def initialized(self) -> bool:
        return self.background.initialized

    def set_roi(self, cx: float, cy: float, radius: float) -> None:
        """Restrict detection to a circle. radius <= 0 disables the restriction."""
        self._roi = ROI(cx=float(cx), cy=float(cy), radius=max(0, int(radius)))

    def reset(self, width: Optional[int] = None, height: Optional[int] = None) -> None:
        """Drop the background (next frame reseeds) and stabiliser state."""
        if width is not None and height is not None:
            self._allocate(width, height)
        else:
            self.background = BackgroundModel()
            self._gray = self._diff = self._highlight = None
        self.stabilizer.reset()

    def _allocate(self, width: int, height: int) -> None:
        self.background.reset(width, height)
        self._gray = np.empty((height, width), dtype=np.float32)
        self._diff = np.empty((height, width), dtype=np.float32)
        self._highlight = np.empty((height, width), dtype=bool)

    # --- background ---

    def update_background(self, frame: np.ndarray, alpha: float = DEFAULT_ALPHA) -> None:
        """Seed (alpha=1.0 or first frame) or blend the background with a frame."""
        rgb = validate_frame(frame)
        h, w = rgb.shape[:2]
        if not self.background.matches(w, h):
            self._allocate(w, h)
        self.background.update(to_gray(rgb, out=self._gray), alpha)

    # --- detection ---

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        """
        Look for a new dart in ``frame``.

        Returns:
            A Detection, or None when nothing (or nothing trustworthy yet) is
            found. Never raises on bad input.
        """
        try:
            rgb = validate_frame(frame)
        except (TypeError, ValueError) as e:
            logger.debug(f"Ignoring malformed frame: {e}")
            return None

        recent = self.stabilizer.in_cooldown()
        h, w = rgb.shape[:2]
        if not self.background.matches(w, h):
            logger.info(f"Reseeding background at {w}x{h}")
            self._allocate(w, h)

        gray = to_gray(rgb, out=self._gray)
        if not self.background.initialized:
            self.background.update(gray, SEED_ALPHA)
            return None

        diff = self.background.absdiff(gray, out=self._diff)
        highlights = highlight_mask(rgb, out=self._highlight)
        mask = self.extractor.extract(diff, highlights, self._roi)
        mask = self.morphology.close(mask)

        blob = self.blobs.largest(mask)
        if not self.blobs.in_bounds(blob):
            self._drift(gray, recent)
            return None

        shaft = estimate_shaft(blob, (self._roi.cx, self._roi.cy))
        if not shaft.is_radial:
            # glare or hand motion, not a dart pointing at the centre
            logger.debug(f"Rejected non-radial blob (area={blob.area}, "
                         f"deviation={shaft.radial_deviation_deg:.1f} deg)")
            self._drift(gray, recent)
            return None

        tip_px = locate_tip(blob, shaft)
        confidence = score_confidence(blob, tip_px, shaft, self._roi)
        tip = (tip_px[0] + 0.5, tip_px[1] + 0.5)

        if not self.stabilizer.observe(tip, blob.area):
            return None
        if recent:
            return None

        detection = Detection(
            tip=tip,
            area=blob.area,
            bbox=blob.bbox,
            confidence=confidence,
            axis=shaft.axis_segment(),
        )
        logger.debug(f"Dart candidate at ({tip[0]:.1f}, {tip[1]:.1f}) "
                     f"area={blob.area} conf={confidence:.2f}")
        return detection

    def process_frame(self, frame: np.ndarray) -> Optional[Detection]:
        """detect() for host loops: an OpenCV failure drops the frame instead of raising."""
        try:
            return self.detect(frame)
        except cv2.error as e:
            logger.warning(f"Dropping frame after OpenCV error: {e}")
            return None

    def accept(self, frame: np.ndarray, detection: Detection) -> None:
        """
        Absorb an accepted dart into the background and start the cooldown.

        Only the detection's bounding box is blended, at a high rate, so the
        resident dart stops reading as foreground.
        """
        self.stabilizer.mark_accepted()
        if not self.background.initialized:
            return
        try:
            rgb = validate_frame(frame)
        except (TypeError, ValueError) as e:
            logger.debug(f"accept() with malformed frame: {e}")
            return
        h, w = rgb.shape[:2]
        if not self.background.matches(w, h):
            return
        gray = to_gray(rgb, out=self._gray)
        self.background.blend_region(gray, detection.bbox, ACCEPT_ALPHA)

    def _drift(self, gray: np.ndarray, recent: bool) -> None:
        # Follow slow lighting changes, but never right after a dart landed
        if not recent:
            self.background.update(gray, DRIFT_ALPHA)
