"""
Auto-scoring glue: detector -> projector -> confidence gate -> dart queue.

Only confident, projected detections are scored automatically. A detection
below ``min_confidence`` is still absorbed into the background (the dart is
physically on the board) but comes back flagged for manual confirmation
instead of being applied.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from dartscore.core.dart_queue import DartQueue
from dartscore.core.detector import DartDetector, Detection
from dartscore.core.match import ApplyResult
from dartscore.core.scoring import Dart, ScoringProjector

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.6


@dataclass
class AutoScoreOutcome:
    detection: Detection
    dart: Optional[Dart] = None
    applied: bool = False
    needs_confirmation: bool = False
    result: Optional[ApplyResult] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "detection": self.detection.to_dict(),
            "applied": self.applied,
            "needs_confirmation": self.needs_confirmation,
            "dart": None,
        }
        if self.dart is not None:
            data["dart"] = {
                "label": self.dart.label,
                "value": self.dart.value,
                "ring": self.dart.ring.value,
                "sector": self.dart.sector,
                "confidence": self.dart.confidence,
            }
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


class AutoScorer:
    """Runs one frame through detection and, when confident, scores it."""

    def __init__(self, detector: DartDetector, projector: Optional[ScoringProjector] = None,
                 dart_queue: Optional[DartQueue] = None,
                 min_confidence: float = DEFAULT_MIN_CONFIDENCE):
        self.detector = detector
        self.projector = projector
        self.queue = dart_queue
        self.min_confidence = min_confidence

    def process(self, frame: np.ndarray) -> Optional[AutoScoreOutcome]:
        """
        Args:
            frame: RGB(A) uint8 image

        Returns:
            None when nothing was detected, otherwise the outcome
        """
        detection = self.detector.process_frame(frame)
        if detection is None:
            return None

        if self.projector is None:
            # No calibration: report the tip, leave the background alone
            return AutoScoreOutcome(detection=detection)

        projected = self.projector.project(detection.tip)
        if projected is None:
            logger.debug(f"Tip at {detection.tip} could not be projected; discarded")
            return AutoScoreOutcome(detection=detection)

        dart = Dart(value=projected.value, ring=projected.ring, sector=projected.sector,
                    multiplier=projected.multiplier, confidence=detection.confidence,
                    source="camera")
        self.detector.accept(frame, detection)

        if detection.confidence < self.min_confidence:
            logger.info(f"Low-confidence dart {dart.label} ({detection.confidence:.2f}); "
                        f"needs confirmation")
            return AutoScoreOutcome(detection=detection, dart=dart, needs_confirmation=True)

        if self.queue is None:
            return AutoScoreOutcome(detection=detection, dart=dart)

        result = self.queue.submit_dart(dart, source="camera").result(timeout=5.0)
        logger.info(f"Auto-scored {dart.label} ({detection.confidence:.2f}): "
                    f"{result.event or result.reason.value}")
        return AutoScoreOutcome(detection=detection, dart=dart, applied=result.applied,
                                result=result)
