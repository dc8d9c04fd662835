"""
Detector sessions - one DartDetector per camera session.

Each camera stream gets its own detector (and with it its own background
buffer and stabiliser), created when the stream starts and dropped when it
stops. Sessions idle for too long are cleaned up.
"""
import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence

from dartscore.core.autoscore import DEFAULT_MIN_CONFIDENCE, AutoScorer
from dartscore.core.dart_queue import DartQueue
from dartscore.core.detector import DartDetector, DetectorConfig
from dartscore.core.scoring import HomographyProjector

logger = logging.getLogger(__name__)


@dataclass
class DetectorSession:
    camera_id: str
    detector: DartDetector
    scorer: AutoScorer
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    frames: int = 0
    detections: int = 0

    def touch(self) -> None:
        self.last_activity = time.time()

    def get_state(self) -> Dict[str, Any]:
        roi = self.detector.roi
        return {
            "camera_id": self.camera_id,
            "initialized": self.detector.initialized,
            "roi": {"cx": roi.cx, "cy": roi.cy, "radius": roi.radius},
            "calibrated": self.scorer.projector is not None,
            "frames": self.frames,
            "detections": self.detections,
            "created_at": self.created_at,
            "last_activity": self.last_activity,
        }


class DetectorSessionManager:
    """
    Registry of live detector sessions keyed by camera id.

    Creating a session for a camera that already has one replaces it, so a
    restarted stream never inherits a stale background.
    """

    # Drop sessions after 10 minutes without frames
    INACTIVE_TIMEOUT_SECONDS = 600

    def __init__(self):
        self._lock = Lock()
        self._sessions: Dict[str, DetectorSession] = {}

    def create(self, camera_id: str, config: Optional[DetectorConfig] = None,
               roi: Optional[Sequence[float]] = None,
               homography: Optional[Sequence[Sequence[float]]] = None,
               rotation_offset: float = 0.0,
               min_confidence: float = DEFAULT_MIN_CONFIDENCE,
               dart_queue: Optional[DartQueue] = None) -> DetectorSession:
        detector = DartDetector(config)
        if roi is not None:
            cx, cy, radius = roi
            detector.set_roi(cx, cy, radius)

        projector = None
        if homography is not None:
            projector = HomographyProjector(rotation_offset=rotation_offset)
            if not projector.set_homography(homography):
                projector = None

        scorer = AutoScorer(detector, projector, dart_queue, min_confidence=min_confidence)
        session = DetectorSession(camera_id=camera_id, detector=detector, scorer=scorer)
        with self._lock:
            replaced = camera_id in self._sessions
            self._sessions[camera_id] = session
        logger.info(f"{'Restarted' if replaced else 'Started'} detector session {camera_id}"
                    f"{' (calibrated)' if projector else ''}")
        return session

    def get(self, camera_id: str) -> Optional[DetectorSession]:
        with self._lock:
            return self._sessions.get(camera_id)

    def remove(self, camera_id: str) -> bool:
        with self._lock:
            if camera_id in self._sessions:
                del self._sessions[camera_id]
                logger.info(f"Stopped detector session {camera_id}")
                return True
            return False

    def bind_queue(self, dart_queue: Optional[DartQueue]) -> None:
        """Point every session's scorer at the active match."""
        with self._lock:
            for session in self._sessions.values():
                session.scorer.queue = dart_queue

    def list_sessions(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [session.get_state() for session in self._sessions.values()]

    def cleanup_inactive(self) -> List[str]:
        """Remove sessions that have been inactive too long."""
        now = time.time()
        with self._lock:
            stale = [
                camera_id
                for camera_id, session in self._sessions.items()
                if now - session.last_activity > self.INACTIVE_TIMEOUT_SECONDS
            ]
            for camera_id in stale:
                del self._sessions[camera_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} inactive detector session(s)")
        return stale

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


# Global manager instance
session_manager = DetectorSessionManager()
