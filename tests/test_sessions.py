from dartscore.core.dart_queue import DartQueue
from dartscore.core.detector import DetectorConfig
from dartscore.core.leg_state import LegStateMachine
from dartscore.core.match import Match
from dartscore.core.sessions import DetectorSessionManager


def test_create_get_remove():
    manager = DetectorSessionManager()
    session = manager.create("cam1", DetectorConfig(min_area=50), roi=(100, 100, 80))
    assert manager.get("cam1") is session
    assert session.detector.blobs.min_area == 50
    assert session.detector.roi.radius == 80
    assert manager.remove("cam1")
    assert not manager.remove("cam1")
    assert manager.get("cam1") is None


def test_restart_replaces_detector():
    manager = DetectorSessionManager()
    first = manager.create("cam1")
    second = manager.create("cam1")
    assert first.detector is not second.detector
    assert len(manager.list_sessions()) == 1


def test_homography_makes_session_calibrated():
    manager = DetectorSessionManager()
    session = manager.create("cam1", homography=[[1, 0, 0], [0, 1, 0], [0, 0, 1]])
    assert session.get_state()["calibrated"]
    singular = manager.create("cam2", homography=[[0, 0, 0], [0, 0, 0], [0, 0, 0]])
    assert not singular.get_state()["calibrated"]


def test_bind_queue():
    manager = DetectorSessionManager()
    session = manager.create("cam1")
    q = DartQueue(LegStateMachine(Match.new(["Alice"])))
    manager.bind_queue(q)
    assert session.scorer.queue is q


def test_cleanup_inactive():
    manager = DetectorSessionManager()
    stale = manager.create("old")
    manager.create("fresh")
    stale.last_activity -= DetectorSessionManager.INACTIVE_TIMEOUT_SECONDS + 1
    assert manager.cleanup_inactive() == ["old"]
    assert [s["camera_id"] for s in manager.list_sessions()] == ["fresh"]
