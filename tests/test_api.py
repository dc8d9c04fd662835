"""
HTTP round trips through the FastAPI app.
"""
import base64

import cv2
import pytest
from fastapi.testclient import TestClient

from dartscore.api.routes import match_holder
from dartscore.core.sessions import session_manager
from dartscore.main import app

from frames import board_frame, dart_frame


@pytest.fixture
def client():
    match_holder.stop()
    match_holder.machine = None
    match_holder.queue = None
    session_manager.clear()
    return TestClient(app)


def _encode(frame):
    ok, buf = cv2.imencode(".png", cv2.cvtColor(frame, cv2.COLOR_RGB2BGR))
    assert ok
    return base64.b64encode(buf.tobytes()).decode("ascii")


def _start(client, **body):
    body.setdefault("players", ["Alice", "Bob"])
    r = client.post("/v1/match", json=body)
    assert r.status_code == 200
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    payload = r.json()
    assert payload["status"] == "healthy"
    assert payload["match_in_progress"] is False


def test_root(client):
    assert client.get("/").json()["health"] == "/health"


def test_no_match_yet(client):
    assert client.get("/v1/match").status_code == 404
    assert client.post("/v1/match/darts", json={"score": "T20"}).status_code == 404


def test_new_match_validation(client):
    assert client.post("/v1/match", json={"players": []}).status_code == 422
    assert client.post("/v1/match", json={"players": ["  "]}).status_code == 422


def test_dart_flow(client):
    started = _start(client)
    assert started["remaining"] == 501

    r = client.post("/v1/match/darts", json={"score": "T20"})
    assert r.status_code == 200
    assert r.json()["event"] == "dart_added"
    assert r.json()["remaining"] == 441
    assert r.json()["state"]["pending_total"] == 60

    r = client.post("/v1/match/replace-last", json={"score": "T19"})
    assert r.json()["event"] == "dart_replaced"
    assert r.json()["remaining"] == 444

    r = client.post("/v1/match/undo")
    assert r.json()["event"] == "dart_undone"
    assert r.json()["remaining"] == 501

    r = client.post("/v1/match/commit")
    assert r.status_code == 409
    assert r.json()["detail"] == "no_pending"

    r = client.post("/v1/match/darts", json={"value": 40, "ring": "DOUBLE"})
    assert r.status_code == 200
    r = client.post("/v1/match/commit")
    assert r.json()["event"] == "visit_committed"
    assert r.json()["visit_score"] == 40

    snapshot = client.get("/v1/match").json()
    assert snapshot["current_player"] == "1"
    assert snapshot["players"][0]["remaining"] == 461


def test_invalid_dart(client):
    _start(client)
    r = client.post("/v1/match/darts", json={"value": 5})
    assert r.status_code == 422
    assert r.json()["detail"] == "invalid_input"
    r = client.post("/v1/match/replace-last", json={"score": "T25"})
    assert r.status_code == 422


def test_visit_duplicate_guard(client):
    _start(client)
    assert client.post("/v1/match/visits", json={"value": 60, "darts": 3}).status_code == 200
    r = client.post("/v1/match/visits", json={"value": 60, "darts": 3})
    assert r.status_code == 409
    assert r.json()["detail"] == "duplicate"


def test_visit_rejected_while_darts_pending(client):
    _start(client)
    client.post("/v1/match/darts", json={"score": "S20"})
    r = client.post("/v1/match/visits", json={"value": 45, "darts": 3})
    assert r.status_code == 409
    assert r.json()["detail"] == "darts_pending"
    snapshot = client.get("/v1/match").json()
    assert snapshot["current_player"] == "0"
    assert snapshot["pending_total"] == 20


def test_relayed_overshoot_busts(client):
    _start(client, starting_score=40)
    r = client.post("/v1/match/visits", json={"value": 60, "darts": 3})
    assert r.status_code == 200
    assert r.json()["event"] == "bust"
    assert r.json()["remaining"] == 40
    snapshot = client.get("/v1/match").json()
    assert snapshot["leg_winner"] is None
    assert snapshot["players"][0]["legs_won"] == 0


def test_leg_and_match_end(client):
    _start(client, starting_score=40)
    r = client.post("/v1/match/darts", json={"score": "D20"})
    assert r.json()["event"] == "leg_won"

    r = client.post("/v1/match/darts", json={"score": "S1"})
    assert r.status_code == 409
    assert r.json()["detail"] == "leg_finished"

    r = client.post("/v1/match/next-leg")
    assert r.json()["event"] == "leg_started"
    assert client.post("/v1/match/next-leg").status_code == 409

    r = client.post("/v1/match/end")
    assert r.json()["event"] == "match_ended"
    r = client.post("/v1/match/darts", json={"score": "S1"})
    assert r.json()["detail"] == "match_not_in_progress"


def test_undo_visit(client):
    _start(client, players=["Solo"])
    client.post("/v1/match/visits", json={"value": 45, "darts": 3})
    r = client.post("/v1/match/undo-visit")
    assert r.status_code == 200
    assert r.json()["remaining"] == 501
    assert client.post("/v1/match/undo-visit").json()["detail"] == "nothing_to_undo"


def test_checkout(client):
    r = client.get("/v1/checkout/40")
    assert r.status_code == 200
    assert r.json()["suggestions"][0] == ["D20"]
    assert client.get("/v1/checkout/171").json()["suggestions"] == []


def test_detector_session(client):
    r = client.post("/v1/sessions/cam1", json={"roi": {"cx": 100, "cy": 100, "radius": 90}})
    assert r.status_code == 200
    assert r.json()["roi"]["radius"] == 90
    assert r.json()["calibrated"] is False

    r = client.post("/v1/sessions/cam1/frames", json={"image": _encode(board_frame()), "background": True})
    assert r.json()["detected"] is False

    dart = _encode(dart_frame())
    assert client.post("/v1/sessions/cam1/frames", json={"image": dart}).json()["detected"] is False
    r = client.post("/v1/sessions/cam1/frames", json={"image": dart})
    payload = r.json()
    assert payload["detected"] is True
    assert payload["outcome"]["detection"]["tip"]["x"] == 170.5
    assert payload["outcome"]["dart"] is None

    sessions = client.get("/v1/sessions").json()["sessions"]
    assert sessions[0]["frames"] == 3

    assert client.delete("/v1/sessions/cam1").status_code == 200
    assert client.delete("/v1/sessions/cam1").status_code == 404


def test_calibrated_session_scores_into_match(client):
    _start(client)
    # 1 px per mm, board centre at (100, 100): the tip lands in the single 6
    homography = [[1, 0, 100], [0, 1, 100], [0, 0, 1]]
    r = client.post("/v1/sessions/cam1", json={
        "roi": {"cx": 100, "cy": 100, "radius": 90},
        "homography": homography,
        "min_confidence": 0.5,
    })
    assert r.json()["calibrated"] is True

    client.post("/v1/sessions/cam1/frames", json={"image": _encode(board_frame())})
    dart = _encode(dart_frame())
    client.post("/v1/sessions/cam1/frames", json={"image": dart})
    outcome = client.post("/v1/sessions/cam1/frames", json={"image": dart}).json()["outcome"]
    assert outcome["applied"] is True
    assert outcome["dart"]["label"] == "S6"
    assert client.get("/v1/match").json()["pending_total"] == 6


def test_session_rotation_offset_in_degrees(client):
    _start(client)
    # same tip as above, board turned 18 degrees: one sector on from 6
    homography = [[1, 0, 100], [0, 1, 100], [0, 0, 1]]
    client.post("/v1/sessions/cam1", json={
        "roi": {"cx": 100, "cy": 100, "radius": 90},
        "homography": homography,
        "rotation_offset_degrees": 18,
        "min_confidence": 0.5,
    })
    client.post("/v1/sessions/cam1/frames", json={"image": _encode(board_frame())})
    dart = _encode(dart_frame())
    client.post("/v1/sessions/cam1/frames", json={"image": dart})
    outcome = client.post("/v1/sessions/cam1/frames", json={"image": dart}).json()["outcome"]
    assert outcome["dart"]["label"] == "S10"
    assert client.get("/v1/match").json()["pending_total"] == 10


def test_session_errors(client):
    assert client.post("/v1/sessions/none/frames", json={"image": ""}).status_code == 404
    client.post("/v1/sessions/cam1", json={})
    r = client.post("/v1/sessions/cam1/frames", json={"image": "not base64!"})
    assert r.status_code == 400
    r = client.post("/v1/sessions/cam2", json={"homography": [[0, 0, 0], [0, 0, 0], [0, 0, 0]]})
    assert r.status_code == 422
    r = client.post("/v1/sessions/cam2", json={"homography": [[1, 0], [0, 1]]})
    assert r.status_code == 422
