"""
dartscore API routes.

One match is live at a time. Every mutation of it goes through the match's
DartQueue, whether it comes from a request here, a detector session, or the
turn timer. Detector sessions are per camera and feed confident darts into
the same queue.
"""
import base64
import binascii
import logging
import math
import threading
from typing import Any, Dict, Optional

import cv2
import numpy as np
from fastapi import APIRouter, HTTPException

from dartscore.config import load_settings
from dartscore.core.checkout import suggest_checkout
from dartscore.core.dart_queue import DartQueue, TurnTimer
from dartscore.core.detector import DetectorConfig
from dartscore.core.frame import from_bgr
from dartscore.core.leg_state import LegStateMachine
from dartscore.core.match import ApplyResult, Match, Rejection
from dartscore.core.scoring import normalize_dart
from dartscore.core.sessions import session_manager
from dartscore.models.schemas import (
    ApplyResponse,
    CheckoutResponse,
    DartInput,
    FrameRequest,
    FrameResponse,
    HealthResponse,
    NewMatchRequest,
    SessionInfo,
    SessionRequest,
    VisitInput,
)

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"

settings = load_settings()


class MatchHolder:
    """The live match, its single-writer queue and its optional turn timer."""

    def __init__(self):
        self._lock = threading.Lock()
        self.machine: Optional[LegStateMachine] = None
        self.queue: Optional[DartQueue] = None
        self.timer: Optional[TurnTimer] = None

    def start(self, machine: LegStateMachine, timer_seconds: float) -> None:
        with self._lock:
            self._stop_timer()
            self.machine = machine
            self.queue = DartQueue(machine)
            if timer_seconds > 0:
                self.timer = TurnTimer(self.queue, timer_seconds)
                self.timer.start()
        session_manager.bind_queue(self.queue)

    def stop(self) -> None:
        with self._lock:
            self._stop_timer()

    def _stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.stop()
            self.timer = None

    def require(self) -> DartQueue:
        if self.queue is None:
            raise HTTPException(status_code=404, detail="No match has been started")
        return self.queue


match_holder = MatchHolder()


def decode_image(base64_str: str) -> np.ndarray:
    """Decode a base64 image (optionally a data URL) to an RGB frame."""
    if base64_str.startswith("data:"):
        base64_str = base64_str.split(",", 1)[-1]
    try:
        img_bytes = base64.b64decode(base64_str, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image is not valid base64")
    nparr = np.frombuffer(img_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR) if nparr.size else None
    if image is None:
        raise HTTPException(status_code=400, detail="Could not decode image")
    return from_bgr(image)


def _respond(result: ApplyResult) -> ApplyResponse:
    """Map a state-machine result to a response, or raise for a rejection."""
    if not result.applied:
        status = 422 if result.reason == Rejection.INVALID_INPUT else 409
        raise HTTPException(status_code=status, detail=result.reason.value)
    return ApplyResponse(
        applied=True,
        event=result.event,
        remaining=result.remaining,
        visit_score=result.visit.score if result.visit else None,
        state=match_holder.machine.snapshot(),
    )


def _apply(kind: str, payload: Any = None) -> ApplyResponse:
    queue = match_holder.require()
    return _respond(queue.apply(kind, payload))


# === Health ===

@router.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    machine = match_holder.machine
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        match_in_progress=bool(machine and machine.match.in_progress),
        sessions=len(session_manager.list_sessions()),
    )


# === Match ===

@router.post("/v1/match", response_model=ApplyResponse)
def new_match(request: NewMatchRequest):
    """Start a new match, replacing any live one."""
    names = [name.strip() for name in request.players]
    if any(not name for name in names):
        raise HTTPException(status_code=422, detail="Player names must not be empty")
    match = Match.new(
        names,
        starting_score=request.starting_score or settings.starting_score,
        double_in=settings.double_in if request.double_in is None else request.double_in,
        double_out=settings.double_out if request.double_out is None else request.double_out,
        legs_to_win=request.legs_to_win,
    )
    machine = LegStateMachine(match, defer_commit=request.defer_commit)
    timer_seconds = request.dart_timer_seconds
    if timer_seconds is None:
        timer_seconds = settings.dart_timer_seconds
    match_holder.start(machine, timer_seconds)
    return ApplyResponse(applied=True, event="match_started", remaining=match.remaining(),
                         state=machine.snapshot())


@router.get("/v1/match")
def get_match() -> Dict[str, Any]:
    match_holder.require()
    return match_holder.machine.snapshot()


@router.post("/v1/match/darts", response_model=ApplyResponse)
def add_dart(dart: DartInput):
    """Apply one dart for the current player."""
    queue = match_holder.require()
    return _respond(queue.submit_dart(dart.payload(), source="manual").result(timeout=5.0))


@router.post("/v1/match/replace-last", response_model=ApplyResponse)
def replace_last(dart: DartInput):
    """Correct the last pending dart."""
    canonical = normalize_dart(dart.payload(), source="manual")
    if canonical is None:
        raise HTTPException(status_code=422, detail=Rejection.INVALID_INPUT.value)
    return _apply("replace_last", canonical)


@router.post("/v1/match/undo", response_model=ApplyResponse)
def undo_dart():
    """Remove the last pending dart."""
    return _apply("undo_dart")


@router.post("/v1/match/undo-visit", response_model=ApplyResponse)
def undo_visit():
    """Take back the current player's last committed visit."""
    return _apply("undo_visit")


@router.post("/v1/match/commit", response_model=ApplyResponse)
def commit_visit():
    """Commit the pending darts and pass the turn."""
    return _apply("commit")


@router.post("/v1/match/visits", response_model=ApplyResponse)
def add_visit(visit: VisitInput):
    """Apply a whole visit committed elsewhere (duplicate-guarded)."""
    return _apply("visit", visit.model_dump(exclude_none=True))


@router.post("/v1/match/next-leg", response_model=ApplyResponse)
def next_leg():
    """Start the next leg once the current one has a winner."""
    match_holder.require()
    if match_holder.machine.match.leg_winner is None:
        raise HTTPException(status_code=409, detail="Current leg is not finished")
    return _apply("next_leg")


@router.post("/v1/match/end", response_model=ApplyResponse)
def end_match():
    """End the match and compute final statistics."""
    response = _apply("end")
    match_holder.stop()
    return response


# === Checkout ===

@router.get("/v1/checkout/{score}", response_model=CheckoutResponse)
async def checkout(score: int):
    return CheckoutResponse(score=score, suggestions=suggest_checkout(score))


# === Detector sessions ===

@router.post("/v1/sessions/{camera_id}", response_model=SessionInfo)
def start_session(camera_id: str, request: SessionRequest):
    """Start (or restart) detection for one camera."""
    if request.max_area < request.min_area:
        raise HTTPException(status_code=422, detail="max_area must be >= min_area")
    config = DetectorConfig(
        threshold=request.threshold,
        min_area=request.min_area,
        max_area=request.max_area,
        require_stable_n=request.require_stable_n,
        cooldown_ms=request.cooldown_ms,
    )
    roi = None
    if request.roi is not None:
        roi = (request.roi.cx, request.roi.cy, request.roi.radius)
    if request.homography is not None:
        if len(request.homography) != 3 or any(len(row) != 3 for row in request.homography):
            raise HTTPException(status_code=422, detail="homography must be 3x3")
    min_confidence = request.min_confidence
    if min_confidence is None:
        min_confidence = settings.min_confidence
    session = session_manager.create(
        camera_id,
        config=config,
        roi=roi,
        homography=request.homography,
        rotation_offset=math.radians(request.rotation_offset_degrees),
        min_confidence=min_confidence,
        dart_queue=match_holder.queue,
    )
    if request.homography is not None and session.scorer.projector is None:
        session_manager.remove(camera_id)
        raise HTTPException(status_code=422, detail="homography is singular")
    return SessionInfo(**session.get_state())


@router.post("/v1/sessions/{camera_id}/frames", response_model=FrameResponse)
def submit_frame(camera_id: str, request: FrameRequest):
    """Run one frame through the camera's detector."""
    session = session_manager.get(camera_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No detector session for {camera_id}")
    frame = decode_image(request.image)
    session.frames += 1
    session.touch()

    if request.background:
        session.detector.update_background(frame)
        return FrameResponse(camera_id=camera_id, detected=False)

    outcome = session.scorer.process(frame)
    if outcome is None:
        return FrameResponse(camera_id=camera_id, detected=False)
    session.detections += 1
    return FrameResponse(camera_id=camera_id, detected=True, outcome=outcome.to_dict())


@router.delete("/v1/sessions/{camera_id}")
def stop_session(camera_id: str):
    if not session_manager.remove(camera_id):
        raise HTTPException(status_code=404, detail=f"No detector session for {camera_id}")
    return {"camera_id": camera_id, "stopped": True}


@router.get("/v1/sessions")
def list_sessions():
    return {"sessions": session_manager.list_sessions()}
