"""
Pydantic schemas for the dartscore API.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# === Match ===

class NewMatchRequest(BaseModel):
    """Start a new X01 match"""
    players: List[str] = Field(..., min_length=1, description="Player names in throwing order")
    starting_score: Optional[int] = Field(None, gt=1, description="X01 starting score (default from settings)")
    double_in: Optional[bool] = Field(None, description="Require a double to open scoring")
    double_out: Optional[bool] = Field(None, description="Require a double to finish")
    legs_to_win: Optional[int] = Field(None, ge=1, description="End the match after this many legs")
    defer_commit: bool = Field(False, description="Hold a full visit until /commit")
    dart_timer_seconds: Optional[float] = Field(None, ge=0, description="Per-dart time limit, 0 disables")


class DartInput(BaseModel):
    """
    A dart in any accepted shape: value+ring, score string ("T20"),
    sector+mult, or bull.
    """
    value: Optional[int] = Field(None, ge=0, le=60)
    ring: Optional[str] = None
    sector: Optional[int] = Field(None, ge=1, le=20)
    mult: Optional[int] = Field(None, ge=1, le=3)
    score: Optional[str] = Field(None, description="Manual entry, e.g. T20, D16, 25, 50, MISS")
    bull: Optional[str] = Field(None, description="'inner' or 'outer'")
    confidence: Optional[float] = Field(None, ge=0, le=1)

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class VisitInput(BaseModel):
    """A committed visit relayed from another client"""
    value: int = Field(..., ge=0, le=180, description="Visit total")
    darts: int = Field(3, ge=1, le=3)
    visit_total: Optional[int] = None
    pre_open_darts: Optional[int] = Field(None, ge=0, le=3)
    double_window_darts: Optional[int] = Field(None, ge=0, le=3)
    finished_by_double: Optional[bool] = None


class ApplyResponse(BaseModel):
    applied: bool
    event: Optional[str] = None
    remaining: Optional[int] = None
    visit_score: Optional[int] = None
    state: Dict[str, Any] = Field(default_factory=dict, description="Match snapshot after the call")


# === Checkout ===

class CheckoutResponse(BaseModel):
    score: int
    suggestions: List[List[str]]


# === Detector sessions ===

class RoiConfig(BaseModel):
    cx: float
    cy: float
    radius: float = Field(..., description="Pixels; 0 disables the ROI, negative clamps to 0")


class SessionRequest(BaseModel):
    """Start (or restart) a detector session for one camera"""
    threshold: float = Field(28.0, gt=0)
    min_area: int = Field(90, ge=1)
    max_area: int = Field(6000, ge=1)
    require_stable_n: int = Field(1, ge=1)
    cooldown_ms: float = Field(600.0, ge=0)
    roi: Optional[RoiConfig] = None
    homography: Optional[List[List[float]]] = Field(
        None, description="3x3 board-mm -> image-pixel homography"
    )
    rotation_offset_degrees: float = Field(0.0, description="Board rotation offset in degrees")
    min_confidence: Optional[float] = Field(None, ge=0, le=1)


class FrameRequest(BaseModel):
    image: str = Field(..., description="Base64 encoded image data")
    background: bool = Field(False, description="Feed the frame into the background model only")


class FrameResponse(BaseModel):
    camera_id: str
    detected: bool
    outcome: Optional[Dict[str, Any]] = None


class SessionInfo(BaseModel):
    camera_id: str
    initialized: bool
    calibrated: bool
    frames: int
    detections: int
    roi: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str
    version: str
    match_in_progress: bool
    sessions: int
