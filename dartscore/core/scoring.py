"""
Scoring module: canonical dart values and the pixel -> score boundary.

Darts arrive from the local detector, manual entry, or a remote relay, each
with its own payload shape. ``normalize_dart`` is the single place where
those shapes become a ``Dart``; nothing downstream sees raw payloads.
"""
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from dartscore.core.geometry import calculate_score

logger = logging.getLogger(__name__)


class Ring(str, Enum):
    MISS = "MISS"
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"
    TRIPLE = "TRIPLE"
    BULL = "BULL"
    INNER_BULL = "INNER_BULL"

    @property
    def is_double(self) -> bool:
        """Qualifies for double-in / double-out."""
        return self in (Ring.DOUBLE, Ring.INNER_BULL)


RING_MULTIPLIER = {
    Ring.MISS: 0,
    Ring.SINGLE: 1,
    Ring.DOUBLE: 2,
    Ring.TRIPLE: 3,
    Ring.BULL: 1,
    Ring.INNER_BULL: 2,
}


@dataclass(frozen=True)
class Dart:
    """One thrown dart in canonical form."""
    value: int
    ring: Ring
    sector: Optional[int] = None
    multiplier: Optional[int] = None
    confidence: Optional[float] = None
    source: str = "manual"  # camera | manual | remote | timer

    @property
    def label(self) -> str:
        if self.ring == Ring.MISS:
            return "MISS"
        if self.ring == Ring.BULL:
            return "BULL"
        if self.ring == Ring.INNER_BULL:
            return "DBULL"
        prefix = {Ring.SINGLE: "S", Ring.DOUBLE: "D", Ring.TRIPLE: "T"}[self.ring]
        if self.sector:
            return f"{prefix}{self.sector}"
        return f"{prefix} {self.value}"


MISS = Dart(value=0, ring=Ring.MISS, multiplier=0, source="timer")


def normalize_ring(raw: Any) -> Optional[Ring]:
    """Map the many ring spellings seen in the wild onto ``Ring``; None if unknown."""
    if isinstance(raw, Ring):
        return raw
    s = str(raw or "").strip().upper()
    if s.startswith("TR"):
        return Ring.TRIPLE
    if s.startswith("DO"):
        return Ring.DOUBLE
    if s.startswith("SI"):
        return Ring.SINGLE
    if s in ("INNER_BULL", "DBULL", "50", "IBULL"):
        return Ring.INNER_BULL
    if s in ("BULL", "25", "OBULL", "OUTER_BULL"):
        return Ring.BULL
    if s in ("MISS", "0"):
        return Ring.MISS
    return None


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _confidence(raw: Any) -> Optional[float]:
    # Some providers report 0..100
    if not _is_number(raw):
        return None
    if raw > 1:
        return max(0.0, min(1.0, raw / 100.0))
    return max(0.0, min(1.0, float(raw)))


def _from_value(value: float, ring: Ring, sector: Optional[int] = None, **kw) -> Optional[Dart]:
    if ring == Ring.INNER_BULL:
        return Dart(value=50, ring=ring, sector=25, multiplier=2, **kw)
    if ring == Ring.BULL:
        return Dart(value=25, ring=ring, sector=25, multiplier=1, **kw)
    if ring == Ring.MISS:
        return Dart(value=0, ring=ring, multiplier=0, **kw)
    v = int(round(value))
    mult = RING_MULTIPLIER[ring]
    # no sector scores more than 20 in a ring
    if not 0 <= v <= 20 * mult:
        return None
    if sector is None and v % mult == 0 and 1 <= v // mult <= 20:
        sector = v // mult
    return Dart(value=v, ring=ring, sector=sector, multiplier=mult, **kw)


def _from_sector(sector: int, mult: int, **kw) -> Dart:
    ring = {1: Ring.SINGLE, 2: Ring.DOUBLE, 3: Ring.TRIPLE}[mult]
    return Dart(value=sector * mult, ring=ring, sector=sector, multiplier=mult, **kw)


_LABEL_RE = re.compile(r"^(S|D|T)?\s*(\d{1,2})$")


def parse_manual(text: str, source: str = "manual") -> Optional[Dart]:
    """
    Parse typed entries like ``T20``, ``D16``, ``5``, ``25``, ``50``, ``BULL``.

    A bare number is a single of that sector, except 25 (outer bull) and
    50 (inner bull). Returns None for anything unparseable.
    """
    t = (text or "").strip().upper()
    if not t:
        return None
    if t in ("50", "DBULL", "IBULL", "INNER_BULL"):
        return _from_value(50, Ring.INNER_BULL, source=source)
    if t in ("25", "BULL", "OBULL", "OUTER_BULL", "SBULL"):
        return _from_value(25, Ring.BULL, source=source)
    if t in ("MISS", "M", "0"):
        return _from_value(0, Ring.MISS, source=source)
    m = _LABEL_RE.match(t)
    if not m:
        return None
    sector = int(m.group(2))
    if not 1 <= sector <= 20:
        return None
    mult = {"S": 1, "D": 2, "T": 3}[m.group(1) or "S"]
    return _from_sector(sector, mult, source=source)


def normalize_dart(payload: Any, source: str = "remote") -> Optional[Dart]:
    """
    Convert any supported external dart shape into a ``Dart``.

    Accepted shapes:
        - a Dart (returned unchanged)
        - {"value": 40, "ring": "DOUBLE"} (optionally with type/kind/event="dart")
        - {"score": "T20"} / {"score": "25"}
        - {"sector": 20, "mult": 3}
        - {"bull": "inner" | "outer" | True}

    Returns:
        The canonical Dart, or None for malformed input
    """
    if isinstance(payload, Dart):
        return payload
    if not isinstance(payload, dict):
        logger.debug(f"Dropping non-dict dart payload: {payload!r}")
        return None

    conf = _confidence(payload.get("confidence"))
    src = payload.get("source") or source
    sector = payload.get("sector")
    sector = int(sector) if _is_number(sector) and 1 <= sector <= 20 else None

    value = payload.get("value")
    if _is_number(value) and payload.get("ring"):
        ring = normalize_ring(payload["ring"])
        dart = None
        if ring is not None:
            dart = _from_value(value, ring, sector, confidence=conf, source=src)
        if dart is None:
            logger.debug(f"Dropping dart with bad value or ring: {payload!r}")
        return dart

    score = payload.get("score")
    if isinstance(score, str):
        dart = parse_manual(score, source=src)
        if dart is not None:
            return Dart(value=dart.value, ring=dart.ring, sector=dart.sector,
                        multiplier=dart.multiplier, confidence=conf, source=src)

    mult = payload.get("mult", payload.get("multiplier"))
    if sector is not None and _is_number(mult) and int(mult) in (1, 2, 3):
        return _from_sector(sector, int(mult), confidence=conf, source=src)

    bull = payload.get("bull")
    if bull:
        inner = bull is True or str(bull).lower() == "inner"
        return _from_value(0, Ring.INNER_BULL if inner else Ring.BULL, confidence=conf, source=src)

    logger.debug(f"Dropping unrecognised dart payload: {payload!r}")
    return None


# === Pixel -> score ===

class ScoringProjector(Protocol):
    """Maps a detected tip pixel to a dart. None means no calibration."""

    def project(self, point: Tuple[float, float]) -> Optional[Dart]:
        ...


class HomographyProjector:
    """
    Scores image points through a board->image homography.

    The homography maps board millimetres (centre at 0, 0) to image pixels;
    its inverse takes a detected tip back onto the board.
    """

    def __init__(self, board_to_image: Optional[Sequence[Sequence[float]]] = None,
                 rotation_offset: float = 0.0):
        self.rotation_offset = rotation_offset
        self._image_to_board: Optional[np.ndarray] = None
        if board_to_image is not None:
            self.set_homography(board_to_image)

    @property
    def calibrated(self) -> bool:
        return self._image_to_board is not None

    def set_homography(self, board_to_image: Sequence[Sequence[float]]) -> bool:
        """Install a new homography. Returns False (and clears it) if singular."""
        H = np.asarray(board_to_image, dtype=np.float64).reshape(3, 3)
        try:
            inv = np.linalg.inv(H)
        except np.linalg.LinAlgError:
            logger.warning("Singular board homography; projector disabled")
            self._image_to_board = None
            return False
        if not np.all(np.isfinite(inv)):
            self._image_to_board = None
            return False
        self._image_to_board = inv
        return True

    def board_point(self, point: Tuple[float, float]) -> Optional[Tuple[float, float]]:
        if self._image_to_board is None:
            return None
        src = np.array([[[point[0], point[1]]]], dtype=np.float64)
        dst = cv2.perspectiveTransform(src, self._image_to_board)
        x, y = float(dst[0, 0, 0]), float(dst[0, 0, 1])
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        return x, y

    def project(self, point: Tuple[float, float]) -> Optional[Dart]:
        p = self.board_point(point)
        if p is None:
            return None
        s = calculate_score(p[0], p[1], self.rotation_offset)
        return Dart(
            value=s["value"],
            ring=Ring(s["ring"]),
            sector=s["sector"],
            multiplier=s["multiplier"],
            source="camera",
        )
