"""
Temporal stabilisation and cooldown for detection candidates.
"""
import math
from typing import Optional, Tuple

from dartscore.core.clock import Clock, MonotonicClock

# A candidate is "the same" as the previous one within these tolerances
MAX_TIP_SHIFT_PX = 6.0
MAX_AREA_CHANGE = 0.3


class Stabilizer:
    """
    Requires a candidate tip to hold still for ``require_stable_n`` calls
    and suppresses candidates for ``cooldown_ms`` after an accept.

    The first sighting of a candidate only sets the baseline; it is never
    reported on its own.
    """

    def __init__(self, require_stable_n: int = 1, cooldown_ms: float = 600.0,
                 clock: Optional[Clock] = None):
        self.require_stable_n = require_stable_n
        self.cooldown_ms = cooldown_ms
        self.clock = clock or MonotonicClock()
        self.prev_tip: Optional[Tuple[float, float]] = None
        self.prev_area = 0
        self.stable_count = 0
        self.last_accept_ms: Optional[float] = None

    def in_cooldown(self, now_ms: Optional[float] = None) -> bool:
        if self.last_accept_ms is None:
            return False
        if now_ms is None:
            now_ms = self.clock.now_ms()
        return (now_ms - self.last_accept_ms) < self.cooldown_ms

    def observe(self, tip: Tuple[float, float], area: int) -> bool:
        """
        Record a candidate and report whether it is now stable.

        Any candidate that does not match the previous one becomes the new
        baseline with a count of 1.
        """
        if self.prev_tip is None:
            self._rebase(tip, area)
            return False

        close = math.hypot(tip[0] - self.prev_tip[0], tip[1] - self.prev_tip[1]) <= MAX_TIP_SHIFT_PX
        similar = abs(area - self.prev_area) / max(1, area) < MAX_AREA_CHANGE
        if not (close and similar):
            self._rebase(tip, area)
            return False

        self.prev_tip = tip
        self.prev_area = area
        self.stable_count += 1
        return self.stable_count >= self.require_stable_n

    def mark_accepted(self) -> None:
        """Start the cooldown window and forget the stabilised candidate."""
        self.last_accept_ms = self.clock.now_ms()
        self.reset()

    def reset(self) -> None:
        self.prev_tip = None
        self.prev_area = 0
        self.stable_count = 0

    def _rebase(self, tip: Tuple[float, float], area: int) -> None:
        self.prev_tip = tip
        self.prev_area = area
        self.stable_count = 1
