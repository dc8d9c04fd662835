"""
Time sources for detection cooldowns and turn timers.

Everything that debounces on time takes a clock instead of calling
time.monotonic() directly, so tests can step time by hand.
"""
import time
from typing import Protocol


class Clock(Protocol):
    """Anything with a millisecond ``now_ms()``."""

    def now_ms(self) -> float:
        ...


class MonotonicClock:
    """Wall clock backed by time.monotonic()."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        self._now += ms
        return self._now

    def set(self, ms: float) -> None:
        self._now = float(ms)
