"""
Single-writer input queue for a LegStateMachine, plus the turn-timer
watchdog that feeds it.

Darts can arrive from the camera loop, manual entry, a network relay and the
turn timer at the same time. All of them go through DartQueue.submit(); the
queue applies events one at a time, in arrival order, so remaining score and
pending darts are never updated by two producers at once.
"""
import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from dartscore.core.clock import Clock, MonotonicClock
from dartscore.core.leg_state import DARTS_PER_VISIT, LegStateMachine
from dartscore.core.match import ApplyResult, Rejection
from dartscore.core.scoring import Dart, normalize_dart

logger = logging.getLogger(__name__)


@dataclass
class QueuedEvent:
    kind: str  # dart, timer, replace_last, undo_dart, undo_visit, commit, visit, next_leg, end
    payload: Any = None
    future: Future = field(default_factory=Future)


class DartQueue:
    """Serialises every state-machine mutation for one match."""

    def __init__(self, machine: LegStateMachine):
        self.machine = machine
        self._queue: "queue.Queue[QueuedEvent]" = queue.Queue()
        self._lock = threading.Lock()

    def submit(self, kind: str, payload: Any = None) -> Future:
        """
        Enqueue an event and process the queue if no other thread is.

        Returns:
            Future resolving to the ApplyResult for this event
        """
        event = QueuedEvent(kind=kind, payload=payload)
        self._queue.put(event)
        self.drain()
        return event.future

    def submit_dart(self, dart: Any, source: str = "remote") -> Future:
        """Enqueue a Dart or any payload normalize_dart() understands."""
        canonical = normalize_dart(dart, source=source)
        if canonical is None:
            logger.warning(f"Dropping invalid dart input: {dart!r}")
            future: Future = Future()
            future.set_result(ApplyResult.rejected(Rejection.INVALID_INPUT))
            return future
        return self.submit("dart", canonical)

    def submit_timeout(self) -> Future:
        return self.submit("timer")

    def apply(self, kind: str, payload: Any = None, timeout: Optional[float] = 5.0) -> ApplyResult:
        """Submit and wait for the result."""
        return self.submit(kind, payload).result(timeout=timeout)

    def drain(self) -> None:
        while True:
            if not self._lock.acquire(blocking=False):
                # Another thread is draining and will pick our event up
                return
            try:
                while True:
                    try:
                        event = self._queue.get_nowait()
                    except queue.Empty:
                        break
                    self._process(event)
            finally:
                self._lock.release()
            # An event may have landed between the last get and the release
            if self._queue.empty():
                return

    def _process(self, event: QueuedEvent) -> None:
        m = self.machine
        try:
            if event.kind == "dart":
                result = m.apply(event.payload)
            elif event.kind == "timer":
                result = m.on_timer_expired()
            elif event.kind == "replace_last":
                dart: Dart = event.payload
                result = m.replace_last(dart.value, dart.ring, dart.sector)
            elif event.kind == "undo_dart":
                result = m.undo_dart()
            elif event.kind == "undo_visit":
                result = m.undo_visit()
            elif event.kind == "commit":
                result = m.commit_pending()
            elif event.kind == "visit":
                result = m.apply_visit(event.payload)
            elif event.kind == "next_leg":
                result = m.start_next_leg()
            elif event.kind == "end":
                result = m.end_match()
            else:
                raise ValueError(f"Unknown queue event kind: {event.kind}")
        except Exception as e:
            logger.error(f"Failed to apply {event.kind} event: {e}", exc_info=True)
            event.future.set_exception(e)
            return
        if not result.applied:
            logger.debug(f"{event.kind} rejected: {result.reason.value}")
        event.future.set_result(result)


class TurnTimer:
    """
    Per-dart time limit.

    The timer re-arms whenever the turn state changes (a dart lands, the
    player changes, a new leg starts). When it runs out with fewer than three
    darts pending it submits a timer event, which fills the visit with misses.
    ``tick()`` is driven by the host loop; ``start()`` runs it on a thread.
    """

    def __init__(self, dart_queue: DartQueue, seconds: float, clock: Optional[Clock] = None):
        self.queue = dart_queue
        self.seconds = seconds
        self.clock = clock or MonotonicClock()
        self.paused = False
        self._deadline_ms: Optional[float] = None
        self._state: Optional[Tuple[Any, ...]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _turn_state(self) -> Tuple[Any, ...]:
        m = self.queue.machine
        return (m.match.leg_number, m.match.current_player_idx, len(m.pending), m.match.in_progress)

    def _should_run(self) -> bool:
        m = self.queue.machine
        return (
            self.seconds > 0
            and not self.paused
            and m.match.in_progress
            and m.match.leg_winner is None
            and len(m.pending) < DARTS_PER_VISIT
        )

    def time_left_ms(self) -> Optional[float]:
        if self._deadline_ms is None:
            return None
        return max(0.0, self._deadline_ms - self.clock.now_ms())

    def tick(self) -> bool:
        """Check the deadline. Returns True if a timeout was submitted."""
        state = self._turn_state()
        if not self._should_run():
            self._deadline_ms = None
            self._state = state
            return False
        now = self.clock.now_ms()
        if state != self._state or self._deadline_ms is None:
            self._state = state
            self._deadline_ms = now + self.seconds * 1000.0
            return False
        if now < self._deadline_ms:
            return False

        logger.info(f"Dart timer expired after {self.seconds:g}s")
        self._deadline_ms = None
        self._state = None
        self.queue.submit_timeout()
        return True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False
        self._deadline_ms = None

    def start(self, interval_s: float = 0.25) -> None:
        """Run tick() on a daemon thread until stop()."""
        if self._thread is not None:
            logger.warning("Turn timer already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, args=(interval_s,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._deadline_ms = None

    def _run_loop(self, interval_s: float) -> None:
        while not self._stop_event.wait(interval_s):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Turn timer tick failed: {e}", exc_info=True)
