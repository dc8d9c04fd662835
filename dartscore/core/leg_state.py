"""
Leg State Machine - per-dart X01 rules.

Accumulates darts into the current visit and decides, dart by dart, whether
the visit continues, busts, or checks out:

- Double-in: until a player hits a DOUBLE or INNER_BULL in a leg, their darts
  score 0 (but still count as thrown, as pre-open darts).
- Bust: remaining would go below 0, to exactly 1, or to 0 without a
  qualifying finish. The visit is committed as 0 and the turn passes.
- Double-out: a leg only ends on a DOUBLE or INNER_BULL. With double-out off,
  any dart that reaches exactly 0 finishes and 1 is a legal remainder.

Corrections (replace_last, undo_dart) replay the pending darts through the
same rules, so a corrected ring can turn a finish into a bust or back.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from dartscore.core.match import ApplyResult, Match, Rejection, Visit
from dartscore.core.scoring import MISS, Dart, normalize_dart

logger = logging.getLogger(__name__)

# Remaining score at or below which every dart is a checkout attempt
CHECKOUT_WINDOW = 50
DARTS_PER_VISIT = 3


class LegEvent:
    DART_ADDED = "dart_added"
    VISIT_COMMITTED = "visit_committed"
    BUST = "bust"
    LEG_WON = "leg_won"
    MATCH_WON = "match_won"
    DART_REPLACED = "dart_replaced"
    DART_UNDONE = "dart_undone"


@dataclass
class PendingDart:
    dart: Dart
    applied: int  # value that counted toward the score (0 before double-in)


class LegStateMachine:
    """
    Drives a Match one dart at a time.

    Not thread-safe on its own; concurrent producers go through a DartQueue.
    """

    def __init__(self, match: Match, defer_commit: bool = False,
                 on_event: Optional[Callable[[str, Dict[str, Any]], None]] = None):
        """
        Args:
            match: the match to drive
            defer_commit: hold a full 3-dart visit until commit_pending()
                (e.g. "board cleared"); a 4th dart then commits it implicitly
            on_event: optional listener called with (event, payload)
        """
        self.match = match
        self.defer_commit = defer_commit
        self.on_event = on_event
        self.events: Deque[Dict[str, Any]] = deque(maxlen=100)

        self._pending: List[PendingDart] = []
        self._pre_open = 0
        self._double_window = 0
        # player id -> opened (double-in) for the current leg
        self._opened: Dict[str, bool] = {}
        self._opened_at_visit_start = False

    # --- read model ---

    @property
    def pending(self) -> List[Dart]:
        return [p.dart for p in self._pending]

    @property
    def pending_total(self) -> int:
        return sum(p.applied for p in self._pending)

    @property
    def remaining(self) -> int:
        return self.match.remaining()

    def is_opened(self, player_id: Optional[str] = None) -> bool:
        if not self.match.double_in:
            return True
        if player_id is None:
            player = self.match.current_player
            player_id = player.id if player else None
        return bool(self._opened.get(player_id))

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view for UIs and telemetry."""
        m = self.match
        leg = m.current_leg()
        player = m.current_player
        return {
            "in_progress": m.in_progress,
            "leg_number": m.leg_number,
            "leg_winner": m.leg_winner,
            "current_player": player.id if player else None,
            "remaining": self.remaining,
            "live_remaining": self.remaining - self.pending_total,
            "opened": self.is_opened(),
            "pending": [
                {"label": p.dart.label, "value": p.dart.value, "applied": p.applied,
                 "ring": p.dart.ring.value, "sector": p.dart.sector}
                for p in self._pending
            ],
            "pending_total": self.pending_total,
            "visits": [
                {"score": v.score, "darts": v.darts, "bust": v.bust,
                 "pre_open_darts": v.pre_open_darts,
                 "double_window_darts": v.double_window_darts,
                 "finished_by_double": v.finished_by_double}
                for v in (leg.visits if leg else [])
            ],
            "players": [
                {"id": p.id, "name": p.name, "legs_won": p.legs_won,
                 "remaining": m.remaining(p), "average": p.current_three_dart_avg}
                for p in m.players
            ],
            "events": list(self.events)[-10:],
        }

    # --- dart input ---

    def apply_dart(self, value: Any, ring: Any, sector: Optional[int] = None,
                   source: str = "manual") -> ApplyResult:
        """Validate a raw (value, ring) pair and apply it."""
        dart = normalize_dart({"value": value, "ring": ring, "sector": sector}, source=source)
        if dart is None:
            return ApplyResult.rejected(Rejection.INVALID_INPUT)
        return self.apply(dart)

    def apply(self, dart: Dart) -> ApplyResult:
        """Apply a canonical dart for the current player."""
        rejection = self._check_open()
        if rejection is not None:
            return rejection

        if len(self._pending) >= DARTS_PER_VISIT:
            # Buffered or replayed input can deliver a dart after a full visit
            # that has not been committed yet. Close that visit and carry on.
            logger.warning(f"Dart {dart.label} arrived with {len(self._pending)} pending; "
                           f"auto-committing the previous visit")
            self._commit_visit(self.pending_total, len(self._pending))
            self.match.next_player()

        return self._evaluate(dart)

    def on_timer_expired(self) -> ApplyResult:
        """Fill the rest of the visit with misses (turn-timer watchdog)."""
        rejection = self._check_open()
        if rejection is not None:
            return rejection
        if len(self._pending) >= DARTS_PER_VISIT:
            return self.commit_pending()
        player = self.match.current_player
        result = ApplyResult.rejected(Rejection.NO_PENDING)
        # Stop as soon as the turn changes hands (bust/finish/commit)
        while self.match.current_player is player and self.match.leg_winner is None:
            result = self._evaluate(MISS)
            if result.event != LegEvent.DART_ADDED or len(self._pending) >= DARTS_PER_VISIT:
                break
        if len(self._pending) >= DARTS_PER_VISIT:
            result = self.commit_pending()
        logger.info("Turn timer expired; visit completed with misses")
        return result

    def commit_pending(self) -> ApplyResult:
        """Commit the current partial (or held) visit and pass the turn."""
        rejection = self._check_open()
        if rejection is not None:
            return rejection
        if not self._pending:
            return ApplyResult.rejected(Rejection.NO_PENDING)
        player = self.match.current_player
        visit = self._commit_visit(self.pending_total, len(self._pending))
        self.match.next_player()
        return self._result(LegEvent.VISIT_COMMITTED, visit, player)

    # --- corrections ---

    def replace_last(self, value: Any, ring: Any, sector: Optional[int] = None) -> ApplyResult:
        """Replace the last pending dart and re-evaluate the visit."""
        dart = normalize_dart({"value": value, "ring": ring, "sector": sector}, source="manual")
        if dart is None:
            return ApplyResult.rejected(Rejection.INVALID_INPUT)
        rejection = self._check_open()
        if rejection is not None:
            return rejection
        if not self._pending:
            return ApplyResult.rejected(Rejection.NO_PENDING)

        darts = [p.dart for p in self._pending[:-1]] + [dart]
        result = self._replay(darts)
        if result.event == LegEvent.DART_ADDED:
            result.event = LegEvent.DART_REPLACED
            self._emit(LegEvent.DART_REPLACED, {"label": dart.label})
        return result

    def undo_dart(self) -> ApplyResult:
        """Remove the last pending dart."""
        rejection = self._check_open()
        if rejection is not None:
            return rejection
        if not self._pending:
            return ApplyResult.rejected(Rejection.NO_PENDING)
        darts = [p.dart for p in self._pending[:-1]]
        result = self._replay(darts)
        if not darts or result.event == LegEvent.DART_ADDED:
            result = self._result(LegEvent.DART_UNDONE)
        return result

    def undo_visit(self) -> ApplyResult:
        """Take back the current player's last committed visit (no darts pending)."""
        if self._pending:
            return ApplyResult.rejected(Rejection.DARTS_PENDING)
        visit = self.match.undo_visit()
        if visit is None:
            return ApplyResult.rejected(Rejection.NOTHING_TO_UNDO)
        self._sync_opened(self.match.current_player)
        return ApplyResult(applied=True, event="visit_undone", visit=visit, remaining=self.remaining)

    # --- relayed visits ---

    def apply_visit(self, payload: Dict[str, Any]) -> ApplyResult:
        """
        Apply a visit committed by another client.

        Rejected while the current player has darts pending here, so two
        sources never build the same turn.
        """
        if self._pending:
            return ApplyResult.rejected(Rejection.DARTS_PENDING)
        player = self.match.current_player
        result = self.match.apply_visit_commit(payload)
        if not result.applied:
            return result
        self._sync_opened(player)
        self._emit(result.event, {"visit": result.visit.score if result.visit else None})
        m = self.match
        if result.event == LegEvent.LEG_WON and m.legs_to_win and player.legs_won >= m.legs_to_win:
            m.end_game()
            self._emit(LegEvent.MATCH_WON, {"player": player.id})
            result.event = LegEvent.MATCH_WON
        return result

    # --- leg / match flow ---

    def start_next_leg(self) -> ApplyResult:
        if not self.match.in_progress:
            return ApplyResult.rejected(Rejection.MATCH_NOT_IN_PROGRESS)
        self._reset_pending()
        self._opened.clear()
        self.match.start_next_leg()
        return self._result("leg_started")

    def end_match(self) -> ApplyResult:
        if not self.match.in_progress:
            return ApplyResult.rejected(Rejection.MATCH_NOT_IN_PROGRESS)
        self._reset_pending()
        self.match.end_game()
        return self._result("match_ended")

    # --- internals ---

    def _check_open(self) -> Optional[ApplyResult]:
        if not self.match.in_progress or self.match.current_player is None:
            return ApplyResult.rejected(Rejection.MATCH_NOT_IN_PROGRESS)
        if self.match.leg_winner is not None:
            return ApplyResult.rejected(Rejection.LEG_FINISHED)
        return None

    def _evaluate(self, dart: Dart) -> ApplyResult:
        match = self.match
        player = match.current_player
        leg = match.ensure_leg(player)

        if not self._pending:
            self._opened_at_visit_start = self.is_opened(player.id)

        opened = self.is_opened(player.id)
        counts = opened or dart.ring.is_double
        applied = dart.value if counts else 0
        if not opened and dart.ring.is_double:
            self._opened[player.id] = True
        pre_open_this = 0 if counts else 1

        new_score = self.pending_total + applied
        after = leg.remaining - new_score
        before = after + applied
        # in (or entering) the checkout window
        window_this = 1 if (before > CHECKOUT_WINDOW >= after) or before <= CHECKOUT_WINDOW else 0

        if match.double_out:
            is_finish = after == 0 and dart.ring.is_double
            is_bust = after < 0 or after == 1 or (after == 0 and not is_finish)
        else:
            is_finish = after == 0
            is_bust = after < 0

        if is_bust:
            entries = self.pending + [dart]
            visit = match.add_visit(
                0, len(entries),
                pre_open_darts=self._pre_open + pre_open_this,
                double_window_darts=self._double_window + window_this,
                finished_by_double=False,
                visit_total=0,
                bust=True,
                entries=entries,
            )
            logger.info(f"{player.name} busts with {dart.label} ({leg.remaining} left)")
            self._reset_pending()
            match.next_player()
            return self._result(LegEvent.BUST, visit, player)

        self._pending.append(PendingDart(dart=dart, applied=applied))
        self._pre_open += pre_open_this
        self._double_window += window_this

        if is_finish:
            visit = self._commit_visit(new_score, len(self._pending),
                                       finished_by_double=dart.ring.is_double)
            match.end_leg(new_score)
            result = self._result(LegEvent.LEG_WON, visit, player)
            self._emit(LegEvent.LEG_WON, {"player": player.id, "darts": leg.darts_thrown,
                                          "checkout": new_score})
            if match.legs_to_win and player.legs_won >= match.legs_to_win:
                match.end_game()
                self._emit(LegEvent.MATCH_WON, {"player": player.id})
                result.event = LegEvent.MATCH_WON
            return result

        if len(self._pending) >= DARTS_PER_VISIT and not self.defer_commit:
            visit = self._commit_visit(new_score, len(self._pending))
            match.next_player()
            return self._result(LegEvent.VISIT_COMMITTED, visit, player)

        return self._result(LegEvent.DART_ADDED, player=player)

    def _commit_visit(self, score: int, darts: int, finished_by_double: bool = False) -> Visit:
        visit = self.match.add_visit(
            score, darts,
            pre_open_darts=self._pre_open,
            double_window_darts=self._double_window,
            finished_by_double=finished_by_double,
            visit_total=score,
            entries=self.pending,
        )
        self._reset_pending()
        return visit

    def _replay(self, darts: List[Dart]) -> ApplyResult:
        """Rewind the open visit and re-apply ``darts`` from its start."""
        player = self.match.current_player
        self._reset_pending()
        self._opened[player.id] = self._opened_at_visit_start
        result = ApplyResult(applied=True, event=LegEvent.DART_ADDED, remaining=self.remaining)
        for dart in darts:
            result = self._evaluate(dart)
            if result.event != LegEvent.DART_ADDED:
                break
        return result

    def _sync_opened(self, player) -> None:
        """Recompute double-in from the player's committed visits in this leg."""
        if player is None or not self.match.double_in:
            return
        leg = self.match.current_leg(player)
        visits = leg.visits if leg else []
        # a visit opened the player if any of its darts counted
        self._opened[player.id] = any(v.score > 0 or v.pre_open_darts < v.darts for v in visits)

    def _reset_pending(self) -> None:
        self._pending = []
        self._pre_open = 0
        self._double_window = 0

    def _result(self, event: str, visit: Optional[Visit] = None, player=None) -> ApplyResult:
        if event not in (LegEvent.LEG_WON, LegEvent.MATCH_WON):
            self._emit(event, {"visit": visit.score if visit else None})
        # remaining of the player who threw, even if the turn has passed;
        # pending darts are always the thrower's
        remaining = self.match.remaining(player) if player is not None else self.remaining
        remaining -= self.pending_total
        return ApplyResult(applied=True, event=event, visit=visit, remaining=remaining)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        record = {"event": event, **payload}
        self.events.append(record)
        if self.on_event is not None:
            self.on_event(event, payload)
