"""
Match model - players, legs and committed visits for an X01 match.

This is the bookkeeping layer: it records visits that have already been
decided (scored, bust or checkout) and keeps running averages. The per-dart
rules live in leg_state.LegStateMachine, which is the only thing that should
mutate a Match while a leg is open.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dartscore.core.scoring import Dart

logger = logging.getLogger(__name__)


class Rejection(str, Enum):
    """Why a state-changing call did nothing."""
    DUPLICATE = "duplicate"
    LEG_FINISHED = "leg_finished"
    MATCH_NOT_IN_PROGRESS = "match_not_in_progress"
    NO_PENDING = "no_pending"
    DARTS_PENDING = "darts_pending"
    NOTHING_TO_UNDO = "nothing_to_undo"
    INVALID_INPUT = "invalid_input"


@dataclass
class Visit:
    """Up to three darts by one player in one turn."""
    darts: int
    score: int
    pre_open_darts: int = 0       # thrown before double-in opened; excluded from averages
    double_window_darts: int = 0  # thrown with remaining <= 50
    finished_by_double: bool = False
    visit_total: Optional[int] = None
    bust: bool = False
    entries: List[Dart] = field(default_factory=list)

    def __post_init__(self):
        if self.visit_total is None:
            self.visit_total = self.score


@dataclass
class Leg:
    start_score: int
    remaining: int
    number: int = 1
    visits: List[Visit] = field(default_factory=list)
    darts_thrown: int = 0
    finished: bool = False
    checkout_score: Optional[int] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def pre_open_darts(self) -> int:
        return sum(v.pre_open_darts for v in self.visits)

    @property
    def counted_darts(self) -> int:
        """Darts that count toward the average (pre-open darts excluded)."""
        return max(0, self.darts_thrown - self.pre_open_darts)

    @property
    def scored(self) -> int:
        return self.start_score - self.remaining


def three_dart_average(leg: Leg) -> float:
    """(points scored / counted darts) * 3. Bust darts count, pre-open darts don't."""
    counted = leg.counted_darts
    if counted == 0:
        return 0.0
    return (leg.scored / counted) * 3.0


@dataclass
class BestLeg:
    player_id: str
    darts: int
    timestamp: float


@dataclass
class Player:
    id: str
    name: str
    legs_won: int = 0
    legs: List[Leg] = field(default_factory=list)
    current_three_dart_avg: Optional[float] = None
    # Computed by Match.end_game() only
    best_three_dart_avg: Optional[float] = None
    worst_three_dart_avg: Optional[float] = None
    best_leg: Optional[BestLeg] = None
    best_checkout: int = 0

    def update_end_of_game_stats(self) -> None:
        avgs = []
        best: Optional[BestLeg] = None
        best_checkout = self.best_checkout
        for leg in self.legs:
            if not leg.finished:
                continue
            avgs.append(three_dart_average(leg))
            ts = leg.end_time or time.time()
            # fewest darts; ties go to the earlier leg
            if best is None or leg.darts_thrown < best.darts or (
                leg.darts_thrown == best.darts and ts < best.timestamp
            ):
                best = BestLeg(player_id=self.id, darts=leg.darts_thrown, timestamp=ts)
            best_checkout = max(best_checkout, leg.checkout_score or 0)
        if avgs:
            self.best_three_dart_avg = max(avgs)
            self.worst_three_dart_avg = min(avgs)
        if best is not None:
            self.best_leg = best
        self.best_checkout = best_checkout


@dataclass
class ApplyResult:
    """Outcome of a state-machine call. ``applied`` False means nothing changed."""
    applied: bool
    reason: Optional[Rejection] = None
    event: Optional[str] = None
    visit: Optional[Visit] = None
    remaining: Optional[int] = None

    @classmethod
    def rejected(cls, reason: Rejection) -> "ApplyResult":
        return cls(applied=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"applied": self.applied}
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.event is not None:
            data["event"] = self.event
        if self.remaining is not None:
            data["remaining"] = self.remaining
        return data


@dataclass
class Match:
    players: List[Player] = field(default_factory=list)
    current_player_idx: int = 0
    starting_score: int = 501
    in_progress: bool = False
    double_in: bool = False
    double_out: bool = True
    legs_to_win: Optional[int] = None
    room_id: str = ""
    leg_number: int = 1
    leg_starter_idx: int = 0
    leg_winner: Optional[str] = None  # player id once the current leg is won
    best_leg_this_match: Optional[BestLeg] = None

    @classmethod
    def new(cls, names: List[str], starting_score: int = 501, **options) -> "Match":
        players = [Player(id=str(i), name=name) for i, name in enumerate(names)]
        match = cls(players=players, starting_score=starting_score, in_progress=True, **options)
        logger.info(f"New match: {', '.join(names)} from {starting_score}")
        return match

    @property
    def current_player(self) -> Optional[Player]:
        if not self.players:
            return None
        return self.players[self.current_player_idx]

    def current_leg(self, player: Optional[Player] = None) -> Optional[Leg]:
        """The player's leg for the current leg number, if started."""
        player = player or self.current_player
        if player is None or not player.legs:
            return None
        leg = player.legs[-1]
        return leg if leg.number == self.leg_number else None

    def ensure_leg(self, player: Optional[Player] = None) -> Leg:
        player = player or self.current_player
        leg = self.current_leg(player)
        if leg is None or leg.finished:
            leg = Leg(start_score=self.starting_score, remaining=self.starting_score,
                      number=self.leg_number)
            player.legs.append(leg)
        return leg

    def remaining(self, player: Optional[Player] = None) -> int:
        leg = self.current_leg(player)
        return leg.remaining if leg is not None else self.starting_score

    def add_visit(self, score: int, darts: int, **meta) -> Optional[Visit]:
        """
        Record a decided visit for the current player.

        Remaining score is clamped at 0; bust and finish decisions belong to
        the caller.
        """
        if not self.in_progress or self.current_player is None:
            return None
        player = self.current_player
        leg = self.ensure_leg(player)
        visit = Visit(darts=darts, score=score, **meta)
        leg.visits.append(visit)
        leg.darts_thrown += darts
        leg.remaining = max(0, leg.remaining - score)

        if leg.counted_darts % 3 == 0 or leg.remaining == 0:
            avg = three_dart_average(leg)
            if player.current_three_dart_avg is None or abs(player.current_three_dart_avg - avg) > 0.0001:
                player.current_three_dart_avg = avg
        logger.debug(f"{player.name}: visit {score} in {darts} darts, {leg.remaining} left")
        return visit

    def undo_visit(self) -> Optional[Visit]:
        """Remove the current player's last visit in an unfinished leg."""
        leg = self.current_leg()
        if leg is None or leg.finished or not leg.visits:
            return None
        last = leg.visits.pop()
        leg.darts_thrown -= last.darts
        leg.remaining += last.score
        return last

    def end_leg(self, checkout_score: int) -> bool:
        """Close the current player's leg; a leg at 0 counts as won."""
        player = self.current_player
        leg = self.current_leg(player)
        if leg is None or leg.finished:
            return False
        leg.finished = True
        leg.checkout_score = checkout_score
        leg.end_time = time.time()
        if leg.remaining == 0:
            player.legs_won += 1
            self.leg_winner = player.id
            best = self.best_leg_this_match
            if best is None or leg.darts_thrown < best.darts:
                self.best_leg_this_match = BestLeg(player_id=player.id, darts=leg.darts_thrown,
                                                   timestamp=leg.end_time)
            logger.info(f"{player.name} wins leg {leg.number} in {leg.darts_thrown} darts "
                        f"(checkout {checkout_score})")
        return True

    def next_player(self) -> None:
        if self.players:
            self.current_player_idx = (self.current_player_idx + 1) % len(self.players)

    def start_next_leg(self) -> None:
        """Open the next leg; the throw rotates to the player after the last starter."""
        self.leg_number += 1
        self.leg_winner = None
        if self.players:
            self.leg_starter_idx = (self.leg_starter_idx + 1) % len(self.players)
            self.current_player_idx = self.leg_starter_idx

    def end_game(self) -> None:
        """Finish the match and compute best/worst statistics."""
        for player in self.players:
            player.update_end_of_game_stats()
        self.in_progress = False

    def last_visits(self) -> List[Visit]:
        """Most recent visit of every player's latest leg."""
        visits = []
        for player in self.players:
            if player.legs and player.legs[-1].visits:
                visits.append(player.legs[-1].visits[-1])
        return visits

    def apply_visit_commit(self, payload: Dict[str, Any]) -> ApplyResult:
        """
        Apply an externally committed visit (e.g. relayed from another client).

        The visit is rejected as a duplicate when it matches the most recent
        visit of any player's latest leg in both total and dart count. A visit
        that would overshoot, leave 1 under double-out, or reach 0 with
        ``finished_by_double`` False under double-out is recorded as a
        zero-score bust. Only a visit that reaches exactly 0 ends the leg;
        otherwise the turn passes.
        """
        if not isinstance(payload, dict):
            return ApplyResult.rejected(Rejection.INVALID_INPUT)
        if not self.in_progress:
            return ApplyResult.rejected(Rejection.MATCH_NOT_IN_PROGRESS)
        if self.leg_winner is not None:
            return ApplyResult.rejected(Rejection.LEG_FINISHED)
        try:
            score = int(payload.get("value", payload.get("score", 0)) or 0)
            darts = int(payload.get("darts", 3) or 3)
            visit_total = int(payload.get("visit_total", payload.get("visitTotal", score)) or score)
        except (TypeError, ValueError):
            logger.debug(f"Dropping malformed visit payload: {payload!r}")
            return ApplyResult.rejected(Rejection.INVALID_INPUT)
        if score < 0 or visit_total < 0 or not 1 <= darts <= 3:
            return ApplyResult.rejected(Rejection.INVALID_INPUT)

        # Compares against every player's last visit, not only the previous
        # thrower's: two players scoring the same total in the same number of
        # darts back to back drops the second visit.
        for last in self.last_visits():
            if last.visit_total == visit_total and last.darts == darts:
                logger.info(f"Ignoring duplicate visit ({visit_total} in {darts})")
                return ApplyResult.rejected(Rejection.DUPLICATE)

        meta = {"visit_total": visit_total}
        for key, alias in (("pre_open_darts", "preOpenDarts"),
                           ("double_window_darts", "doubleWindowDarts")):
            value = payload.get(key, payload.get(alias))
            if isinstance(value, int) and not isinstance(value, bool):
                meta[key] = value
        finished_by_double = payload.get("finished_by_double", payload.get("finishedByDouble"))
        if isinstance(finished_by_double, bool):
            meta["finished_by_double"] = finished_by_double

        player = self.current_player
        after = self.remaining(player) - visit_total
        if self.double_out:
            is_bust = after < 0 or after == 1 or (
                after == 0 and meta.get("finished_by_double") is False)
        else:
            is_bust = after < 0

        if is_bust:
            meta["finished_by_double"] = False
            visit = self.add_visit(0, darts, bust=True, **meta)
            logger.info(f"{player.name}: relayed visit of {visit_total} busts "
                        f"({self.remaining(player)} left)")
            self.next_player()
            return ApplyResult(applied=True, event="bust", visit=visit,
                               remaining=self.remaining(player))

        visit = self.add_visit(visit_total, darts, **meta)
        remaining = self.remaining(player)
        if remaining == 0:
            self.end_leg(visit_total)
            event = "leg_won"
        else:
            self.next_player()
            event = "visit_committed"
        return ApplyResult(applied=True, event=event, visit=visit, remaining=remaining)
