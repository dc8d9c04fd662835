"""
Per-dart X01 rules: visits, busts, checkouts, double-in and corrections.
"""
from dartscore.core.leg_state import LegEvent, LegStateMachine
from dartscore.core.match import Match, Rejection
from dartscore.core.scoring import Ring


def _machine(start=501, players=("Alice", "Bob"), defer_commit=False, **options):
    return LegStateMachine(Match.new(list(players), start, **options), defer_commit=defer_commit)


def _leg(sm, idx=0):
    return sm.match.current_leg(sm.match.players[idx])


def test_single_dart_then_commit(machine):
    result = machine.apply_dart(60, "TRIPLE")
    assert result.applied
    assert result.event == LegEvent.DART_ADDED
    assert result.remaining == 441
    assert machine.pending_total == 60

    result = machine.commit_pending()
    assert result.event == LegEvent.VISIT_COMMITTED
    assert result.visit.score == 60
    assert result.visit.darts == 1
    assert machine.match.remaining(machine.match.players[0]) == 441
    assert machine.match.current_player.name == "Bob"


def test_three_darts_commit_visit(machine):
    machine.apply_dart(60, "TRIPLE")
    machine.apply_dart(60, "TRIPLE")
    result = machine.apply_dart(60, "TRIPLE")
    assert result.event == LegEvent.VISIT_COMMITTED
    assert result.visit.score == 180
    assert result.visit.darts == 3
    assert result.remaining == 321
    assert machine.pending == []
    assert machine.match.current_player.name == "Bob"


def test_checkout_on_double():
    sm = _machine(40)
    result = sm.apply_dart(40, "DOUBLE")
    assert result.event == LegEvent.LEG_WON
    assert result.remaining == 0
    leg = _leg(sm)
    assert leg.finished
    assert leg.checkout_score == 40
    assert sm.match.players[0].legs_won == 1
    assert sm.match.leg_winner == "0"
    assert result.visit.finished_by_double


def test_finished_leg_rejects_darts():
    sm = _machine(40)
    sm.apply_dart(40, "DOUBLE")
    result = sm.apply_dart(20, "SINGLE")
    assert not result.applied
    assert result.reason == Rejection.LEG_FINISHED


def test_inner_bull_finishes():
    sm = _machine(50)
    assert sm.apply_dart(50, "INNER_BULL").event == LegEvent.LEG_WON


def test_bust_on_overshoot():
    sm = _machine(20)
    result = sm.apply_dart(25, "BULL")
    assert result.event == LegEvent.BUST
    assert result.remaining == 20
    assert result.visit.score == 0
    assert result.visit.bust
    assert _leg(sm).darts_thrown == 1
    assert sm.match.current_player.name == "Bob"


def test_bust_leaving_one():
    sm = _machine(41)
    assert sm.apply_dart(40, "DOUBLE").event == LegEvent.BUST
    assert sm.match.remaining(sm.match.players[0]) == 41


def test_bust_on_zero_without_double():
    sm = _machine(20)
    assert sm.apply_dart(20, "SINGLE").event == LegEvent.BUST


def test_bust_reverts_whole_visit():
    sm = _machine(100)
    sm.apply_dart(60, "TRIPLE")
    result = sm.apply_dart(60, "TRIPLE")
    assert result.event == LegEvent.BUST
    assert result.visit.darts == 2
    assert result.remaining == 100


def test_double_out_disabled():
    sm = _machine(20, double_out=False)
    assert sm.apply_dart(20, "SINGLE").event == LegEvent.LEG_WON

    sm = _machine(21, double_out=False)
    result = sm.apply_dart(20, "SINGLE")
    assert result.event == LegEvent.DART_ADDED
    assert result.remaining == 1

    sm = _machine(10, double_out=False)
    assert sm.apply_dart(20, "SINGLE").event == LegEvent.BUST


def test_double_in():
    sm = _machine(501, double_in=True)
    assert not sm.is_opened()
    first = sm.apply_dart(20, "SINGLE")
    assert first.remaining == 501  # not opened yet, scores nothing
    sm.apply_dart(40, "DOUBLE")
    assert sm.is_opened()
    result = sm.apply_dart(60, "TRIPLE")
    assert result.visit.score == 100
    assert result.visit.pre_open_darts == 1
    leg = _leg(sm)
    assert leg.remaining == 401
    assert leg.counted_darts == 2


def test_double_in_inner_bull_opens():
    sm = _machine(501, double_in=True)
    sm.apply_dart(50, "INNER_BULL")
    assert sm.is_opened()
    assert sm.pending_total == 50


def test_replace_last_plain():
    sm = _machine()
    sm.apply_dart(20, "SINGLE")
    result = sm.replace_last(60, "TRIPLE")
    assert result.event == LegEvent.DART_REPLACED
    assert sm.pending_total == 60
    assert [d.ring for d in sm.pending] == [Ring.TRIPLE]


def test_replace_last_turns_into_finish():
    sm = _machine(40)
    sm.apply_dart(20, "DOUBLE")  # D10, 20 left
    result = sm.replace_last(40, "DOUBLE")
    assert result.event == LegEvent.LEG_WON
    assert _leg(sm).finished


def test_replace_last_turns_into_bust():
    sm = _machine(40)
    sm.apply_dart(15, "TRIPLE")
    result = sm.replace_last(45, "TRIPLE")
    assert result.event == LegEvent.BUST
    assert result.remaining == 40
    assert result.visit.darts == 1


def test_replace_last_rejections():
    sm = _machine()
    assert sm.replace_last(20, "SINGLE").reason == Rejection.NO_PENDING
    sm.apply_dart(20, "SINGLE")
    assert sm.replace_last("x", "SINGLE").reason == Rejection.INVALID_INPUT


def test_undo_dart():
    sm = _machine()
    sm.apply_dart(20, "SINGLE")
    sm.apply_dart(60, "TRIPLE")
    result = sm.undo_dart()
    assert result.event == LegEvent.DART_UNDONE
    assert result.remaining == 481
    assert len(sm.pending) == 1
    assert sm.undo_dart().event == LegEvent.DART_UNDONE
    assert sm.pending == []
    assert sm.undo_dart().reason == Rejection.NO_PENDING


def test_undo_dart_closes_double_in_again():
    sm = _machine(double_in=True)
    sm.apply_dart(40, "DOUBLE")
    assert sm.is_opened()
    sm.undo_dart()
    assert not sm.is_opened()


def test_undo_visit_closes_double_in_again():
    sm = _machine(players=("Solo",), double_in=True)
    sm.apply_dart(20, "SINGLE")
    sm.apply_dart(40, "DOUBLE")
    sm.commit_pending()
    assert sm.is_opened()
    assert sm.remaining == 461

    sm.undo_visit()
    assert not sm.is_opened()
    assert sm.remaining == 501
    sm.apply_dart(20, "SINGLE")
    assert sm.pending_total == 0


def test_undo_visit_keeps_earlier_opening():
    sm = _machine(players=("Solo",), double_in=True)
    sm.apply_dart(40, "DOUBLE")
    sm.commit_pending()
    sm.apply_dart(20, "SINGLE")
    sm.commit_pending()
    sm.undo_visit()
    assert sm.is_opened()
    assert sm.remaining == 461


def test_undo_visit():
    sm = _machine(players=("Solo",))
    sm.apply_dart(60, "TRIPLE")
    sm.commit_pending()
    assert sm.remaining == 441
    result = sm.undo_visit()
    assert result.applied
    assert sm.remaining == 501
    assert sm.undo_visit().reason == Rejection.NOTHING_TO_UNDO


def test_undo_visit_with_darts_pending():
    sm = _machine(players=("Solo",))
    sm.apply_dart(60, "TRIPLE")
    sm.commit_pending()
    sm.apply_dart(20, "SINGLE")
    assert sm.undo_visit().reason == Rejection.DARTS_PENDING
    assert sm.remaining == 441


def test_relayed_visit_rejected_while_darts_pending():
    sm = _machine()
    sm.apply_dart(20, "SINGLE")
    result = sm.apply_visit({"value": 45})
    assert result.reason == Rejection.DARTS_PENDING
    assert sm.match.current_player.name == "Alice"
    assert sm.pending_total == 20

    sm.commit_pending()
    assert sm.apply_visit({"value": 45}).event == LegEvent.VISIT_COMMITTED
    assert sm.match.current_player.name == "Alice"
    result = sm.apply_dart(19, "SINGLE")
    assert [d.label for d in sm.pending] == ["S19"]
    assert sm.pending_total == 19
    assert result.remaining == 501 - 20 - 19


def test_relayed_visit_opens_double_in():
    sm = _machine(double_in=True)
    sm.apply_visit({"value": 60, "darts": 3})
    assert sm.is_opened("0")
    assert not sm.is_opened("1")


def test_relayed_checkout_can_win_match():
    sm = _machine(40, legs_to_win=1)
    result = sm.apply_visit({"value": 40, "darts": 1})
    assert result.event == LegEvent.MATCH_WON
    assert not sm.match.in_progress
    assert sm.match.players[0].legs_won == 1


def test_commit_without_pending():
    sm = _machine()
    assert sm.commit_pending().reason == Rejection.NO_PENDING


def test_timer_fills_with_misses():
    sm = _machine()
    sm.apply_dart(60, "TRIPLE")
    result = sm.on_timer_expired()
    assert result.event == LegEvent.VISIT_COMMITTED
    assert result.visit.darts == 3
    assert result.visit.score == 60
    assert [d.ring for d in result.visit.entries] == [Ring.TRIPLE, Ring.MISS, Ring.MISS]
    assert sm.match.current_player.name == "Bob"


def test_timer_with_no_darts():
    sm = _machine()
    result = sm.on_timer_expired()
    assert result.visit.darts == 3
    assert result.visit.score == 0


def test_defer_commit_holds_full_visit():
    sm = _machine(defer_commit=True)
    for _ in range(3):
        assert sm.apply_dart(60, "TRIPLE").event == LegEvent.DART_ADDED
    assert len(sm.pending) == 3
    assert sm.match.current_player.name == "Alice"
    result = sm.commit_pending()
    assert result.visit.score == 180
    assert sm.match.current_player.name == "Bob"


def test_fourth_dart_commits_previous_visit():
    sm = _machine(defer_commit=True)
    for _ in range(3):
        sm.apply_dart(60, "TRIPLE")
    result = sm.apply_dart(20, "SINGLE")
    assert result.event == LegEvent.DART_ADDED
    assert sm.match.remaining(sm.match.players[0]) == 321
    assert sm.match.current_player.name == "Bob"
    assert [d.value for d in sm.pending] == [20]


def test_double_window_darts():
    sm = _machine(60)
    sm.apply_dart(20, "SINGLE")  # 60 -> 40, enters the window
    sm.apply_dart(20, "SINGLE")  # 40 -> 20
    result = sm.apply_dart(10, "DOUBLE")  # 20 -> 10
    assert result.visit.double_window_darts == 3

    sm = _machine(501)
    result = sm.apply_dart(60, "TRIPLE")
    sm.commit_pending()
    assert _leg(sm).visits[0].double_window_darts == 0


def test_legs_to_win_ends_match():
    sm = _machine(40, legs_to_win=1)
    result = sm.apply_dart(40, "DOUBLE")
    assert result.event == LegEvent.MATCH_WON
    match = sm.match
    assert not match.in_progress
    alice = match.players[0]
    assert alice.best_three_dart_avg == 120.0
    assert alice.best_leg.darts == 1
    assert alice.best_checkout == 40
    assert sm.apply_dart(20, "SINGLE").reason == Rejection.MATCH_NOT_IN_PROGRESS


def test_start_next_leg_rotates_starter():
    sm = _machine(40)
    sm.apply_dart(40, "DOUBLE")
    result = sm.start_next_leg()
    assert result.applied
    assert sm.match.leg_number == 2
    assert sm.match.current_player.name == "Bob"
    assert sm.remaining == 40
    assert sm.apply_dart(20, "SINGLE").applied


def test_end_match():
    sm = _machine()
    assert sm.end_match().event == "match_ended"
    assert sm.apply_dart(20, "SINGLE").reason == Rejection.MATCH_NOT_IN_PROGRESS
    assert sm.end_match().reason == Rejection.MATCH_NOT_IN_PROGRESS


def test_invalid_input():
    sm = _machine()
    assert sm.apply_dart("abc", "TRIPLE").reason == Rejection.INVALID_INPUT
    assert sm.apply_dart(None, None).reason == Rejection.INVALID_INPUT


def test_events_and_listener():
    seen = []
    sm = LegStateMachine(Match.new(["A", "B"], 40), on_event=lambda e, p: seen.append(e))
    sm.apply_dart(20, "SINGLE")
    sm.apply_dart(20, "DOUBLE")
    assert seen == [LegEvent.DART_ADDED, LegEvent.LEG_WON]
    assert sm.events[-1]["event"] == LegEvent.LEG_WON


def test_snapshot(machine):
    machine.apply_dart(60, "TRIPLE")
    snap = machine.snapshot()
    assert snap["remaining"] == 501
    assert snap["live_remaining"] == 441
    assert snap["pending"][0]["label"] == "T20"
    assert snap["current_player"] == "0"
    assert len(snap["players"]) == 2
