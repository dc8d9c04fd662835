import pytest

from dartscore.core.clock import ManualClock
from dartscore.core.detector import DartDetector, DetectorConfig
from dartscore.core.match import Match
from dartscore.core.leg_state import LegStateMachine


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def detector(clock):
    det = DartDetector(DetectorConfig(), clock=clock)
    det.set_roi(100, 100, 90)
    return det


@pytest.fixture
def machine():
    return LegStateMachine(Match.new(["Alice", "Bob"], 501))
