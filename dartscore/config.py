"""
Runtime settings, read from the environment.

    DARTSCORE_LOG_LEVEL           logging level name (default INFO)
    DARTSCORE_STARTING_SCORE      X01 starting score (default 501)
    DARTSCORE_DOUBLE_IN           1/0, require a double to open (default 0)
    DARTSCORE_DOUBLE_OUT          1/0, require a double to finish (default 1)
    DARTSCORE_MIN_CONFIDENCE      auto-score confidence gate (default 0.6)
    DARTSCORE_DART_TIMER_SECONDS  per-dart time limit, 0 disables (default 0)
"""
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning(f"Ignoring {name}={raw!r}; expected a boolean")
    return default


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}; expected {cast.__name__}")
        return default


@dataclass
class Settings:
    log_level: str = "INFO"
    starting_score: int = 501
    double_in: bool = False
    double_out: bool = True
    min_confidence: float = 0.6
    dart_timer_seconds: float = 0.0


def load_settings() -> Settings:
    return Settings(
        log_level=os.environ.get("DARTSCORE_LOG_LEVEL", "INFO").upper(),
        starting_score=_env_number("DARTSCORE_STARTING_SCORE", 501, int),
        double_in=_env_bool("DARTSCORE_DOUBLE_IN", False),
        double_out=_env_bool("DARTSCORE_DOUBLE_OUT", True),
        min_confidence=_env_number("DARTSCORE_MIN_CONFIDENCE", 0.6, float),
        dart_timer_seconds=_env_number("DARTSCORE_DART_TIMER_SECONDS", 0.0, float),
    )
