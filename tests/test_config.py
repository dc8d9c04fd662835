from dartscore.config import load_settings


def test_defaults(monkeypatch):
    for name in ("DARTSCORE_LOG_LEVEL", "DARTSCORE_STARTING_SCORE", "DARTSCORE_DOUBLE_IN",
                 "DARTSCORE_DOUBLE_OUT", "DARTSCORE_MIN_CONFIDENCE", "DARTSCORE_DART_TIMER_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.log_level == "INFO"
    assert settings.starting_score == 501
    assert settings.double_in is False
    assert settings.double_out is True
    assert settings.min_confidence == 0.6
    assert settings.dart_timer_seconds == 0.0


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DARTSCORE_LOG_LEVEL", "debug")
    monkeypatch.setenv("DARTSCORE_STARTING_SCORE", "301")
    monkeypatch.setenv("DARTSCORE_DOUBLE_IN", "yes")
    monkeypatch.setenv("DARTSCORE_DOUBLE_OUT", "0")
    monkeypatch.setenv("DARTSCORE_MIN_CONFIDENCE", "0.8")
    monkeypatch.setenv("DARTSCORE_DART_TIMER_SECONDS", "15")
    settings = load_settings()
    assert settings.log_level == "DEBUG"
    assert settings.starting_score == 301
    assert settings.double_in is True
    assert settings.double_out is False
    assert settings.min_confidence == 0.8
    assert settings.dart_timer_seconds == 15.0


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("DARTSCORE_STARTING_SCORE", "lots")
    monkeypatch.setenv("DARTSCORE_DOUBLE_OUT", "maybe")
    settings = load_settings()
    assert settings.starting_score == 501
    assert settings.double_out is True
