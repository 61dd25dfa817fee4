import pytest

from src.utils.config import (
    get_config_value,
    get_display_timezone,
    get_duration_display_field,
    get_filemaker_credentials,
    get_filemaker_session_lease_seconds,
    get_missed_call_sets_end_time,
    get_port,
    require_config_value,
)


def test_get_config_value_parses_types(monkeypatch):
    monkeypatch.setenv("SOME_FLAG", "true")
    monkeypatch.setenv("SOME_INT", "42")
    monkeypatch.setenv("SOME_FLOAT", "1.5")
    monkeypatch.setenv("SOME_STR", "hello")

    assert get_config_value("SOME_FLAG") is True
    assert get_config_value("SOME_INT") == 42
    assert get_config_value("SOME_FLOAT") == 1.5
    assert get_config_value("SOME_STR") == "hello"
    assert get_config_value("MISSING_KEY", "fallback") == "fallback"


def test_require_config_value_raises_when_missing(monkeypatch):
    monkeypatch.delenv("FM_SERVER_URL", raising=False)

    with pytest.raises(ValueError, match="FM_SERVER_URL"):
        require_config_value("FM_SERVER_URL")


def test_numeric_looking_password_is_not_coerced(monkeypatch):
    monkeypatch.setenv("FM_USERNAME", "api")
    monkeypatch.setenv("FM_PASSWORD", "007")

    assert get_filemaker_credentials() == ("api", "007")


def test_defaults(monkeypatch):
    for key in (
        "PORT",
        "FM_SESSION_LEASE_SECONDS",
        "FM_TIMEZONE",
        "MISSED_CALL_SETS_END_TIME",
        "FM_DURATION_DISPLAY_FIELD",
    ):
        monkeypatch.delenv(key, raising=False)

    assert get_port() == 3000
    assert get_filemaker_session_lease_seconds() == 780
    assert get_display_timezone() == "UTC"
    assert get_missed_call_sets_end_time() is False
    assert get_duration_display_field() is None


def test_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("FM_TIMEZONE", "Asia/Tokyo")
    monkeypatch.setenv("MISSED_CALL_SETS_END_TIME", "TRUE")
    monkeypatch.setenv("FM_DURATION_DISPLAY_FIELD", "call_duration")

    assert get_port() == 8080
    assert get_display_timezone() == "Asia/Tokyo"
    assert get_missed_call_sets_end_time() is True
    assert get_duration_display_field() == "call_duration"


def test_non_positive_lease_is_rejected(monkeypatch):
    monkeypatch.setenv("FM_SESSION_LEASE_SECONDS", "0")

    with pytest.raises(ValueError):
        get_filemaker_session_lease_seconds()
