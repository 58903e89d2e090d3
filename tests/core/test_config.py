"""Unit tests for src/core/config.py and src/core/log_config.py"""

import logging

import pytest
from pydantic import ValidationError

from src.core.config import Settings
from src.core.log_config import configure_logging


def test_defaults() -> None:
    settings = Settings.from_env({})
    assert settings.auto_open_game is True
    assert settings.move_timeout_seconds == 86_400
    assert settings.retry_max_attempts == 5


def test_values_from_environment() -> None:
    settings = Settings.from_env(
        {
            "PHANTOM_DEFAULT_STAKE": "25",
            "PHANTOM_AUTO_OPEN_GAME": "false",
            "PHANTOM_DATABASE_URL": "sqlite://",
            "UNRELATED": "ignored",
        }
    )
    assert settings.default_stake == 25
    assert settings.auto_open_game is False
    assert settings.database_url == "sqlite://"


def test_invalid_environment_value() -> None:
    with pytest.raises(ValidationError):
        Settings.from_env({"PHANTOM_MOVE_TIMEOUT_SECONDS": "0"})


def test_configure_logging_accepts_names(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    configure_logging("debug")
    configure_logging("not-a-level")
    assert [call["level"] for call in calls] == [logging.DEBUG, logging.INFO]
