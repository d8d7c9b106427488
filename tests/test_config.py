from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_relay.config import Settings, StreamingSettings, TerminalSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings From Environment"),
]


def test_defaults_without_overrides(tmp_path: Path) -> None:
    settings = Settings.from_env()

    assert settings.credentials_path == tmp_path / "credentials.json"
    assert settings.default_provider == "cursor"
    assert settings.log_level == "WARNING"
    assert settings.streaming.grace_seconds == 2.0
    assert not settings.streaming.strict_ndjson
    assert settings.detection.wsl_distribution is None
    assert settings.terminal.force_color
    assert (settings.terminal.cols, settings.terminal.rows) == (120, 30)
    settings.validate()


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_RELAY_DEFAULT_PROVIDER", " Claude ")
    monkeypatch.setenv("AGENT_RELAY_LOG_LEVEL", "debug")
    monkeypatch.setenv("AGENT_RELAY_STRICT_NDJSON", "yes")
    monkeypatch.setenv("AGENT_RELAY_GRACE_SECONDS", "0.5")
    monkeypatch.setenv("AGENT_RELAY_WSL_DISTRIBUTION", "Ubuntu-24.04")
    monkeypatch.setenv("AGENT_RELAY_AUTH_DISABLE_PTY", "1")
    monkeypatch.setenv("AGENT_RELAY_FORCE_COLOR", "off")
    monkeypatch.setenv("AGENT_RELAY_PTY_COLS", "80")

    settings = Settings.from_env()

    assert settings.default_provider == "claude"
    assert settings.log_level == "DEBUG"
    assert settings.streaming.strict_ndjson
    assert settings.streaming.grace_seconds == 0.5
    assert settings.detection.wsl_distribution == "Ubuntu-24.04"
    assert settings.terminal.disable_pty
    assert not settings.terminal.force_color
    assert settings.terminal.cols == 80
    settings.validate()


def test_explicit_credentials_path_wins(tmp_path: Path) -> None:
    explicit = tmp_path / "other.json"

    assert Settings.from_env(credentials_path=explicit).credentials_path == explicit


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_RELAY_STRICT_NDJSON", "maybe")

    with pytest.raises(ValueError, match="AGENT_RELAY_STRICT_NDJSON"):
        Settings.from_env()


def test_validate_rejects_non_positive_grace_period() -> None:
    settings = Settings(streaming=StreamingSettings(grace_seconds=0))

    with pytest.raises(ValueError, match="AGENT_RELAY_GRACE_SECONDS"):
        settings.validate()


def test_validate_rejects_conflicting_pty_flags() -> None:
    settings = Settings(terminal=TerminalSettings(force_pty=True, disable_pty=True))

    with pytest.raises(ValueError, match="mutually exclusive"):
        settings.validate()


def test_validate_rejects_unknown_log_level() -> None:
    with pytest.raises(ValueError, match="Invalid AGENT_RELAY_LOG_LEVEL"):
        Settings(log_level="LOUD").validate()
