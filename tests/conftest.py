"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

_ISOLATED_ENV_VARS = (
    "AGENT_RELAY_DEFAULT_PROVIDER",
    "AGENT_RELAY_LOG_LEVEL",
    "AGENT_RELAY_GRACE_SECONDS",
    "AGENT_RELAY_STRICT_NDJSON",
    "AGENT_RELAY_READ_CHUNK_BYTES",
    "AGENT_RELAY_VERSION_TIMEOUT_SECONDS",
    "AGENT_RELAY_WSL_DISTRIBUTION",
    "AGENT_RELAY_WSL_TIMEOUT_SECONDS",
    "AGENT_RELAY_AUTH_FORCE_PTY",
    "AGENT_RELAY_AUTH_DISABLE_PTY",
    "AGENT_RELAY_FORCE_COLOR",
    "AGENT_RELAY_PTY_COLS",
    "AGENT_RELAY_PTY_ROWS",
    "CURSOR_API_KEY",
    "ANTHROPIC_API_KEY",
    "CLAUDE_CODE_OAUTH_TOKEN",
)


def write_fake_cli(directory: Path, name: str, script: str) -> Path:
    """Write a Python stub CLI and a launcher that runs it with this interpreter."""

    implementation = directory / f"{name}_impl.py"
    implementation.write_text(script.strip() + "\n", "utf-8")

    if os.name == "nt":
        launcher = directory / f"{name}.cmd"
        launcher.write_text(
            f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n',
            "utf-8",
        )
        return launcher

    launcher = directory / name
    launcher.write_text(
        f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
        "utf-8",
    )
    launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR)
    return launcher


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the developer's credentials and overrides out of every test."""
    for name in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AGENT_RELAY_CREDENTIALS_PATH", str(tmp_path / "credentials.json"))


@pytest.fixture()
def fake_cli(tmp_path) -> Callable[[str, str], Path]:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()

    def _factory(name: str, script: str) -> Path:
        return write_fake_cli(bin_dir, name, script)

    return _factory
