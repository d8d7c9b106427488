from __future__ import annotations

import allure

from agent_relay.config import TerminalSettings
from agent_relay.errors import PtySpawnError
from agent_relay.terminal import setup_token
from agent_relay.terminal.pty_runner import PtyOutcome
from agent_relay.terminal.setup_token import external_terminal_argv, run_setup_token

pytestmark = [
    allure.epic("Interactive Terminal"),
    allure.feature("Token Setup"),
]

_TOKEN = "sk-ant-oat01-" + "Zz09" * 12


class _FakePty:
    def __init__(self, outcome: PtyOutcome | None = None, error: Exception | None = None):
        self.outcome = outcome
        self.error = error
        self.calls: list[dict] = []

    def __call__(self, command, args, **kwargs) -> PtyOutcome:
        self.calls.append({"command": command, "args": args, **kwargs})
        if self.error is not None:
            raise self.error
        assert self.outcome is not None
        kwargs["on_data"](self.outcome.full_output)
        return self.outcome


class _FakePopen:
    launched: list[list[str]] = []

    def __init__(self, argv, **kwargs) -> None:
        _FakePopen.launched.append(argv)


def _outcome(output: str, exit_code: int = 0) -> PtyOutcome:
    return PtyOutcome(
        succeeded=exit_code == 0,
        exit_code=exit_code,
        signal=None,
        full_output=output,
        stderr_text="",
    )


def test_pty_success_captures_token() -> None:
    fake = _FakePty(_outcome(f"Login successful.\r\nCLAUDE_CODE_OAUTH_TOKEN={_TOKEN}\r\n"))
    progress: list[str] = []

    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(force_pty=True, cols=90, rows=20),
        on_progress=progress.append,
        pty_runner=fake,
    )

    assert result.success
    assert result.token == _TOKEN
    assert not result.requires_manual_auth
    assert fake.calls[0]["args"] == ["setup-token"]
    assert fake.calls[0]["env"] == {"FORCE_COLOR": "1"}
    assert (fake.calls[0]["cols"], fake.calls[0]["rows"]) == (90, 20)
    assert any("CLAUDE_CODE_OAUTH_TOKEN" in chunk for chunk in progress)


def test_pty_success_without_token_requires_manual_copy() -> None:
    fake = _FakePty(_outcome("All done, nothing to see here.\n"))

    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(force_pty=True, force_color=False),
        pty_runner=fake,
    )

    assert result.success
    assert result.token is None
    assert result.requires_manual_auth
    assert result.error == "Could not capture token automatically"
    assert fake.calls[0]["env"] is None


def test_pty_non_zero_exit_reports_failure() -> None:
    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(force_pty=True),
        pty_runner=_FakePty(_outcome("cancelled by user\n", exit_code=2)),
    )

    assert not result.success
    assert result.requires_manual_auth
    assert result.error == "CLI exited with code 2"


def test_pty_spawn_failure_falls_back_to_terminal(monkeypatch) -> None:
    _FakePopen.launched = []
    monkeypatch.setattr(setup_token.subprocess, "Popen", _FakePopen)

    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(force_pty=True),
        platform="linux",
        pty_runner=_FakePty(error=PtySpawnError("no pty")),
        which=lambda name: "/usr/bin/xterm" if name == "xterm" else None,
    )

    assert result.success
    assert result.terminal_opened
    assert result.requires_manual_auth
    assert _FakePopen.launched == [["xterm", "-e", "/usr/bin/claude", "setup-token"]]


def test_disabled_pty_goes_straight_to_terminal(monkeypatch) -> None:
    _FakePopen.launched = []
    monkeypatch.setattr(setup_token.subprocess, "Popen", _FakePopen)
    fake = _FakePty(_outcome("unused"))

    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(disable_pty=True),
        platform="darwin",
        pty_runner=fake,
    )

    assert fake.calls == []
    assert result.terminal_opened
    assert _FakePopen.launched[0][0] == "osascript"


def test_no_terminal_emulator_reports_manual_command() -> None:
    result = run_setup_token(
        "/usr/bin/claude",
        ("setup-token",),
        token_env="CLAUDE_CODE_OAUTH_TOKEN",
        settings=TerminalSettings(disable_pty=True),
        platform="linux",
        which=lambda _name: None,
    )

    assert not result.success
    assert result.requires_manual_auth
    assert not result.terminal_opened
    assert "/usr/bin/claude setup-token" in (result.error or "")


def test_terminal_argv_per_platform() -> None:
    assert external_terminal_argv("claude", ["setup-token"], platform="win32") == [
        "cmd",
        "/c",
        "start",
        "cmd",
        "/k",
        "claude setup-token",
    ]
    mac = external_terminal_argv("/Apps/My Tools/claude", ["setup-token"], platform="darwin")
    assert mac is not None
    assert "do script \"'/Apps/My Tools/claude' setup-token\"" in mac[2]

    linux = external_terminal_argv(
        "claude",
        ["setup-token"],
        platform="linux",
        which=lambda name: name if name == "x-terminal-emulator" else None,
    )
    assert linux == ["x-terminal-emulator", "-e", "claude setup-token"]
