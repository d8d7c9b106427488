"""Credential capture for CLIs whose login flow needs a real terminal."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from agent_relay.config import TerminalSettings
from agent_relay.errors import PtySpawnError
from agent_relay.providers.resolver import platform_key
from agent_relay.terminal.pty_runner import PtyOutcome, pty_supported, run_pty_command
from agent_relay.terminal.token_extract import extract_token, strip_ansi

logger = logging.getLogger(__name__)

_LINUX_TERMINALS: tuple[tuple[str, str], ...] = (
    ("gnome-terminal", "--"),
    ("konsole", "-e"),
    ("xterm", "-e"),
    ("x-terminal-emulator", "-e"),
)

PtyRunner = Callable[..., PtyOutcome]


@dataclass(slots=True)
class SetupTokenResult:
    """Outcome of a token capture attempt."""

    success: bool
    token: str | None = None
    requires_manual_auth: bool = False
    terminal_opened: bool = False
    error: str | None = None
    output: str | None = None


def run_setup_token(  # noqa: PLR0913
    executable: str,
    args: Sequence[str],
    *,
    token_env: str,
    settings: TerminalSettings,
    on_progress: Callable[[str], None] | None = None,
    cwd: str | None = None,
    platform: str | None = None,
    pty_runner: PtyRunner = run_pty_command,
    which: Callable[[str], str | None] = shutil.which,
) -> SetupTokenResult:
    """Capture a token through an in-process PTY, falling back to a terminal window."""

    def send(text: str) -> None:
        if on_progress is not None and text:
            on_progress(text)

    use_pty = not settings.disable_pty and (settings.force_pty or pty_supported())
    if use_pty:
        send("Starting in-app terminal session for authentication...\n")
        send("If your browser opens, complete sign-in and return here.\n\n")
        try:
            outcome = pty_runner(
                executable,
                list(args),
                on_data=send,
                cwd=cwd,
                env={"FORCE_COLOR": "1"} if settings.force_color else None,
                cols=settings.cols,
                rows=settings.rows,
            )
        except PtySpawnError as error:
            logger.warning("PTY authentication failed, falling back: %s", error)
            send(f"In-app terminal failed ({error}). Falling back to external terminal...\n")
        else:
            return _pty_result(outcome, token_env=token_env, send=send)
    elif settings.disable_pty:
        send("In-app terminal disabled; using the system terminal.\n")
    else:
        send("In-app terminal unavailable on this host; using the system terminal.\n")

    return _external_terminal_result(
        executable,
        args,
        platform=platform,
        which=which,
        send=send,
    )


def external_terminal_argv(
    executable: str,
    args: Sequence[str],
    *,
    platform: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str] | None:
    """Command line that opens a native terminal window running the CLI."""

    current = platform_key(platform)
    command_line = [executable, *args]
    if current == "win32":
        return ["cmd", "/c", "start", "cmd", "/k", subprocess.list2cmdline(command_line)]
    if current == "darwin":
        script = shlex.join(command_line).replace("\\", "\\\\").replace('"', '\\"')
        return [
            "osascript",
            "-e",
            f'tell application "Terminal" to do script "{script}"',
            "-e",
            'tell application "Terminal" to activate',
        ]
    for terminal, flag in _LINUX_TERMINALS:
        if which(terminal) is None:
            continue
        if terminal == "x-terminal-emulator":
            return [terminal, flag, shlex.join(command_line)]
        return [terminal, flag, *command_line]
    return None


def _pty_result(
    outcome: PtyOutcome,
    *,
    token_env: str,
    send: Callable[[str], None],
) -> SetupTokenResult:
    cleaned = strip_ansi(outcome.full_output)
    token = extract_token(cleaned, token_env)

    if outcome.succeeded and token:
        send("\nCaptured token automatically.\n")
        return SetupTokenResult(success=True, token=token)

    if outcome.succeeded:
        send(
            "\nCLI completed but the token was not detected automatically. "
            "Copy it from the output above or retry.\n",
        )
        return SetupTokenResult(
            success=True,
            requires_manual_auth=True,
            error="Could not capture token automatically",
            output=cleaned,
        )

    send(f"\nCLI exited with code {outcome.exit_code}. Falling back to manual copy.\n")
    return SetupTokenResult(
        success=False,
        requires_manual_auth=True,
        error=f"CLI exited with code {outcome.exit_code}",
        output=cleaned,
    )


def _external_terminal_result(
    executable: str,
    args: Sequence[str],
    *,
    platform: str | None,
    which: Callable[[str], str | None],
    send: Callable[[str], None],
) -> SetupTokenResult:
    argv = external_terminal_argv(executable, args, platform=platform, which=which)
    command_text = shlex.join([executable, *args])
    if argv is None:
        return SetupTokenResult(
            success=False,
            requires_manual_auth=True,
            error=(
                "Could not find a terminal emulator. "
                f"Run '{command_text}' manually in your terminal."
            ),
        )

    send("Opening system terminal for authentication...\n")
    logger.debug("Spawning terminal: %s", " ".join(argv))
    try:
        subprocess.Popen(  # noqa: S603
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=platform_key(platform) != "win32",
        )
    except OSError as error:
        logger.error("Failed to open terminal: %s", error)
        return SetupTokenResult(
            success=False,
            requires_manual_auth=True,
            error=f"Failed to open terminal: {error}",
        )

    send("Terminal window opened!\n\n")
    send("1. Complete the sign-in in your browser\n")
    send("2. Copy the token from the terminal\n")
    send("3. Paste it into your credentials store\n")
    return SetupTokenResult(success=True, requires_manual_auth=True, terminal_opened=True)
