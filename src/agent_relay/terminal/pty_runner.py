"""Run a CLI attached to a pseudo-terminal and capture its full transcript."""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import pexpect

from agent_relay.errors import PtySpawnError

logger = logging.getLogger(__name__)

DEFAULT_COLS = 120
DEFAULT_ROWS = 30

# Read granularity for the PTY master; small enough to keep on_data responsive.
_READ_SIZE = 4096
_READ_TIMEOUT_SECONDS = 0.2


@dataclass(slots=True)
class PtyOutcome:
    """Result of a finished pseudo-terminal session."""

    succeeded: bool
    exit_code: int | None
    signal: int | None
    full_output: str
    stderr_text: str


def pty_supported() -> bool:
    """True when pexpect can allocate a real pseudo-terminal on this host."""

    return sys.platform != "win32" and hasattr(pexpect, "spawn")


def run_pty_command(  # noqa: PLR0913
    command: str,
    args: Sequence[str] = (),
    *,
    on_data: Callable[[str], None] | None = None,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    cols: int = DEFAULT_COLS,
    rows: int = DEFAULT_ROWS,
    timeout_seconds: float | None = None,
) -> PtyOutcome:
    """Spawn ``command`` in a PTY, stream its output and wait for it to exit.

    Every chunk is appended to the transcript and passed to ``on_data``.
    A PTY merges stdout and stderr, so ``stderr_text`` only carries runner
    diagnostics such as a timeout notice.

    Raises:
        PtySpawnError: the process could not be started.
    """

    merged_env = dict(os.environ)
    merged_env.setdefault("TERM", "xterm-256color")
    if env:
        merged_env.update(env)

    try:
        child = pexpect.spawn(
            command,
            list(args),
            cwd=cwd or os.getcwd(),
            env=merged_env,
            dimensions=(rows, cols),
            encoding="utf-8",
            codec_errors="replace",
            timeout=None,
        )
    except (pexpect.ExceptionPexpect, OSError) as error:
        raise PtySpawnError(f"Failed to start {command} in a pseudo-terminal: {error}") from error

    logger.debug("PTY session started: pid=%s command=%s", child.pid, command)
    deadline = None if timeout_seconds is None else time.monotonic() + timeout_seconds
    chunks: list[str] = []
    diagnostics: list[str] = []
    try:
        while True:
            try:
                data = child.read_nonblocking(size=_READ_SIZE, timeout=_READ_TIMEOUT_SECONDS)
            except pexpect.TIMEOUT:
                if deadline is not None and time.monotonic() >= deadline:
                    diagnostics.append(f"PTY session timed out after {timeout_seconds}s")
                    child.terminate(force=True)
                    break
                continue
            except pexpect.EOF:
                break
            if not data:
                continue
            chunks.append(data)
            if on_data is not None:
                on_data(data)
    finally:
        child.close(force=True)

    exit_code = child.exitstatus
    signal_number = child.signalstatus
    logger.debug(
        "PTY session finished: pid=%s exit_code=%s signal=%s",
        child.pid,
        exit_code,
        signal_number,
    )
    return PtyOutcome(
        succeeded=exit_code == 0,
        exit_code=exit_code,
        signal=signal_number,
        full_output="".join(chunks),
        stderr_text="\n".join(diagnostics),
    )
