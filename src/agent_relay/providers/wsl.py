"""Helpers for running Linux-only CLIs inside WSL from a Windows host."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Callable

logger = logging.getLogger(__name__)

WSL_EXECUTABLE = "wsl.exe"


def wsl_available(which: Callable[[str], str | None] = shutil.which) -> bool:
    """Return True when the WSL launcher is reachable on PATH."""

    return which(WSL_EXECUTABLE) is not None


def default_distribution(*, timeout_seconds: float) -> str | None:
    """Return the first registered WSL distribution name, if any."""

    try:
        completed = subprocess.run(  # noqa: S603
            [WSL_EXECUTABLE, "--list", "--quiet"],
            check=False,
            capture_output=True,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logger.debug("WSL distribution listing failed: %s", error)
        return None
    if completed.returncode != 0:
        return None
    for line in _decode_wsl_output(completed.stdout).splitlines():
        name = line.strip()
        if name:
            return name
    return None


def run_in_wsl(
    command: str,
    *,
    distribution: str | None,
    timeout_seconds: float,
) -> str | None:
    """Run a shell command inside WSL and return its stripped stdout.

    Returns ``None`` when WSL cannot be launched, the command times out or
    exits with a non-zero code.
    """

    argv = [WSL_EXECUTABLE]
    if distribution:
        argv.extend(["-d", distribution])
    argv.extend(["--", "sh", "-lc", command])
    try:
        completed = subprocess.run(  # noqa: S603
            argv,
            check=False,
            capture_output=True,
            timeout=timeout_seconds,
        )
    except (OSError, subprocess.TimeoutExpired) as error:
        logger.debug("WSL command failed to run: %s", error)
        return None
    if completed.returncode != 0:
        return None
    return _decode_wsl_output(completed.stdout).strip()


def resolve_in_wsl(
    binary_name: str,
    *,
    distribution: str | None,
    timeout_seconds: float,
) -> str | None:
    """Return the absolute path of ``binary_name`` inside WSL, if installed."""

    quoted = shlex.quote(binary_name)
    command = (
        f"command -v {quoted} 2>/dev/null || "
        f'(test -x "$HOME/.local/bin/{binary_name}" && echo "$HOME/.local/bin/{binary_name}")'
    )
    output = run_in_wsl(command, distribution=distribution, timeout_seconds=timeout_seconds)
    if not output:
        return None
    path = output.splitlines()[0].strip()
    return path if path.startswith("/") else None


def build_bridge_argv(
    executable: str,
    args: list[str],
    *,
    distribution: str | None,
    cwd: str | None,
) -> list[str]:
    """Wrap a Linux command line so it runs through the WSL launcher."""

    argv = [WSL_EXECUTABLE]
    if distribution:
        argv.extend(["-d", distribution])
    if cwd:
        argv.extend(["--cd", cwd])
    argv.append("--")
    argv.append(executable)
    argv.extend(args)
    return argv


def _decode_wsl_output(raw: bytes) -> str:
    # wsl.exe management commands print UTF-16LE, commands run inside print UTF-8.
    if b"\x00" in raw:
        return raw.decode("utf-16-le", errors="ignore").replace("\x00", "")
    return raw.decode("utf-8", errors="replace")
