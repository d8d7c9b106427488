"""Locate CLI executables on the host or inside WSL."""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from agent_relay.providers import wsl
from agent_relay.providers.models import DetectionResult

logger = logging.getLogger(__name__)

_EXPORT_PATH_PATTERN = re.compile(r"export\s+PATH=[\"']?([^\"'\n]+)[\"']?")
_SHELL_CONFIG_FILES = {
    "zsh": (".zshrc", ".zshenv", ".zprofile"),
    "bash": (".bashrc", ".bash_profile", ".profile"),
}


@dataclass(slots=True, frozen=True)
class CliSearchSpec:
    """Where and how to look for one backend's executable."""

    backend: str
    binary_name: str
    common_paths: dict[str, tuple[str, ...]] = field(default_factory=dict)
    versions_dir: Path | None = None
    windows_strategy: str = "native"
    windows_binary_names: tuple[str, ...] = ()


def platform_key(platform: str | None = None) -> str:
    """Collapse ``sys.platform`` values into linux / darwin / win32."""

    current = platform or sys.platform
    if current.startswith("linux"):
        return "linux"
    if current == "darwin":
        return "darwin"
    if current in {"win32", "cygwin"}:
        return "win32"
    return current


def resolve_cli(  # noqa: PLR0913
    spec: CliSearchSpec,
    *,
    platform: str | None = None,
    which: Callable[[str], str | None] = shutil.which,
    wsl_distribution: str | None = None,
    wsl_timeout_seconds: float = 10.0,
    home: Path | None = None,
) -> DetectionResult:
    """Run the detection chain and return the first hit or a not-installed result."""

    current = platform_key(platform)
    home_dir = home or Path.home()

    for name in _binary_names(spec, current):
        found = which(name)
        if found:
            logger.debug("Found %s in PATH: %s", spec.binary_name, found)
            return DetectionResult(executable_path=found, strategy="path")

    for candidate in _common_candidates(spec, current, home_dir):
        if candidate.is_file():
            logger.debug("Found %s at common path: %s", spec.binary_name, candidate)
            return DetectionResult(executable_path=str(candidate), strategy="common_path")

    if spec.versions_dir is not None:
        versioned = find_latest_versioned(spec.versions_dir, spec.binary_name)
        if versioned is not None:
            return DetectionResult(executable_path=str(versioned), strategy="versions_dir")

    if current == "win32" and spec.windows_strategy == "wsl":
        return _resolve_via_wsl(
            spec,
            which=which,
            distribution=wsl_distribution,
            timeout_seconds=wsl_timeout_seconds,
        )

    logger.debug("%s CLI not found", spec.backend)
    return DetectionResult.not_installed()


def find_latest_versioned(versions_dir: Path, binary_name: str) -> Path | None:
    """Return the binary inside the lexicographically last version folder holding it."""

    try:
        versions = sorted(
            (entry.name for entry in versions_dir.iterdir() if not entry.name.startswith(".")),
            reverse=True,
        )
    except OSError:
        return None
    for version in versions:
        candidate = versions_dir / version / binary_name
        if candidate.is_file():
            logger.debug("Found %s version %s at: %s", binary_name, version, candidate)
            return candidate
    return None


def paths_from_shell_config(home: Path, shell: str | None = None) -> list[Path]:
    """Collect literal directories exported into PATH by the user's shell rc files."""

    shell_name = Path(shell or os.environ.get("SHELL", "/bin/bash")).name
    config_names: tuple[str, ...] = ()
    for key, names in _SHELL_CONFIG_FILES.items():
        if key in shell_name:
            config_names = names
            break

    directories: list[Path] = []
    for config_name in config_names:
        config_file = home / config_name
        try:
            content = config_file.read_text("utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        for match in _EXPORT_PATH_PATTERN.finditer(content):
            for part in match.group(1).split(":"):
                if part and "$" not in part:
                    directories.append(Path(part).expanduser())
    return directories


def _binary_names(spec: CliSearchSpec, current: str) -> tuple[str, ...]:
    if current == "win32" and spec.windows_binary_names:
        return spec.windows_binary_names
    return (spec.binary_name,)


def _common_candidates(spec: CliSearchSpec, current: str, home: Path) -> list[Path]:
    candidates = [
        Path(raw.replace("~", str(home), 1) if raw.startswith("~") else raw)
        for raw in spec.common_paths.get(current, ())
    ]
    if current == "win32":
        return candidates

    seen = {candidate.parent for candidate in candidates}
    for directory in paths_from_shell_config(home):
        if directory in seen:
            continue
        seen.add(directory)
        candidates.append(directory / spec.binary_name)
    return candidates


def _resolve_via_wsl(
    spec: CliSearchSpec,
    *,
    which: Callable[[str], str | None],
    distribution: str | None,
    timeout_seconds: float,
) -> DetectionResult:
    if not wsl.wsl_available(which):
        logger.debug("WSL is not available; %s cannot run on this host", spec.backend)
        return DetectionResult.not_installed()

    distro = distribution or wsl.default_distribution(timeout_seconds=timeout_seconds)
    linux_path = wsl.resolve_in_wsl(
        spec.binary_name,
        distribution=distro,
        timeout_seconds=timeout_seconds,
    )
    if linux_path is None:
        logger.debug("%s not found inside WSL distribution %s", spec.binary_name, distro)
        return DetectionResult.not_installed()

    logger.debug("Found %s inside WSL (%s): %s", spec.binary_name, distro, linux_path)
    return DetectionResult(
        executable_path=wsl.WSL_EXECUTABLE,
        uses_bridge=True,
        bridge_distribution=distro,
        strategy="wsl",
        bridge_executable_path=linux_path,
    )
