"""Provider capability interface and helpers shared by concrete backends."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Any, Protocol

from agent_relay.providers import wsl
from agent_relay.providers.models import (
    CancelToken,
    ClassifiedError,
    DetectionResult,
    ModelDefinition,
    ProviderMessage,
    QueryRequest,
    SpawnConfig,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AuthSources:
    """Where a backend's credentials may come from, in lookup order."""

    api_key_env: str
    session_token_env: str | None = None
    stored_session_token_keys: tuple[str, ...] = ()
    stored_api_key_keys: tuple[str, ...] = ()
    credential_files: tuple[str, ...] = ()
    credential_token_fields: tuple[str, ...] = ("accessToken", "token")


class CliProvider(Protocol):
    """Capabilities implemented by every CLI backend."""

    name: str
    cli_name: str
    dedup_text: bool
    auth: AuthSources

    def resolve(self) -> DetectionResult:
        """Return the cached detection result, detecting on first use."""

    def redetect(self) -> DetectionResult:
        """Discard the cached detection result and probe again."""

    def build_spawn_config(self, request: QueryRequest, cancel_token: CancelToken) -> SpawnConfig:
        """Translate a logical request into a concrete launch description."""

    def normalize_event(self, record: dict[str, Any]) -> ProviderMessage | None:
        """Map one raw stream record to a canonical message, or nothing."""

    def classify_error(self, stderr: str, exit_code: int | None) -> ClassifiedError:
        """Classify a failed run."""

    def install_instructions(self) -> str:
        """Human-readable installation guidance for the current platform."""

    def get_version(self) -> str | None:
        """Return the CLI version string, or None when unavailable."""

    def available_models(self) -> list[ModelDefinition]:
        """Models the backend accepts."""


def extract_prompt_text(prompt: str | list[dict[str, Any]]) -> str:
    """Flatten a prompt given as text or as a list of content parts."""

    if isinstance(prompt, str):
        return prompt
    if isinstance(prompt, list):
        return "\n".join(
            str(part["text"])
            for part in prompt
            if isinstance(part, dict) and part.get("type") == "text" and part.get("text")
        )
    raise ValueError("Invalid prompt format: expected text or a list of content parts.")


def strip_provider_prefix(model: str, provider_name: str) -> str:
    prefix = f"{provider_name}-"
    return model[len(prefix) :] if model.startswith(prefix) else model


def child_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    env = os.environ.copy()
    if extra:
        env.update(extra)
    return env


def probe_version(detection: DetectionResult, *, timeout_seconds: float) -> str | None:
    """Run ``--version`` natively or through WSL; None on any failure."""

    if not detection.installed:
        return None
    if detection.uses_bridge and detection.bridge_executable_path:
        return (
            wsl.run_in_wsl(
                f"{shlex.quote(detection.bridge_executable_path)} --version",
                distribution=detection.bridge_distribution,
                timeout_seconds=timeout_seconds,
            )
            or None
        )
    try:
        completed = subprocess.run(  # noqa: S603
            [str(detection.executable_path), "--version"],
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        logger.debug("Version probe timed out: %s", detection.executable_path)
        return None
    except OSError as error:
        logger.debug("Version probe failed to start: %s", error)
        return None
    if completed.returncode != 0:
        return None
    return completed.stdout.strip() or None


def spawn_target(detection: DetectionResult) -> str:
    """Command to place in a SpawnConfig for a detected CLI."""

    if detection.uses_bridge and detection.bridge_executable_path:
        return detection.bridge_executable_path
    if detection.executable_path is None:
        raise ValueError("CLI is not installed.")
    return detection.executable_path
