"""Registry selecting a concrete CLI backend by name."""

from __future__ import annotations

from collections.abc import Callable

from agent_relay.config import DetectionSettings
from agent_relay.providers.base import CliProvider
from agent_relay.providers.claude import ClaudeProvider
from agent_relay.providers.cursor import CursorProvider

ProviderFactory = Callable[[DetectionSettings], CliProvider]

PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    "cursor": CursorProvider,
    "claude": ClaudeProvider,
}
SUPPORTED_PROVIDERS = tuple(PROVIDER_FACTORIES)


def create_provider(name: str, settings: DetectionSettings | None = None) -> CliProvider:
    """Build a fresh provider instance with its own detection cache."""

    normalized = _normalize_provider(name)
    _validate_supported_provider(normalized)
    return PROVIDER_FACTORIES[normalized](settings or DetectionSettings())


def provider_for_model(model: str) -> str | None:
    """Backend implied by a prefixed model id such as ``cursor-gpt-5``, if any."""

    normalized = model.strip().lower()
    for name in SUPPORTED_PROVIDERS:
        if normalized.startswith(f"{name}-"):
            return name
    return None


def _normalize_provider(name: str) -> str:
    return name.strip().lower()


def _validate_supported_provider(name: str) -> None:
    if name not in PROVIDER_FACTORIES:
        raise ValueError(
            f"Unsupported provider={name!r}. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}",
        )
