"""Controllers for status, credential setup and install guidance commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from agent_relay.config import Settings
from agent_relay.providers.base import CliProvider
from agent_relay.providers.models import InstallationStatus
from agent_relay.providers.registry import SUPPORTED_PROVIDERS, create_provider
from agent_relay.status.auth import (
    AuthStatus,
    load_app_credentials,
    probe_auth_status,
    save_app_credentials,
)
from agent_relay.terminal.setup_token import run_setup_token

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusCommand:
    """CLI input for installation and auth status."""

    credentials_path: Path | None
    providers: tuple[str, ...] = ()
    refresh: bool = False


@dataclass(slots=True)
class SetupTokenCommand:
    """CLI input for interactive token capture."""

    credentials_path: Path | None
    provider: str = "claude"
    save: bool = True


@dataclass(slots=True)
class InstallInstructionsCommand:
    """CLI input for installation guidance."""

    provider: str


@dataclass(slots=True)
class ProviderStatus:
    """Combined detection and auth status of one backend."""

    provider: str
    installation: InstallationStatus
    auth: AuthStatus


@dataclass(slots=True)
class SetupTokenOutcome:
    """Summary lines of a token capture run and whether it succeeded."""

    success: bool
    lines: list[str] = field(default_factory=list)


def installation_status(provider: CliProvider) -> InstallationStatus:
    """Detection result plus version probe, shaped for display."""

    detection = provider.resolve()
    if not detection.installed:
        return InstallationStatus(installed=False, path=None, version=None, method="none")
    return InstallationStatus(
        installed=True,
        path=detection.display_path(),
        version=provider.get_version(),
        method="wsl" if detection.uses_bridge else "cli",
    )


class CliStatusController:
    """Reports detection, version and credential state of the CLI backends."""

    def collect(self, command: StatusCommand) -> list[ProviderStatus]:
        settings = Settings.from_env(credentials_path=command.credentials_path)
        credentials = load_app_credentials(settings.credentials_path)
        statuses: list[ProviderStatus] = []
        for name in command.providers or SUPPORTED_PROVIDERS:
            provider = create_provider(name, settings.detection)
            if command.refresh:
                provider.redetect()
            statuses.append(
                ProviderStatus(
                    provider=provider.name,
                    installation=installation_status(provider),
                    auth=probe_auth_status(
                        provider,
                        credentials,
                        bridge_timeout_seconds=settings.detection.wsl_timeout_seconds,
                    ),
                ),
            )
        return statuses

    def status(self, command: StatusCommand) -> list[str]:
        lines: list[str] = []
        for entry in self.collect(command):
            installation = entry.installation
            if installation.installed:
                lines.append(
                    f"{entry.provider}: installed=yes method={installation.method} "
                    f"path={installation.path} version={installation.version or 'unknown'}",
                )
            else:
                lines.append(f"{entry.provider}: installed=no")
            auth_line = (
                f"  auth: authenticated={'yes' if entry.auth.authenticated else 'no'} "
                f"method={entry.auth.method}"
            )
            if entry.auth.has_credentials_file is not None:
                auth_line += (
                    f" credentials_file={'yes' if entry.auth.has_credentials_file else 'no'}"
                )
            lines.append(auth_line)
        return lines

    def install_instructions(self, command: InstallInstructionsCommand) -> list[str]:
        provider = create_provider(command.provider, Settings.from_env().detection)
        models = ", ".join(model.model_id for model in provider.available_models())
        return [
            f"{provider.cli_name}: {provider.install_instructions()}",
            f"Models: {models}",
        ]

    def setup_token(
        self,
        command: SetupTokenCommand,
        on_progress: Callable[[str], None] | None = None,
    ) -> SetupTokenOutcome:
        """Capture a long-lived token through the backend's interactive login flow."""

        settings = Settings.from_env(credentials_path=command.credentials_path)
        provider = create_provider(command.provider, settings.detection)
        setup_args: tuple[str, ...] = getattr(provider, "setup_token_args", ())
        token_env: str | None = getattr(provider, "setup_token_env", None)
        if not setup_args or token_env is None:
            raise ValueError(f"Provider {provider.name} does not support setup-token.")

        detection = provider.resolve()
        if not detection.installed or detection.executable_path is None:
            return SetupTokenOutcome(
                success=False,
                lines=[
                    f"{provider.cli_name} is not installed.",
                    provider.install_instructions(),
                ],
            )

        result = run_setup_token(
            detection.executable_path,
            setup_args,
            token_env=token_env,
            settings=settings.terminal,
            on_progress=on_progress,
        )

        if result.token:
            lines = [f"Token captured ({len(result.token)} chars)."]
            if command.save and provider.auth.stored_session_token_keys:
                key = provider.auth.stored_session_token_keys[0]
                save_app_credentials(settings.credentials_path, {key: result.token})
                logger.info("Stored session token under %s", key)
                lines.append(f"Saved to {settings.credentials_path} as {key}.")
            else:
                lines.append(f"export {token_env}={result.token}")
            return SetupTokenOutcome(success=True, lines=lines)

        lines = []
        if result.error:
            lines.append(result.error)
        if result.terminal_opened:
            lines.append("Finish the login in the opened terminal window.")
        if result.requires_manual_auth:
            lines.append(f"Set {token_env} once you have the token.")
        return SetupTokenOutcome(success=result.success, lines=lines)
