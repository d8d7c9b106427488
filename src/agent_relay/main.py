"""CLI entrypoint for agent-relay."""

import logging
import sys
from pathlib import Path

import rich_click as click

from agent_relay import __version__
from agent_relay.config import Settings
from agent_relay.errors import CliSpawnError, NdjsonProtocolError, ProviderQueryError
from agent_relay.providers.controllers import QueryCliController, QueryCommand
from agent_relay.providers.models import CancelToken
from agent_relay.providers.registry import SUPPORTED_PROVIDERS, provider_for_model
from agent_relay.status.controllers import (
    CliStatusController,
    InstallInstructionsCommand,
    SetupTokenCommand,
    StatusCommand,
)

click.rich_click.USE_MARKDOWN = True
STATUS_CONTROLLER = CliStatusController()
QUERY_CONTROLLER = QueryCliController()

_PROVIDER_CHOICE = click.Choice(SUPPORTED_PROVIDERS, case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="agent-relay")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Logging level. Defaults to AGENT_RELAY_LOG_LEVEL or WARNING.",
)
def agent_relay(log_level: str | None) -> None:
    """Drive local AI coding-assistant CLIs through one streaming interface."""

    try:
        settings = Settings.from_env()
        if log_level:
            settings.log_level = log_level.upper()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@agent_relay.command("status")
@click.option(
    "--provider",
    "providers",
    type=_PROVIDER_CHOICE,
    multiple=True,
    help="Backend to report. Can be repeated; defaults to all backends.",
)
@click.option(
    "--credentials-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Application credentials JSON. Defaults to AGENT_RELAY_CREDENTIALS_PATH.",
)
@click.option("--refresh", is_flag=True, help="Discard cached detection and probe again.")
def status(providers: tuple[str, ...], credentials_path: Path | None, refresh: bool) -> None:
    """Show installation, version and authentication status per backend."""

    _emit_lines(
        STATUS_CONTROLLER.status(
            StatusCommand(
                credentials_path=credentials_path,
                providers=tuple(provider.lower() for provider in providers),
                refresh=refresh,
            ),
        ),
    )


@agent_relay.command("query")
@click.option(
    "--provider",
    type=_PROVIDER_CHOICE,
    default=None,
    help="Backend to run. Defaults to the `--model` prefix, then the configured default.",
)
@click.option("--model", default=None, help="Model id, for example `sonnet` or `auto`.")
@click.option(
    "--cwd",
    type=click.Path(path_type=Path, file_okay=False, exists=True),
    default=None,
    help="Working directory for the CLI.",
)
@click.option(
    "--allow-writes",
    is_flag=True,
    help="Let the backend edit files without asking.",
)
@click.argument("prompt")
def query(
    provider: str | None,
    model: str | None,
    cwd: Path | None,
    allow_writes: bool,
    prompt: str,
) -> None:
    """Stream canonical messages as NDJSON. Use `-` to read PROMPT from stdin."""

    if prompt == "-":
        prompt = click.get_text_stream("stdin").read()
    cancel_token = CancelToken()
    lines = QUERY_CONTROLLER.query(
        QueryCommand(
            provider=_query_provider(provider, model),
            prompt=prompt,
            model=model,
            cwd=cwd,
            allow_writes=allow_writes,
            cancel_token=cancel_token,
        ),
    )
    try:
        for line in lines:
            click.echo(line)
    except KeyboardInterrupt:
        cancel_token.cancel()
        lines.close()
        click.echo("Cancelled.", err=True)
        click.get_current_context().exit(130)
    except ProviderQueryError as error:
        classified = error.classified
        message = f"[{classified.kind.value}] {classified.message}"
        if classified.suggestion:
            message += f"\n{classified.suggestion}"
        raise click.ClickException(message) from error
    except NdjsonProtocolError as error:
        raise click.ClickException(f"{error}\nOffending line: {error.line[:200]}") from error
    except (CliSpawnError, ValueError) as error:
        raise click.ClickException(str(error)) from error


@agent_relay.command("setup-token")
@click.option("--provider", type=_PROVIDER_CHOICE, default="claude", show_default=True)
@click.option(
    "--credentials-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Where to store the captured token.",
)
@click.option(
    "--no-save",
    is_flag=True,
    help="Print an export line instead of storing the token.",
)
def setup_token(provider: str, credentials_path: Path | None, no_save: bool) -> None:
    """Run the backend's interactive login and capture a long-lived token."""

    try:
        result = STATUS_CONTROLLER.setup_token(
            SetupTokenCommand(
                credentials_path=credentials_path,
                provider=provider.lower(),
                save=not no_save,
            ),
            on_progress=lambda text: click.echo(text, nl=False),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Token setup failed.")


@agent_relay.command("install-instructions")
@click.option("--provider", type=_PROVIDER_CHOICE, required=True)
def install_instructions(provider: str) -> None:
    """Show how to install a backend CLI on this platform."""

    _emit_lines(
        STATUS_CONTROLLER.install_instructions(
            InstallInstructionsCommand(provider=provider.lower()),
        ),
    )


def _query_provider(provider: str | None, model: str | None) -> str:
    if provider:
        return provider.lower()
    implied = provider_for_model(model) if model else None
    return implied or Settings.from_env().default_provider.lower()


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_relay()
