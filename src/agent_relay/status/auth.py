"""Authentication status probing for CLI backends."""

from __future__ import annotations

import json
import logging
import os
import shlex
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_relay.providers import wsl
from agent_relay.providers.base import AuthSources, CliProvider

logger = logging.getLogger(__name__)

BridgeRunner = Callable[..., str | None]


@dataclass(slots=True)
class AuthStatus:
    """Whether a backend has usable credentials and where they come from."""

    authenticated: bool
    method: str
    has_credentials_file: bool | None = None


def load_app_credentials(path: Path) -> dict[str, Any]:
    """Read the application credential store; missing or unreadable files are empty."""

    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Ignoring unreadable credentials file %s: %s", path, error)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring credentials file %s: expected a JSON object", path)
        return {}
    return payload


def save_app_credentials(path: Path, updates: Mapping[str, str]) -> None:
    """Merge ``updates`` into the credential store, readable by the owner only."""

    payload = load_app_credentials(path)
    payload.update(updates)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    path.chmod(0o600)


def probe_auth_status(  # noqa: PLR0913
    provider: CliProvider,
    credentials: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    *,
    home: Path | None = None,
    run_bridge: BridgeRunner = wsl.run_in_wsl,
    bridge_timeout_seconds: float = 10.0,
) -> AuthStatus:
    """Report the first credential source found for ``provider``.

    Lookup order: session token env var, stored session token, stored API key,
    API key env var, then the CLI's own credential files. For a backend hosted
    in WSL the credential files are read inside WSL, never on the host.
    """

    sources = provider.auth
    stored = credentials or {}
    env = os.environ if environ is None else environ

    if sources.session_token_env and env.get(sources.session_token_env):
        return AuthStatus(authenticated=True, method="session_token_env")
    if _first_stored(stored, sources.stored_session_token_keys):
        return AuthStatus(authenticated=True, method="session_token")
    if _first_stored(stored, sources.stored_api_key_keys):
        return AuthStatus(authenticated=True, method="api_key")
    if env.get(sources.api_key_env):
        return AuthStatus(authenticated=True, method="api_key_env")

    if not sources.credential_files:
        return AuthStatus(authenticated=False, method="none")

    detection = provider.resolve()
    if detection.uses_bridge:
        has_file = _bridge_credentials_present(
            sources,
            distribution=detection.bridge_distribution,
            run_bridge=run_bridge,
            timeout_seconds=bridge_timeout_seconds,
        )
    else:
        has_file = _host_credentials_present(sources, home or Path.home())

    if has_file:
        return AuthStatus(authenticated=True, method="login", has_credentials_file=True)
    return AuthStatus(authenticated=False, method="none", has_credentials_file=False)


def _first_stored(stored: Mapping[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = stored.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _host_credentials_present(sources: AuthSources, home: Path) -> bool:
    for relative in sources.credential_files:
        path = home / relative
        if not path.is_file():
            continue
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            logger.debug("Unreadable CLI credentials %s: %s", path, error)
            continue
        if _has_token(payload, sources.credential_token_fields):
            return True
    return False


def _bridge_credentials_present(
    sources: AuthSources,
    *,
    distribution: str | None,
    run_bridge: BridgeRunner,
    timeout_seconds: float,
) -> bool:
    for relative in sources.credential_files:
        raw = run_bridge(
            f"cat ~/{shlex.quote(relative)}",
            distribution=distribution,
            timeout_seconds=timeout_seconds,
        )
        if not raw:
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Unparsable CLI credentials inside WSL: ~/%s", relative)
            continue
        if _has_token(payload, sources.credential_token_fields):
            return True
    return False


def _has_token(payload: Any, fields: tuple[str, ...]) -> bool:
    if not isinstance(payload, dict):
        return False
    return any(payload.get(field) for field in fields)
