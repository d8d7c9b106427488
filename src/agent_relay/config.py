"""Runtime configuration for provider detection, streaming and terminal sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class StreamingSettings:
    """Streaming process engine settings."""

    grace_seconds: float = 2.0
    strict_ndjson: bool = False
    read_chunk_bytes: int = 65_536


@dataclass(slots=True)
class DetectionSettings:
    """CLI detection and version probe settings."""

    version_timeout_seconds: float = 5.0
    wsl_distribution: str | None = None
    wsl_timeout_seconds: float = 10.0


@dataclass(slots=True)
class TerminalSettings:
    """Interactive pseudo-terminal settings."""

    force_pty: bool = False
    disable_pty: bool = False
    force_color: bool = True
    cols: int = 120
    rows: int = 30


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    credentials_path: Path = field(
        default_factory=lambda: Path.home() / ".agent-relay" / "credentials.json",
    )
    default_provider: str = "cursor"
    log_level: str = "WARNING"
    streaming: StreamingSettings = field(default_factory=StreamingSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    terminal: TerminalSettings = field(default_factory=TerminalSettings)

    @classmethod
    def from_env(cls, credentials_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        raw_credentials = os.getenv("AGENT_RELAY_CREDENTIALS_PATH", "").strip()
        if credentials_path is None and raw_credentials:
            credentials_path = Path(raw_credentials).expanduser()
        return cls(
            credentials_path=credentials_path
            or Path.home() / ".agent-relay" / "credentials.json",
            default_provider=os.getenv("AGENT_RELAY_DEFAULT_PROVIDER", "cursor").strip().lower(),
            log_level=os.getenv("AGENT_RELAY_LOG_LEVEL", "WARNING").strip().upper(),
            streaming=StreamingSettings(
                grace_seconds=float(os.getenv("AGENT_RELAY_GRACE_SECONDS", "2.0")),
                strict_ndjson=_env_bool("AGENT_RELAY_STRICT_NDJSON", default=False),
                read_chunk_bytes=int(os.getenv("AGENT_RELAY_READ_CHUNK_BYTES", "65536")),
            ),
            detection=DetectionSettings(
                version_timeout_seconds=float(
                    os.getenv("AGENT_RELAY_VERSION_TIMEOUT_SECONDS", "5.0"),
                ),
                wsl_distribution=os.getenv("AGENT_RELAY_WSL_DISTRIBUTION", "").strip() or None,
                wsl_timeout_seconds=float(os.getenv("AGENT_RELAY_WSL_TIMEOUT_SECONDS", "10.0")),
            ),
            terminal=TerminalSettings(
                force_pty=_env_bool("AGENT_RELAY_AUTH_FORCE_PTY", default=False),
                disable_pty=_env_bool("AGENT_RELAY_AUTH_DISABLE_PTY", default=False),
                force_color=_env_bool("AGENT_RELAY_FORCE_COLOR", default=True),
                cols=int(os.getenv("AGENT_RELAY_PTY_COLS", "120")),
                rows=int(os.getenv("AGENT_RELAY_PTY_ROWS", "30")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.streaming.grace_seconds <= 0:
            raise ValueError("AGENT_RELAY_GRACE_SECONDS must be > 0.")
        if self.streaming.read_chunk_bytes <= 0:
            raise ValueError("AGENT_RELAY_READ_CHUNK_BYTES must be a positive integer.")
        if self.detection.version_timeout_seconds <= 0:
            raise ValueError("AGENT_RELAY_VERSION_TIMEOUT_SECONDS must be > 0.")
        if self.detection.wsl_timeout_seconds <= 0:
            raise ValueError("AGENT_RELAY_WSL_TIMEOUT_SECONDS must be > 0.")
        if self.terminal.cols <= 0 or self.terminal.rows <= 0:
            raise ValueError("AGENT_RELAY_PTY_COLS and AGENT_RELAY_PTY_ROWS must be > 0.")
        if self.terminal.force_pty and self.terminal.disable_pty:
            raise ValueError(
                "AGENT_RELAY_AUTH_FORCE_PTY and AGENT_RELAY_AUTH_DISABLE_PTY "
                "are mutually exclusive.",
            )
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid AGENT_RELAY_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of {', '.join(_LOG_LEVELS)}.",
            )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
