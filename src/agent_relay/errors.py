"""Exception types raised along the query and terminal paths."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agent_relay.providers.models import ClassifiedError


class CliSpawnError(RuntimeError):
    """The CLI process could not be started."""

    def __init__(self, message: str, *, command: str) -> None:
        super().__init__(message)
        self.command = command


class CliProcessError(RuntimeError):
    """The CLI process exited with a non-zero code."""

    def __init__(self, message: str, *, exit_code: int, stderr: str) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class NdjsonProtocolError(RuntimeError):
    """A stdout line was not valid JSON while strict framing was requested."""

    def __init__(self, message: str, *, line: str) -> None:
        super().__init__(message)
        self.line = line


class ProviderQueryError(RuntimeError):
    """Classified, user-facing failure of a provider query."""

    def __init__(self, message: str, *, classified: ClassifiedError) -> None:
        super().__init__(message)
        self.classified = classified

    @property
    def recoverable(self) -> bool:
        return self.classified.recoverable


class PtySpawnError(RuntimeError):
    """A pseudo-terminal session could not be started."""
