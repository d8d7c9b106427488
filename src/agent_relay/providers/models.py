"""Canonical message model and per-execution value types."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageKind(str, Enum):
    """Kinds of canonical provider messages."""

    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    RESULT = "result"
    ERROR = "error"


class BlockKind(str, Enum):
    """Kinds of content blocks inside a canonical message."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


class ErrorKind(str, Enum):
    """Normalized failure taxonomy surfaced to callers."""

    NOT_INSTALLED = "not_installed"
    NOT_AUTHENTICATED = "not_authenticated"
    RATE_LIMITED = "rate_limited"
    MODEL_UNAVAILABLE = "model_unavailable"
    NETWORK_ERROR = "network_error"
    PROCESS_CRASHED = "process_crashed"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ContentBlock:
    """One block of assistant output, tool invocation or tool result."""

    kind: BlockKind
    text: str | None = None
    tool_name: str | None = None
    tool_call_id: str | None = None
    input: Any = None
    result_payload: Any = None

    @classmethod
    def text_block(cls, text: str) -> ContentBlock:
        return cls(kind=BlockKind.TEXT, text=text)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"type": self.kind.value}
        if self.kind is BlockKind.TEXT:
            payload["text"] = self.text or ""
        elif self.kind is BlockKind.TOOL_USE:
            payload["name"] = self.tool_name
            payload["tool_use_id"] = self.tool_call_id
            payload["input"] = self.input
        else:
            payload["tool_use_id"] = self.tool_call_id
            payload["content"] = self.result_payload
        return payload


@dataclass(slots=True)
class ProviderMessage:
    """Backend-independent unit of the streamed response."""

    kind: MessageKind
    session_id: str | None = None
    content: list[ContentBlock] = field(default_factory=list)
    result_text: str | None = None
    error_text: str | None = None

    def text(self) -> str:
        """Concatenate text blocks, ignoring tool blocks."""

        return "".join(
            block.text or "" for block in self.content if block.kind is BlockKind.TEXT
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize into the wire shape relayed to UI consumers."""

        payload: dict[str, object] = {"type": self.kind.value, "session_id": self.session_id}
        if self.content:
            payload["content"] = [block.to_dict() for block in self.content]
        if self.result_text is not None:
            payload["result"] = self.result_text
        if self.error_text is not None:
            payload["error"] = self.error_text
        return payload


@dataclass(slots=True, frozen=True)
class DetectionResult:
    """Where a provider's CLI lives and how it must be launched."""

    executable_path: str | None
    uses_bridge: bool = False
    bridge_distribution: str | None = None
    strategy: str = "none"
    bridge_executable_path: str | None = None

    @property
    def installed(self) -> bool:
        return self.executable_path is not None

    @classmethod
    def not_installed(cls) -> DetectionResult:
        return cls(executable_path=None)

    def display_path(self) -> str | None:
        if self.uses_bridge and self.bridge_executable_path:
            distro = f":{self.bridge_distribution}" if self.bridge_distribution else ""
            return f"(WSL{distro}) {self.bridge_executable_path}"
        return self.executable_path


class CancelToken:
    """Out-of-band cancellation flag shared between a consumer and one execution."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


@dataclass(slots=True)
class SpawnConfig:
    """Concrete process launch description, built fresh for every execution."""

    command: str
    args: list[str]
    cwd: str | None
    env: dict[str, str]
    stdin_payload: str | None = None
    uses_bridge: bool = False
    cancel_token: CancelToken = field(default_factory=CancelToken)
    bridge_distribution: str | None = None


@dataclass(slots=True)
class QueryRequest:
    """Logical request issued by the orchestration layer."""

    prompt: str | list[dict[str, Any]]
    model: str | None = None
    cwd: str | None = None
    allow_writes: bool = False
    extra_env: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ClassifiedError:
    """Actionable failure classification with remediation hint."""

    kind: ErrorKind
    message: str
    recoverable: bool
    suggestion: str | None = None
    matched_pattern: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestion": self.suggestion,
        }


@dataclass(slots=True)
class DedupState:
    """Per-execution memory of emitted assistant text."""

    last_emitted_block: str = ""
    accumulated_text: str = ""


@dataclass(slots=True)
class InstallationStatus:
    """Detection status reported to the CLI status orchestrator."""

    installed: bool
    path: str | None
    version: str | None
    method: str


@dataclass(slots=True)
class ModelDefinition:
    """Model offered by a backend."""

    model_id: str
    label: str
    description: str
    tier: str = "basic"
