"""Claude CLI backend."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from agent_relay.config import DetectionSettings
from agent_relay.providers.base import (
    AuthSources,
    child_env,
    extract_prompt_text,
    probe_version,
    spawn_target,
    strip_provider_prefix,
)
from agent_relay.providers.failure_classifier import ClassifierHints, classify_cli_failure
from agent_relay.providers.models import (
    BlockKind,
    CancelToken,
    ClassifiedError,
    ContentBlock,
    DetectionResult,
    MessageKind,
    ModelDefinition,
    ProviderMessage,
    QueryRequest,
    SpawnConfig,
)
from agent_relay.providers.resolver import CliSearchSpec, platform_key, resolve_cli

DEFAULT_MODEL = "default"
SETUP_TOKEN_ENV = "CLAUDE_CODE_OAUTH_TOKEN"
CLAUDE_MODELS: tuple[ModelDefinition, ...] = (
    ModelDefinition("default", "Default", "Model chosen by the CLI for the account"),
    ModelDefinition("sonnet", "Sonnet", "Balanced speed and quality", "premium"),
    ModelDefinition("opus", "Opus", "Most capable model", "premium"),
    ModelDefinition("haiku", "Haiku", "Fastest model"),
)
_HINTS = ClassifierHints(
    cli_label="Claude CLI",
    login_suggestion=(
        'Run "claude setup-token" (or "agent-relay setup-token") '
        "or set ANTHROPIC_API_KEY."
    ),
    model_suggestion="Select a different Claude model and try again.",
)


class ClaudeProvider:
    """Runs ``claude -p --output-format stream-json``."""

    name = "claude"
    cli_name = "claude"
    dedup_text = False
    setup_token_args: tuple[str, ...] = ("setup-token",)
    setup_token_env = SETUP_TOKEN_ENV
    auth = AuthSources(
        api_key_env="ANTHROPIC_API_KEY",
        session_token_env=SETUP_TOKEN_ENV,
        stored_session_token_keys=("anthropic_oauth_token",),
        stored_api_key_keys=("anthropic", "anthropic_api_key"),
        credential_files=(".claude/.credentials.json",),
        credential_token_fields=("claudeAiOauth", "accessToken", "token"),
    )

    def __init__(
        self,
        settings: DetectionSettings | None = None,
        *,
        home: Path | None = None,
        platform: str | None = None,
    ) -> None:
        self._settings = settings or DetectionSettings()
        self._home = home or Path.home()
        self._platform = platform
        self._detection: DetectionResult | None = None

    @property
    def search_spec(self) -> CliSearchSpec:
        return CliSearchSpec(
            backend=self.name,
            binary_name=self.cli_name,
            common_paths={
                "linux": (
                    "~/.local/bin/claude",
                    "~/.claude/local/claude",
                    "/usr/local/bin/claude",
                ),
                "darwin": (
                    "~/.local/bin/claude",
                    "~/.claude/local/claude",
                    "/usr/local/bin/claude",
                    "/opt/homebrew/bin/claude",
                ),
                "win32": (
                    "~/.local/bin/claude.exe",
                    "~/AppData/Roaming/npm/claude.cmd",
                ),
            },
            windows_binary_names=("claude.exe", "claude.cmd", "claude"),
        )

    def resolve(self) -> DetectionResult:
        if self._detection is None:
            self._detection = self._detect()
        return self._detection

    def redetect(self) -> DetectionResult:
        self._detection = self._detect()
        return self._detection

    def build_spawn_config(self, request: QueryRequest, cancel_token: CancelToken) -> SpawnConfig:
        detection = self.resolve()
        model = strip_provider_prefix(request.model or DEFAULT_MODEL, self.name)

        args = ["-p", "--output-format", "stream-json", "--verbose"]
        if request.allow_writes:
            args.extend(["--permission-mode", "acceptEdits"])
        if model != DEFAULT_MODEL:
            args.extend(["--model", model])

        return SpawnConfig(
            command=spawn_target(detection),
            args=args,
            cwd=request.cwd,
            env=child_env(request.extra_env),
            stdin_payload=extract_prompt_text(request.prompt),
            uses_bridge=detection.uses_bridge,
            cancel_token=cancel_token,
            bridge_distribution=detection.bridge_distribution,
        )

    def normalize_event(self, record: dict[str, Any]) -> ProviderMessage | None:
        record_type = record.get("type")
        session_id = record.get("session_id")

        if record_type == "assistant":
            blocks = [
                block
                for block in (
                    _assistant_block(item)
                    for item in (record.get("message") or {}).get("content") or []
                )
                if block is not None
            ]
            if not blocks:
                return None
            return ProviderMessage(
                kind=MessageKind.ASSISTANT,
                session_id=session_id,
                content=blocks,
            )

        if record_type == "user":
            results = [
                ContentBlock(
                    kind=BlockKind.TOOL_RESULT,
                    tool_call_id=item.get("tool_use_id"),
                    result_payload=_tool_result_text(item.get("content")),
                )
                for item in (record.get("message") or {}).get("content") or []
                if isinstance(item, dict) and item.get("type") == "tool_result"
            ]
            if not results:
                return None
            return ProviderMessage(kind=MessageKind.USER, session_id=session_id, content=results)

        if record_type == "result":
            if record.get("is_error"):
                return ProviderMessage(
                    kind=MessageKind.ERROR,
                    session_id=session_id,
                    error_text=(
                        record.get("error")
                        or record.get("result")
                        or record.get("subtype")
                        or "Unknown error"
                    ),
                )
            return ProviderMessage(
                kind=MessageKind.RESULT,
                session_id=session_id,
                result_text=record.get("result"),
            )

        return None

    def classify_error(self, stderr: str, exit_code: int | None) -> ClassifiedError:
        return classify_cli_failure(stderr=stderr, exit_code=exit_code, hints=_HINTS)

    def install_instructions(self) -> str:
        if platform_key(self._platform) == "win32":
            return "Install with PowerShell: irm https://claude.ai/install.ps1 | iex"
        return "Install with: curl -fsSL https://claude.ai/install.sh | bash"

    def get_version(self) -> str | None:
        return probe_version(
            self.resolve(),
            timeout_seconds=self._settings.version_timeout_seconds,
        )

    def available_models(self) -> list[ModelDefinition]:
        return list(CLAUDE_MODELS)

    def _detect(self) -> DetectionResult:
        return resolve_cli(
            self.search_spec,
            platform=self._platform,
            wsl_distribution=self._settings.wsl_distribution,
            wsl_timeout_seconds=self._settings.wsl_timeout_seconds,
            home=self._home,
        )


def _assistant_block(item: Any) -> ContentBlock | None:
    if not isinstance(item, dict):
        return None
    item_type = item.get("type")
    if item_type == "text":
        return ContentBlock.text_block(str(item.get("text") or ""))
    if item_type == "tool_use":
        # Partial frames carry the tool name before its input is populated.
        if item.get("input") is None:
            return None
        return ContentBlock(
            kind=BlockKind.TOOL_USE,
            tool_name=item.get("name"),
            tool_call_id=item.get("id"),
            input=item.get("input"),
        )
    return None


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""
