"""cursor-agent backend: stream-json records, duplicate text, WSL on Windows."""

from __future__ import annotations

import json
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

DEFAULT_MODEL = "auto"
CURSOR_MODELS: tuple[ModelDefinition, ...] = (
    ModelDefinition("auto", "Auto", "Let Cursor pick the model for each request", "free"),
    ModelDefinition("sonnet-4", "Claude Sonnet 4", "Balanced coding model", "pro"),
    ModelDefinition("sonnet-4-thinking", "Claude Sonnet 4 (thinking)", "Extended reasoning", "pro"),
    ModelDefinition("gpt-5", "GPT-5", "OpenAI flagship model", "pro"),
)
_HINTS = ClassifierHints(
    cli_label="Cursor CLI",
    login_suggestion='Run "cursor-agent login" to authenticate with your browser.',
    rate_limit_suggestion="Wait a few minutes and try again, or upgrade to Cursor Pro.",
    model_suggestion='Try "auto" mode or select a different model.',
)


class CursorProvider:
    """Runs ``cursor-agent -p --output-format stream-json``."""

    name = "cursor"
    cli_name = "cursor-agent"
    dedup_text = True
    auth = AuthSources(
        api_key_env="CURSOR_API_KEY",
        stored_api_key_keys=("cursor", "cursor_api_key"),
        credential_files=(".cursor/credentials.json", ".config/cursor/credentials.json"),
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
                "linux": ("~/.local/bin/cursor-agent", "/usr/local/bin/cursor-agent"),
                "darwin": ("~/.local/bin/cursor-agent", "/usr/local/bin/cursor-agent"),
                "win32": (),
            },
            versions_dir=(
                None
                if platform_key(self._platform) == "win32"
                else self._home / ".local" / "share" / "cursor-agent" / "versions"
            ),
            windows_strategy="wsl",
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

        # The prompt travels over stdin ("-") so shell metacharacters never reach argv.
        args = ["-p", "--output-format", "stream-json", "--stream-partial-output"]
        if request.allow_writes:
            args.append("--force")
        if model != DEFAULT_MODEL:
            args.extend(["--model", model])
        args.append("-")

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
            content = _mapping(record.get("message")).get("content") or []
            return ProviderMessage(
                kind=MessageKind.ASSISTANT,
                session_id=session_id,
                content=[
                    ContentBlock.text_block(str(item.get("text") or ""))
                    for item in content
                    if isinstance(item, dict)
                ],
            )

        if record_type == "tool_call":
            return _normalize_tool_call(record)

        if record_type == "result":
            if record.get("is_error"):
                return ProviderMessage(
                    kind=MessageKind.ERROR,
                    session_id=session_id,
                    error_text=record.get("error") or record.get("result") or "Unknown error",
                )
            return ProviderMessage(
                kind=MessageKind.RESULT,
                session_id=session_id,
                result_text=record.get("result"),
            )

        # system/init only establishes the session id; user records echo the prompt.
        return None

    def classify_error(self, stderr: str, exit_code: int | None) -> ClassifiedError:
        return classify_cli_failure(stderr=stderr, exit_code=exit_code, hints=_HINTS)

    def install_instructions(self) -> str:
        if platform_key(self._platform) == "win32":
            return (
                "cursor-agent requires WSL on Windows. Install WSL, then run in WSL: "
                "curl https://cursor.com/install -fsS | bash"
            )
        return "Install with: curl https://cursor.com/install -fsS | bash"

    def get_version(self) -> str | None:
        return probe_version(
            self.resolve(),
            timeout_seconds=self._settings.version_timeout_seconds,
        )

    def available_models(self) -> list[ModelDefinition]:
        return list(CURSOR_MODELS)

    def _detect(self) -> DetectionResult:
        return resolve_cli(
            self.search_spec,
            platform=self._platform,
            wsl_distribution=self._settings.wsl_distribution,
            wsl_timeout_seconds=self._settings.wsl_timeout_seconds,
            home=self._home,
        )


def _normalize_tool_call(record: dict[str, Any]) -> ProviderMessage | None:
    tool_call = _mapping(record.get("tool_call"))
    read_call = tool_call.get("readToolCall")
    write_call = tool_call.get("writeToolCall")
    function_call = tool_call.get("function")

    if read_call is not None:
        args = _mapping(_mapping(read_call).get("args"))
        if not args:
            return None
        tool_name = "Read"
        tool_input: Any = {"file_path": args.get("path")}
    elif write_call is not None:
        args = _mapping(_mapping(write_call).get("args"))
        if not args:
            return None
        tool_name = "Write"
        tool_input = {"file_path": args.get("path"), "content": args.get("fileText")}
    elif function_call is not None:
        function = _mapping(function_call)
        tool_name = function.get("name") or "unknown"
        raw_arguments = function.get("arguments") or "{}"
        try:
            tool_input = json.loads(raw_arguments)
        except (json.JSONDecodeError, TypeError):
            tool_input = {"raw": raw_arguments}
    else:
        return None

    call_id = record.get("call_id")
    tool_use = ContentBlock(
        kind=BlockKind.TOOL_USE,
        tool_name=tool_name,
        tool_call_id=call_id,
        input=tool_input,
    )
    subtype = record.get("subtype")
    if subtype == "started":
        return ProviderMessage(
            kind=MessageKind.ASSISTANT,
            session_id=record.get("session_id"),
            content=[tool_use],
        )
    if subtype == "completed":
        return ProviderMessage(
            kind=MessageKind.ASSISTANT,
            session_id=record.get("session_id"),
            content=[
                tool_use,
                ContentBlock(
                    kind=BlockKind.TOOL_RESULT,
                    tool_call_id=call_id,
                    result_payload=_tool_result_payload(read_call, write_call),
                ),
            ],
        )
    return None


def _tool_result_payload(read_call: Any, write_call: Any) -> str:
    if read_call is not None:
        success = _mapping(_mapping(_mapping(read_call).get("result")).get("success"))
        if success:
            return str(success.get("content") or "")
    if write_call is not None:
        success = _mapping(_mapping(_mapping(write_call).get("result")).get("success"))
        if success:
            return f"Wrote {success.get('linesCreated')} lines to {success.get('path')}"
    return ""


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}
