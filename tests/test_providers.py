from __future__ import annotations

import allure
import pytest

from agent_relay.providers.base import extract_prompt_text
from agent_relay.providers.claude import ClaudeProvider
from agent_relay.providers.cursor import CursorProvider
from agent_relay.providers.models import (
    BlockKind,
    CancelToken,
    DetectionResult,
    MessageKind,
    QueryRequest,
)
from agent_relay.providers.registry import create_provider, provider_for_model

pytestmark = [
    allure.epic("Providers"),
    allure.feature("Event Normalization and Spawn Config"),
]


def _with_detection(provider, detection: DetectionResult):
    provider._detection = detection
    return provider


def test_cursor_spawn_config_sends_prompt_over_stdin() -> None:
    provider = _with_detection(
        CursorProvider(platform="linux"),
        DetectionResult(executable_path="/opt/cursor-agent", strategy="path"),
    )
    token = CancelToken()

    config = provider.build_spawn_config(
        QueryRequest(prompt="fix the bug; rm -rf /", model="cursor-gpt-5", allow_writes=True),
        token,
    )

    assert config.command == "/opt/cursor-agent"
    assert config.args == [
        "-p",
        "--output-format",
        "stream-json",
        "--stream-partial-output",
        "--force",
        "--model",
        "gpt-5",
        "-",
    ]
    assert config.stdin_payload == "fix the bug; rm -rf /"
    assert config.cancel_token is token
    assert not config.uses_bridge


def test_cursor_spawn_config_omits_model_in_auto_mode() -> None:
    provider = _with_detection(
        CursorProvider(platform="linux"),
        DetectionResult(executable_path="/opt/cursor-agent", strategy="path"),
    )

    config = provider.build_spawn_config(QueryRequest(prompt="hi"), CancelToken())

    assert "--model" not in config.args
    assert "--force" not in config.args


def test_cursor_spawn_config_targets_linux_path_through_wsl() -> None:
    provider = _with_detection(
        CursorProvider(platform="win32"),
        DetectionResult(
            executable_path="wsl.exe",
            uses_bridge=True,
            bridge_distribution="Ubuntu",
            strategy="wsl",
            bridge_executable_path="/home/dev/.local/bin/cursor-agent",
        ),
    )

    config = provider.build_spawn_config(
        QueryRequest(prompt="hi", cwd="/mnt/c/project"),
        CancelToken(),
    )

    assert config.command == "/home/dev/.local/bin/cursor-agent"
    assert config.uses_bridge
    assert config.bridge_distribution == "Ubuntu"
    assert config.cwd == "/mnt/c/project"


def test_claude_spawn_config_flags() -> None:
    provider = _with_detection(
        ClaudeProvider(platform="linux"),
        DetectionResult(executable_path="/usr/local/bin/claude", strategy="common_path"),
    )

    config = provider.build_spawn_config(
        QueryRequest(
            prompt=[
                {"type": "text", "text": "first"},
                {"type": "image", "source": "..."},
                {"type": "text", "text": "second"},
            ],
            model="claude-sonnet",
            allow_writes=True,
            extra_env={"EXTRA_FLAG": "1"},
        ),
        CancelToken(),
    )

    assert config.args == [
        "-p",
        "--output-format",
        "stream-json",
        "--verbose",
        "--permission-mode",
        "acceptEdits",
        "--model",
        "sonnet",
    ]
    assert config.stdin_payload == "first\nsecond"
    assert config.env["EXTRA_FLAG"] == "1"


def test_spawn_config_requires_installed_cli() -> None:
    provider = _with_detection(CursorProvider(platform="linux"), DetectionResult.not_installed())

    with pytest.raises(ValueError, match="not installed"):
        provider.build_spawn_config(QueryRequest(prompt="hi"), CancelToken())


def test_extract_prompt_text_rejects_unknown_shapes() -> None:
    with pytest.raises(ValueError, match="Invalid prompt format"):
        extract_prompt_text({"type": "text"})  # type: ignore[arg-type]


def test_cursor_normalizes_assistant_text() -> None:
    message = CursorProvider().normalize_event(
        {
            "type": "assistant",
            "session_id": "s1",
            "message": {"content": [{"type": "text", "text": "Hello"}]},
        },
    )

    assert message is not None
    assert message.kind == MessageKind.ASSISTANT
    assert message.session_id == "s1"
    assert message.text() == "Hello"


def test_cursor_tool_call_started_and_completed() -> None:
    provider = CursorProvider()
    read_call = {"args": {"path": "/repo/README.md"}}
    started = provider.normalize_event(
        {
            "type": "tool_call",
            "subtype": "started",
            "call_id": "c1",
            "session_id": "s1",
            "tool_call": {"readToolCall": read_call},
        },
    )
    completed = provider.normalize_event(
        {
            "type": "tool_call",
            "subtype": "completed",
            "call_id": "c1",
            "session_id": "s1",
            "tool_call": {
                "readToolCall": {**read_call, "result": {"success": {"content": "# Title"}}},
            },
        },
    )

    assert started is not None
    assert [block.kind for block in started.content] == [BlockKind.TOOL_USE]
    assert started.content[0].tool_name == "Read"
    assert started.content[0].input == {"file_path": "/repo/README.md"}

    assert completed is not None
    assert [block.kind for block in completed.content] == [
        BlockKind.TOOL_USE,
        BlockKind.TOOL_RESULT,
    ]
    assert completed.content[1].tool_call_id == "c1"
    assert completed.content[1].result_payload == "# Title"


def test_cursor_write_tool_result_summarizes_lines() -> None:
    message = CursorProvider().normalize_event(
        {
            "type": "tool_call",
            "subtype": "completed",
            "call_id": "c2",
            "tool_call": {
                "writeToolCall": {
                    "args": {"path": "a.py", "fileText": "print(1)\n"},
                    "result": {"success": {"linesCreated": 1, "path": "a.py"}},
                },
            },
        },
    )

    assert message is not None
    assert message.content[0].input == {"file_path": "a.py", "content": "print(1)\n"}
    assert message.content[1].result_payload == "Wrote 1 lines to a.py"


def test_cursor_tool_call_without_args_is_ignored() -> None:
    message = CursorProvider().normalize_event(
        {"type": "tool_call", "subtype": "started", "tool_call": {"readToolCall": {}}},
    )

    assert message is None


def test_cursor_function_call_with_bad_arguments_keeps_raw_text() -> None:
    message = CursorProvider().normalize_event(
        {
            "type": "tool_call",
            "subtype": "started",
            "call_id": "c3",
            "tool_call": {"function": {"name": "grep", "arguments": "{not json"}},
        },
    )

    assert message is not None
    assert message.content[0].tool_name == "grep"
    assert message.content[0].input == {"raw": "{not json"}


def test_cursor_result_and_error_records() -> None:
    provider = CursorProvider()

    result = provider.normalize_event({"type": "result", "result": "done", "session_id": "s1"})
    error = provider.normalize_event({"type": "result", "is_error": True, "error": "boom"})

    assert result is not None
    assert result.kind == MessageKind.RESULT
    assert result.result_text == "done"
    assert error is not None
    assert error.kind == MessageKind.ERROR
    assert error.error_text == "boom"


@pytest.mark.parametrize(
    "record",
    [
        {"type": "assistant", "message": "plain string"},
        {"type": "assistant", "message": ["not", "a", "dict"]},
        {"type": "tool_call", "subtype": "started", "tool_call": "readToolCall"},
        {"type": "tool_call", "subtype": "started", "tool_call": {"readToolCall": "x"}},
        {"type": "tool_call", "subtype": "started", "tool_call": {"writeToolCall": {"args": 1}}},
    ],
)
def test_cursor_tolerates_odd_frame_shapes(record) -> None:
    message = CursorProvider().normalize_event(record)

    assert message is None or message.content == []


def test_cursor_completed_read_with_odd_result_has_empty_payload() -> None:
    message = CursorProvider().normalize_event(
        {
            "type": "tool_call",
            "subtype": "completed",
            "call_id": "c4",
            "tool_call": {"readToolCall": {"args": {"path": "a"}, "result": "denied"}},
        },
    )

    assert message is not None
    assert message.content[1].result_payload == ""


def test_cursor_ignores_system_and_user_records() -> None:
    provider = CursorProvider()

    assert provider.normalize_event({"type": "system", "subtype": "init"}) is None
    assert provider.normalize_event({"type": "user", "message": {}}) is None
    assert provider.normalize_event({"type": "thinking"}) is None


def test_claude_assistant_skips_partial_tool_use() -> None:
    message = ClaudeProvider().normalize_event(
        {
            "type": "assistant",
            "session_id": "s1",
            "message": {
                "content": [
                    {"type": "text", "text": "Reading"},
                    {"type": "tool_use", "id": "t1", "name": "Read"},
                    {"type": "tool_use", "id": "t2", "name": "Read", "input": {"path": "x"}},
                ],
            },
        },
    )

    assert message is not None
    assert [block.kind for block in message.content] == [BlockKind.TEXT, BlockKind.TOOL_USE]
    assert message.content[1].tool_call_id == "t2"
    assert message.to_dict()["content"][1] == {
        "type": "tool_use",
        "name": "Read",
        "tool_use_id": "t2",
        "input": {"path": "x"},
    }


def test_claude_user_tool_results_become_user_message() -> None:
    message = ClaudeProvider().normalize_event(
        {
            "type": "user",
            "session_id": "s1",
            "message": {
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": "t2",
                        "content": [{"type": "text", "text": "file body"}],
                    },
                ],
            },
        },
    )

    assert message is not None
    assert message.kind == MessageKind.USER
    assert message.content[0].result_payload == "file body"


def test_claude_error_result_falls_back_to_subtype() -> None:
    message = ClaudeProvider().normalize_event(
        {"type": "result", "is_error": True, "subtype": "error_max_turns"},
    )

    assert message is not None
    assert message.error_text == "error_max_turns"


def test_registry_builds_fresh_providers() -> None:
    first = create_provider(" Cursor ")
    second = create_provider("cursor")

    assert first is not second
    assert first.name == "cursor"
    with pytest.raises(ValueError, match="Unsupported provider"):
        create_provider("gemini")


def test_provider_for_model_uses_prefix() -> None:
    assert provider_for_model("cursor-gpt-5") == "cursor"
    assert provider_for_model(" Claude-opus ") == "claude"
    assert provider_for_model("sonnet") is None
    assert provider_for_model("auto") is None


def test_model_catalogues() -> None:
    assert [model.model_id for model in CursorProvider().available_models()][0] == "auto"
    assert "opus" in {model.model_id for model in ClaudeProvider().available_models()}
