"""
Unit tests for the canonical chat model in ``providers.base``.

Coverage:
- Tool-choice normalization (aliases, function names, fallbacks).
- Tool-argument parsing never fails and falls back to ``{"raw": ...}``.
- Reserved keys are stripped from extension fields.
- Orphaned and id-less tool messages are downgraded to user turns.
- Reasoning-effort parsing and resolution against a default.
- Provider error message shape and registry behavior.
"""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from dumpscope.synthesis_plane.providers.base import (
    MISSING_TOOL_CALL_ID_PREFIX,
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatTool,
    ChatToolCall,
    ChatToolChoice,
    ProviderError,
    ProviderRegistry,
    ProviderUnavailableError,
    ReasoningEffortStatus,
    downgrade_orphan_tool_messages,
    extract_text,
    filter_extension_fields,
    parse_reasoning_effort,
    parse_tool_arguments,
)


@pytest.mark.parametrize(
    ("mode", "name", "expected_mode", "expected_name"),
    [
        ("auto", None, "auto", None),
        ("any", None, "required", None),
        ("REQUIRED", None, "required", None),
        ("tool", "exec", "function", "exec"),
        ("auto", "exec", "function", "exec"),
        ("function", None, "auto", None),
        ("none", "exec", "none", None),
        ("bogus", None, "auto", None),
    ],
)
def test_tool_choice_normalization(
    mode: str, name: str | None, expected_mode: str, expected_name: str | None
) -> None:
    choice = ChatToolChoice(mode=mode, function_name=name)

    assert choice.mode == expected_mode
    assert choice.function_name == expected_name


def test_tools_disabled_by_none_choice() -> None:
    tool = ChatTool(name="exec")
    request = ChatCompletionRequest(
        messages=(ChatMessage.user("hi"),),
        tools=(tool,),
        tool_choice=ChatToolChoice(mode="none"),
    )

    assert request.tools_enabled is False
    assert ChatCompletionRequest(messages=(), tools=(tool,)).tools_enabled is True
    assert ChatCompletionRequest(messages=()).tools_enabled is False


def test_request_rejects_unknown_effort_and_non_positive_budget() -> None:
    with pytest.raises(ValueError, match="reasoning_effort"):
        ChatCompletionRequest(messages=(), reasoning_effort="extreme")
    with pytest.raises(ValueError, match="max_tokens"):
        ChatCompletionRequest(messages=(), max_tokens=0)
    assert ChatCompletionRequest(messages=(), reasoning_effort=" HIGH ").reasoning_effort == "high"


def test_parse_tool_arguments_fallbacks() -> None:
    assert parse_tool_arguments(None) == {}
    assert parse_tool_arguments("   ") == {}
    assert parse_tool_arguments('{"command": "bt"}') == {"command": "bt"}
    assert parse_tool_arguments("[1, 2]") == {"raw": "[1, 2]"}
    assert parse_tool_arguments("{not json") == {"raw": "{not json"}


@settings(max_examples=75, deadline=None)
@given(st.text(max_size=200))
def test_parse_tool_arguments_always_yields_an_object(arguments: str) -> None:
    parsed = parse_tool_arguments(arguments)

    assert isinstance(parsed, dict)
    json.dumps(parsed)
    if arguments.strip() and not parsed:
        assert json.loads(arguments) == {}


def test_extension_fields_cannot_override_reserved_keys() -> None:
    filtered = filter_extension_fields(
        {
            "Role": "system",
            "content": "x",
            "tool_call_id": "t",
            "TOOL_CALLS": [],
            "reasoning_details": [{"type": "reasoning.text"}],
        }
    )

    assert filtered == {"reasoning_details": [{"type": "reasoning.text"}]}


def test_orphan_and_missing_id_tool_messages_are_downgraded() -> None:
    messages = (
        ChatMessage.user("investigate"),
        ChatMessage.assistant("", tool_calls=(ChatToolCall(id="Call_1", name="exec"),)),
        ChatMessage.tool("ok", tool_call_id="call_1"),
        ChatMessage.tool("stray", tool_call_id="call_9"),
        ChatMessage.tool("anonymous", tool_call_id=None),
    )

    downgraded = downgrade_orphan_tool_messages(messages)

    assert [message.role for message in downgraded] == ["user", "assistant", "tool", "user", "user"]
    assert downgraded[3].content == "[orphaned tool output for tool_call_id=call_9]\nstray"
    assert downgraded[4].content == f"{MISSING_TOOL_CALL_ID_PREFIX}\nanonymous"


def test_raw_tool_use_blocks_count_as_seen_calls() -> None:
    messages = (
        ChatMessage(
            role="assistant",
            raw_content=[{"type": "tool_use", "id": "toolu_1", "name": "exec", "input": {}}],
        ),
        ChatMessage.tool("frames", tool_call_id="toolu_1"),
    )

    assert downgrade_orphan_tool_messages(messages)[1].role == "tool"


def test_extract_text_joins_text_blocks_only() -> None:
    content = [
        {"type": "text", "text": "first"},
        {"type": "tool_use", "id": "x", "name": "exec"},
        "  ",
        {"type": "output_text", "text": "second"},
    ]

    assert extract_text(content) == "first\nsecond"
    assert extract_text([]) is None
    assert extract_text("plain") == "plain"


def test_result_emptiness_and_assistant_message() -> None:
    empty = ChatCompletionResult(text="   ")
    call = ChatToolCall(id="c1", name="exec", arguments_json='{"command":"k"}')
    result = ChatCompletionResult(text="looking", tool_calls=(call,), extension_fields={"x": 1})

    assert empty.is_empty
    assert not result.is_empty
    message = result.to_assistant_message()
    assert message.role == "assistant"
    assert message.tool_calls == (call,)
    assert dict(message.extension_fields) == {"x": 1}


@pytest.mark.parametrize(
    ("raw", "status", "resolved"),
    [
        ("high", ReasoningEffortStatus.VALID, "high"),
        ("unset", ReasoningEffortStatus.EXPLICIT_CLEAR, None),
        ("none", ReasoningEffortStatus.EXPLICIT_CLEAR, None),
        ("maximum", ReasoningEffortStatus.INVALID, "low"),
        (42, ReasoningEffortStatus.INVALID, "low"),
    ],
)
def test_reasoning_effort_parse_and_resolve(
    raw: object, status: ReasoningEffortStatus, resolved: str | None
) -> None:
    parsed = parse_reasoning_effort(raw)

    assert parsed.status is status
    assert parsed.resolve("low") == resolved


def test_unspecified_effort_keeps_default() -> None:
    parsed = parse_reasoning_effort(None, specified=False)

    assert parsed.status is ReasoningEffortStatus.NOT_SPECIFIED
    assert parsed.resolve("medium") == "medium"


def test_provider_error_message_is_machine_readable() -> None:
    error = ProviderError(
        provider="openai",
        code="auth",
        detail="denied",
        retryable=False,
        http_status=401,
    )

    assert str(error) == "provider=openai code=auth retryable=false http_status=401 detail=denied"


def test_registry_rejects_unknown_provider() -> None:
    registry = ProviderRegistry()

    with pytest.raises(ProviderUnavailableError):
        registry.get("missing")
