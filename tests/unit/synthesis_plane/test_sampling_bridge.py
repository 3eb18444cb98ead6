"""
dumpscope — unit tests for the sampling bridge

File: tests/unit/synthesis_plane/test_sampling_bridge.py
Last updated: 2026-02-13

Purpose
- Drive ``SamplingBridge.create_message`` end to end with fake providers and scripted HTTP.

Coverage:
- Free-text tool-use JSON from OpenRouter becomes a tool_use block next to the remaining text.
- Invalid tool arguments surface as a non-empty ``{"raw": ...}`` input.
- Empty replies fail only when tools were offered.
- Raw vendor blocks are preserved for block-preserving providers.
- Progress ordering: tool results before the call, requested tools after it.
- Anthropic thinking budget derived from sampling ``maxTokens``.
- Cancellation before the provider call.

Functional requirements
- Offline only.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from dumpscope.synthesis_plane.providers.anthropic_adapter import AnthropicAdapter
from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatProvider,
    ChatToolCall,
)
from dumpscope.synthesis_plane.providers.openrouter_adapter import OpenRouterAdapter
from dumpscope.synthesis_plane.sampling.bridge import SamplingBridge, resolve_preserve_content_blocks
from dumpscope.synthesis_plane.sampling.errors import SamplingEmptyResultError, SamplingRequestError
from dumpscope.utils.concurrency import CancellationToken

ScriptedFactory = Callable[..., Any]

_EXEC_TOOL = {
    "name": "exec",
    "description": "Run a debugger command",
    "inputSchema": {"type": "object", "properties": {"command": {"type": "string"}}},
}


class _StaticProvider(ChatProvider):
    provider_name = "fake"

    def __init__(self, *results: ChatCompletionResult, events: list[str] | None = None) -> None:
        self._results = list(results)
        self.requests: list[ChatCompletionRequest] = []
        self._events = events

    async def complete(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChatCompletionResult:
        self.requests.append(request)
        if self._events is not None:
            self._events.append("complete")
        return self._results.pop(0)


def _params(**extra: Any) -> dict[str, Any]:
    params: dict[str, Any] = {
        "messages": [{"role": "user", "content": "Why did the process crash?"}],
        "tools": [_EXEC_TOOL],
        "maxTokens": 512,
    }
    params.update(extra)
    return params


async def test_free_text_tool_use_from_openrouter_becomes_block(scripted_http: ScriptedFactory) -> None:
    tool_json = json.dumps({"type": "tool_use", "id": "tc1", "name": "exec", "input": {"command": "bt"}})
    text = f"before\n{tool_json}\nafter"
    http = scripted_http(
        [
            httpx.Response(
                200,
                json={
                    "model": "openrouter/auto",
                    "choices": [{"message": {"role": "assistant", "content": text}}],
                },
            )
        ]
    )
    bridge = SamplingBridge(OpenRouterAdapter(api_key="k", client=http.client()))

    response = await bridge.create_message(_params())

    assert bridge.preserve_content_blocks is True
    assert response["role"] == "assistant"
    blocks = response["content"]
    assert blocks == [
        {"type": "text", "text": "before\n\nafter"},
        {"type": "tool_use", "id": "tc1", "name": "exec", "input": {"command": "bt"}},
    ]


async def test_invalid_tool_arguments_surface_as_raw_input(scripted_http: ScriptedFactory) -> None:
    http = scripted_http(
        [
            httpx.Response(
                200,
                json={
                    "model": "openrouter/auto",
                    "choices": [
                        {
                            "message": {
                                "role": "assistant",
                                "content": "Checking the stack.",
                                "tool_calls": [
                                    {
                                        "id": "call_1",
                                        "type": "function",
                                        "function": {"name": "exec", "arguments": "{command: bt"},
                                    }
                                ],
                            }
                        }
                    ],
                },
            )
        ]
    )
    bridge = SamplingBridge(OpenRouterAdapter(api_key="k", client=http.client()))

    response = await bridge.create_message(_params())

    text_blocks = [block for block in response["content"] if block["type"] == "text"]
    tool_blocks = [block for block in response["content"] if block["type"] == "tool_use"]
    assert text_blocks == [{"type": "text", "text": "Checking the stack."}]
    assert tool_blocks == [
        {"type": "tool_use", "id": "call_1", "name": "exec", "input": {"raw": "{command: bt"}}
    ]


async def test_empty_result_with_tools_is_an_error() -> None:
    bridge = SamplingBridge(_StaticProvider(ChatCompletionResult(text="  ")))

    with pytest.raises(SamplingEmptyResultError) as excinfo:
        await bridge.create_message(_params())

    assert str(excinfo.value).startswith("[empty_result]")


async def test_empty_result_without_tools_is_an_empty_reply() -> None:
    bridge = SamplingBridge(_StaticProvider(ChatCompletionResult(model="m")))

    response = await bridge.create_message(_params(tools=[]))

    assert response == {"role": "assistant", "model": "m", "content": []}


async def test_tool_choice_none_disables_empty_result_error() -> None:
    bridge = SamplingBridge(_StaticProvider(ChatCompletionResult()))

    response = await bridge.create_message(_params(toolChoice={"mode": "none"}))

    assert response["content"] == []


async def test_non_mapping_params_rejected() -> None:
    bridge = SamplingBridge(_StaticProvider())

    with pytest.raises(SamplingRequestError, match="invalid_params"):
        await bridge.create_message(["not", "a", "mapping"])


async def test_raw_blocks_preserved_when_enabled() -> None:
    raw = [
        {"type": "text", "text": "Looking.", "signature": "opaque"},
        {"type": "tool_use", "id": "toolu_1", "name": "exec", "input": {"command": "k"}, "cache": 1},
    ]
    result = ChatCompletionResult(
        text="Looking.",
        tool_calls=(ChatToolCall(id="toolu_1", name="exec", arguments_json='{"command":"k"}'),),
        raw_content=raw,
    )

    preserved = await SamplingBridge(
        _StaticProvider(result), preserve_content_blocks=True
    ).create_message(_params())
    normalized = await SamplingBridge(
        _StaticProvider(result), preserve_content_blocks="never"
    ).create_message(_params())

    assert preserved["content"] == raw
    assert normalized["content"] == [
        {"type": "text", "text": "Looking."},
        {"type": "tool_use", "id": "toolu_1", "name": "exec", "input": {"command": "k"}},
    ]


@pytest.mark.parametrize(
    ("mode", "provider", "expected"),
    [
        ("auto", "openrouter", True),
        ("auto", "anthropic", True),
        ("auto", "openai", False),
        (None, "OpenRouter", True),
        ("always", "openai", True),
        ("never", "anthropic", False),
    ],
)
def test_preserve_mode_resolution(mode: str | None, provider: str, expected: bool) -> None:
    assert resolve_preserve_content_blocks(mode, provider) is expected


async def test_progress_reports_results_before_requested_tools() -> None:
    events: list[str] = []
    result = ChatCompletionResult(
        tool_calls=(ChatToolCall(id="toolu_2", name="exec", arguments_json='{"command":"!analyze -v"}'),)
    )
    bridge = SamplingBridge(_StaticProvider(result, events=events), progress=events.append)
    params = _params(
        messages=[
            {"role": "user", "content": "Investigate."},
            {
                "role": "assistant",
                "content": [{"type": "tool_use", "id": "toolu_1", "name": "exec", "input": {"command": "bt"}}],
            },
            {
                "role": "user",
                "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "#0 main\n#1 start"}],
            },
        ]
    )

    await bridge.create_message(params)

    assert events == [
        "AI tool result: exec -> #0 main #1 start",
        "complete",
        "AI requests tool: exec (!analyze -v)",
    ]


async def test_anthropic_thinking_budget_from_sampling_max_tokens(scripted_http: ScriptedFactory) -> None:
    http = scripted_http(
        [httpx.Response(200, json={"model": "claude-sonnet-4-5", "content": [{"type": "text", "text": "ok"}]})]
    )
    bridge = SamplingBridge(AnthropicAdapter(api_key="k", client=http.client()))

    await bridge.create_message(_params(maxTokens=10, reasoningEffort="high"))

    assert http.bodies[0]["max_tokens"] == 10
    assert http.bodies[0]["thinking"] == {"type": "enabled", "budget_tokens": 9}


async def test_default_reasoning_effort_override_and_clear() -> None:
    provider = _StaticProvider(ChatCompletionResult(text="a"), ChatCompletionResult(text="b"))
    bridge = SamplingBridge(provider, default_reasoning_effort="medium")

    await bridge.create_message(_params())
    await bridge.create_message(_params(reasoning={"effort": "unset"}))

    assert provider.requests[0].reasoning_effort == "medium"
    assert provider.requests[1].reasoning_effort is None


async def test_cancelled_token_stops_before_provider_call() -> None:
    provider = _StaticProvider(ChatCompletionResult(text="never"))
    token = CancellationToken()
    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        await SamplingBridge(provider).create_message(_params(), cancel_token=token)

    assert provider.requests == []
