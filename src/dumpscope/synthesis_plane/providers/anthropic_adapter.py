"""
dumpscope — Anthropic provider adapter

File: src/dumpscope/synthesis_plane/providers/anthropic_adapter.py
Last updated: 2026-02-13

Purpose
- Anthropic messages adapter (Claude-class) over ``POST {base}/messages``.

What should be included in this file
- System-prompt lifting, tool-result grouping, tool-use block merging.
- Reasoning-effort to extended-thinking budget mapping.

Functional requirements
- Thinking budget is always strictly below ``max_tokens``.
- Raw assistant content blocks round-trip untouched; missing tool_use blocks are appended.

Non-functional requirements
- Must be configurable and safe; no secrets in logs.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

import httpx
import structlog

from dumpscope.synthesis_plane.providers.base import (
    REASONING_EFFORT_LEVELS,
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatProvider,
    ChatTool,
    ChatToolCall,
    ChatToolChoice,
    JSONValue,
    ProviderConfigurationError,
    downgrade_orphan_tool_messages,
    extract_text,
    normalize_reasoning_effort,
    parse_tool_arguments,
)
from dumpscope.synthesis_plane.providers.http import (
    DEFAULT_TIMEOUT_SECONDS,
    JsonHttpTransport,
    normalize_base_url,
    resolve_api_key,
)
from dumpscope.synthesis_plane.providers.openai_compat import USER_AGENT

if TYPE_CHECKING:
    from dumpscope.observability.trace import TraceSink
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

ANTHROPIC_VERSION: Final[str] = "2023-06-01"
DEFAULT_ANTHROPIC_MODEL: Final[str] = "claude-sonnet-4-5"
DEFAULT_ANTHROPIC_BASE_URL: Final[str] = "https://api.anthropic.com/v1"
DEFAULT_MAX_TOKENS: Final[int] = 4096


@dataclass(frozen=True, slots=True)
class ThinkingBudgetPolicy:
    """Reasoning effort to ``thinking.budget_tokens`` mapping."""

    budgets: Mapping[str, int] = field(
        default_factory=lambda: {"low": 512, "medium": 1024, "high": 2048}
    )

    def __post_init__(self) -> None:
        normalized: dict[str, int] = {}
        for key, value in self.budgets.items():
            level = normalize_reasoning_effort(key)
            if level is None:
                raise ValueError(
                    f"thinking budget keys must be one of {', '.join(REASONING_EFFORT_LEVELS)}"
                )
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"thinking budget for {level} must be an integer")
            normalized[level] = value
        object.__setattr__(self, "budgets", normalized)

    def thinking_for(self, effort: str | None, max_tokens: int) -> dict[str, JSONValue] | None:
        """Return the ``thinking`` payload, clamped below ``max_tokens``, or ``None``."""

        level = normalize_reasoning_effort(effort)
        if level is None or max_tokens < 2:
            return None
        budget = self.budgets.get(level, 0)
        if budget <= 0:
            return None
        budget = min(budget, max_tokens - 1)
        return {"type": "enabled", "budget_tokens": budget}


class AnthropicAdapter(ChatProvider):
    """Anthropic messages adapter with an injectable ``httpx.AsyncClient``."""

    provider_name = "anthropic"
    display_name = "Anthropic"

    def __init__(
        self,
        *,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        base_url: str = DEFAULT_ANTHROPIC_BASE_URL,
        api_key: str | None = None,
        api_key_env: str | None = None,
        reasoning_effort: str | None = None,
        thinking_budgets: ThinkingBudgetPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        trace_sink: TraceSink | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._model = model.strip() if isinstance(model, str) else ""
        self._base_url = base_url
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._environ = environ
        self._thinking = thinking_budgets if thinking_budgets is not None else ThinkingBudgetPolicy()
        self.default_reasoning_effort = normalize_reasoning_effort(reasoning_effort)
        self._transport = JsonHttpTransport(
            provider=self.provider_name,
            display_name=self.display_name,
            client=client,
            timeout_seconds=timeout_seconds,
            trace_sink=trace_sink,
        )

    @property
    def model(self) -> str | None:
        return self._model or None

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def complete(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChatCompletionResult:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        api_key = resolve_api_key(
            provider=self.provider_name,
            display_name=self.display_name,
            api_key=self._api_key,
            api_key_env=self._api_key_env,
            fallback_envs=("ANTHROPIC_API_KEY",),
            environ=self._environ,
        )
        base_url = normalize_base_url(
            provider=self.provider_name,
            display_name=self.display_name,
            base_url=self._base_url,
        )
        if not self._model:
            raise ProviderConfigurationError("Anthropic model is not configured", provider=self.provider_name)

        payload = self.build_payload(request)
        logger.info(
            "provider_request",
            provider=self.provider_name,
            model=self._model,
            messages=len(request.messages),
            tools=len(payload.get("tools", ()) or ()),
            thinking="thinking" in payload,
        )
        body = await self._transport.post_json(
            f"{base_url}/messages",
            payload,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            cancel_token=cancel_token,
        )
        return self.decode_response(body)

    def build_payload(self, request: ChatCompletionRequest) -> dict[str, object]:
        max_tokens = request.max_tokens if request.max_tokens and request.max_tokens > 0 else DEFAULT_MAX_TOKENS
        system, messages = encode_messages(downgrade_orphan_tool_messages(request.messages))

        payload: dict[str, object] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system is not None:
            payload["system"] = system
        if request.tools_enabled:
            payload["tools"] = [encode_tool(tool) for tool in request.tools]
            if request.tool_choice is not None:
                payload["tool_choice"] = encode_tool_choice(request.tool_choice)
        thinking = self._thinking.thinking_for(request.reasoning_effort, max_tokens)
        if thinking is not None:
            payload["thinking"] = thinking
        return payload

    def decode_response(self, body: Mapping[str, object]) -> ChatCompletionResult:
        model = body.get("model")
        model_name = model if isinstance(model, str) else self.model
        if "content" not in body:
            return ChatCompletionResult(model=model_name)
        content = body.get("content")
        return ChatCompletionResult(
            model=model_name,
            text=extract_text(content),
            tool_calls=decode_tool_uses(content),
            raw_content=content,  # type: ignore[arg-type]
        )


def encode_tool(tool: ChatTool) -> dict[str, object]:
    encoded: dict[str, object] = {"name": tool.name, "input_schema": tool.parameters}
    if tool.description is not None:
        encoded["description"] = tool.description
    return encoded


def encode_tool_choice(choice: ChatToolChoice) -> dict[str, object]:
    if choice.mode == "function" and choice.function_name is not None:
        return {"type": "tool", "name": choice.function_name}
    if choice.mode == "required":
        return {"type": "any"}
    return {"type": "auto"}


def encode_messages(messages: Sequence[ChatMessage]) -> tuple[str | None, list[dict[str, object]]]:
    """Lift system turns and group consecutive tool results into one user turn."""

    system_parts: list[str] = []
    encoded: list[dict[str, object]] = []
    index = 0
    while index < len(messages):
        message = messages[index]
        if message.role == "system":
            if message.content.strip():
                system_parts.append(message.content.strip())
            index += 1
            continue

        if message.role == "tool":
            blocks: list[dict[str, object]] = []
            while index < len(messages) and messages[index].role == "tool":
                tool_message = messages[index]
                if tool_message.tool_call_id is not None:
                    blocks.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": tool_message.tool_call_id,
                            "content": tool_message.content,
                        }
                    )
                elif tool_message.content.strip():
                    blocks.append({"type": "text", "text": tool_message.content})
                index += 1
            if blocks:
                encoded.append({"role": "user", "content": blocks})
            continue

        role = message.role if message.role in {"user", "assistant"} else "user"
        content = _encode_content(message, role)
        if content is not None:
            encoded.append({"role": role, "content": content})
        index += 1

    system = "\n\n".join(system_parts).strip()
    return (system or None), encoded


def _encode_content(message: ChatMessage, role: str) -> object:
    raw = message.raw_content
    if isinstance(raw, list):
        if role == "assistant" and message.tool_calls:
            return merge_tool_use_blocks(raw, message.tool_calls)
        return list(raw)
    if isinstance(raw, str) and raw.strip():
        return raw

    if role == "assistant" and message.tool_calls:
        blocks: list[dict[str, object]] = []
        if message.content.strip():
            blocks.append({"type": "text", "text": message.content})
        blocks.extend(_tool_use_block(call) for call in message.tool_calls)
        return blocks

    return message.content if message.content.strip() else None


def merge_tool_use_blocks(
    existing: Sequence[JSONValue],
    tool_calls: Sequence[ChatToolCall],
) -> list[object]:
    """Keep every existing block and append tool_use blocks whose ids are not present yet."""

    blocks: list[object] = []
    seen_ids: set[str] = set()
    for item in existing:
        blocks.append(item)
        if not isinstance(item, dict):
            continue
        if str(item.get("type", "")).lower() != "tool_use":
            continue
        block_id = item.get("id")
        if isinstance(block_id, str) and block_id.strip():
            seen_ids.add(block_id.casefold())

    for call in tool_calls:
        if call.id.casefold() in seen_ids:
            continue
        blocks.append(_tool_use_block(call))
    return blocks


def _tool_use_block(call: ChatToolCall) -> dict[str, object]:
    return {
        "type": "tool_use",
        "id": call.id,
        "name": call.name,
        "input": parse_tool_arguments(call.arguments_json),
    }


def decode_tool_uses(content: object) -> tuple[ChatToolCall, ...]:
    if not isinstance(content, list):
        return ()
    calls: list[ChatToolCall] = []
    for item in content:
        if not isinstance(item, Mapping):
            continue
        if str(item.get("type", "")).lower() != "tool_use":
            continue
        call_id = item.get("id")
        name = item.get("name")
        if not isinstance(call_id, str) or not call_id.strip():
            continue
        if not isinstance(name, str) or not name.strip():
            continue
        arguments_json = "{}"
        if "input" in item:
            arguments_json = json.dumps(item.get("input"), separators=(",", ":"), ensure_ascii=False)
        calls.append(ChatToolCall(id=call_id, name=name, arguments_json=arguments_json))
    return tuple(calls)


__all__ = [
    "ANTHROPIC_VERSION",
    "DEFAULT_ANTHROPIC_BASE_URL",
    "DEFAULT_ANTHROPIC_MODEL",
    "DEFAULT_MAX_TOKENS",
    "AnthropicAdapter",
    "ThinkingBudgetPolicy",
    "decode_tool_uses",
    "encode_messages",
    "encode_tool",
    "encode_tool_choice",
    "merge_tool_use_blocks",
]
