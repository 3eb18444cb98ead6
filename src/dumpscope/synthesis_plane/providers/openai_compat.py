"""
dumpscope — shared OpenAI-compatible chat-completions codec

File: src/dumpscope/synthesis_plane/providers/openai_compat.py
Last updated: 2026-02-13

Purpose
- Encode canonical requests into the ``/chat/completions`` wire shape and decode the reply.
- Base class for the OpenAI and OpenRouter adapters; subclasses only override hooks.

What should be included in this file
- Message, tool, and tool-choice encoders.
- ``choices[0].message`` decoder with vendor extension-field capture.

Functional requirements
- Reserved message keys can never be overridden by extension fields.
- Tool-choice ``none`` omits both tools and tool_choice.
- Tool-call arguments may arrive as a JSON string or as inline JSON.

Non-functional requirements
- Stateless per call; safe for concurrent sessions sharing one adapter.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, ClassVar

import httpx
import structlog

from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatProvider,
    ChatTool,
    ChatToolCall,
    ChatToolChoice,
    JSONValue,
    _validate_non_empty_str,
    downgrade_orphan_tool_messages,
    extract_text,
    filter_extension_fields,
    normalize_reasoning_effort,
)
from dumpscope.synthesis_plane.providers.http import (
    DEFAULT_TIMEOUT_SECONDS,
    JsonHttpTransport,
    normalize_base_url,
    resolve_api_key,
)

if TYPE_CHECKING:
    from dumpscope.observability.trace import TraceSink
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

USER_AGENT = "dumpscope/0.1"
_RESPONSE_SKIP_KEYS = frozenset({"content", "tool_calls", "role"})


class OpenAICompatibleAdapter(ChatProvider):
    """Chat-completions adapter; subclasses set names, headers, and token-field policy."""

    provider_name: ClassVar[str] = "openai_compatible"
    display_name: ClassVar[str] = "OpenAI-compatible"
    fallback_api_key_envs: ClassVar[tuple[str, ...]] = ()
    # OpenAI accepts ``content: null`` next to tool calls; other vendors want the key absent.
    null_content_with_tool_calls: ClassVar[bool] = True

    def __init__(
        self,
        *,
        model: str,
        base_url: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        reasoning_effort: str | None = None,
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
            fallback_envs=self.fallback_api_key_envs,
            environ=self._environ,
        )
        base_url = normalize_base_url(
            provider=self.provider_name,
            display_name=self.display_name,
            base_url=self._base_url,
        )
        wire_model = self.wire_model()
        url = f"{base_url}/chat/completions"
        payload = self.build_payload(request, wire_model=wire_model)

        logger.info(
            "provider_request",
            provider=self.provider_name,
            model=wire_model,
            messages=len(request.messages),
            tools=len(request.tools) if request.tools_enabled else 0,
        )
        body = await self._exchange(
            url,
            payload,
            headers=self.build_headers(api_key),
            request=request,
            cancel_token=cancel_token,
        )
        return self.decode_response(body)

    def wire_model(self) -> str:
        return _validate_non_empty_str(self._model, "model")

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def max_tokens_field(self, wire_model: str) -> str:
        del wire_model
        return "max_tokens"

    async def _exchange(
        self,
        url: str,
        payload: dict[str, object],
        *,
        headers: Mapping[str, str],
        request: ChatCompletionRequest,
        cancel_token: CancellationToken | None,
    ) -> dict[str, object]:
        del request
        return await self._transport.post_json(
            url,
            payload,
            headers=headers,
            cancel_token=cancel_token,
        )

    def build_payload(self, request: ChatCompletionRequest, *, wire_model: str) -> dict[str, object]:
        messages = downgrade_orphan_tool_messages(request.messages)
        payload: dict[str, object] = {
            "model": wire_model,
            "messages": [self.encode_message(message) for message in messages],
        }
        if request.tools_enabled:
            payload["tools"] = [encode_tool(tool) for tool in request.tools]
            if request.tool_choice is not None:
                payload["tool_choice"] = encode_tool_choice(request.tool_choice)
        if request.max_tokens is not None:
            payload[self.max_tokens_field(wire_model)] = request.max_tokens
        if request.reasoning_effort is not None:
            payload["reasoning_effort"] = request.reasoning_effort
        return payload

    def encode_message(self, message: ChatMessage) -> dict[str, object]:
        encoded: dict[str, object] = {"role": message.role}
        content: object = message.raw_content if message.raw_content is not None else message.content
        tool_calls_only = (
            message.role == "assistant"
            and bool(message.tool_calls)
            and message.raw_content is None
            and not message.content.strip()
        )
        if tool_calls_only:
            if self.null_content_with_tool_calls:
                encoded["content"] = None
        else:
            encoded["content"] = content

        if message.role == "tool" and message.tool_call_id is not None:
            encoded["tool_call_id"] = message.tool_call_id

        if message.role == "assistant" and message.tool_calls:
            encoded["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments_json or "{}"},
                }
                for call in message.tool_calls
            ]

        for key, value in filter_extension_fields(message.extension_fields).items():
            encoded[key] = value
        return encoded

    def decode_response(self, body: Mapping[str, object]) -> ChatCompletionResult:
        model = body.get("model")
        model_name = model if isinstance(model, str) else self.model
        choices = body.get("choices")
        if not isinstance(choices, list) or not choices:
            return ChatCompletionResult(model=model_name)
        choice = choices[0]
        message = choice.get("message") if isinstance(choice, Mapping) else None
        if not isinstance(message, Mapping):
            return ChatCompletionResult(model=model_name)

        tool_calls = decode_tool_calls(message.get("tool_calls"))

        raw_content: JSONValue = None
        text: str | None = None
        if "content" in message:
            raw_content = _as_json(message.get("content"))
            text = extract_text(message.get("content"))

        extension_fields = {
            key: _as_json(value)
            for key, value in message.items()
            if isinstance(key, str) and key.lower() not in _RESPONSE_SKIP_KEYS
        }
        return ChatCompletionResult(
            model=model_name,
            text=text,
            tool_calls=tool_calls,
            raw_content=raw_content,
            extension_fields=extension_fields,
        )


def encode_tool(tool: ChatTool) -> dict[str, object]:
    function: dict[str, object] = {"name": tool.name, "parameters": tool.parameters}
    if tool.description is not None:
        function["description"] = tool.description
    return {"type": "function", "function": function}


def encode_tool_choice(choice: ChatToolChoice) -> object:
    """Bare-string modes, or a structured object naming one function."""

    if choice.mode == "function" and choice.function_name is not None:
        return {"type": "function", "function": {"name": choice.function_name}}
    if choice.mode in {"auto", "none", "required"}:
        return choice.mode
    return "auto"


def decode_tool_calls(value: object) -> tuple[ChatToolCall, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return ()
    calls: list[ChatToolCall] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        call_id = item.get("id")
        function = item.get("function")
        if not isinstance(function, Mapping):
            continue
        name = function.get("name")
        if not isinstance(call_id, str) or not call_id.strip():
            continue
        if not isinstance(name, str) or not name.strip():
            continue
        arguments = function.get("arguments")
        if arguments is None:
            arguments_json = ""
        elif isinstance(arguments, str):
            arguments_json = arguments
        else:
            arguments_json = json.dumps(arguments, separators=(",", ":"), ensure_ascii=False)
        calls.append(ChatToolCall(id=call_id, name=name, arguments_json=arguments_json))
    return tuple(calls)


def _as_json(value: object) -> JSONValue:
    # Round-trip through json to normalize numbers/containers into plain JSON values.
    return json.loads(json.dumps(value, ensure_ascii=False, default=str))


__all__ = [
    "USER_AGENT",
    "OpenAICompatibleAdapter",
    "decode_tool_calls",
    "encode_tool",
    "encode_tool_choice",
]
