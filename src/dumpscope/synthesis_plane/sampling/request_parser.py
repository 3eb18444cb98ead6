"""
dumpscope — sampling request normalization

File: src/dumpscope/synthesis_plane/sampling/request_parser.py
Last updated: 2026-02-13

Purpose
- Turn heterogeneous sampling params (Anthropic-flavored, OpenAI-flavored, or partially
  malformed) into one canonical ``ChatCompletionRequest``.

What should be included in this file
- Case-insensitive property lookup helpers.
- Tool, tool-choice, token budget, reasoning-effort, and message parsing.
- Content-block extraction shared with progress reporting.

Functional requirements
- Unrecognized tool entries, tool-choice shapes, and message entries are skipped, never raised.
- Tool results are matched against tool calls seen earlier in the same request; unmatched or
  id-less results become annotated ``user`` messages.

Non-functional requirements
- Pure and deterministic: no I/O, no logging of message content.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final

from dumpscope.synthesis_plane.providers.base import (
    DEFAULT_TOOL_SCHEMA,
    ChatCompletionRequest,
    ChatMessage,
    ChatTool,
    ChatToolCall,
    ChatToolChoice,
    JSONValue,
    ReasoningEffortParse,
    ReasoningEffortStatus,
    downgrade_orphan_tool_messages,
    parse_reasoning_effort,
)
from dumpscope.synthesis_plane.sampling.errors import SamplingRequestError

_MISSING: Final = object()
_KNOWN_ROLES: Final[frozenset[str]] = frozenset({"system", "user", "assistant", "tool"})


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_call_id: str
    content: str


@dataclass(slots=True)
class ParsedBlocks:
    """Text, tool calls, and tool results found in one message's ``content``."""

    text: str = ""
    tool_calls: list[ChatToolCall] = field(default_factory=list)
    tool_results: list[ToolResultBlock] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.tool_calls and not self.tool_results


def lookup(obj: object, name: str, default: object = _MISSING) -> object:
    """Return ``obj[name]`` matching the key case-insensitively, else ``default``."""

    if not isinstance(obj, Mapping):
        return default
    if name in obj:
        return obj[name]
    folded = name.casefold()
    for key, value in obj.items():
        if isinstance(key, str) and key.casefold() == folded:
            return value
    return default


def lookup_str(obj: object, name: str) -> str | None:
    value = lookup(obj, name, None)
    return value if isinstance(value, str) else None


def _lookup_any(obj: object, *names: str) -> object:
    for name in names:
        value = lookup(obj, name)
        if value is not _MISSING:
            return value
    return _MISSING


def normalize_role(role: object) -> str:
    """Lower-case known roles; anything else is ``user``."""

    if not isinstance(role, str):
        return "user"
    normalized = role.strip().lower()
    return normalized if normalized in _KNOWN_ROLES else "user"


def compact_json(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def parse_sampling_request(
    params: object,
    *,
    default_reasoning_effort: str | None = None,
    preserve_content_blocks: bool = False,
) -> ChatCompletionRequest:
    """Normalize sampling ``params`` into a canonical chat completion request."""

    if not isinstance(params, Mapping):
        raise SamplingRequestError("sampling params must be a JSON object")

    messages = parse_messages(
        params,
        system_prompt=lookup_str(params, "systemPrompt"),
        preserve_content_blocks=preserve_content_blocks,
    )
    return ChatCompletionRequest(
        messages=messages,
        tools=parse_tools(params),
        tool_choice=parse_tool_choice(params),
        max_tokens=parse_max_tokens(params),
        reasoning_effort=parse_request_reasoning_effort(params).resolve(default_reasoning_effort),
    )


def parse_max_tokens(params: Mapping[str, object]) -> int | None:
    value = _lookup_any(params, "maxTokens", "max_tokens")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value > 0 else None


def parse_request_reasoning_effort(params: Mapping[str, object]) -> ReasoningEffortParse:
    """Resolve the per-request effort override; ``reasoning.effort`` is the fallback source."""

    value = _lookup_any(params, "reasoningEffort", "reasoning_effort")
    if value is not _MISSING:
        return parse_reasoning_effort(value)
    reasoning = lookup(params, "reasoning", None)
    if isinstance(reasoning, Mapping):
        return parse_reasoning_effort(lookup(reasoning, "effort", None))
    return ReasoningEffortParse(ReasoningEffortStatus.NOT_SPECIFIED)


def parse_tool_choice(params: Mapping[str, object]) -> ChatToolChoice | None:
    value = _lookup_any(params, "toolChoice", "tool_choice")
    if isinstance(value, str):
        return ChatToolChoice(mode=value)
    if not isinstance(value, Mapping):
        return None

    mode = lookup_str(value, "mode") or lookup_str(value, "type") or "auto"
    name = lookup_str(value, "name")
    if not name or not name.strip():
        function = lookup(value, "function", None)
        name = lookup_str(function, "name") if isinstance(function, Mapping) else None
    return ChatToolChoice(mode=mode, function_name=name)


def parse_tools(params: Mapping[str, object]) -> tuple[ChatTool, ...]:
    entries = lookup(params, "tools", None)
    if not isinstance(entries, list):
        return ()

    tools: list[ChatTool] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        entry_type = lookup_str(entry, "type")
        if entry_type and entry_type.strip() and entry_type.strip().lower() != "function":
            continue
        function = lookup(entry, "function", None)
        source = function if isinstance(function, Mapping) else entry
        name = lookup_str(source, "name")
        if not name or not name.strip():
            continue
        description = lookup_str(source, "description") or lookup_str(entry, "description")
        tools.append(
            ChatTool(name=name, description=description, parameters=_tool_schema(entry))
        )
    return tuple(tools)


def _tool_schema(entry: Mapping[str, object]) -> JSONValue:
    function = lookup(entry, "function", None)
    if isinstance(function, Mapping):
        parameters = lookup(function, "parameters", None)
        if isinstance(parameters, (dict, list)):
            return parameters
    schema = _lookup_any(entry, "inputSchema", "input_schema", "parameters")
    if isinstance(schema, (dict, list)):
        return schema
    return dict(DEFAULT_TOOL_SCHEMA)


def parse_messages(
    params: Mapping[str, object],
    *,
    system_prompt: str | None = None,
    preserve_content_blocks: bool = False,
) -> tuple[ChatMessage, ...]:
    """Build canonical messages, then downgrade tool output that matches no earlier call."""

    out: list[ChatMessage] = []
    if system_prompt and system_prompt.strip():
        out.append(ChatMessage.system(system_prompt.strip()))

    entries = lookup(params, "messages", None)
    if not isinstance(entries, list):
        return tuple(out)

    for entry in entries:
        if isinstance(entry, Mapping):
            out.extend(_parse_message(entry, preserve_content_blocks=preserve_content_blocks))
    return downgrade_orphan_tool_messages(out)


def _parse_message(
    entry: Mapping[str, object],
    *,
    preserve_content_blocks: bool,
) -> list[ChatMessage]:
    role = normalize_role(lookup(entry, "role", "user"))
    content = lookup(entry, "content", None)

    if preserve_content_blocks and role in {"user", "assistant"} and isinstance(
        content, (list, dict)
    ):
        blocks = extract_content_blocks(entry)
        return [ChatMessage(role=role, content=blocks.text, raw_content=content)]

    blocks = extract_content_blocks(entry)
    if role == "assistant":
        seen = {call.id.casefold() for call in blocks.tool_calls}
        for call in parse_openai_tool_calls(entry):
            if call.id.casefold() not in seen:
                seen.add(call.id.casefold())
                blocks.tool_calls.append(call)

    if blocks.is_empty:
        return []

    out: list[ChatMessage] = []
    if role == "assistant" and blocks.tool_calls:
        out.append(ChatMessage.assistant(blocks.text, tool_calls=blocks.tool_calls))
    elif role == "tool":
        if blocks.text.strip():
            tool_call_id = lookup_str(entry, "tool_call_id") or lookup_str(entry, "toolCallId")
            out.append(ChatMessage.tool(blocks.text, tool_call_id=tool_call_id))
    elif blocks.text.strip():
        out.append(ChatMessage(role=role, content=blocks.text))

    for result in blocks.tool_results:
        out.append(ChatMessage.tool(result.content, tool_call_id=result.tool_call_id))
    return out


def extract_content_blocks(entry: Mapping[str, object]) -> ParsedBlocks:
    """Split a message's ``content`` into text, ``tool_use`` calls, and ``tool_result`` blocks."""

    content = lookup(entry, "content", None)
    if content is None:
        return ParsedBlocks()
    if isinstance(content, str):
        return ParsedBlocks(text=content if content.strip() else "")

    parsed = ParsedBlocks()
    pieces: list[str] = []
    if isinstance(content, Mapping):
        _extract_content_item(content, pieces, parsed)
    elif isinstance(content, list):
        for item in content:
            if isinstance(item, str):
                _append_piece(pieces, item)
            elif isinstance(item, Mapping):
                _extract_content_item(item, pieces, parsed)
    else:
        return ParsedBlocks(text=compact_json(content))
    parsed.text = "\n".join(pieces).strip()
    return parsed


def _extract_content_item(
    item: Mapping[str, object],
    pieces: list[str],
    parsed: ParsedBlocks,
) -> None:
    item_type = (lookup_str(item, "type") or "").lower()
    if item_type == "text":
        _append_piece(pieces, lookup_str(item, "text"))
        return

    if item_type == "tool_use":
        call_id = lookup_str(item, "id")
        name = lookup_str(item, "name")
        if call_id and call_id.strip() and name and name.strip():
            tool_input = lookup(item, "input")
            arguments = "{}" if tool_input is _MISSING else compact_json(tool_input)
            parsed.tool_calls.append(ChatToolCall(id=call_id, name=name, arguments_json=arguments))
        return

    if item_type == "tool_result":
        tool_use_id = (
            lookup_str(item, "tool_use_id")
            or lookup_str(item, "toolUseId")
            or lookup_str(item, "toolCallId")
        )
        result_content = lookup(item, "content")
        if result_content is _MISSING:
            text = lookup_str(item, "text") or ""
        else:
            text = tool_result_text(result_content)
        if tool_use_id and tool_use_id.strip():
            parsed.tool_results.append(ToolResultBlock(tool_call_id=tool_use_id, content=text))
        return

    _append_piece(pieces, compact_json(item))


def tool_result_text(content: object) -> str:
    """Flatten a ``tool_result`` content value to text; unknown blocks stay as JSON."""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        pieces: list[str] = []
        for item in content:
            if isinstance(item, str):
                _append_piece(pieces, item)
            elif isinstance(item, Mapping):
                if (lookup_str(item, "type") or "").lower() == "text":
                    _append_piece(pieces, lookup_str(item, "text"))
                else:
                    _append_piece(pieces, compact_json(item))
        return "\n".join(pieces).strip()
    return compact_json(content)


def parse_openai_tool_calls(entry: Mapping[str, object]) -> list[ChatToolCall]:
    """Read OpenAI-style ``tool_calls`` from an assistant message."""

    raw_calls = _lookup_any(entry, "tool_calls", "toolCalls")
    if not isinstance(raw_calls, Sequence) or isinstance(raw_calls, (str, bytes)):
        return []

    calls: list[ChatToolCall] = []
    for item in raw_calls:
        if not isinstance(item, Mapping):
            continue
        item_type = lookup_str(item, "type")
        if item_type and item_type.strip() and item_type.strip().lower() != "function":
            continue
        function = lookup(item, "function", None)
        if not isinstance(function, Mapping):
            continue
        call_id = lookup_str(item, "id")
        name = lookup_str(function, "name")
        if not call_id or not call_id.strip() or not name or not name.strip():
            continue
        arguments = lookup(function, "arguments", None)
        if isinstance(arguments, str):
            arguments_json = arguments
        elif isinstance(arguments, (dict, list)):
            arguments_json = compact_json(arguments)
        else:
            arguments_json = "{}"
        calls.append(ChatToolCall(id=call_id, name=name, arguments_json=arguments_json))
    return calls


def _append_piece(pieces: list[str], text: str | None) -> None:
    if text is None or not text.strip():
        return
    pieces.append(text.rstrip())


__all__ = [
    "ParsedBlocks",
    "ToolResultBlock",
    "compact_json",
    "extract_content_blocks",
    "lookup",
    "lookup_str",
    "normalize_role",
    "parse_max_tokens",
    "parse_messages",
    "parse_openai_tool_calls",
    "parse_request_reasoning_effort",
    "parse_sampling_request",
    "parse_tool_choice",
    "parse_tools",
    "tool_result_text",
]
