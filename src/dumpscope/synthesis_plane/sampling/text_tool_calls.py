"""
dumpscope — recovery of tool calls that a model emitted as plain text

File: src/dumpscope/synthesis_plane/sampling/text_tool_calls.py
Last updated: 2026-02-13

Purpose
- Some models answer with a JSON ``tool_use`` object inside their text instead of a structured
  tool call. Convert those into ``ChatToolCall`` values so the caller can still act on them.

What should be included in this file
- Whole-text JSON recovery (object, array, text wrapper, JSON string).
- Embedded-object recovery driven by a balanced-delimiter scanner.

Functional requirements
- Results that already carry structured tool calls pass through untouched.
- Strategies are never mixed within one message.
- Unbalanced or non-JSON mentions of ``tool_use`` stay in the text.

Non-functional requirements
- The scanner treats quotes, escapes and braces inside JSON strings as content.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Final

import structlog

from dumpscope.synthesis_plane.providers.base import ChatCompletionResult, ChatToolCall

logger = structlog.get_logger(__name__)

TOOL_USE_MARKER: Final[str] = "tool_use"
SYNTHETIC_ID_PREFIX: Final[str] = "text_tool_"
_MAX_UNWRAP_DEPTH: Final[int] = 4


class RecoveryStrategy(str, Enum):
    NONE = "none"
    WHOLE_TEXT = "whole_text"
    EMBEDDED = "embedded"


@dataclass(frozen=True, slots=True)
class TextToolCallRecovery:
    """Outcome of scanning one reply text."""

    strategy: RecoveryStrategy
    tool_calls: tuple[ChatToolCall, ...] = ()
    text: str | None = None

    @property
    def recovered(self) -> bool:
        return bool(self.tool_calls)


def recover_text_tool_calls(result: ChatCompletionResult) -> ChatCompletionResult:
    """Return ``result`` with text-embedded tool calls promoted to structured calls."""

    if result.tool_calls or not result.has_text:
        return result
    recovery = parse_text_tool_calls(result.text or "")
    if not recovery.recovered:
        return result
    logger.info(
        "text_tool_calls_recovered",
        strategy=recovery.strategy.value,
        count=len(recovery.tool_calls),
        tools=[call.name for call in recovery.tool_calls],
    )
    # Raw blocks still hold the JSON text; drop them so the rebuilt reply uses the recovered calls.
    return replace(
        result,
        text=recovery.text,
        tool_calls=recovery.tool_calls,
        raw_content=None,
        extension_fields={},
    )


def parse_text_tool_calls(text: str) -> TextToolCallRecovery:
    """Scan ``text`` for tool-use JSON; ``text`` on the outcome is what remains visible."""

    if not text or not text.strip() or TOOL_USE_MARKER not in text.lower():
        return TextToolCallRecovery(RecoveryStrategy.NONE, text=text)

    whole = _parse_whole_text(text.strip())
    if whole:
        return TextToolCallRecovery(RecoveryStrategy.WHOLE_TEXT, tool_calls=whole, text=None)

    calls, ranges = _parse_embedded(text)
    if not calls:
        return TextToolCallRecovery(RecoveryStrategy.NONE, text=text)
    remaining = _remove_ranges(text, ranges)
    return TextToolCallRecovery(
        RecoveryStrategy.EMBEDDED,
        tool_calls=calls,
        text=remaining or None,
    )


def find_balanced_object_end(text: str, start: int) -> int | None:
    """Return the index just past the ``}`` closing the object opened at ``text[start]``.

    Returns ``None`` when ``text[start]`` is not ``{`` or the object never closes.
    """

    if start < 0 or start >= len(text) or text[start] != "{":
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def _parse_whole_text(trimmed: str) -> tuple[ChatToolCall, ...]:
    try:
        document = json.loads(trimmed)
    except json.JSONDecodeError:
        return ()
    return tuple(_calls_from_json(document, depth=0))


def _calls_from_json(value: object, *, depth: int) -> list[ChatToolCall]:
    if depth > _MAX_UNWRAP_DEPTH:
        return []
    if isinstance(value, list):
        calls: list[ChatToolCall] = []
        for item in value:
            calls.extend(_calls_from_json(item, depth=depth + 1))
        return calls
    if isinstance(value, str):
        return _calls_from_json_text(value, depth=depth)
    if not isinstance(value, dict):
        return []

    block_type = value.get("type")
    if not isinstance(block_type, str):
        return []
    if block_type.lower() == TOOL_USE_MARKER:
        call = _tool_call_from_object(value)
        return [call] if call is not None else []
    if block_type.lower() == "text":
        inner = value.get("text")
        if isinstance(inner, str):
            return _calls_from_json_text(inner, depth=depth)
    return []


def _calls_from_json_text(text: str, *, depth: int) -> list[ChatToolCall]:
    if TOOL_USE_MARKER not in text.lower():
        return []
    try:
        document = json.loads(text.strip())
    except json.JSONDecodeError:
        return []
    return _calls_from_json(document, depth=depth + 1)


def _tool_call_from_object(obj: dict[str, object]) -> ChatToolCall | None:
    name = obj.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    call_id = obj.get("id")
    if not isinstance(call_id, str) or not call_id.strip():
        call_id = f"{SYNTHETIC_ID_PREFIX}{uuid.uuid4().hex}"
    arguments = json.dumps(obj["input"], ensure_ascii=False) if "input" in obj else "{}"
    return ChatToolCall(id=call_id, name=name, arguments_json=arguments)


def _parse_embedded(text: str) -> tuple[tuple[ChatToolCall, ...], list[tuple[int, int]]]:
    lowered = text.lower()
    candidates: set[tuple[int, int]] = set()
    index = 0
    while True:
        marker = lowered.find(TOOL_USE_MARKER, index)
        if marker < 0:
            break
        start = text.rfind("{", 0, marker)
        end = find_balanced_object_end(text, start) if start >= 0 else None
        if end is None or end <= marker:
            index = marker + 1
            continue
        candidates.add((start, end))
        index = end

    calls: list[ChatToolCall] = []
    ranges: list[tuple[int, int]] = []
    for start, end in sorted(candidates):
        try:
            document = json.loads(text[start:end])
        except json.JSONDecodeError:
            continue
        if not isinstance(document, dict):
            continue
        block_type = document.get("type")
        if not isinstance(block_type, str) or block_type.lower() != TOOL_USE_MARKER:
            continue
        call = _tool_call_from_object(document)
        if call is None:
            continue
        calls.append(call)
        ranges.append((start, end))
    return tuple(calls), ranges


def _remove_ranges(text: str, ranges: list[tuple[int, int]]) -> str:
    pieces: list[str] = []
    last = 0
    for start, end in sorted(ranges):
        if start < last:
            continue
        pieces.append(text[last:start])
        last = end
    pieces.append(text[last:])
    return "".join(pieces).strip()


__all__ = [
    "SYNTHETIC_ID_PREFIX",
    "TOOL_USE_MARKER",
    "RecoveryStrategy",
    "TextToolCallRecovery",
    "find_balanced_object_end",
    "parse_text_tool_calls",
    "recover_text_tool_calls",
]
