"""
dumpscope — human-readable progress for sampling tool traffic

File: src/dumpscope/synthesis_plane/sampling/progress.py
Last updated: 2026-02-13

Purpose
- Emit one-line progress events for tool calls the model requests and tool results the client
  sends back, so an operator can follow a long analysis.

Functional requirements
- Each distinct (tool_call_id, arguments) and (tool_call_id, result) pair is emitted once.
- A request whose history shrank (the conversation was rewound) starts a fresh stream.
- Causal order: results seen in a request come before the tools requested in its reply.

Non-functional requirements
- A failing progress sink never breaks sampling.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from typing import Final

import structlog

from dumpscope.constants import DEFAULT_PROGRESS_SUMMARY_CHARS
from dumpscope.synthesis_plane.providers.base import ChatToolCall
from dumpscope.synthesis_plane.sampling.request_parser import (
    ToolResultBlock,
    extract_content_blocks,
    lookup,
    lookup_str,
    normalize_role,
    parse_openai_tool_calls,
)

logger = structlog.get_logger(__name__)

ProgressSink = Callable[[str], None]

NO_OUTPUT_SUMMARY: Final[str] = "(no output)"
_ELLIPSIS: Final[str] = "..."

# Tool name -> (argument key, label, max chars).
_ARGUMENT_SUMMARIES: Final[dict[str, tuple[str, str, int]]] = {
    "inspect": ("address", "address=", 80),
    "inspect_object": ("address", "address=", 80),
    "get_thread_stack": ("threadId", "threadId=", 40),
    "thread_stack": ("threadId", "threadId=", 40),
    "analysis_complete": ("rootCause", "rootCause=", 120),
}


def compact_one_line(value: str | None, max_chars: int) -> str:
    """Collapse ``value`` to one line and cap it at ``max_chars`` (plus ``...``)."""

    if value is None or not value.strip():
        return ""
    text = value.replace("\r", " ").replace("\n", " ").strip()
    while "  " in text:
        text = text.replace("  ", " ")
    if max_chars > 0 and len(text) > max_chars:
        return text[:max_chars] + _ELLIPSIS
    return text


def summarize_tool_call(call: ChatToolCall, *, max_chars: int = DEFAULT_PROGRESS_SUMMARY_CHARS) -> str:
    if not call.arguments_json.strip():
        return ""
    try:
        arguments = json.loads(call.arguments_json)
    except json.JSONDecodeError:
        return compact_one_line(call.arguments_json, max_chars)

    name = call.name.lower()
    if isinstance(arguments, dict):
        command = arguments.get("command")
        if name == "exec" and isinstance(command, str):
            return compact_one_line(command, max_chars)
        if name in _ARGUMENT_SUMMARIES:
            key, label, limit = _ARGUMENT_SUMMARIES[name]
            value = arguments.get(key)
            if isinstance(value, str):
                return f"{label}{compact_one_line(value, limit)}"
    return compact_one_line(call.arguments_json, max_chars)


class ProgressTracker:
    """Deduplicating progress emitter for one sampling stream."""

    def __init__(
        self,
        sink: ProgressSink | None = None,
        *,
        summary_chars: int = DEFAULT_PROGRESS_SUMMARY_CHARS,
    ) -> None:
        self._sink = sink
        self._summary_chars = summary_chars
        self._seen_requests: set[tuple[str, str]] = set()
        self._seen_results: set[tuple[str, str]] = set()
        self._message_count = 0

    @property
    def enabled(self) -> bool:
        return self._sink is not None

    def reset(self) -> None:
        self._seen_requests.clear()
        self._seen_results.clear()
        self._message_count = 0

    def observe_request(self, params: Mapping[str, object]) -> list[str]:
        """Emit results carried by ``params['messages']`` that were not reported yet."""

        messages = lookup(params, "messages", None)
        if not isinstance(messages, list):
            return []

        if len(messages) < self._message_count:
            logger.debug(
                "sampling_progress_rewind",
                previous_messages=self._message_count,
                messages=len(messages),
            )
            self.reset()
        self._message_count = len(messages)

        names = _tool_names_by_id(messages)
        emitted: list[str] = []
        for message in messages:
            if not isinstance(message, Mapping):
                continue
            for result in _tool_results(message):
                key = (result.tool_call_id.casefold(), result.content)
                if key in self._seen_results:
                    continue
                self._seen_results.add(key)
                name = names.get(result.tool_call_id.casefold(), "tool")
                summary = compact_one_line(result.content, self._summary_chars) or NO_OUTPUT_SUMMARY
                emitted.append(f"AI tool result: {name} -> {summary}")
        self._emit(emitted)
        return emitted

    def observe_tool_calls(self, tool_calls: Sequence[ChatToolCall]) -> list[str]:
        """Emit tool calls requested by the model that were not reported yet."""

        emitted: list[str] = []
        for call in tool_calls:
            key = (call.id.casefold(), call.arguments_json)
            if key in self._seen_requests:
                continue
            self._seen_requests.add(key)
            summary = summarize_tool_call(call, max_chars=self._summary_chars)
            emitted.append(
                f"AI requests tool: {call.name} ({summary})"
                if summary
                else f"AI requests tool: {call.name}"
            )
        self._emit(emitted)
        return emitted

    def _emit(self, lines: list[str]) -> None:
        if self._sink is None:
            return
        for line in lines:
            try:
                self._sink(line)
            except Exception as exc:  # noqa: BLE001
                logger.warning("sampling_progress_sink_failed", error=str(exc))
                return


def _tool_results(message: Mapping[str, object]) -> list[ToolResultBlock]:
    blocks = extract_content_blocks(message)
    results = list(blocks.tool_results)
    if normalize_role(lookup(message, "role", "user")) == "tool":
        call_id = lookup_str(message, "tool_call_id") or lookup_str(message, "toolCallId")
        if call_id and call_id.strip():
            results.append(ToolResultBlock(tool_call_id=call_id, content=blocks.text))
    return results


def _tool_names_by_id(messages: list[object]) -> dict[str, str]:
    names: dict[str, str] = {}
    for message in messages:
        if not isinstance(message, Mapping):
            continue
        if normalize_role(lookup(message, "role", "user")) != "assistant":
            continue
        calls = [*extract_content_blocks(message).tool_calls, *parse_openai_tool_calls(message)]
        for call in calls:
            names[call.id.casefold()] = call.name
    return names


__all__ = [
    "NO_OUTPUT_SUMMARY",
    "ProgressSink",
    "ProgressTracker",
    "compact_one_line",
    "summarize_tool_call",
]
