"""Render a canonical completion result as a sampling-protocol assistant message."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final

from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionResult,
    ChatToolCall,
    JSONValue,
    parse_tool_arguments,
)
from dumpscope.synthesis_plane.sampling.request_parser import compact_json

_TEXT_BLOCK_KEYS: Final[frozenset[str]] = frozenset({"type", "text"})
_TOOL_USE_BLOCK_KEYS: Final[frozenset[str]] = frozenset({"type", "id", "name", "input", "text"})


def build_sampling_response(
    result: ChatCompletionResult,
    *,
    model: str | None = None,
    preserve_raw_content: bool = False,
) -> dict[str, JSONValue]:
    """Return ``{"role": "assistant", "model": ..., "content": [...]}`` for ``result``.

    With ``preserve_raw_content`` the vendor's raw block array is replayed block by block so
    opaque fields (thought signatures and the like) survive the next tool turn.
    """

    blocks: list[dict[str, JSONValue]] = []
    if preserve_raw_content and isinstance(result.raw_content, list) and result.raw_content:
        blocks = _blocks_from_raw_array(result.raw_content)
        if blocks:
            _append_missing_tool_calls(blocks, result.tool_calls)
            has_text_block = any(_block_type(block) == "text" for block in blocks)
            if result.has_text and not has_text_block:
                blocks.insert(0, _text_block((result.text or "").rstrip()))
    if not blocks:
        blocks = _normalized_blocks(result)

    return {
        "role": "assistant",
        "model": result.model or model,
        "content": blocks,
    }


def _normalized_blocks(result: ChatCompletionResult) -> list[dict[str, JSONValue]]:
    blocks: list[dict[str, JSONValue]] = []
    if result.has_text:
        blocks.append(_text_block((result.text or "").rstrip()))
    for call in result.tool_calls:
        blocks.append(_tool_use_block(call))
    return blocks


def _blocks_from_raw_array(raw: list[JSONValue]) -> list[dict[str, JSONValue]]:
    blocks: list[dict[str, JSONValue]] = []
    for item in raw:
        if isinstance(item, str):
            if item.strip():
                blocks.append(_text_block(item.rstrip()))
            continue
        if not isinstance(item, Mapping):
            continue

        block_type = _block_type(item)
        if block_type == "text":
            text = item.get("text")
            block = _text_block(text.rstrip() if isinstance(text, str) else "")
            block.update(_extension_fields(item, _TEXT_BLOCK_KEYS))
            blocks.append(block)
        elif block_type == "tool_use":
            block = {"type": "tool_use"}
            for key in ("id", "name"):
                value = item.get(key)
                if isinstance(value, str):
                    block[key] = value
            if "input" in item:
                block["input"] = item["input"]
            block.update(_extension_fields(item, _TOOL_USE_BLOCK_KEYS))
            blocks.append(block)
        else:
            blocks.append(_text_block(compact_json(item)))
    return blocks


def _append_missing_tool_calls(
    blocks: list[dict[str, JSONValue]],
    tool_calls: tuple[ChatToolCall, ...],
) -> None:
    existing = {
        str(block.get("id") or "").casefold()
        for block in blocks
        if _block_type(block) == "tool_use"
    }
    for call in tool_calls:
        if call.id.casefold() in existing:
            continue
        existing.add(call.id.casefold())
        blocks.append(_tool_use_block(call))


def _extension_fields(item: Mapping[str, JSONValue], excluded: frozenset[str]) -> dict[str, JSONValue]:
    return {key: value for key, value in item.items() if key.lower() not in excluded}


def _block_type(block: Mapping[str, JSONValue]) -> str:
    value = block.get("type")
    return value.lower() if isinstance(value, str) else ""


def _text_block(text: str) -> dict[str, JSONValue]:
    return {"type": "text", "text": text}


def _tool_use_block(call: ChatToolCall) -> dict[str, JSONValue]:
    return {
        "type": "tool_use",
        "id": call.id,
        "name": call.name,
        "input": call.arguments(),
    }


__all__ = ["build_sampling_response"]
