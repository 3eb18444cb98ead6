"""
dumpscope — agent tool catalog and report-section tools

File: src/dumpscope/control_plane/tools.py
Last updated: 2026-02-13

Purpose
- Define the tools offered to the agent (loaded from ``default_tools.yaml``) and serve the
  attached-report tools through a narrow report-sections collaborator.

What should be included in this file
- YAML catalog loading into ``ChatTool`` contracts.
- ``ReportSections`` protocol and ``ReportToolExecutor``.

Functional requirements
- Report tool failures are returned as ``ERROR:`` text, never raised.
- Non-report tool calls go to the fallback executor when one is configured.

Non-functional requirements
- The catalog is read once per process.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from importlib import resources
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

import structlog
import yaml

from dumpscope.synthesis_plane.providers.base import ChatTool

if TYPE_CHECKING:
    from dumpscope.control_plane.protocols import ToolExecutor
    from dumpscope.synthesis_plane.providers.base import ChatToolCall
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

CATALOG_RESOURCE: Final[str] = "default_tools.yaml"
REPORT_TOOL_NAMES: Final[frozenset[str]] = frozenset({"find_report_sections", "get_report_section"})

DEFAULT_MAX_RESULTS: Final[int] = 25
MAX_RESULTS_RANGE: Final[tuple[int, int]] = (1, 200)
DEFAULT_SECTION_MAX_CHARS: Final[int] = 30_000
SECTION_MAX_CHARS_RANGE: Final[tuple[int, int]] = (1_000, 200_000)


class ToolCatalogError(ValueError):
    """Raised when the packaged tool catalog is malformed."""


@runtime_checkable
class ReportSections(Protocol):
    """Cached report-section lookup; both methods return JSON text."""

    def find_sections(
        self, query: str, *, max_results: int = DEFAULT_MAX_RESULTS, report: str | None = None
    ) -> str: ...

    def get_section(
        self,
        section_id: str | None,
        *,
        json_pointer: str | None = None,
        max_chars: int = DEFAULT_SECTION_MAX_CHARS,
        report: str | None = None,
    ) -> str: ...


def load_tool_catalog(text: str) -> dict[str, tuple[ChatTool, ...]]:
    """Parse a YAML catalog of ``tools``/``report_tools`` lists into ``ChatTool`` groups."""

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ToolCatalogError(f"tool catalog is not valid YAML: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ToolCatalogError("tool catalog must be a mapping")

    groups: dict[str, tuple[ChatTool, ...]] = {}
    for group, entries in document.items():
        if not isinstance(entries, list):
            raise ToolCatalogError(f"tool catalog group {group!r} must be a list")
        tools: list[ChatTool] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise ToolCatalogError(f"{group}[{index}] must be a mapping")
            try:
                tools.append(
                    ChatTool(
                        name=entry.get("name", ""),
                        description=entry.get("description"),
                        parameters=entry.get("parameters"),
                    )
                )
            except (TypeError, ValueError) as exc:
                raise ToolCatalogError(f"{group}[{index}] is invalid: {exc}") from exc
        groups[str(group)] = tuple(tools)
    return groups


@lru_cache(maxsize=1)
def _packaged_catalog() -> dict[str, tuple[ChatTool, ...]]:
    text = resources.files(__package__).joinpath(CATALOG_RESOURCE).read_text(encoding="utf-8")
    return load_tool_catalog(text)


def default_tools(*, include_report_tools: bool = False) -> tuple[ChatTool, ...]:
    catalog = _packaged_catalog()
    tools = catalog.get("tools", ())
    if include_report_tools:
        tools = (*tools, *catalog.get("report_tools", ()))
    return tools


def report_tools() -> tuple[ChatTool, ...]:
    return _packaged_catalog().get("report_tools", ())


def is_report_tool(name: str) -> bool:
    return name in REPORT_TOOL_NAMES


class ReportToolExecutor:
    """Serve ``find_report_sections``/``get_report_section``; delegate everything else."""

    def __init__(
        self,
        sections: ReportSections,
        *,
        fallback: ToolExecutor | None = None,
    ) -> None:
        self._sections = sections
        self._fallback = fallback

    async def __call__(
        self,
        call: ChatToolCall,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        if not is_report_tool(call.name):
            if self._fallback is not None:
                return await self._fallback(call, cancel_token)
            return f"ERROR: Unknown report tool '{call.name}'."

        arguments = _parse_arguments(call.arguments_json)
        if isinstance(arguments, str):
            return arguments
        if call.name == "find_report_sections":
            return self._find(arguments)
        return self._get(arguments)

    def _find(self, arguments: Mapping[str, object]) -> str:
        query = _string_arg(arguments, "query")
        if query is None:
            return "ERROR: query is required."
        max_results = _clamp(
            _int_arg(arguments, "maxResults"), DEFAULT_MAX_RESULTS, MAX_RESULTS_RANGE
        )
        logger.debug("report_sections_find", query=query, max_results=max_results)
        return self._sections.find_sections(
            query, max_results=max_results, report=_string_arg(arguments, "report")
        )

    def _get(self, arguments: Mapping[str, object]) -> str:
        section_id = _string_arg(arguments, "sectionId")
        pointer = _string_arg(arguments, "jsonPointer")
        if section_id is None and pointer is None:
            return "ERROR: Provide sectionId or jsonPointer."
        max_chars = _clamp(
            _int_arg(arguments, "maxChars"), DEFAULT_SECTION_MAX_CHARS, SECTION_MAX_CHARS_RANGE
        )
        logger.debug(
            "report_sections_get", section_id=section_id, json_pointer=pointer, max_chars=max_chars
        )
        return self._sections.get_section(
            section_id,
            json_pointer=pointer,
            max_chars=max_chars,
            report=_string_arg(arguments, "report"),
        )


def _parse_arguments(arguments_json: str) -> dict[str, object] | str:
    if not arguments_json.strip():
        return {}
    try:
        document = json.loads(arguments_json)
    except json.JSONDecodeError as exc:
        return f"ERROR: Invalid arguments JSON: {exc.msg}"
    if not isinstance(document, dict):
        return "ERROR: Tool arguments must be a JSON object."
    return document


def _string_arg(arguments: Mapping[str, object], key: str) -> str | None:
    value = arguments.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _int_arg(arguments: Mapping[str, object], key: str) -> int | None:
    value = arguments.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _clamp(value: int | None, default: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, default if value is None else value))


__all__ = [
    "REPORT_TOOL_NAMES",
    "ReportSections",
    "ReportToolExecutor",
    "ToolCatalogError",
    "default_tools",
    "is_report_tool",
    "load_tool_catalog",
    "report_tools",
]
