"""Map tool invocations to evidence tags used by the baseline gate and checkpoints."""

from __future__ import annotations

import json
from typing import Final

ORIENT_REPORT_INDEX: Final[str] = "ORIENT_REPORT_INDEX"
REPORT_GET: Final[str] = "REPORT_GET"
EXEC: Final[str] = "EXEC"
ANALYZE: Final[str] = "ANALYZE"
ATTACHED_REPORT: Final[str] = "ATTACHED_REPORT"

# report_get path -> tag. Paths match exactly after trimming.
REPORT_PATH_TAGS: Final[dict[str, str]] = {
    "metadata": "BASELINE_META",
    "analysis.summary": "BASELINE_SUMMARY",
    "analysis.environment": "BASELINE_ENV",
    "analysis.exception.type": "BASELINE_EXC_TYPE",
    "analysis.exception.message": "BASELINE_EXC_MESSAGE",
    "analysis.exception.hResult": "BASELINE_EXC_HRESULT",
    "analysis.exception.stackTrace": "BASELINE_EXC_STACK",
    "analysis.exception.analysis": "BASELINE_EXC_ANALYSIS",
}

_REPORT_SECTION_TOOLS: Final[frozenset[str]] = frozenset(
    {"find_report_sections", "get_report_section"}
)


def tag_tool_call(name: str | None, arguments_json: str | None) -> tuple[str, ...]:
    """Return evidence tags for one tool call; unknown tools carry no tags."""

    if name is None or not name.strip():
        return ()
    tool = name.strip().lower()

    if tool == "report_index":
        return (ORIENT_REPORT_INDEX,)
    if tool == "report_get":
        path = read_string_argument(arguments_json, "path")
        if path is None or not path.strip():
            return (REPORT_GET,)
        return (REPORT_PATH_TAGS.get(path.strip(), REPORT_GET),)
    if tool == "exec":
        return (EXEC,)
    if tool == "analyze":
        kind = read_string_argument(arguments_json, "kind")
        if kind is None or not kind.strip():
            return (ANALYZE,)
        return (f"{ANALYZE}:{kind.strip().lower()}",)
    if tool in _REPORT_SECTION_TOOLS:
        return (ATTACHED_REPORT,)
    return ()


def read_string_argument(arguments_json: str | None, key: str) -> str | None:
    """Return a top-level string property from a JSON object text, else ``None``."""

    if arguments_json is None or not arguments_json.strip():
        return None
    try:
        document = json.loads(arguments_json)
    except json.JSONDecodeError:
        return None
    if not isinstance(document, dict):
        return None
    value = document.get(key)
    return value if isinstance(value, str) else None


__all__ = [
    "ANALYZE",
    "ATTACHED_REPORT",
    "EXEC",
    "ORIENT_REPORT_INDEX",
    "REPORT_GET",
    "REPORT_PATH_TAGS",
    "read_string_argument",
    "tag_tool_call",
]
