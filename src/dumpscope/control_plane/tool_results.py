"""Classify tool output as error/success and extract ``Try:`` follow-up hints."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Final

ERROR_PREFIXES: Final[tuple[str, ...]] = ("error:", "invalid_path:", "invalid_cursor:", "too_large")

_REQUIRED_FIELD_RE: Final[re.Pattern[str]] = re.compile(
    r"^[a-z0-9_]+(\.[a-z0-9_]+)+\s+is\s+required\.?$", re.IGNORECASE
)
_TRY_HINT_RE: Final[re.Pattern[str]] = re.compile(r"Try:\s*(?P<hint>.+)$", re.IGNORECASE | re.MULTILINE)
_SUGGESTED_REPORT_GET_RE: Final[re.Pattern[str]] = re.compile(
    r'report_get\s*\(\s*path\s*=\s*"(?P<path>[^"]+)"', re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class SuggestedToolCall:
    """A next step proposed by a checkpoint, a hint, or the juror."""

    tool: str
    args_json: str = "{}"

    def to_dict(self) -> dict[str, str]:
        return {"tool": self.tool, "argsJson": self.args_json}


def compact_args(arguments: dict[str, object]) -> str:
    return json.dumps(arguments, separators=(",", ":"), ensure_ascii=False)


def is_tool_error(text: str | None) -> bool:
    if text is None or not text.strip():
        return False
    trimmed = text.strip()
    if trimmed.lower().startswith(ERROR_PREFIXES):
        return True
    if _REQUIRED_FIELD_RE.match(trimmed):
        return True
    return structured_error_code(trimmed) is not None


def structured_error_code(text: str) -> str | None:
    """Return ``error.code`` from a JSON error envelope, if present."""

    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(document, dict):
        return None
    error = document.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code")
    if isinstance(code, str) and code.strip():
        return code
    return None


def extract_try_hints(text: str | None) -> tuple[SuggestedToolCall, ...]:
    """Parse ``Try: report_get(path="...")`` hints into suggested calls."""

    if text is None or not text.strip():
        return ()
    match = _TRY_HINT_RE.search(text)
    if match is None:
        return ()
    hints: list[SuggestedToolCall] = []
    for call in _SUGGESTED_REPORT_GET_RE.finditer(match.group("hint")):
        path = call.group("path").strip()
        if path:
            hints.append(SuggestedToolCall("report_get", compact_args({"path": path})))
    return tuple(hints)


__all__ = [
    "ERROR_PREFIXES",
    "SuggestedToolCall",
    "compact_args",
    "extract_try_hints",
    "is_tool_error",
    "structured_error_code",
]
