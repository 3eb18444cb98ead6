"""Redacted request/response tracing for provider exchanges."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

import structlog

from dumpscope.security.redaction import redact_structure, redact_text

logger = structlog.get_logger(__name__)

TRACE_FILENAME: Final[str] = "traces.jsonl"


@dataclass(frozen=True, slots=True)
class TraceRecord:
    provider: str
    url: str
    request: object
    response: object
    status: int | None = None
    elapsed_ms: float | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, object]:
        response = self.response
        if isinstance(response, str):
            response = redact_text(response)
        else:
            response = redact_structure(response)
        return {
            "timestamp": self.timestamp.isoformat(),
            "provider": self.provider,
            "url": self.url,
            "status": self.status,
            "elapsed_ms": self.elapsed_ms,
            "request": redact_structure(self.request),
            "response": response,
        }


@runtime_checkable
class TraceSink(Protocol):
    def write(self, record: TraceRecord) -> None: ...


class NullTraceSink:
    """Sink that drops every record."""

    def write(self, record: TraceRecord) -> None:
        del record


class JsonlTraceSink:
    """Append one redacted JSON line per exchange to ``<directory>/traces.jsonl``."""

    def __init__(self, directory: str | Path) -> None:
        self._path = Path(directory) / TRACE_FILENAME
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: TraceRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False, default=str)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


def emit_trace(sink: TraceSink | None, record: TraceRecord) -> None:
    """Write ``record`` to ``sink``; trace failures are logged and never raised."""

    if sink is None:
        return
    try:
        sink.write(record)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "trace_write_failed",
            provider=record.provider,
            error_type=type(exc).__name__,
            error=redact_text(str(exc)),
        )


__all__ = [
    "TRACE_FILENAME",
    "JsonlTraceSink",
    "NullTraceSink",
    "TraceRecord",
    "TraceSink",
    "emit_trace",
]
