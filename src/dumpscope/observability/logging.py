"""
dumpscope — structured logging

File: src/dumpscope/observability/logging.py
Last updated: 2026-02-13

Purpose
- Write every stdlib and structlog record as one JSON object per line, to
  ``<log_dir>/dumpscope.jsonl`` and optionally stderr, through a bounded background queue.
- Carry correlation ids (run, session) from the emitting context onto each line.

Functional requirements
- Messages, extra fields, and exception text pass through the redactor before they are written.
- Extra fields are normalized to JSON: UTC ``Z`` timestamps, sorted sets, decoded bytes,
  non-finite floats replaced by the redaction marker.

Non-functional requirements
- Emitting never blocks: a full queue discards the record and counts the drop.
- Nothing here writes to stdout; command output owns it.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, cast

import structlog

from dumpscope.security.redaction import REDACTED_VALUE, redact_structure

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

DEFAULT_LOG_FILENAME: Final[str] = "dumpscope.jsonl"
DEFAULT_LOGGER_NAME: Final[str] = "dumpscope"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096

_CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "correlation_id", "session_id")

# Attributes every LogRecord carries; anything else on a record came in through ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
    "correlation",
}

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "dumpscope_log_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for :func:`setup_structured_logging`."""

    log_dir: Path | str | None = None
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = _DEFAULT_QUEUE_SIZE
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stderr: bool = True
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    log_dir: Path | str | None = None,
    level: int | str | None = None,
    log_to_stderr: bool = True,
) -> StructuredLoggingHandle:
    """Configure logging from an ``[observability]`` config section.

    ``log_dir`` and ``level`` win over the section values. Without a log directory
    records only reach stderr (or nowhere, with ``log_to_stderr=False``).
    """

    section = observability_config or {}
    chosen_level = level if level is not None else section.get("log_level", "INFO")
    chosen_dir = log_dir if log_dir is not None else section.get("log_dir")
    redact = bool(section.get("redact_secrets", True))

    return setup_structured_logging(
        LoggingConfig(
            log_dir=chosen_dir if isinstance(chosen_dir, (Path, str)) and chosen_dir else None,
            level=chosen_level if isinstance(chosen_level, (int, str)) else "INFO",
            log_to_stderr=log_to_stderr,
            redactor=None if redact else _keep_as_is,
        )
    )


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that counts and discards records instead of blocking on a full queue."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._drop_lock = threading.Lock()
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread has its own context; capture correlation here.
        record.correlation = get_correlation_context()
        return cast("logging.LogRecord", super().prepare(record))

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


class _JsonLineFormatter(logging.Formatter):
    def __init__(self, redactor: LogRedactor) -> None:
        super().__init__()
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": _utc_iso(datetime.fromtimestamp(record.created, tz=UTC), "milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": _as_text(self._redact(record.getMessage())),
        }
        line.update(sorted(_correlation_for(record).items()))

        extras: dict[str, JSONValue] = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in _CORRELATION_KEYS and not key.startswith("_")
        }
        if extras:
            line["fields"] = self._redact(extras)
        if record.exc_info is not None:
            line["exception"] = _as_text(self._redact(self.formatException(record.exc_info)))

        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(slots=True, eq=False)
class StructuredLoggingHandle:
    """A live logging setup. Shut it down to stop the listener and close the sinks."""

    logger: logging.Logger
    log_path: Path | None
    queue_handler: _DroppingQueueHandler = field(repr=False)
    sinks: tuple[logging.Handler, ...] = field(repr=False)
    listener: logging.handlers.QueueListener = field(repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = False

    @property
    def dropped_records(self) -> int:
        return self.queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        pending = cast("queue.Queue[logging.LogRecord]", self.queue_handler.queue)
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while pending.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.01)
        for sink in self.sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self.listener.stop()
            self.logger.removeHandler(self.queue_handler)
            self.queue_handler.close()
            for sink in self.sinks:
                sink.close()
            self._closed = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install the queue-backed JSON-line logger and route structlog through it.

    Any previously active setup is shut down first.
    """

    level = _parse_log_level(config.level)
    logger_name = _require_text(config.logger_name, "logger_name")
    filename = _require_text(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")

    previous = _swap_active_handle(None)
    if previous is not None:
        previous.shutdown()

    log_path: Path | None = None
    sinks: list[logging.Handler] = []
    if config.log_dir is not None:
        directory = Path(config.log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / filename
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))

    formatter = _JsonLineFormatter(config.redactor or default_log_redactor)
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)
    if not sinks:
        sinks.append(logging.NullHandler())

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    queue_handler = _DroppingQueueHandler(queue.Queue(maxsize=config.queue_size))
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(queue_handler.queue, *sinks, respect_handler_level=True)
    listener.start()
    logger.addHandler(queue_handler)

    _configure_structlog(level)

    handle = StructuredLoggingHandle(
        logger=logger,
        log_path=log_path,
        queue_handler=queue_handler,
        sinks=tuple(sinks),
        listener=listener,
    )
    _swap_active_handle(handle)
    _register_atexit_shutdown()
    return handle


def _configure_structlog(level: int) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


def configure_console_logging(level: int | str = "WARNING") -> None:
    """Route structlog events to stderr as JSON lines until ``setup_logging`` takes over.

    Keeps stdout free for machine-readable command output.
    """

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(_parse_log_level(level)),
        cache_logger_on_first_use=False,
    )


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is not None:
        resolved.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop the listener and close sinks of ``handle`` (default: the active setup)."""

    global _ACTIVE_HANDLE
    resolved = handle if handle is not None else get_active_logging_handle()
    if resolved is None:
        return
    resolved.shutdown(timeout_seconds=timeout_seconds)
    with _ACTIVE_HANDLE_LOCK:
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Add, replace, or (with ``None``) remove correlation fields; returns a reset token."""

    state = get_correlation_context()
    for key, value in fields.items():
        name = _require_text(key, "correlation key")
        if value is None:
            state.pop(name, None)
        else:
            state[name] = _require_text(value, "correlation value")
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(run_id: str | None = None, **fields: str | None) -> Iterator[None]:
    """Tag every record logged inside the block with ``run_id`` and ``fields``."""

    token = set_correlation_fields(run_id=run_id, **fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    return cast("JSONValue", redact_structure(value))


def _keep_as_is(value: JSONValue) -> JSONValue:
    return value


def _swap_active_handle(new: StructuredLoggingHandle | None) -> StructuredLoggingHandle | None:
    global _ACTIVE_HANDLE
    with _ACTIVE_HANDLE_LOCK:
        previous, _ACTIVE_HANDLE = _ACTIVE_HANDLE, new
    return previous


def _register_atexit_shutdown() -> None:
    global _ATEXIT_REGISTERED
    if not _ATEXIT_REGISTERED:
        atexit.register(shutdown_logging)
        _ATEXIT_REGISTERED = True


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must not be empty")
    return stripped


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    try:
        return logging.getLevelNamesMapping()[value.strip().upper()]
    except KeyError:
        raise ValueError(f"unsupported logging level {value!r}") from None


def _utc_iso(value: datetime, timespec: str) -> str:
    aware = value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
    return aware.isoformat(timespec=timespec).replace("+00:00", "Z")


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _correlation_for(record: logging.LogRecord) -> dict[str, str]:
    captured = getattr(record, "correlation", None)
    merged = dict(captured) if isinstance(captured, Mapping) else get_correlation_context()
    for key in _CORRELATION_KEYS:
        explicit = getattr(record, key, None)
        if isinstance(explicit, str) and explicit.strip():
            merged[key] = explicit.strip()
    return merged


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else REDACTED_VALUE
    if isinstance(value, datetime):
        return _utc_iso(value, "microseconds")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_to_json(item) for item in value), key=lambda item: json.dumps(item, sort_keys=True))
    return repr(value)


__all__ = [
    "DEFAULT_LOG_FILENAME",
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_console_logging",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
