"""Public observability primitives: structured logging and provider tracing."""

from dumpscope.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    configure_console_logging,
    correlation_scope,
    default_log_redactor,
    flush_logging,
    get_active_logging_handle,
    get_correlation_context,
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)
from dumpscope.observability.trace import (
    JsonlTraceSink,
    NullTraceSink,
    TraceRecord,
    TraceSink,
    emit_trace,
)

__all__ = [
    "JsonlTraceSink",
    "LogRedactor",
    "LoggingConfig",
    "NullTraceSink",
    "StructuredLoggingHandle",
    "TraceRecord",
    "TraceSink",
    "configure_console_logging",
    "correlation_scope",
    "default_log_redactor",
    "emit_trace",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
