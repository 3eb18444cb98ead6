"""Security helpers: secret redaction for errors, traces, logs, and tool output."""

from dumpscope.security.redaction import (
    DEFAULT_DETAIL_LIMIT,
    REDACTED_VALUE,
    RedactionConfig,
    RedactionError,
    SecretFinding,
    cap_detail,
    is_sensitive_key,
    redact_and_cap,
    redact_structure,
    redact_text,
    scan_for_secrets,
)

__all__ = [
    "DEFAULT_DETAIL_LIMIT",
    "REDACTED_VALUE",
    "RedactionConfig",
    "RedactionError",
    "SecretFinding",
    "cap_detail",
    "is_sensitive_key",
    "redact_and_cap",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
