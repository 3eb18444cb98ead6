"""
dumpscope — security redaction utilities

File: src/dumpscope/security/redaction.py
Last updated: 2026-02-13

Purpose
- Implements redaction rules for provider error bodies, tool output, traces, and logs.

What should be included in this file
- Secret patterns (bearer tokens, ``x-api-key``, ``key=`` assignments, JSON secret pairs,
  vendor key prefixes) and configurable allowlists/denylists.
- A length cap for error details that may embed response bodies.

Functional requirements
- Must ensure no credential reaches an exception message, a trace file, or a log line.
- Debugger hex tokens (``0x`` + 8 hex digits) are never treated as secrets.

Non-functional requirements
- Deterministic and idempotent: redacting already-redacted text is a no-op.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final, TypeAlias

REDACTED_VALUE: Final[str] = "***REDACTED***"
TRUNCATION_MARKER: Final[str] = "... (truncated)"
DEFAULT_DETAIL_LIMIT: Final[int] = 2_000

KeyPath: TypeAlias = tuple[str, ...]
PatternLike: TypeAlias = str | re.Pattern[str]

DEFAULT_SENSITIVE_KEY_DENYLIST: Final[frozenset[str]] = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "auth_token",
        "authorization",
        "bearer_token",
        "client_secret",
        "credential",
        "credentials",
        "password",
        "passwd",
        "private_key",
        "refresh_token",
        "secret",
        "secret_key",
        "session_token",
        "token",
        "x_api_key",
    }
)

_DEFAULT_SENSITIVE_KEY_SUFFIXES: Final[tuple[str, ...]] = (
    "_api_key",
    "_access_token",
    "_refresh_token",
    "_auth_token",
    "_client_secret",
    "_private_key",
    "_password",
    "_secret",
    "_token",
)

# Keys that end in a sensitive suffix but only ever name where a secret lives.
_SAFE_KEY_SUFFIXES: Final[tuple[str, ...]] = ("_env", "_env_var")

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_DEBUGGER_HEX_TOKEN = re.compile(r"^0x[0-9a-fA-F]{8}$")


@dataclass(frozen=True, slots=True)
class SecretFinding:
    """One secret-like match discovered during scanning."""

    rule: str
    start: int
    end: int
    sample: str


@dataclass(frozen=True, slots=True)
class _TextRule:
    name: str
    pattern: re.Pattern[str]
    sensitive_group: int | None = None


_DEFAULT_TEXT_RULES: Final[tuple[_TextRule, ...]] = (
    _TextRule(
        name="private_key_block",
        pattern=re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?"
            r"-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
    ),
    _TextRule(
        name="bearer_token",
        pattern=re.compile(r"(?i)(\bbearer\s+)([A-Za-z0-9\-._~+/=]{6,})"),
        sensitive_group=2,
    ),
    _TextRule(
        name="x_api_key_header",
        pattern=re.compile(r"(?i)(\bx-api-key\s*[:=]\s*[\"']?)([^\s\"',;]+)"),
        sensitive_group=2,
    ),
    _TextRule(
        name="json_secret_pair",
        pattern=re.compile(
            r"(?i)(\"(?:api[_-]?key|apikey|password|passwd|secret|client[_-]?secret|"
            r"access[_-]?token|refresh[_-]?token|[a-z0-9_]*_api_key)\"\s*:\s*\")"
            r"([^\"]+)"
        ),
        sensitive_group=2,
    ),
    _TextRule(
        name="explicit_secret_assignment",
        pattern=re.compile(
            r"(?i)(\b(?:api[_-]?key|apikey|access[_-]?token|refresh[_-]?token|token|"
            r"password|passwd|secret|client[_-]?secret)\b\s*[:=]\s*[\"']?)"
            r"([^\s\"'&,;]+)"
        ),
        sensitive_group=2,
    ),
    _TextRule(
        name="key_assignment",
        pattern=re.compile(r"(?i)(\bkey\s*=\s*[\"']?)([^\s\"'&,;]+)"),
        sensitive_group=2,
    ),
    _TextRule(
        name="vendor_api_key",
        pattern=re.compile(r"\b((?:sk-ant|sk|rk)-)([A-Za-z0-9_-]{6,})"),
        sensitive_group=2,
    ),
    _TextRule(name="aws_access_key", pattern=re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")),
    _TextRule(name="github_token", pattern=re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,255}\b")),
    _TextRule(
        name="jwt",
        pattern=re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b"),
    ),
)


class RedactionError(RuntimeError):
    """Raised when fail-closed redaction cannot process its input."""


@dataclass(frozen=True, slots=True)
class RedactionConfig:
    """Policy that controls detection/redaction behavior."""

    replacement: str = REDACTED_VALUE
    fail_closed: bool = False
    key_allowlist: frozenset[str] = frozenset()
    key_denylist: frozenset[str] = DEFAULT_SENSITIVE_KEY_DENYLIST
    text_allowlist_patterns: tuple[PatternLike, ...] = ()
    text_denylist_patterns: tuple[PatternLike, ...] = ()


DEFAULT_REDACTION_CONFIG: Final[RedactionConfig] = RedactionConfig()


@dataclass(frozen=True, slots=True)
class _ResolvedConfig:
    source: RedactionConfig
    replacement: str
    fail_closed: bool
    key_allowlist: frozenset[str]
    key_denylist: frozenset[str]
    text_allowlist_patterns: tuple[re.Pattern[str], ...]
    text_rules: tuple[_TextRule, ...]


def scan_for_secrets(text: str, *, config: RedactionConfig | None = None) -> tuple[SecretFinding, ...]:
    """Scan text for secret-like patterns in deterministic rule order."""

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")

    resolved = _resolve_config(config)
    findings: list[SecretFinding] = []
    for rule in resolved.text_rules:
        for match in rule.pattern.finditer(text):
            sample = _extract_match_sample(match, rule.sensitive_group)
            if not _should_treat_match_as_sensitive(sample, resolved=resolved):
                continue
            start, end = match.span(rule.sensitive_group or 0)
            findings.append(SecretFinding(rule=rule.name, start=start, end=end, sample=sample))
    findings.sort(key=lambda item: (item.start, item.end, item.rule))
    return tuple(findings)


def is_sensitive_key(key: str, *, config: RedactionConfig | None = None) -> bool:
    """Return whether ``key`` should be treated as sensitive by default policy."""

    return _is_sensitive_key_resolved(key, resolved=_resolve_config(config))


def redact_text(text: str, *, config: RedactionConfig | None = None) -> str:
    """Redact secret-like text. Deterministic and idempotent for stable inputs."""

    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")

    resolved = _resolve_config(config)
    try:
        redacted = text
        for rule in resolved.text_rules:
            redacted = _apply_text_rule(redacted, rule=rule, resolved=resolved)
        return redacted
    except re.error as exc:
        if resolved.fail_closed:
            raise RedactionError("redaction failed for text") from exc
        return text


def redact_structure(value: object, *, config: RedactionConfig | None = None) -> object:
    """Return a deep-redacted copy of nested mappings/sequences."""

    resolved = _resolve_config(config)
    return _redact_structure(value=value, key_path=(), seen=set(), resolved=resolved)


def cap_detail(
    text: str,
    *,
    limit: int = DEFAULT_DETAIL_LIMIT,
    marker: str = TRUNCATION_MARKER,
) -> str:
    """Truncate ``text`` so the result (marker included) never exceeds ``limit``."""

    if limit <= len(marker):
        raise ValueError("limit must exceed the truncation marker length")
    if len(text) <= limit:
        return text
    return text[: limit - len(marker)] + marker


def redact_and_cap(text: str, *, limit: int = DEFAULT_DETAIL_LIMIT) -> str:
    """Apply secret redaction then the length cap; used for every body-bearing error."""

    return cap_detail(redact_text(text), limit=limit)


def _resolve_config(config: RedactionConfig | None) -> _ResolvedConfig:
    base = config if config is not None else DEFAULT_REDACTION_CONFIG

    key_allowlist = frozenset(
        normalized for normalized in (_normalize_key(item) for item in base.key_allowlist) if normalized
    )
    key_denylist = frozenset(
        normalized for normalized in (_normalize_key(item) for item in base.key_denylist) if normalized
    )
    custom_rules = tuple(
        _TextRule(name=f"custom_denylist_{index}", pattern=pattern)
        for index, pattern in enumerate(_compile_patterns(base.text_denylist_patterns))
    )

    return _ResolvedConfig(
        source=base,
        replacement=base.replacement or REDACTED_VALUE,
        fail_closed=base.fail_closed,
        key_allowlist=key_allowlist,
        key_denylist=key_denylist,
        text_allowlist_patterns=_compile_patterns(base.text_allowlist_patterns),
        text_rules=_DEFAULT_TEXT_RULES + custom_rules,
    )


def _compile_patterns(patterns: tuple[PatternLike, ...]) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
        elif isinstance(pattern, str):
            compiled.append(re.compile(pattern))
        else:
            raise TypeError(f"unsupported pattern type: {type(pattern).__name__}")
    return tuple(compiled)


def _extract_match_sample(match: re.Match[str], group: int | None) -> str:
    if group is None:
        return match.group(0)
    return match.group(group)


def _apply_text_rule(text: str, *, rule: _TextRule, resolved: _ResolvedConfig) -> str:
    def repl(match: re.Match[str]) -> str:
        candidate = _extract_match_sample(match, rule.sensitive_group)
        if not _should_treat_match_as_sensitive(candidate, resolved=resolved):
            return match.group(0)
        return _replace_sensitive_group(match, replacement=resolved.replacement, group=rule.sensitive_group)

    return rule.pattern.sub(repl, text)


def _should_treat_match_as_sensitive(candidate: str, *, resolved: _ResolvedConfig) -> bool:
    if candidate == resolved.replacement:
        return False
    if _DEBUGGER_HEX_TOKEN.match(candidate):
        return False
    return not any(pattern.search(candidate) for pattern in resolved.text_allowlist_patterns)


def _replace_sensitive_group(match: re.Match[str], *, replacement: str, group: int | None) -> str:
    if group is None:
        return replacement

    full = match.group(0)
    start, end = match.span(group)
    offset_start = start - match.start(0)
    offset_end = end - match.start(0)
    return f"{full[:offset_start]}{replacement}{full[offset_end:]}"


def _is_sensitive_key_resolved(key: str, *, resolved: _ResolvedConfig) -> bool:
    normalized = _normalize_key(key)
    if not normalized:
        return resolved.fail_closed
    if normalized in resolved.key_allowlist:
        return False
    if any(normalized.endswith(suffix) for suffix in _SAFE_KEY_SUFFIXES):
        return False
    if normalized in resolved.key_denylist:
        return True
    return any(normalized.endswith(suffix) for suffix in _DEFAULT_SENSITIVE_KEY_SUFFIXES)


def _redact_structure(
    *,
    value: object,
    key_path: KeyPath,
    seen: set[int],
    resolved: _ResolvedConfig,
) -> object:
    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return redact_text(value, config=resolved.source)

    if isinstance(value, Mapping):
        value_id = id(value)
        if value_id in seen:
            return resolved.replacement if resolved.fail_closed else value
        seen.add(value_id)
        try:
            out: dict[object, object] = {}
            for key, item in value.items():
                key_name = str(key)
                if isinstance(key, str) and _is_sensitive_key_resolved(key, resolved=resolved):
                    out[key] = resolved.replacement
                else:
                    out[key] = _redact_structure(
                        value=item,
                        key_path=(*key_path, key_name),
                        seen=seen,
                        resolved=resolved,
                    )
            return out
        finally:
            seen.discard(value_id)

    if isinstance(value, (list, tuple)):
        value_id = id(value)
        if value_id in seen:
            return resolved.replacement if resolved.fail_closed else value
        seen.add(value_id)
        try:
            items = [
                _redact_structure(
                    value=item,
                    key_path=(*key_path, f"[{index}]"),
                    seen=seen,
                    resolved=resolved,
                )
                for index, item in enumerate(value)
            ]
            return items if isinstance(value, list) else tuple(items)
        finally:
            seen.discard(value_id)

    return resolved.replacement if resolved.fail_closed else value


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


__all__ = [
    "DEFAULT_DETAIL_LIMIT",
    "DEFAULT_REDACTION_CONFIG",
    "DEFAULT_SENSITIVE_KEY_DENYLIST",
    "REDACTED_VALUE",
    "TRUNCATION_MARKER",
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
