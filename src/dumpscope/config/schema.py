"""
dumpscope — configuration schema and validation.

File: src/dumpscope/config/schema.py
Last updated: 2026-02-13

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support profile overlays including quick/thorough.
- Reject embedded secrets; providers name an env var instead.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from dumpscope.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_EVIDENCE_INDEX_LIMIT,
    DEFAULT_JUROR_EVIDENCE_LIMIT,
    DEFAULT_LOOP_GUARD_ITERATIONS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PREVIEW_CHARS,
    DEFAULT_PROGRESS_SUMMARY_CHARS,
    PROVIDER_NAMES,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("quick", "thorough")
REASONING_EFFORT_VALUES: Final[tuple[str, ...]] = ("low", "medium", "high")
PRESERVE_CONTENT_BLOCK_MODES: Final[tuple[str, ...]] = ("auto", "always", "never")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {
        "secret",
        "token",
        "password",
        "passwd",
        "api",
        "key",
        "apikey",
        "private",
        "credential",
        "credentials",
        "auth",
    }
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "refresh_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)

_NON_SECRET_KEYS: Final[frozenset[str]] = frozenset({"redact_secrets"})

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("observability", "log_dir"),
    ("observability", "trace_dir"),
)

_COMMON_PROVIDER_KEYS: Final[frozenset[str]] = frozenset(
    {"api_key_env", "model", "base_url", "reasoning_effort", "timeout_seconds"}
)
_PROVIDER_EXTRA_KEYS: Final[dict[str, frozenset[str]]] = {
    "openrouter": frozenset({"app_title", "app_referer"}),
    "openai": frozenset(),
    "anthropic": frozenset({"thinking_budgets"}),
}


class MetaConfig(TypedDict):
    schema_version: int


class ProviderSettings(TypedDict, total=False):
    api_key_env: str
    model: str
    base_url: str
    reasoning_effort: str
    timeout_seconds: float
    app_title: str
    app_referer: str
    thinking_budgets: dict[str, int]


class ProvidersConfig(TypedDict):
    default: Literal["openrouter", "openai", "anthropic"]
    openrouter: ProviderSettings
    openai: ProviderSettings
    anthropic: ProviderSettings


class AgentConfig(TypedDict):
    max_iterations: int
    loop_guard_iterations: int
    evidence_index_limit: int
    juror_evidence_limit: int
    preview_chars: int
    require_baseline: bool
    juror_enabled: bool


class SamplingConfig(TypedDict):
    progress_summary_chars: int
    preserve_content_blocks: Literal["auto", "always", "never"]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_dir: NotRequired[str | None]
    trace_dir: NotRequired[str | None]
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    providers: dict[str, object]
    agent: dict[str, object]
    sampling: dict[str, object]
    observability: dict[str, object]


class DumpscopeConfig(TypedDict):
    meta: MetaConfig
    providers: ProvidersConfig
    agent: AgentConfig
    sampling: SamplingConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[DumpscopeConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "providers": {
        "default": "openrouter",
        "openrouter": {
            "api_key_env": "OPENROUTER_API_KEY",
            "model": "openrouter/auto",
            "base_url": "https://openrouter.ai/api/v1",
            "timeout_seconds": 120.0,
            "app_title": "dumpscope",
            "app_referer": "https://github.com/dumpscope/dumpscope",
        },
        "openai": {
            "api_key_env": "OPENAI_API_KEY",
            "model": "gpt-4o-mini",
            "base_url": "https://api.openai.com/v1",
            "timeout_seconds": 120.0,
        },
        "anthropic": {
            "api_key_env": "ANTHROPIC_API_KEY",
            "model": "claude-sonnet-4-5",
            "base_url": "https://api.anthropic.com/v1",
            "timeout_seconds": 120.0,
            "thinking_budgets": {"low": 512, "medium": 1024, "high": 2048},
        },
    },
    "agent": {
        "max_iterations": DEFAULT_MAX_ITERATIONS,
        "loop_guard_iterations": DEFAULT_LOOP_GUARD_ITERATIONS,
        "evidence_index_limit": DEFAULT_EVIDENCE_INDEX_LIMIT,
        "juror_evidence_limit": DEFAULT_JUROR_EVIDENCE_LIMIT,
        "preview_chars": DEFAULT_PREVIEW_CHARS,
        "require_baseline": True,
        "juror_enabled": True,
    },
    "sampling": {
        "progress_summary_chars": DEFAULT_PROGRESS_SUMMARY_CHARS,
        "preserve_content_blocks": "auto",
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": None,
        "trace_dir": None,
        "redact_secrets": True,
    },
    "profiles": {
        "quick": {
            "agent": {"max_iterations": 4, "juror_enabled": False},
        },
        "thorough": {
            "agent": {"max_iterations": 20},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> DumpscopeConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return deterministic redacted representation for logs and ``config show``."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    if isinstance(redacted, dict):
        return redacted
    return {}


def _validate_root(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"meta", "providers", "agent", "sampling", "observability", "profiles"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed - {"profiles"}, path, issues)

    out: dict[str, Any] = {}
    _section(payload, key="meta", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_meta(section, p, issues))
    _section(payload, key="providers", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_providers(section, p, issues, partial=False))
    _section(payload, key="agent", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_agent(section, p, issues, partial=False))
    _section(payload, key="sampling", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_sampling(section, p, issues, partial=False))
    _section(payload, key="observability", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_observability(section, p, issues, partial=False))
    _section(payload, key="profiles", path=path, issues=issues, out=out,
             validator=lambda section, p: _validate_profiles(section, p, issues))
    if "profiles" not in out:
        out["profiles"] = {}
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, section_path)


def _validate_meta(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(
                    _join(path, "schema_version"),
                    f"schema version {parsed} is not supported; expected {ConfigSchemaVersion}",
                )
    return out


def _validate_providers(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"default", *PROVIDER_NAMES}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"default"}, path, issues)

    out: dict[str, Any] = {}
    if "default" in payload:
        parsed_default = _as_enum(
            payload["default"], _join(path, "default"), issues, allowed_values=PROVIDER_NAMES
        )
        if parsed_default is not None:
            out["default"] = parsed_default

    for provider_name in PROVIDER_NAMES:
        raw = payload.get(provider_name)
        if raw is None:
            continue
        section_path = _join(path, provider_name)
        section = _as_object(raw, section_path, issues)
        if section is None:
            continue
        out[provider_name] = _validate_provider_settings(
            section,
            section_path,
            issues,
            allowed=_COMMON_PROVIDER_KEYS | _PROVIDER_EXTRA_KEYS[provider_name],
        )
    return out


def _validate_provider_settings(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    allowed: frozenset[str],
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(allowed), path, issues)

    out: dict[str, Any] = {}
    if "api_key_env" in payload:
        parsed_env = _as_env_name(payload["api_key_env"], _join(path, "api_key_env"), issues)
        if parsed_env is not None:
            out["api_key_env"] = parsed_env

    for key in ("model", "base_url", "app_title", "app_referer"):
        if key in payload:
            parsed = _as_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed

    if "reasoning_effort" in payload:
        parsed_effort = _as_enum(
            payload["reasoning_effort"],
            _join(path, "reasoning_effort"),
            issues,
            allowed_values=REASONING_EFFORT_VALUES,
        )
        if parsed_effort is not None:
            out["reasoning_effort"] = parsed_effort

    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.001
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout

    if "thinking_budgets" in payload:
        budgets_path = _join(path, "thinking_budgets")
        budgets = _as_object(payload["thinking_budgets"], budgets_path, issues)
        if budgets is not None:
            _reject_unknown_keys(budgets, set(REASONING_EFFORT_VALUES), budgets_path, issues)
            parsed_budgets: dict[str, int] = {}
            for level in REASONING_EFFORT_VALUES:
                if level not in budgets:
                    continue
                parsed_budget = _as_int(budgets[level], _join(budgets_path, level), issues, minimum=0)
                if parsed_budget is not None:
                    parsed_budgets[level] = parsed_budget
            out["thinking_budgets"] = parsed_budgets

    return out


def _validate_agent(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    int_fields = {
        "max_iterations": 1,
        "loop_guard_iterations": 1,
        "evidence_index_limit": 1,
        "juror_evidence_limit": 1,
        "preview_chars": 16,
    }
    bool_fields = ("require_baseline", "juror_enabled")
    allowed = set(int_fields) | set(bool_fields)
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key, minimum in int_fields.items():
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=minimum)
            if parsed is not None:
                out[key] = parsed
    for key in bool_fields:
        if key in payload:
            parsed_bool = _as_bool(payload[key], _join(path, key), issues)
            if parsed_bool is not None:
                out[key] = parsed_bool
    return out


def _validate_sampling(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"progress_summary_chars", "preserve_content_blocks"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "progress_summary_chars" in payload:
        parsed = _as_int(
            payload["progress_summary_chars"],
            _join(path, "progress_summary_chars"),
            issues,
            minimum=16,
        )
        if parsed is not None:
            out["progress_summary_chars"] = parsed
    if "preserve_content_blocks" in payload:
        parsed_mode = _as_enum(
            payload["preserve_content_blocks"],
            _join(path, "preserve_content_blocks"),
            issues,
            allowed_values=PRESERVE_CONTENT_BLOCK_MODES,
        )
        if parsed_mode is not None:
            out["preserve_content_blocks"] = parsed_mode
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "trace_dir", "redact_secrets"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, {"log_level", "redact_secrets"}, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    for key in ("log_dir", "trace_dir"):
        if key not in payload:
            continue
        if payload[key] is None:
            out[key] = None
            continue
        parsed_dir = _as_path_text(payload[key], _join(path, key), issues)
        if parsed_dir is not None:
            out[key] = parsed_dir

    if "redact_secrets" in payload:
        parsed_redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if parsed_redact is not None:
            out["redact_secrets"] = parsed_redact
    return out


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_profile_overlay(profile_obj, profile_path, issues)
    return out


def _validate_profile_overlay(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str], dict[str, Any]]] = {
        "providers": lambda section, p: _validate_providers(section, p, issues, partial=True),
        "agent": lambda section, p: _validate_agent(section, p, issues, partial=True),
        "sampling": lambda section, p: _validate_sampling(section, p, issues, partial=True),
        "observability": lambda section, p: _validate_observability(section, p, issues, partial=True),
    }
    _reject_unknown_keys(payload, set(validators), path, issues)

    out: dict[str, Any] = {}
    for section in sorted(validators):
        _section(payload, key=section, path=path, issues=issues, validator=validators[section], out=out)
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: OPENROUTER_API_KEY)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env") or normalized in _NON_SECRET_KEYS:
        return False
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    tokens = tuple(token for token in normalized.split("_") if token)
    return any(token in _SENSITIVE_KEY_TOKENS for token in tokens)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = (
                    _deep_copy_mapping(existing) if isinstance(existing, Mapping) else {}
                )
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        out: dict[str, object] = {}
        for key in sorted(value):
            if _looks_sensitive_key(key):
                out[key] = "<redacted>"
            else:
                out[key] = _redact_value(value[key], key)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "PRESERVE_CONTENT_BLOCK_MODES",
    "REASONING_EFFORT_VALUES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DumpscopeConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "validate_config",
]
