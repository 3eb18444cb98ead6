"""
dumpscope — runtime config loader.

File: src/dumpscope/config/loader.py
Last updated: 2026-02-13

Purpose
- Build the effective dumpscope config: built-in defaults, then ``dumpscope.toml``, then
  environment, then CLI flags, then the selected profile overlay.

What should be included in this file
- Config file discovery (explicit path, ``DUMPSCOPE_CONFIG``, working directory).
- ``DUMPSCOPE_SECTION__FIELD`` overrides typed from the default config, plus the legacy
  ``LLM_*`` and vendor ``*_MODEL`` / ``*_BASE_URL`` variables.
- ``log_dir`` / ``trace_dir`` resolved against the config file's directory.

Functional requirements
- Every result passes schema validation; embedded API keys are rejected.
- The profile is picked by argument, CLI override, or ``DUMPSCOPE_PROFILE``; file-defined
  ``[profiles.<name>]`` tables overlay like the built-in ones.
- Invalid reasoning-effort overrides from the environment are ignored, not fatal.

Non-functional requirements
- Same inputs, same output: overrides are applied in sorted order.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

import structlog

from dumpscope.config.schema import (
    PATH_FIELDS,
    REASONING_EFFORT_VALUES,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)
from dumpscope.constants import PROVIDER_NAMES

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILE: Final[str] = "dumpscope.toml"
ENV_PREFIX: Final[str] = "DUMPSCOPE_"
CONFIG_PATH_ENV: Final[str] = "DUMPSCOPE_CONFIG"
_ENV_PATH_SEPARATOR: Final[str] = "__"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_UNSET_EFFORT_TOKENS: Final[frozenset[str]] = frozenset({"unset", "default", "auto", "none"})

ValueKind = Literal["str", "int", "float", "bool"]


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: ValueKind


class ConfigLoadError(ValueError):
    """The config file or an override could not be read or typed."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Raises ``ConfigLoadError`` for unreadable files and bad overrides and
    ``ConfigValidationError`` when the merged result fails the schema.
    """

    env_map = dict(os.environ if environ is None else environ)
    resolved_path, explicit_path = _resolve_config_path(config_path, env_map)
    cli_map = dict(cli_overrides or {})

    file_payload = _load_toml_file(resolved_path, required=explicit_path)
    selected_profile = _resolve_profile(profile=profile, cli_overrides=cli_map, environ=env_map)

    merged = merge_config(default_config(), file_payload)
    merged = assert_valid_config(merged)

    if selected_profile is not None:
        merged = apply_profile_overlay(merged, selected_profile)

    merged = merge_config(merged, _collect_legacy_env_overrides(env_map))
    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_map))
    merged = assert_valid_config(merged, active_profile=selected_profile)

    normalized = normalize_paths(merged, base_dir=resolved_path.parent)
    normalized = assert_valid_config(normalized, active_profile=selected_profile)
    logger.debug(
        "config_loaded",
        path=str(resolved_path),
        profile=selected_profile,
        provider=normalized["providers"]["default"],
    )
    return normalized


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative ``log_dir`` / ``trace_dir`` values against ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        value = _get_nested(materialized, field_path)
        if isinstance(value, str):
            _set_nested(materialized, field_path, _normalize_one_path(value, base_dir))
    return materialized


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Serialize ``config`` with secrets masked, keys sorted."""

    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        dump_redacted(config),
        sort_keys=True,
        separators=separators,
        indent=indent,
        ensure_ascii=False,
    )


def _resolve_config_path(
    config_path: str | Path | None,
    environ: Mapping[str, str],
) -> tuple[Path, bool]:
    if config_path is not None:
        return Path(config_path).expanduser().resolve(), True
    from_env = environ.get(CONFIG_PATH_ENV)
    if from_env is not None and from_env.strip():
        return Path(from_env.strip()).expanduser().resolve(), True
    return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve(), False


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _resolve_profile(
    *,
    profile: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    if profile is not None:
        return profile.strip() or None

    cli_profile = cli_overrides.get("profile")
    if cli_profile is not None:
        if not isinstance(cli_profile, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
        return cli_profile.strip() or None

    env_profile = environ.get(f"{ENV_PREFIX}PROFILE")
    if env_profile is None:
        return None
    return env_profile.strip() or None


def _collect_legacy_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Map the historical ``LLM_*`` and ``<VENDOR>_MODEL`` variables onto config paths."""

    overrides: dict[str, Any] = {}

    provider = _env_text(environ, "LLM_PROVIDER")
    if provider is not None:
        lowered = provider.lower()
        if lowered not in PROVIDER_NAMES:
            raise ConfigLoadError(
                f"LLM_PROVIDER must be one of: {', '.join(PROVIDER_NAMES)}"
            )
        _set_nested(overrides, ("providers", "default"), lowered)

    for name in PROVIDER_NAMES:
        prefix = name.upper()
        model = _env_text(environ, f"{prefix}_MODEL")
        if model is not None:
            _set_nested(overrides, ("providers", name, "model"), model)
        base_url = _env_text(environ, f"{prefix}_BASE_URL")
        if base_url is not None:
            _set_nested(overrides, ("providers", name, "base_url"), base_url)

    effort = _env_text(environ, "LLM_REASONING_EFFORT")
    if effort is not None:
        normalized = effort.lower()
        if normalized in REASONING_EFFORT_VALUES:
            for name in PROVIDER_NAMES:
                _set_nested(overrides, ("providers", name, "reasoning_effort"), normalized)
        elif normalized not in _UNSET_EFFORT_TOKENS:
            logger.warning("config_reasoning_effort_ignored", source="LLM_REASONING_EFFORT")

    timeout = _env_text(environ, "LLM_TIMEOUT_SECONDS")
    if timeout is not None:
        parsed = _coerce_env(timeout, "float", "LLM_TIMEOUT_SECONDS", ("providers", "*", "timeout_seconds"))
        for name in PROVIDER_NAMES:
            _set_nested(overrides, ("providers", name, "timeout_seconds"), parsed)

    return overrides


def _collect_env_overrides(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        if binding.path[-1] == "reasoning_effort":
            normalized = raw.strip().lower()
            if normalized not in REASONING_EFFORT_VALUES:
                logger.warning("config_reasoning_effort_ignored", source=env_name)
                continue
            _set_nested(overrides, binding.path, normalized)
            continue
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path and path[0] == "profiles":
            continue
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)

    optional: list[_Binding] = [
        _Binding(("observability", "log_dir"), "str"),
        _Binding(("observability", "trace_dir"), "str"),
    ]
    for name in PROVIDER_NAMES:
        optional.append(_Binding(("providers", name, "reasoning_effort"), "str"))
    for binding in optional:
        bindings.setdefault(_env_name_for_path(binding.path), binding)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(raw: str, value_type: ValueKind, env_name: str, path: tuple[str, ...]) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        if key == "profile":
            continue
        value = cli_overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _env_text(environ: Mapping[str, str], name: str) -> str | None:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + _ENV_PATH_SEPARATOR.join(part.upper() for part in path)


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
