"""
dumpscope — unit tests for config loader

File: tests/unit/config/test_config_loader.py
Last updated: 2026-02-13

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

Coverage:
- Precedence: CLI > env > file > defaults.
- ``DUMPSCOPE_`` env var path mapping with ``__`` separators and type coercion.
- Legacy ``LLM_*`` and ``<VENDOR>_MODEL`` variables.
- Reasoning-effort overrides that are invalid are ignored.
- Profiles selected by argument or env.
- Path normalization relative to the config file.
- Redacted effective config dumping.

Functional requirements
- Offline only; no provider keys needed.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dumpscope.config.loader import (
    CONFIG_PATH_ENV,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from dumpscope.config.schema import ConfigValidationError
from dumpscope.constants import DEFAULT_MAX_ITERATIONS


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    empty_path = _write_config(tmp_path / "empty.toml", "")
    config_path = _write_config(tmp_path / "dumpscope.toml", "[agent]\nmax_iterations = 4\n")
    env = {"DUMPSCOPE_AGENT__MAX_ITERATIONS": "6"}

    assert load_config(empty_path, environ={})["agent"]["max_iterations"] == DEFAULT_MAX_ITERATIONS
    assert load_config(config_path, environ={})["agent"]["max_iterations"] == 4
    assert load_config(config_path, environ=env)["agent"]["max_iterations"] == 6
    cli_loaded = load_config(config_path, environ=env, cli_overrides={"agent.max_iterations": 7})
    assert cli_loaded["agent"]["max_iterations"] == 7


def test_env_mapping_coerces_nested_fields(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    loaded = load_config(
        config_path,
        environ={
            "DUMPSCOPE_PROVIDERS__OPENAI__TIMEOUT_SECONDS": "30",
            "DUMPSCOPE_AGENT__REQUIRE_BASELINE": "off",
            "DUMPSCOPE_SAMPLING__PRESERVE_CONTENT_BLOCKS": " always ",
        },
    )

    assert loaded["providers"]["openai"]["timeout_seconds"] == 30.0
    assert loaded["agent"]["require_baseline"] is False
    assert loaded["sampling"]["preserve_content_blocks"] == "always"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("DUMPSCOPE_AGENT__MAX_ITERATIONS", "many"),
        ("DUMPSCOPE_AGENT__JUROR_ENABLED", "maybe"),
        ("DUMPSCOPE_PROVIDERS__ANTHROPIC__TIMEOUT_SECONDS", "soon"),
    ],
)
def test_invalid_env_coercion_names_the_variable(tmp_path: Path, name: str, value: str) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    with pytest.raises(ConfigLoadError, match=name):
        load_config(config_path, environ={name: value})


def test_legacy_llm_variables(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    loaded = load_config(
        config_path,
        environ={
            "LLM_PROVIDER": " OpenAI ",
            "OPENAI_MODEL": "gpt-5-mini",
            "ANTHROPIC_BASE_URL": "http://localhost:9000/v1",
            "LLM_REASONING_EFFORT": "High",
            "LLM_TIMEOUT_SECONDS": "15",
        },
    )

    assert loaded["providers"]["default"] == "openai"
    assert loaded["providers"]["openai"]["model"] == "gpt-5-mini"
    assert loaded["providers"]["anthropic"]["base_url"] == "http://localhost:9000/v1"
    assert {loaded["providers"][name]["reasoning_effort"] for name in ("openai", "anthropic", "openrouter")} == {
        "high"
    }
    assert loaded["providers"]["openrouter"]["timeout_seconds"] == 15.0


def test_prefixed_env_wins_over_legacy_variables(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    loaded = load_config(
        config_path,
        environ={"LLM_PROVIDER": "openai", "DUMPSCOPE_PROVIDERS__DEFAULT": "anthropic"},
    )

    assert loaded["providers"]["default"] == "anthropic"


def test_unknown_llm_provider_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    with pytest.raises(ConfigLoadError, match="LLM_PROVIDER must be one of"):
        load_config(config_path, environ={"LLM_PROVIDER": "gemini"})


@pytest.mark.parametrize(
    "env",
    [
        {"LLM_REASONING_EFFORT": "unset"},
        {"LLM_REASONING_EFFORT": "extreme"},
        {"DUMPSCOPE_PROVIDERS__ANTHROPIC__REASONING_EFFORT": "extreme"},
    ],
)
def test_invalid_reasoning_effort_is_ignored(tmp_path: Path, env: dict[str, str]) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    loaded = load_config(config_path, environ=env)

    assert "reasoning_effort" not in loaded["providers"]["anthropic"]


def test_prefixed_reasoning_effort_is_normalized(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    loaded = load_config(config_path, environ={"DUMPSCOPE_PROVIDERS__ANTHROPIC__REASONING_EFFORT": " LOW "})

    assert loaded["providers"]["anthropic"]["reasoning_effort"] == "low"


def test_profiles_from_argument_and_env(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    quick = load_config(config_path, profile="quick", environ={})
    thorough = load_config(config_path, environ={"DUMPSCOPE_PROFILE": "thorough"})

    assert quick["agent"]["max_iterations"] == 4
    assert quick["agent"]["juror_enabled"] is False
    assert thorough["agent"]["max_iterations"] == 20
    assert thorough["agent"]["juror_enabled"] is True


def test_file_defined_profile_overlay(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "dumpscope.toml",
        '[profiles.local.providers]\ndefault = "openai"\n\n[profiles.local.providers.openai]\nmodel = "o3"\n',
    )

    loaded = load_config(config_path, cli_overrides={"profile": "local"}, environ={})

    assert loaded["providers"]["default"] == "openai"
    assert loaded["providers"]["openai"]["model"] == "o3"


def test_undefined_profile_fails_validation(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")

    with pytest.raises(ConfigValidationError, match="profile 'nope' is not defined"):
        load_config(config_path, profile="nope", environ={})


def test_config_file_resolution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    env_path = _write_config(tmp_path / "conf" / "custom.toml", "[agent]\nmax_iterations = 9\n")

    implicit = load_config(environ={})
    from_env = load_config(environ={CONFIG_PATH_ENV: str(env_path)})

    assert implicit["agent"]["max_iterations"] == DEFAULT_MAX_ITERATIONS
    assert from_env["agent"]["max_iterations"] == 9
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_invalid_toml_is_a_load_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "[agent\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_embedded_secret_in_file_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", '[providers.openai]\napi_key = "sk-live"\n')

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    assert excinfo.value.issues[0].path == "providers.openai.api_key"
    assert "embedded secret values are forbidden" in excinfo.value.issues[0].message
    assert "sk-live" not in str(excinfo.value)


def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "nested" / "dumpscope.toml", '[observability]\nlog_dir = "logs"\n')

    loaded = load_config(config_path, environ={"DUMPSCOPE_OBSERVABILITY__TRACE_DIR": "../traces"})

    assert loaded["observability"]["log_dir"] == (tmp_path / "nested" / "logs").resolve().as_posix()
    assert loaded["observability"]["trace_dir"] == (tmp_path / "traces").resolve().as_posix()


def test_loader_is_deterministic(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "dumpscope.toml", "")
    env = {"DUMPSCOPE_AGENT__PREVIEW_CHARS": "64", "OPENROUTER_MODEL": "anthropic/claude-sonnet-4"}

    first = dump_effective_config(load_config(config_path, environ=env))
    second = dump_effective_config(load_config(config_path, environ=env))

    assert first == second
    assert json.loads(first)["agent"]["preview_chars"] == 64


def test_dump_effective_config_keeps_env_names_and_indents() -> None:
    rendered = dump_effective_config(
        {"providers": {"openai": {"api_key_env": "OPENAI_API_KEY", "secret": "x"}}}, indent=2
    )

    assert json.loads(rendered) == {
        "providers": {"openai": {"api_key_env": "OPENAI_API_KEY", "secret": "<redacted>"}}
    }
    assert "\n  " in rendered
