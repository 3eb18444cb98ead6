"""
dumpscope — unit tests for config schema validation

File: tests/unit/config/test_config_schema.py
Last updated: 2026-02-13

Purpose
- Verify strict config validation produces structured, deterministic issues.

Coverage:
- Built-in defaults validate and carry the quick/thorough profiles.
- Unknown fields versus embedded-secret fields.
- Required fields, numeric bounds, enums, env var names, schema version.
- Profile names and overlays.
- Deep merge and redaction helpers.

Functional requirements
- Offline only.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

import pytest

from dumpscope.config.schema import (
    BUILTIN_PROFILE_NAMES,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    apply_profile_overlay,
    default_config,
    dump_redacted,
    merge_config,
    validate_config,
)


def _issues(config: object) -> list[tuple[str, str]]:
    return [(issue.path, issue.message) for issue in validate_config(config).issues]


def test_default_config_is_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.config is not None
    assert set(BUILTIN_PROFILE_NAMES) <= set(result.config["profiles"])


def test_non_object_root() -> None:
    assert _issues([1, 2]) == [("<root>", "expected object, got list")]


def test_unknown_and_secret_fields_are_distinguished() -> None:
    config = merge_config(
        default_config(),
        {"agent": {"bogus": 1}, "providers": {"openai": {"apiKey": "sk-123"}}},
    )

    assert _issues(config) == [
        ("providers.openai.apiKey", "embedded secret values are forbidden; use an *_env key with an env var name"),
        ("agent.bogus", "unknown field"),
    ]


def test_missing_sections_are_reported() -> None:
    config = default_config()
    del config["agent"]  # type: ignore[misc]

    assert ("agent", "missing required field") in _issues(config)


@pytest.mark.parametrize(
    ("overlay", "expected"),
    [
        ({"agent": {"max_iterations": 0}}, ("agent.max_iterations", "must be >= 1")),
        ({"agent": {"preview_chars": True}}, ("agent.preview_chars", "expected integer, got bool")),
        ({"agent": {"juror_enabled": "yes"}}, ("agent.juror_enabled", "expected boolean, got str")),
        (
            {"providers": {"default": "gemini"}},
            ("providers.default", "invalid value 'gemini'; expected one of: anthropic, openai, openrouter"),
        ),
        (
            {"providers": {"openai": {"api_key_env": "openai-key"}}},
            ("providers.openai.api_key_env", "must be an env var name (example: OPENROUTER_API_KEY)"),
        ),
        (
            {"providers": {"openai": {"timeout_seconds": float("inf")}}},
            ("providers.openai.timeout_seconds", "must be finite"),
        ),
        (
            {"providers": {"openai": {"thinking_budgets": {"low": 1}}}},
            ("providers.openai.thinking_budgets", "unknown field"),
        ),
        (
            {"providers": {"anthropic": {"thinking_budgets": {"max": 1}}}},
            ("providers.anthropic.thinking_budgets.max", "unknown field"),
        ),
        ({"observability": {"log_dir": " "}}, ("observability.log_dir", "must not be empty")),
        (
            {"meta": {"schema_version": ConfigSchemaVersion + 1}},
            (
                "meta.schema_version",
                f"schema version {ConfigSchemaVersion + 1} is not supported; expected {ConfigSchemaVersion}",
            ),
        ),
    ],
)
def test_field_rules(overlay: dict[str, object], expected: tuple[str, str]) -> None:
    assert _issues(merge_config(default_config(), overlay)) == [expected]


def test_redact_secrets_flag_is_not_a_secret() -> None:
    config = merge_config(default_config(), {"observability": {"redact_secrets": False}})

    assert validate_config(config).is_valid


def test_profile_names_and_overlays_are_validated() -> None:
    config = merge_config(
        default_config(),
        {
            "profiles": {
                "Bad": {},
                "ci": {"meta": {"schema_version": 1}, "agent": {"max_iterations": 0}},
            }
        },
    )

    assert _issues(config) == [
        ("profiles.Bad", "profile name must match ^[a-z][a-z0-9_-]*$"),
        ("profiles.ci.meta", "unknown field"),
        ("profiles.ci.agent.max_iterations", "must be >= 1"),
    ]


def test_active_profile_must_exist() -> None:
    result = validate_config(default_config(), active_profile="nightly")

    assert result.config is None
    assert result.issues == (ConfigValidationIssue("profiles", "profile 'nightly' is not defined"),)


def test_apply_profile_overlay() -> None:
    base = default_config()

    quick = apply_profile_overlay(base, "quick")

    assert quick["agent"]["max_iterations"] == 4
    assert base["agent"]["max_iterations"] != 4
    assert apply_profile_overlay(base, None) == apply_profile_overlay(base, "  ")
    with pytest.raises(ConfigValidationError, match="profile 'missing' is not defined"):
        apply_profile_overlay(base, "missing")


def test_merge_config_is_deep_and_non_mutating() -> None:
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    overlay = {"a": {"b": 2}, "e": {"f": True}}

    merged = merge_config(base, overlay)

    assert merged == {"a": {"b": 2, "c": [1, 2]}, "d": 1, "e": {"f": True}}
    assert base == {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    merged["a"]["c"].append(3)
    assert base["a"]["c"] == [1, 2]


def test_dump_redacted() -> None:
    redacted = dump_redacted(
        {"providers": {"openai": {"api_key_env": "OPENAI_API_KEY", "accessToken": "t"}}, "items": [{"password": "p"}]}
    )

    assert redacted == {
        "items": [{"password": "<redacted>"}],
        "providers": {"openai": {"accessToken": "<redacted>", "api_key_env": "OPENAI_API_KEY"}},
    }
    assert dump_redacted("nope") == {}


def test_validation_error_rendering() -> None:
    error = ConfigValidationError([ConfigValidationIssue("agent.x", "unknown field")])

    assert str(error) == "invalid config:\n- agent.x: unknown field"
    assert str(ConfigValidationError([])) == "invalid config:\nunknown validation failure"
