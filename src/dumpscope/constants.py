"""Stable constants shared across dumpscope planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted/config contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
CHECKPOINT_SCHEMA_VERSION: Final[int] = 1

# Provider names accepted by config and the registry.
PROVIDER_NAMES: Final[tuple[str, ...]] = ("openrouter", "openai", "anthropic")
DEFAULT_PROVIDER: Final[str] = "openrouter"

# Agent loop defaults.
DEFAULT_MAX_ITERATIONS: Final[int] = 10
DEFAULT_LOOP_GUARD_ITERATIONS: Final[int] = 2
DEFAULT_EVIDENCE_INDEX_LIMIT: Final[int] = 25
DEFAULT_JUROR_EVIDENCE_LIMIT: Final[int] = 30
DEFAULT_PREVIEW_CHARS: Final[int] = 400

# Sampling/progress defaults.
DEFAULT_PROGRESS_SUMMARY_CHARS: Final[int] = 160

__all__ = [
    "CHECKPOINT_SCHEMA_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_EVIDENCE_INDEX_LIMIT",
    "DEFAULT_JUROR_EVIDENCE_LIMIT",
    "DEFAULT_LOOP_GUARD_ITERATIONS",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_PREVIEW_CHARS",
    "DEFAULT_PROGRESS_SUMMARY_CHARS",
    "DEFAULT_PROVIDER",
    "PROVIDER_NAMES",
]
