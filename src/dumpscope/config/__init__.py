"""
dumpscope config package public API.

File: src/dumpscope/config/__init__.py
Last updated: 2026-02-13

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``dumpscope.toml`` + ``DUMPSCOPE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from dumpscope.config.loader import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from dumpscope.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    DumpscopeConfig,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DumpscopeConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "dump_redacted",
    "load_config",
    "merge_config",
    "normalize_paths",
    "validate_config",
]
