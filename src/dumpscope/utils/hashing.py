"""
dumpscope — hashing utilities

File: src/dumpscope/utils/hashing.py
Last updated: 2026-02-13

Purpose
- Provide deterministic SHA-256 helpers and canonical JSON text for evidence keys.

Functional requirements
- Fingerprints are ``sha256:<hex>``; empty input maps to the fixed ``sha256:0`` marker.
- Canonical JSON sorts keys and uses compact separators so equal payloads hash equally.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import json
from typing import Final

EMPTY_FINGERPRINT: Final[str] = "sha256:0"

__all__ = [
    "EMPTY_FINGERPRINT",
    "canonical_json",
    "sha256_bytes",
    "sha256_fingerprint",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_fingerprint(text: str | None) -> str:
    """Return ``sha256:<hex>`` for ``text`` or ``sha256:0`` when it is empty."""

    if not text:
        return EMPTY_FINGERPRINT
    return f"sha256:{sha256_text(text)}"


def canonical_json(value: object) -> str:
    """Serialize ``value`` with sorted keys and compact separators."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
