"""Utility exports for hashing and cancellation helpers."""

from dumpscope.utils.concurrency import CancellationToken, run_cancellable
from dumpscope.utils.hashing import (
    EMPTY_FINGERPRINT,
    canonical_json,
    sha256_bytes,
    sha256_fingerprint,
    sha256_text,
)

__all__ = [
    "EMPTY_FINGERPRINT",
    "CancellationToken",
    "canonical_json",
    "run_cancellable",
    "sha256_bytes",
    "sha256_fingerprint",
    "sha256_text",
]
