"""
Unit tests for hashing helpers.

Coverage:
- ``sha256:<hex>`` fingerprints and the empty-input marker.
- Canonical JSON key ordering.
"""

from __future__ import annotations

import hashlib

from dumpscope.utils.hashing import (
    EMPTY_FINGERPRINT,
    canonical_json,
    sha256_fingerprint,
    sha256_text,
)


def test_fingerprint_of_empty_input_is_fixed_marker() -> None:
    assert sha256_fingerprint("") == EMPTY_FINGERPRINT
    assert sha256_fingerprint(None) == "sha256:0"


def test_fingerprint_matches_hashlib() -> None:
    expected = hashlib.sha256(b"report_index:{}").hexdigest()

    assert sha256_text("report_index:{}") == expected
    assert sha256_fingerprint("report_index:{}") == f"sha256:{expected}"


def test_canonical_json_is_order_independent() -> None:
    assert canonical_json({"b": 1, "a": [2, {"d": 3, "c": 4}]}) == (
        '{"a":[2,{"c":4,"d":3}],"b":1}'
    )
    assert canonical_json({"x": 1, "y": 2}) == canonical_json({"y": 2, "x": 1})
