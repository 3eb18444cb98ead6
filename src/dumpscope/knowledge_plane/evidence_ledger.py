"""
dumpscope — per-session evidence ledger

File: src/dumpscope/knowledge_plane/evidence_ledger.py
Last updated: 2026-02-13

Purpose
- Record every tool invocation and its outcome as an evidence entry with a stable id
  (``E1``, ``E2``, ...) the model and the juror can cite.

What should be included in this file
- ``EvidenceEntry`` / ``EvidenceUpdate`` models.
- ``EvidenceLedger`` with de-duplication keyed by (tool key hash, result hash).
- Tool-key canonicalization helpers.

Functional requirements
- Identical (tool key, result) pairs never mint a new id; they bump ``seen_count`` instead.
- Entries are append-only except for a wholesale ``reset``; ids are never reused after one.

Non-functional requirements
- Thread-safe: every operation holds one ``threading.Lock``.
- Deterministic hashing (``sha256:<hex>``, ``sha256:0`` for empty input).
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime

import structlog

from dumpscope.utils.hashing import canonical_json, sha256_fingerprint

logger = structlog.get_logger(__name__)

UNKNOWN_TOOL_NAME = "(unknown)"


def canonicalize_arguments(arguments_json: str | None) -> str:
    """Return sorted-key compact JSON for parseable arguments, else the stripped text."""

    if arguments_json is None or not arguments_json.strip():
        return "{}"
    try:
        return canonical_json(json.loads(arguments_json))
    except json.JSONDecodeError:
        return arguments_json.strip()


def build_tool_key(name: str, arguments_json: str | None) -> str:
    return f"{name.strip().lower()}:{canonicalize_arguments(arguments_json)}"


def sort_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Distinct tags (case-insensitive, first spelling wins), sorted case-insensitively."""

    seen: dict[str, str] = {}
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            continue
        seen.setdefault(tag.strip().casefold(), tag.strip())
    return tuple(sorted(seen.values(), key=str.casefold))


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class EvidenceEntry:
    evidence_id: str
    tool_name: str
    arguments_json: str
    tool_key: str
    tool_key_hash: str
    result_hash: str
    preview: str
    tags: tuple[str, ...]
    is_error: bool
    first_seen: datetime
    last_seen: datetime
    seen_count: int = 1

    def __post_init__(self) -> None:
        if not self.evidence_id.startswith("E"):
            raise ValueError("EvidenceEntry.evidence_id must look like 'E<n>'")
        for stamp_name in ("first_seen", "last_seen"):
            stamp = getattr(self, stamp_name)
            if stamp.tzinfo is None or stamp.utcoffset() is None:
                raise ValueError(f"EvidenceEntry.{stamp_name} must be timezone-aware")
        if self.seen_count < 1:
            raise ValueError("EvidenceEntry.seen_count must be >= 1")
        object.__setattr__(self, "tags", sort_tags(self.tags))

    def has_tag(self, tag: str) -> bool:
        folded = tag.casefold()
        return any(existing.casefold() == folded for existing in self.tags)

    def to_dict(self) -> dict[str, object]:
        return {
            "evidence_id": self.evidence_id,
            "tool_name": self.tool_name,
            "arguments_json": self.arguments_json,
            "tool_key": self.tool_key,
            "tool_key_hash": self.tool_key_hash,
            "result_hash": self.result_hash,
            "preview": self.preview,
            "tags": list(self.tags),
            "is_error": self.is_error,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "seen_count": self.seen_count,
        }


@dataclass(frozen=True, slots=True)
class EvidenceUpdate:
    entry: EvidenceEntry
    is_new: bool


class EvidenceLedger:
    """Append-only evidence store for one session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self._by_hash: dict[tuple[str, str], str] = {}
        self._entries: list[EvidenceEntry] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def entries(self) -> tuple[EvidenceEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def record(
        self,
        *,
        tool_name: str,
        arguments_json: str | None,
        result_text: str | None,
        preview: str,
        tags: Iterable[str] = (),
        is_error: bool = False,
        timestamp: datetime | None = None,
    ) -> EvidenceUpdate:
        """Add a new entry or fold a repeat observation into the existing one."""

        name = tool_name.strip() if tool_name and tool_name.strip() else UNKNOWN_TOOL_NAME
        canonical_args = canonicalize_arguments(arguments_json)
        tool_key = build_tool_key(name, arguments_json)
        tool_key_hash = sha256_fingerprint(tool_key)
        result_hash = sha256_fingerprint(result_text or "")
        stamp = timestamp or _utc_now()
        tag_tuple = sort_tags(tags)

        with self._lock:
            key = (tool_key_hash, result_hash)
            existing_id = self._by_hash.get(key)
            if existing_id is not None:
                index = self._index_of(existing_id)
                existing = self._entries[index]
                updated = replace(
                    existing,
                    seen_count=existing.seen_count + 1,
                    last_seen=stamp,
                    is_error=existing.is_error or is_error,
                    tags=sort_tags((*existing.tags, *tag_tuple)),
                    preview=existing.preview if existing.preview.strip() else preview,
                )
                self._entries[index] = updated
                return EvidenceUpdate(entry=updated, is_new=False)

            evidence_id = f"E{self._next_id}"
            self._next_id += 1
            entry = EvidenceEntry(
                evidence_id=evidence_id,
                tool_name=name,
                arguments_json=canonical_args,
                tool_key=tool_key,
                tool_key_hash=tool_key_hash,
                result_hash=result_hash,
                preview=preview,
                tags=tag_tuple,
                is_error=is_error,
                first_seen=stamp,
                last_seen=stamp,
            )
            self._by_hash[key] = evidence_id
            self._entries.append(entry)
        logger.debug(
            "evidence_recorded",
            evidence_id=evidence_id,
            tool=name,
            tags=list(tag_tuple),
            is_error=is_error,
        )
        return EvidenceUpdate(entry=entry, is_new=True)

    def get(self, evidence_id: str) -> EvidenceEntry | None:
        with self._lock:
            for entry in self._entries:
                if entry.evidence_id == evidence_id:
                    return entry
        return None

    def latest_by_tag(self, tag: str) -> EvidenceEntry | None:
        if not tag or not tag.strip():
            return None
        with self._lock:
            for entry in reversed(self._entries):
                if entry.has_tag(tag.strip()):
                    return entry
        return None

    def latest(self) -> EvidenceEntry | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def known_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(entry.evidence_id for entry in self._entries)

    def reset(self) -> None:
        """Drop every entry. Numbering continues, so a pre-reset id never names a newer entry."""

        with self._lock:
            self._by_hash.clear()
            self._entries.clear()

    def _index_of(self, evidence_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.evidence_id == evidence_id:
                return index
        raise KeyError(evidence_id)


__all__ = [
    "UNKNOWN_TOOL_NAME",
    "EvidenceEntry",
    "EvidenceLedger",
    "EvidenceUpdate",
    "build_tool_key",
    "canonicalize_arguments",
    "sort_tags",
]
