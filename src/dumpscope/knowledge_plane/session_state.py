"""
dumpscope — per-session agent state and its registry

File: src/dumpscope/knowledge_plane/session_state.py
Last updated: 2026-02-13

Purpose
- Hold what survives between agent turns of one analysis session: the evidence ledger, the last
  checkpoint, and the report snapshot identity (dump id + generation timestamp).

What should be included in this file
- ``SessionKey``, ``CheckpointRecord``, ``SessionState``, ``SessionStateStore``.
- Snapshot tracking from ``report_get(path="metadata")`` tool results.

Functional requirements
- When a metadata result reveals a different dump id or generation timestamp, evidence and the
  last checkpoint are cleared immediately.
- The store is passed by handle; there is no module-level registry.

Non-functional requirements
- One ``asyncio.Lock`` per key; sessions never block each other.
"""

from __future__ import annotations

import asyncio
import json
import threading
from dataclasses import dataclass

import structlog

from dumpscope.knowledge_plane.evidence_ledger import EvidenceLedger

logger = structlog.get_logger(__name__)


def _normalize_key_part(value: str | None) -> str:
    return (value or "").strip().casefold()


@dataclass(frozen=True, slots=True)
class SessionKey:
    """Scope (e.g. server URL), session id, and artifact (dump) id; compared case-insensitively."""

    scope: str = ""
    session_id: str = ""
    artifact_id: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope", _normalize_key_part(self.scope))
        object.__setattr__(self, "session_id", _normalize_key_part(self.session_id))
        object.__setattr__(self, "artifact_id", _normalize_key_part(self.artifact_id))


@dataclass(frozen=True, slots=True)
class CheckpointRecord:
    kind: str
    prompt_kind: str
    payload_json: str


@dataclass(frozen=True, slots=True)
class ReportSnapshot:
    dump_id: str | None = None
    generated_at: str | None = None


def parse_metadata_snapshot(result_text: str | None) -> ReportSnapshot | None:
    """Read ``{"path": "metadata", "value": {"dumpId", "generatedAt"}}`` tool output."""

    if result_text is None or not result_text.strip():
        return None
    try:
        document = json.loads(result_text)
    except json.JSONDecodeError:
        return None
    if not isinstance(document, dict):
        return None
    path = document.get("path")
    if not isinstance(path, str) or path.lower() != "metadata":
        return None
    value = document.get("value")
    if not isinstance(value, dict):
        return None

    dump_id = value.get("dumpId")
    generated_at = value.get("generatedAt")
    dump_id = dump_id.strip() if isinstance(dump_id, str) and dump_id.strip() else None
    generated_at = (
        generated_at.strip() if isinstance(generated_at, str) and generated_at.strip() else None
    )
    if dump_id is None and generated_at is None:
        return None
    return ReportSnapshot(dump_id=dump_id, generated_at=generated_at)


class SessionState:
    """Mutable state of one session; callers serialize mutation with the store's key lock."""

    def __init__(self, key: SessionKey) -> None:
        self.key = key
        self.evidence = EvidenceLedger()
        self.last_checkpoint: CheckpointRecord | None = None
        self.report_dump_id: str | None = None
        self.report_generated_at: str | None = None

    @property
    def snapshot(self) -> ReportSnapshot:
        return ReportSnapshot(dump_id=self.report_dump_id, generated_at=self.report_generated_at)

    def observe_tool_result(self, result_text: str | None) -> str | None:
        """Update the report snapshot from a tool result; return the reset reason if invalidated."""

        snapshot = parse_metadata_snapshot(result_text)
        if snapshot is None:
            return None

        reason: str | None = None
        if (
            self.report_dump_id
            and snapshot.dump_id
            and self.report_dump_id.casefold() != snapshot.dump_id.casefold()
        ):
            reason = f"Report dumpId changed ({self.report_dump_id} -> {snapshot.dump_id})."
        elif (
            self.report_generated_at
            and snapshot.generated_at
            and self.report_generated_at.casefold() != snapshot.generated_at.casefold()
        ):
            reason = (
                f"Report generatedAt changed ({self.report_generated_at} -> {snapshot.generated_at})."
            )

        if reason is not None:
            self.invalidate(reason)
        if snapshot.dump_id:
            self.report_dump_id = snapshot.dump_id
        if snapshot.generated_at:
            self.report_generated_at = snapshot.generated_at
        return reason

    def invalidate(self, reason: str) -> None:
        self.evidence.reset()
        self.last_checkpoint = None
        logger.info(
            "session_invalidated",
            scope=self.key.scope,
            session_id=self.key.session_id,
            artifact_id=self.key.artifact_id,
            reason=reason,
        )


class SessionStateStore:
    """Registry of ``SessionState`` by ``SessionKey``, owned by the orchestration layer."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._states: dict[SessionKey, SessionState] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}

    def get_or_create(self, key: SessionKey) -> SessionState:
        with self._guard:
            state = self._states.get(key)
            if state is None:
                state = SessionState(key)
                self._states[key] = state
            return state

    def get(self, key: SessionKey) -> SessionState | None:
        with self._guard:
            return self._states.get(key)

    def reset(self, key: SessionKey) -> bool:
        """Forget the state for ``key``; its lock goes too unless a run still holds it."""

        with self._guard:
            removed = self._states.pop(key, None)
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        return removed is not None

    def keys(self) -> tuple[SessionKey, ...]:
        with self._guard:
            return tuple(self._states)

    def lock_for(self, key: SessionKey) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock


__all__ = [
    "CheckpointRecord",
    "ReportSnapshot",
    "SessionKey",
    "SessionState",
    "SessionStateStore",
    "parse_metadata_snapshot",
]
