"""
Unit tests for session state and the session store.

Coverage:
- Session keys compare case-insensitively.
- Metadata snapshots are parsed from ``report_get(path="metadata")`` output.
- A changed dump id or generation timestamp clears evidence and the last checkpoint.
- Store lifecycle and per-key locks; reset drops a lock only when no run holds it.
"""

from __future__ import annotations

import json

from dumpscope.knowledge_plane.session_state import (
    CheckpointRecord,
    ReportSnapshot,
    SessionKey,
    SessionState,
    SessionStateStore,
    parse_metadata_snapshot,
)


def _metadata(dump_id: str | None, generated_at: str | None = "2026-02-13T10:00:00Z") -> str:
    value: dict[str, object] = {}
    if dump_id is not None:
        value["dumpId"] = dump_id
    if generated_at is not None:
        value["generatedAt"] = generated_at
    return json.dumps({"path": "metadata", "value": value})


def _seeded_state() -> SessionState:
    state = SessionState(SessionKey(scope="http://dbg", session_id="s1", artifact_id="d1"))
    state.evidence.record(tool_name="exec", arguments_json="{}", result_text="x", preview="x")
    state.last_checkpoint = CheckpointRecord(kind="carry_forward", prompt_kind="conclusion", payload_json="{}")
    return state


def test_session_keys_are_case_insensitive() -> None:
    assert SessionKey(scope=" HTTP://Dbg ", session_id="S1", artifact_id="D1") == SessionKey(
        scope="http://dbg", session_id="s1", artifact_id="d1"
    )


def test_parse_metadata_snapshot() -> None:
    assert parse_metadata_snapshot(_metadata("abc")) == ReportSnapshot(
        dump_id="abc", generated_at="2026-02-13T10:00:00Z"
    )
    assert parse_metadata_snapshot(_metadata(None, None)) is None
    assert parse_metadata_snapshot(json.dumps({"path": "analysis.summary", "value": {"dumpId": "x"}})) is None
    assert parse_metadata_snapshot("not json") is None
    assert parse_metadata_snapshot(None) is None


def test_first_snapshot_is_recorded_without_reset() -> None:
    state = _seeded_state()

    assert state.observe_tool_result(_metadata("abc")) is None
    assert state.snapshot == ReportSnapshot(dump_id="abc", generated_at="2026-02-13T10:00:00Z")
    assert len(state.evidence) == 1
    assert state.last_checkpoint is not None


def test_dump_id_change_clears_evidence_and_checkpoint() -> None:
    state = _seeded_state()
    state.observe_tool_result(_metadata("abc"))

    reason = state.observe_tool_result(_metadata("xyz"))

    assert reason == "Report dumpId changed (abc -> xyz)."
    assert len(state.evidence) == 0
    assert state.last_checkpoint is None
    assert state.report_dump_id == "xyz"


def test_generated_at_change_clears_state() -> None:
    state = _seeded_state()
    state.observe_tool_result(_metadata("abc", "t1"))

    reason = state.observe_tool_result(_metadata("ABC", "t2"))

    assert reason == "Report generatedAt changed (t1 -> t2)."
    assert len(state.evidence) == 0


def test_same_snapshot_and_unrelated_results_keep_state() -> None:
    state = _seeded_state()
    state.observe_tool_result(_metadata("abc"))

    assert state.observe_tool_result(_metadata("ABC")) is None
    assert state.observe_tool_result("frames: #0 main") is None
    assert len(state.evidence) == 1


def test_store_lifecycle_and_locks() -> None:
    store = SessionStateStore()
    key = SessionKey(session_id="s1")

    state = store.get_or_create(key)

    assert store.get_or_create(SessionKey(session_id="S1")) is state
    assert store.get(SessionKey(session_id="other")) is None
    assert store.keys() == (key,)
    assert store.lock_for(key) is store.lock_for(SessionKey(session_id="S1"))
    assert store.lock_for(key) is not store.lock_for(SessionKey(session_id="other"))
    assert store.reset(key) is True
    assert store.reset(key) is False
    assert store.get(key) is None


def test_reset_drops_idle_lock() -> None:
    store = SessionStateStore()
    key = SessionKey(session_id="s1")
    store.get_or_create(key)
    before = store.lock_for(key)

    store.reset(key)

    assert store.lock_for(key) is not before


async def test_reset_keeps_lock_held_by_a_run() -> None:
    store = SessionStateStore()
    key = SessionKey(session_id="s1")
    store.get_or_create(key)
    lock = store.lock_for(key)

    async with lock:
        store.reset(key)
        assert store.lock_for(key) is lock
