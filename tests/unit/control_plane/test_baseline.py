"""
Unit tests for the baseline evidence policy.

Coverage:
- Policy order and the first planned call.
- Missing tags, error entries, and completion.
"""

from __future__ import annotations

import json

from dumpscope.control_plane.baseline import BASELINE_POLICY, evaluate_baseline
from dumpscope.knowledge_plane.evidence_ledger import EvidenceLedger


def _record(ledger: EvidenceLedger, tag: str, *, is_error: bool = False, result: str = "ok") -> str:
    update = ledger.record(
        tool_name="report_get",
        arguments_json=json.dumps({"tag": tag}),
        result_text=f"{tag}:{result}",
        preview=result,
        tags=(tag,),
        is_error=is_error,
    )
    return update.entry.evidence_id


def test_first_planned_call_fetches_metadata_object() -> None:
    first = BASELINE_POLICY[0]

    assert first.tag == "BASELINE_META"
    assert first.planned_call.tool == "report_get"
    assert json.loads(first.planned_call.args_json) == {"path": "metadata", "pageKind": "object", "limit": 50}
    assert [item.tag for item in BASELINE_POLICY][-1] == "BASELINE_EXC_STACK"


def test_empty_ledger_misses_everything_in_policy_order() -> None:
    state = evaluate_baseline(EvidenceLedger())

    assert state.complete is False
    assert state.missing_tags == tuple(item.tag for item in BASELINE_POLICY)
    assert state.missing_calls[0] == BASELINE_POLICY[0].planned_call
    assert state.evidence_by_tag == {}


def test_error_entries_do_not_satisfy_the_baseline() -> None:
    ledger = EvidenceLedger()
    _record(ledger, "BASELINE_META", is_error=True)

    state = evaluate_baseline(ledger)

    assert state.missing_tags[0] == "BASELINE_META"


def test_latest_success_after_error_satisfies_tag() -> None:
    ledger = EvidenceLedger()
    _record(ledger, "BASELINE_META", is_error=True, result="error: boom")
    ok_id = _record(ledger, "BASELINE_META", result="fine")

    state = evaluate_baseline(ledger)

    assert "BASELINE_META" not in state.missing_tags
    assert state.evidence_by_tag["BASELINE_META"] == ok_id


def test_complete_baseline() -> None:
    ledger = EvidenceLedger()
    ids = {item.tag: _record(ledger, item.tag) for item in BASELINE_POLICY}

    state = evaluate_baseline(ledger)

    assert state.complete is True
    assert state.missing_calls == ()
    assert state.to_dict() == {"baselineComplete": True, "missingTags": [], "baselineEvidence": ids}
