"""
dumpscope — agent checkpoints

File: src/dumpscope/control_plane/checkpoints.py
Last updated: 2026-02-13

Purpose
- Build the structured JSON snapshots the agent loop injects when it halts, is redirected by
  the baseline gate, or stops making progress.

What should be included in this file
- ``Checkpoint`` model and ``CheckpointBuilder`` (carry_forward, loop_break, baseline_required).
- Next-step selection, including rewrites of rejected ``report_get`` calls.

Functional requirements
- ``baseline_required`` always proposes the planned call of the first unmet baseline tag.
- ``loop_break`` proposes exactly one next step and names the call not to repeat.

Non-functional requirements
- Output is deterministic for identical session state.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Final

import structlog

from dumpscope.constants import CHECKPOINT_SCHEMA_VERSION, DEFAULT_EVIDENCE_INDEX_LIMIT
from dumpscope.control_plane.baseline import BaselineState, evaluate_baseline
from dumpscope.control_plane.prompt_classifier import PromptKind
from dumpscope.control_plane.tool_results import (
    SuggestedToolCall,
    compact_args,
    extract_try_hints,
)
from dumpscope.knowledge_plane.evidence_ledger import EvidenceEntry, EvidenceLedger
from dumpscope.knowledge_plane.session_state import CheckpointRecord, SessionState
from dumpscope.synthesis_plane.providers.base import ChatMessage

logger = structlog.get_logger(__name__)

CARRY_FORWARD: Final[str] = "carry_forward"
LOOP_BREAK: Final[str] = "loop_break"
BASELINE_REQUIRED: Final[str] = "baseline_required"

CARRY_FORWARD_FACTS: Final[tuple[str, ...]] = (
    "This is an internal checkpoint to preserve stable evidence IDs across context pruning.",
    "Tool-result caching is disabled; repeated tool calls execute, but avoid loops.",
)
LOOP_BREAK_FACTS: Final[tuple[str, ...]] = (
    "Loop guard: no new evidence was produced across repeated iterations.",
    "Follow the single nextStep below; do not repeat the immediately prior failing call "
    "without changing the query.",
)
BASELINE_REQUIRED_FACTS: Final[tuple[str, ...]] = (
    "Baseline required: do not conclude yet.",
    "Fetch the missing baseline item(s) first (starting with nextSteps[0]) so conclusions are "
    "evidence-backed.",
)

_SLICE_RE: Final[re.Pattern[str]] = re.compile(r"\[[^\]]*\]")
_ITEMS_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"\.items", re.IGNORECASE)
_SLICE_FALLBACK_LIMIT: Final[int] = 10
_ITEMS_FALLBACK_LIMIT: Final[int] = 20
_MAX_INDEX_ITEMS: Final[int] = 200
CHECKPOINT_MESSAGE_PREFIX: Final[str] = "[dumpscope checkpoint]"


@dataclass(frozen=True, slots=True)
class Checkpoint:
    kind: str
    prompt_kind: PromptKind
    payload: dict[str, object]

    def to_json(self) -> str:
        return json.dumps(self.payload, indent=2, ensure_ascii=False)

    def to_record(self) -> CheckpointRecord:
        return CheckpointRecord(
            kind=self.kind,
            prompt_kind=self.prompt_kind.value,
            payload_json=self.to_json(),
        )

    def to_message(self) -> ChatMessage:
        return ChatMessage.user(f"{CHECKPOINT_MESSAGE_PREFIX}\n{self.to_json()}")

    @property
    def next_steps(self) -> list[dict[str, str]]:
        steps = self.payload.get("nextSteps", [])
        return list(steps) if isinstance(steps, list) else []


def evidence_index(
    ledger: EvidenceLedger,
    *,
    limit: int,
    include_seen: bool = True,
) -> list[dict[str, object]]:
    """Last ``limit`` ledger entries in the compact shape shown to the model."""

    bounded = max(1, min(limit, _MAX_INDEX_ITEMS))
    rows: list[dict[str, object]] = []
    for entry in ledger.entries[-bounded:]:
        row: dict[str, object] = {
            "id": entry.evidence_id,
            "tool": entry.tool_name,
            "tags": list(entry.tags),
            "preview": entry.preview,
            "error": entry.is_error,
        }
        if include_seen:
            row["seen"] = entry.seen_count
        rows.append(row)
    return rows


class CheckpointBuilder:
    def __init__(self, *, evidence_index_limit: int = DEFAULT_EVIDENCE_INDEX_LIMIT) -> None:
        self._evidence_index_limit = evidence_index_limit

    def carry_forward(
        self,
        session: SessionState,
        *,
        prompt_kind: PromptKind,
        iteration: int,
        tool_calls_executed: int,
        total_new_evidence: int,
    ) -> Checkpoint:
        baseline = evaluate_baseline(session.evidence)
        payload = self._payload(
            session,
            kind=CARRY_FORWARD,
            prompt_kind=prompt_kind,
            iteration=iteration,
            tool_calls_executed=tool_calls_executed,
            baseline=baseline,
            facts=CARRY_FORWARD_FACTS,
            do_not_repeat=(),
            next_steps=(),
            total_new_evidence=total_new_evidence,
        )
        return self._finish(CARRY_FORWARD, prompt_kind, payload)

    def loop_break(
        self,
        session: SessionState,
        *,
        prompt_kind: PromptKind,
        iteration: int,
        tool_calls_executed: int,
    ) -> Checkpoint:
        baseline = evaluate_baseline(session.evidence)
        latest = session.evidence.latest()
        next_step = select_next_step(
            latest,
            baseline,
            wants_conclusion=prompt_kind is PromptKind.CONCLUSION,
        )
        payload = self._payload(
            session,
            kind=LOOP_BREAK,
            prompt_kind=prompt_kind,
            iteration=iteration,
            tool_calls_executed=tool_calls_executed,
            baseline=baseline,
            facts=LOOP_BREAK_FACTS,
            do_not_repeat=(latest.tool_key,) if latest is not None else (),
            next_steps=(next_step,),
        )
        return self._finish(LOOP_BREAK, prompt_kind, payload)

    def baseline_required(
        self,
        session: SessionState,
        *,
        prompt_kind: PromptKind,
        iteration: int,
        tool_calls_executed: int,
    ) -> Checkpoint:
        baseline = evaluate_baseline(session.evidence)
        payload = self._payload(
            session,
            kind=BASELINE_REQUIRED,
            prompt_kind=prompt_kind,
            iteration=iteration,
            tool_calls_executed=tool_calls_executed,
            baseline=baseline,
            facts=BASELINE_REQUIRED_FACTS,
            do_not_repeat=(),
            next_steps=baseline.missing_calls[:1],
        )
        return self._finish(BASELINE_REQUIRED, prompt_kind, payload)

    def _payload(
        self,
        session: SessionState,
        *,
        kind: str,
        prompt_kind: PromptKind,
        iteration: int,
        tool_calls_executed: int,
        baseline: BaselineState,
        facts: tuple[str, ...],
        do_not_repeat: tuple[str, ...],
        next_steps: tuple[SuggestedToolCall, ...],
        total_new_evidence: int | None = None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "version": CHECKPOINT_SCHEMA_VERSION,
            "kind": kind,
            "iteration": iteration,
            "toolCallsExecuted": tool_calls_executed,
        }
        if total_new_evidence is not None:
            payload["totalNewEvidence"] = total_new_evidence
        payload.update(
            {
                "promptKind": prompt_kind.value,
                "reportSnapshot": {
                    "dumpId": session.report_dump_id or "",
                    "generatedAt": session.report_generated_at or "",
                },
                "phase": {
                    "baselineComplete": baseline.complete,
                    "missingBaseline": list(baseline.missing_tags),
                },
                "baselineEvidence": dict(baseline.evidence_by_tag),
                "evidenceIndex": evidence_index(
                    session.evidence, limit=self._evidence_index_limit
                ),
                "facts": list(facts),
                "doNotRepeat": list(do_not_repeat),
                "nextSteps": [step.to_dict() for step in next_steps],
            }
        )
        return payload

    @staticmethod
    def _finish(kind: str, prompt_kind: PromptKind, payload: dict[str, object]) -> Checkpoint:
        checkpoint = Checkpoint(kind=kind, prompt_kind=prompt_kind, payload=payload)
        logger.info(
            "checkpoint_built",
            kind=kind,
            prompt_kind=prompt_kind.value,
            iteration=payload.get("iteration"),
            next_steps=[step.get("tool") for step in checkpoint.next_steps],
        )
        return checkpoint


def select_next_step(
    latest: EvidenceEntry | None,
    baseline: BaselineState,
    *,
    wants_conclusion: bool,
) -> SuggestedToolCall:
    """Pick the single step a loop-break checkpoint proposes; first rule that applies wins."""

    if latest is not None:
        hints = extract_try_hints(latest.preview)
        if hints:
            return hints[0]
        rewritten = _rewrite_rejected_report_get(latest)
        if rewritten is not None:
            return rewritten
    if wants_conclusion and baseline.missing_calls:
        return baseline.missing_calls[0]
    return SuggestedToolCall("report_index", "{}")


def _rewrite_rejected_report_get(latest: EvidenceEntry) -> SuggestedToolCall | None:
    if latest.tool_name.lower() != "report_get" or not latest.is_error:
        return None
    arguments = _load_object(latest.arguments_json)
    if arguments is None:
        return None
    preview = latest.preview.lower()

    if "invalid_cursor" in preview:
        kept = {key: value for key, value in arguments.items() if key.lower() != "cursor"}
        return SuggestedToolCall("report_get", compact_args(kept))

    path = arguments.get("path")
    if not isinstance(path, str) or not path.strip():
        return None
    if "invalid array index" in preview or _SLICE_RE.search(path):
        parent = _SLICE_RE.sub("", path).strip()
        if parent:
            return SuggestedToolCall(
                "report_get", compact_args({"path": parent, "limit": _SLICE_FALLBACK_LIMIT})
            )
    if "segment 'items' cannot be resolved" in preview and _ITEMS_SEGMENT_RE.search(path):
        fixed = _ITEMS_SEGMENT_RE.sub("", path).strip()
        return SuggestedToolCall(
            "report_get", compact_args({"path": fixed, "limit": _ITEMS_FALLBACK_LIMIT})
        )
    return None


def _load_object(arguments_json: str) -> dict[str, object] | None:
    try:
        document = json.loads(arguments_json)
    except json.JSONDecodeError:
        return None
    return document if isinstance(document, dict) else None


__all__ = [
    "BASELINE_REQUIRED",
    "BASELINE_REQUIRED_FACTS",
    "CARRY_FORWARD",
    "CARRY_FORWARD_FACTS",
    "CHECKPOINT_MESSAGE_PREFIX",
    "LOOP_BREAK",
    "LOOP_BREAK_FACTS",
    "Checkpoint",
    "CheckpointBuilder",
    "evidence_index",
    "select_next_step",
]
