"""Baseline evidence policy: what must be known before the agent may conclude."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from dumpscope.control_plane.tool_results import SuggestedToolCall, compact_args

if TYPE_CHECKING:
    from dumpscope.knowledge_plane.evidence_ledger import EvidenceLedger

_STACK_FRAME_FIELDS: Final[tuple[str, ...]] = (
    "frameNumber",
    "instructionPointer",
    "module",
    "function",
    "sourceFile",
    "lineNumber",
    "isManaged",
)


@dataclass(frozen=True, slots=True)
class BaselineItem:
    tag: str
    planned_call: SuggestedToolCall


def _report_get(**arguments: object) -> SuggestedToolCall:
    return SuggestedToolCall("report_get", compact_args(arguments))


# Ordered; the first unmet item drives baseline_required checkpoints.
BASELINE_POLICY: Final[tuple[BaselineItem, ...]] = (
    BaselineItem("BASELINE_META", _report_get(path="metadata", pageKind="object", limit=50)),
    BaselineItem(
        "BASELINE_SUMMARY", _report_get(path="analysis.summary", pageKind="object", limit=50)
    ),
    BaselineItem(
        "BASELINE_ENV", _report_get(path="analysis.environment", pageKind="object", limit=50)
    ),
    BaselineItem("BASELINE_EXC_TYPE", _report_get(path="analysis.exception.type")),
    BaselineItem("BASELINE_EXC_MESSAGE", _report_get(path="analysis.exception.message")),
    BaselineItem("BASELINE_EXC_HRESULT", _report_get(path="analysis.exception.hResult")),
    BaselineItem(
        "BASELINE_EXC_STACK",
        _report_get(
            path="analysis.exception.stackTrace",
            limit=8,
            select=list(_STACK_FRAME_FIELDS),
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class BaselineState:
    complete: bool
    missing_tags: tuple[str, ...]
    missing_calls: tuple[SuggestedToolCall, ...]
    evidence_by_tag: dict[str, str]

    def to_dict(self) -> dict[str, object]:
        return {
            "baselineComplete": self.complete,
            "missingTags": list(self.missing_tags),
            "baselineEvidence": dict(self.evidence_by_tag),
        }


def evaluate_baseline(
    ledger: EvidenceLedger,
    policy: tuple[BaselineItem, ...] = BASELINE_POLICY,
) -> BaselineState:
    """A tag is missing when it has no entry or its latest entry is an error."""

    missing_tags: list[str] = []
    missing_calls: list[SuggestedToolCall] = []
    evidence_by_tag: dict[str, str] = {}
    for item in policy:
        entry = ledger.latest_by_tag(item.tag)
        if entry is None or entry.is_error:
            missing_tags.append(item.tag)
            missing_calls.append(item.planned_call)
            continue
        evidence_by_tag[item.tag] = entry.evidence_id
    return BaselineState(
        complete=not missing_tags,
        missing_tags=tuple(missing_tags),
        missing_calls=tuple(missing_calls),
        evidence_by_tag=evidence_by_tag,
    )


__all__ = ["BASELINE_POLICY", "BaselineItem", "BaselineState", "evaluate_baseline"]
