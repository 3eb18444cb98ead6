"""
dumpscope — conclusion juror

File: src/dumpscope/control_plane/juror.py
Last updated: 2026-02-13

Purpose
- Validate a proposed crash-analysis conclusion against the session's recorded evidence with a
  single tool-free completion, and turn the juror's JSON reply into a ``Verdict``.

What should be included in this file
- Juror instructions and payload construction.
- Tolerant verdict parsing (code fences, missing fields, malformed steps).
- ``Verdict.accepts`` acceptance rule used by the agent loop.

Functional requirements
- Invalid juror output yields the default non-accepting verdict; it never raises.
- Supporting evidence ids unknown to the ledger make the verdict non-accepting.

Non-functional requirements
- The juror request carries no tools.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import structlog

from dumpscope.constants import DEFAULT_JUROR_EVIDENCE_LIMIT
from dumpscope.control_plane.baseline import evaluate_baseline
from dumpscope.control_plane.checkpoints import evidence_index
from dumpscope.control_plane.tool_results import SuggestedToolCall
from dumpscope.synthesis_plane.providers.base import ChatCompletionRequest, ChatMessage

if TYPE_CHECKING:
    from dumpscope.control_plane.protocols import CompletionFn
    from dumpscope.knowledge_plane.session_state import SessionState
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

UNKNOWN_HYPOTHESIS: Final[str] = "unknown"
ACCEPTING_CONFIDENCE: Final[frozenset[str]] = frozenset({"high", "medium"})

JUROR_INSTRUCTIONS: Final[str] = """\
You are a strict juror validating a proposed crash-analysis conclusion.

Rules:
- You have NO tools. Do not request tools or propose tool calls inside your answer.
- Output MUST be a single JSON object and nothing else (no markdown, no prose outside JSON).
- Only accept conclusions that are supported by explicit evidence IDs.
- If evidence is insufficient, keep confidence low and request at most 2 missing evidence steps.

Output JSON schema:
{
  "selectedHypothesisId": "H1|H2|...|unknown",
  "confidence": "high|medium|low",
  "rationale": "string",
  "supportsEvidenceIds": ["E1","E2"],
  "missingEvidenceNextSteps": [
    { "tool": "report_get|report_index|exec|analyze|get_report_section|find_report_sections", "argsJson": "{...json...}" }
  ]
}"""

_CODE_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"^```[a-zA-Z0-9_-]*\s*\n?(?P<body>.*?)\n?```$", re.DOTALL
)


@dataclass(frozen=True, slots=True)
class Verdict:
    selected_hypothesis_id: str = UNKNOWN_HYPOTHESIS
    confidence: str = "low"
    rationale: str = ""
    supports_evidence_ids: tuple[str, ...] = ()
    missing_evidence_next_steps: tuple[SuggestedToolCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "supports_evidence_ids", tuple(self.supports_evidence_ids))
        object.__setattr__(
            self, "missing_evidence_next_steps", tuple(self.missing_evidence_next_steps)
        )

    def unknown_evidence_ids(self, known_ids: Iterable[str]) -> tuple[str, ...]:
        known = {evidence_id.casefold() for evidence_id in known_ids}
        return tuple(
            evidence_id
            for evidence_id in self.supports_evidence_ids
            if evidence_id.casefold() not in known
        )

    def accepts(self, known_ids: Iterable[str]) -> bool:
        """Accept only a named hypothesis at medium/high confidence backed by known evidence."""

        if self.selected_hypothesis_id.strip().lower() == UNKNOWN_HYPOTHESIS:
            return False
        if self.confidence.strip().lower() not in ACCEPTING_CONFIDENCE:
            return False
        if not self.supports_evidence_ids:
            return False
        return not self.unknown_evidence_ids(known_ids)

    def to_dict(self) -> dict[str, object]:
        return {
            "selectedHypothesisId": self.selected_hypothesis_id,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "supportsEvidenceIds": list(self.supports_evidence_ids),
            "missingEvidenceNextSteps": [
                step.to_dict() for step in self.missing_evidence_next_steps
            ],
        }


DEFAULT_VERDICT: Final[Verdict] = Verdict(rationale="No juror output.")


def build_juror_messages(
    session: SessionState,
    *,
    user_prompt: str | None,
    proposed_answer: str,
    evidence_limit: int = DEFAULT_JUROR_EVIDENCE_LIMIT,
) -> tuple[ChatMessage, ChatMessage]:
    payload = {
        "userPrompt": user_prompt,
        "proposedAnswer": proposed_answer,
        "reportSnapshot": {
            "dumpId": session.report_dump_id or "",
            "generatedAt": session.report_generated_at or "",
        },
        "baseline": evaluate_baseline(session.evidence).to_dict(),
        "evidenceIndex": evidence_index(
            session.evidence, limit=evidence_limit, include_seen=False
        ),
    }
    return (
        ChatMessage.system(JUROR_INSTRUCTIONS),
        ChatMessage.user(json.dumps(payload, indent=2, ensure_ascii=False)),
    )


def parse_verdict(text: str | None) -> Verdict | None:
    """Parse juror output; ``None`` when it is not a JSON object."""

    if text is None or not text.strip():
        return None
    body = text.strip()
    fenced = _CODE_FENCE_RE.match(body)
    if fenced is not None:
        body = fenced.group("body").strip()
    try:
        document = json.loads(body)
    except json.JSONDecodeError:
        return None
    if not isinstance(document, dict):
        return None

    supports = [
        item
        for item in _as_list(document.get("supportsEvidenceIds"))
        if isinstance(item, str) and item.strip()
    ]
    steps: list[SuggestedToolCall] = []
    for step in _as_list(document.get("missingEvidenceNextSteps")):
        if not isinstance(step, dict):
            continue
        tool = _string_field(step, "tool")
        if tool is None or not tool.strip():
            continue
        steps.append(SuggestedToolCall(tool, _string_field(step, "argsJson") or "{}"))

    return Verdict(
        selected_hypothesis_id=_string_field(document, "selectedHypothesisId")
        or UNKNOWN_HYPOTHESIS,
        confidence=_string_field(document, "confidence") or "low",
        rationale=_string_field(document, "rationale") or "",
        supports_evidence_ids=tuple(supports),
        missing_evidence_next_steps=tuple(steps),
    )


class Juror:
    def __init__(
        self,
        complete: CompletionFn,
        *,
        evidence_limit: int = DEFAULT_JUROR_EVIDENCE_LIMIT,
    ) -> None:
        self._complete = complete
        self._evidence_limit = evidence_limit

    async def review(
        self,
        session: SessionState,
        *,
        user_prompt: str | None,
        proposed_answer: str,
        cancel_token: CancellationToken | None = None,
    ) -> Verdict:
        request = ChatCompletionRequest(
            messages=build_juror_messages(
                session,
                user_prompt=user_prompt,
                proposed_answer=proposed_answer,
                evidence_limit=self._evidence_limit,
            )
        )
        result = await self._complete(request, cancel_token=cancel_token)
        verdict = parse_verdict(result.text)
        if verdict is None:
            logger.warning("juror_output_invalid", chars=len(result.text or ""))
            verdict = DEFAULT_VERDICT
        accepted = verdict.accepts(session.evidence.known_ids())
        logger.info(
            "juror_verdict",
            hypothesis=verdict.selected_hypothesis_id,
            confidence=verdict.confidence,
            supports=list(verdict.supports_evidence_ids),
            unknown_ids=list(verdict.unknown_evidence_ids(session.evidence.known_ids())),
            missing_steps=len(verdict.missing_evidence_next_steps),
            accepted=accepted,
        )
        return verdict


def _as_list(value: object) -> list[object]:
    return value if isinstance(value, list) else []


def _string_field(document: dict[str, object], key: str) -> str | None:
    value = document.get(key)
    return value if isinstance(value, str) else None


__all__ = [
    "DEFAULT_VERDICT",
    "JUROR_INSTRUCTIONS",
    "Juror",
    "Verdict",
    "build_juror_messages",
    "parse_verdict",
]
