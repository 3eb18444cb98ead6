"""
Unit tests for the conclusion juror.

Coverage:
- Verdict parsing: plain JSON, code fences, malformed steps, non-JSON output.
- Acceptance rule: named hypothesis, medium/high confidence, known supporting ids.
- Review sends a tool-free request carrying the evidence index.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import pytest

from dumpscope.control_plane.juror import (
    DEFAULT_VERDICT,
    JUROR_INSTRUCTIONS,
    Juror,
    Verdict,
    parse_verdict,
)
from dumpscope.control_plane.tool_results import SuggestedToolCall
from dumpscope.knowledge_plane.session_state import SessionKey, SessionState
from dumpscope.synthesis_plane.providers.base import ChatCompletionRequest, ChatCompletionResult
from dumpscope.utils.concurrency import CancellationToken


@dataclass(slots=True)
class _FakeCompletion:
    text: str | None
    requests: list[ChatCompletionRequest] = field(default_factory=list)

    async def __call__(
        self, request: ChatCompletionRequest, *, cancel_token: CancellationToken | None = None
    ) -> ChatCompletionResult:
        self.requests.append(request)
        return ChatCompletionResult(text=self.text)


def _verdict_json(**overrides: object) -> str:
    document: dict[str, object] = {
        "selectedHypothesisId": "H1",
        "confidence": "high",
        "rationale": "null deref in frame 0",
        "supportsEvidenceIds": ["E1"],
        "missingEvidenceNextSteps": [],
    }
    document.update(overrides)
    return json.dumps(document)


def _session_with_evidence() -> SessionState:
    session = SessionState(SessionKey(session_id="s1"))
    session.evidence.record(tool_name="exec", arguments_json='{"command":"k"}', result_text="#0", preview="#0")
    return session


def test_parse_plain_and_fenced_json() -> None:
    plain = parse_verdict(_verdict_json())
    fenced = parse_verdict(f"```json\n{_verdict_json()}\n```")

    assert plain == fenced
    assert plain is not None
    assert plain.selected_hypothesis_id == "H1"
    assert plain.supports_evidence_ids == ("E1",)


def test_parse_tolerates_malformed_fields() -> None:
    verdict = parse_verdict(
        json.dumps(
            {
                "confidence": 3,
                "supportsEvidenceIds": ["E1", "", 7],
                "missingEvidenceNextSteps": [
                    {"tool": "report_get", "argsJson": '{"path":"analysis.summary"}'},
                    {"tool": ""},
                    "junk",
                    {"tool": "report_index"},
                ],
            }
        )
    )

    assert verdict is not None
    assert verdict.selected_hypothesis_id == "unknown"
    assert verdict.confidence == "low"
    assert verdict.supports_evidence_ids == ("E1",)
    assert verdict.missing_evidence_next_steps == (
        SuggestedToolCall("report_get", '{"path":"analysis.summary"}'),
        SuggestedToolCall("report_index", "{}"),
    )


@pytest.mark.parametrize("text", [None, "", "The root cause is X.", "[1, 2]", "```\nnot json\n```"])
def test_non_object_output_is_rejected(text: str | None) -> None:
    assert parse_verdict(text) is None


@pytest.mark.parametrize(
    ("verdict", "accepted"),
    [
        (Verdict("H1", "high", supports_evidence_ids=("E1",)), True),
        (Verdict("H2", "Medium", supports_evidence_ids=("e1",)), True),
        (Verdict("H1", "low", supports_evidence_ids=("E1",)), False),
        (Verdict("unknown", "high", supports_evidence_ids=("E1",)), False),
        (Verdict("H1", "high"), False),
        (Verdict("H1", "high", supports_evidence_ids=("E1", "E9")), False),
    ],
)
def test_acceptance_rule(verdict: Verdict, accepted: bool) -> None:
    assert verdict.accepts({"E1", "E2"}) is accepted


def test_default_verdict_never_accepts() -> None:
    assert DEFAULT_VERDICT.accepts({"E1"}) is False
    assert DEFAULT_VERDICT.to_dict()["selectedHypothesisId"] == "unknown"


async def test_review_sends_tool_free_request_with_evidence() -> None:
    completion = _FakeCompletion(_verdict_json())
    session = _session_with_evidence()

    verdict = await Juror(completion).review(
        session, user_prompt="root cause?", proposed_answer="Null dereference."
    )

    assert verdict.accepts(session.evidence.known_ids())
    request = completion.requests[0]
    assert request.tools == ()
    assert request.messages[0].content == JUROR_INSTRUCTIONS
    payload = json.loads(request.messages[1].content)
    assert payload["proposedAnswer"] == "Null dereference."
    assert payload["evidenceIndex"][0]["id"] == "E1"
    assert "seen" not in payload["evidenceIndex"][0]
    assert payload["baseline"]["baselineComplete"] is False


async def test_invalid_juror_output_falls_back_to_default() -> None:
    verdict = await Juror(_FakeCompletion("I think it is fine")).review(
        _session_with_evidence(), user_prompt="why?", proposed_answer="x"
    )

    assert verdict == DEFAULT_VERDICT
