"""
dumpscope — unit tests for the agent loop

File: tests/unit/control_plane/test_agent_runner.py
Last updated: 2026-02-13

Purpose
- Drive ``AgentRunner.run`` with scripted completions and executors.

Coverage:
- Direct answers, empty answers, and exhaustion messages.
- Tool execution: redacted output, evidence recording, executor failures as ``ERROR:`` text.
- Baseline gate redirects conclusions until the baseline is complete.
- Juror gate withholds rejected conclusions and surfaces accepted ones.
- Loop guard injects a loop_break checkpoint after stale iterations.
- Gates are inactive without a session; cancellation propagates.
- Gated conclusions never become the exhaustion text.
- A shared session lock serializes concurrent runs over one session.

Functional requirements
- Offline only.

Non-functional requirements
- Deterministic.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from dumpscope.control_plane.agent_runner import (
    NO_CONTENT_TEXT,
    AgentRunner,
    AgentState,
)
from dumpscope.control_plane.baseline import BASELINE_POLICY
from dumpscope.control_plane.checkpoints import CHECKPOINT_MESSAGE_PREFIX
from dumpscope.control_plane.juror import Juror
from dumpscope.control_plane.prompt_classifier import PromptKind
from dumpscope.knowledge_plane.session_state import SessionKey, SessionState
from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatTool,
    ChatToolCall,
)
from dumpscope.utils.concurrency import CancellationToken

_TOOLS = (ChatTool(name="exec"), ChatTool(name="report_get"))


@dataclass(slots=True)
class _ScriptedCompletion:
    results: list[ChatCompletionResult]
    requests: list[ChatCompletionRequest] = field(default_factory=list)

    async def __call__(
        self, request: ChatCompletionRequest, *, cancel_token: CancellationToken | None = None
    ) -> ChatCompletionResult:
        self.requests.append(request)
        return self.results.pop(0)


@dataclass(slots=True)
class _EchoExecutor:
    fixed_output: str | None = None
    fail_on: frozenset[str] = frozenset()
    calls: list[ChatToolCall] = field(default_factory=list)

    async def __call__(self, call: ChatToolCall, cancel_token: CancellationToken | None = None) -> str:
        self.calls.append(call)
        if call.name in self.fail_on:
            raise RuntimeError(f"{call.name} exploded")
        if self.fixed_output is not None:
            return self.fixed_output
        return f"{call.name} ok {call.arguments_json}"


def _text(text: str) -> ChatCompletionResult:
    return ChatCompletionResult(text=text)


def _calls(*calls: ChatToolCall, text: str | None = None) -> ChatCompletionResult:
    return ChatCompletionResult(text=text, tool_calls=calls)


def _exec(call_id: str, command: str = "k") -> ChatToolCall:
    return ChatToolCall(id=call_id, name="exec", arguments_json=json.dumps({"command": command}))


def _baseline_calls() -> tuple[ChatToolCall, ...]:
    return tuple(
        ChatToolCall(id=f"b{index}", name=item.planned_call.tool, arguments_json=item.planned_call.args_json)
        for index, item in enumerate(BASELINE_POLICY)
    )


def _session() -> SessionState:
    return SessionState(SessionKey(scope="test", session_id="s1", artifact_id="d1"))


def _complete_baseline(session: SessionState) -> None:
    for item in BASELINE_POLICY:
        session.evidence.record(
            tool_name="report_get",
            arguments_json=item.planned_call.args_json,
            result_text=f"{item.tag} value",
            preview="value",
            tags=(item.tag,),
        )


def _checkpoint_kinds(messages: Sequence[ChatMessage]) -> list[str]:
    kinds: list[str] = []
    for message in messages:
        if message.role == "user" and message.content.startswith(CHECKPOINT_MESSAGE_PREFIX):
            kinds.append(json.loads(message.content.split("\n", 1)[1])["kind"])
    return kinds


async def test_direct_answer_without_session() -> None:
    completion = _ScriptedCompletion([_text("  It crashed in main.  ")])

    result = await AgentRunner(completion, _EchoExecutor(), tools=_TOOLS).run([ChatMessage.user("hi")])

    assert result.state is AgentState.DONE
    assert result.text == "It crashed in main."
    assert result.iterations == 1
    assert result.prompt_kind is PromptKind.INTERACTIVE
    assert completion.requests[0].tools == _TOOLS


async def test_empty_answer_uses_placeholder() -> None:
    result = await AgentRunner(_ScriptedCompletion([ChatCompletionResult()]), _EchoExecutor()).run(
        [ChatMessage.user("hi")]
    )

    assert result.text == NO_CONTENT_TEXT


async def test_tool_calls_are_executed_redacted_and_recorded() -> None:
    session = _session()
    completion = _ScriptedCompletion([_calls(_exec("c1", "bt")), _text("done")])
    executor = _EchoExecutor(fixed_output="frames token=abc123456789")

    result = await AgentRunner(completion, executor, tools=_TOOLS, session=session).run(
        [ChatMessage.user("show me the stack")]
    )

    assert result.state is AgentState.DONE
    assert result.tool_calls_executed == 1
    assert result.new_evidence == 1
    tool_message = result.messages[2]
    assert tool_message.role == "tool"
    assert tool_message.tool_call_id == "c1"
    assert "abc123456789" not in tool_message.content
    entry = session.evidence.latest()
    assert entry is not None
    assert entry.tags == ("EXEC",)
    assert "abc123456789" not in entry.preview
    assert session.last_checkpoint is not None
    assert session.last_checkpoint.kind == "carry_forward"
    second_request = completion.requests[1]
    assert [message.role for message in second_request.messages] == ["user", "assistant", "tool"]


async def test_executor_failure_becomes_error_output() -> None:
    session = _session()
    completion = _ScriptedCompletion([_calls(_exec("c1")), _text("could not run it")])

    result = await AgentRunner(
        completion, _EchoExecutor(fail_on=frozenset({"exec"})), session=session
    ).run([ChatMessage.user("run k")])

    assert result.messages[2].content == "ERROR: exec exploded"
    entry = session.evidence.latest()
    assert entry is not None
    assert entry.is_error is True
    assert result.text == "could not run it"


async def test_exhaustion_messages() -> None:
    no_text = await AgentRunner(
        _ScriptedCompletion([_calls(_exec("c1")), _calls(_exec("c2", "lm"))]),
        _EchoExecutor(),
        max_iterations=2,
    ).run([ChatMessage.user("go")])
    with_text = await AgentRunner(
        _ScriptedCompletion([_calls(_exec("c1"), text="Partial finding.")]),
        _EchoExecutor(),
        max_iterations=1,
    ).run([ChatMessage.user("go")])

    assert no_text.state is AgentState.EXHAUSTED
    assert no_text.text == "(LLM agent stopped after 2 steps without a final answer)"
    assert with_text.text == "(LLM agent stopped after 1 steps)\nPartial finding."


async def test_baseline_gate_redirects_premature_conclusion() -> None:
    session = _session()
    completion = _ScriptedCompletion(
        [
            _text("It is a null reference."),
            _calls(*_baseline_calls()),
            _text("Root cause: null reference in Foo.Bar."),
        ]
    )

    result = await AgentRunner(completion, _EchoExecutor(), tools=_TOOLS, session=session).run(
        [ChatMessage.user("What is the root cause?")]
    )

    assert result.prompt_kind is PromptKind.CONCLUSION
    assert result.state is AgentState.DONE
    assert result.text == "Root cause: null reference in Foo.Bar."
    assert result.iterations == 3
    assert _checkpoint_kinds(result.messages) == ["baseline_required"]
    checkpoint_message = next(m for m in result.messages if m.content.startswith(CHECKPOINT_MESSAGE_PREFIX))
    next_step = json.loads(checkpoint_message.content.split("\n", 1)[1])["nextSteps"][0]
    assert json.loads(next_step["argsJson"])["path"] == "metadata"
    assert result.new_evidence == len(BASELINE_POLICY)


async def test_baseline_gate_can_be_disabled() -> None:
    result = await AgentRunner(
        _ScriptedCompletion([_text("Root cause: X.")]),
        _EchoExecutor(),
        session=_session(),
        require_baseline=False,
    ).run([ChatMessage.user("root cause?")])

    assert result.state is AgentState.DONE
    assert result.iterations == 1


async def test_juror_withholds_then_accepts() -> None:
    session = _session()
    _complete_baseline(session)
    juror_completion = _ScriptedCompletion(
        [
            _text(json.dumps({"selectedHypothesisId": "H1", "confidence": "low", "rationale": "thin"})),
            _text(
                json.dumps(
                    {"selectedHypothesisId": "H1", "confidence": "high", "supportsEvidenceIds": ["E1", "E7"]}
                )
            ),
        ]
    )
    completion = _ScriptedCompletion([_text("Maybe a race."), _text("Null deref in frame 0 (E7).")])

    result = await AgentRunner(
        completion, _EchoExecutor(), session=session, juror=Juror(juror_completion)
    ).run([ChatMessage.user("Why did it crash?")])

    assert result.state is AgentState.DONE
    assert result.text == "Null deref in frame 0 (E7)."
    assert result.verdict is not None
    assert result.verdict.confidence == "high"
    withheld = completion.requests[1].messages[-1]
    assert withheld.role == "user"
    assert "juror did not accept" in withheld.content
    assert "Juror rationale: thin" in withheld.content


async def test_juror_rejecting_forever_exhausts() -> None:
    session = _session()
    _complete_baseline(session)
    rejection = json.dumps({"selectedHypothesisId": "unknown", "confidence": "low"})
    juror = Juror(_ScriptedCompletion([_text(rejection), _text(rejection)]))

    result = await AgentRunner(
        _ScriptedCompletion([_text("Guess one."), _text("Guess two.")]),
        _EchoExecutor(),
        session=session,
        juror=juror,
        max_iterations=2,
    ).run([ChatMessage.user("root cause please")])

    assert result.state is AgentState.EXHAUSTED
    assert result.text == "(LLM agent stopped after 2 steps without a final answer)"


async def test_loop_guard_injects_loop_break() -> None:
    session = _session()
    completion = _ScriptedCompletion(
        [_calls(_exec("c1")), _calls(_exec("c2")), _calls(_exec("c3")), _text("stopping")]
    )

    result = await AgentRunner(
        completion,
        _EchoExecutor(fixed_output="same output"),
        session=session,
        loop_guard_iterations=2,
        max_iterations=5,
    ).run([ChatMessage.user("show threads")])

    assert result.state is AgentState.DONE
    assert result.new_evidence == 1
    assert _checkpoint_kinds(result.messages) == ["loop_break"]
    assert session.evidence.entries[0].seen_count == 3


async def test_gates_and_guard_are_inactive_without_session() -> None:
    completion = _ScriptedCompletion([_calls(_exec("c1")), _calls(_exec("c2")), _text("Root cause: X.")])

    result = await AgentRunner(
        completion, _EchoExecutor(fixed_output="same"), loop_guard_iterations=1
    ).run([ChatMessage.user("root cause?")])

    assert result.state is AgentState.DONE
    assert result.new_evidence == 0
    assert _checkpoint_kinds(result.messages) == []


async def test_cancelled_token_stops_the_loop() -> None:
    token = CancellationToken()
    token.cancel()
    completion = _ScriptedCompletion([_text("never")])

    with pytest.raises(asyncio.CancelledError):
        await AgentRunner(completion, _EchoExecutor()).run([ChatMessage.user("hi")], cancel_token=token)

    assert completion.requests == []


async def test_juror_rejected_conclusion_is_not_the_exhaustion_text() -> None:
    session = _session()
    _complete_baseline(session)
    rejection = json.dumps({"selectedHypothesisId": "unknown", "confidence": "low"})
    juror = Juror(_ScriptedCompletion([_text(rejection)]))

    result = await AgentRunner(
        _ScriptedCompletion([_text("ROOT CAUSE: null deref in Foo (unsupported)")]),
        _EchoExecutor(),
        session=session,
        juror=juror,
        max_iterations=1,
    ).run([ChatMessage.user("what is the root cause?")])

    assert result.state is AgentState.EXHAUSTED
    assert "null deref in Foo" not in result.text
    assert result.text == "(LLM agent stopped after 1 steps without a final answer)"


async def test_baseline_gated_conclusion_is_not_the_exhaustion_text() -> None:
    result = await AgentRunner(
        _ScriptedCompletion([_text("ROOT CAUSE: premature guess")]),
        _EchoExecutor(),
        session=_session(),
        max_iterations=1,
    ).run([ChatMessage.user("what is the root cause?")])

    assert result.state is AgentState.EXHAUSTED
    assert "premature guess" not in result.text
    assert result.text == "(LLM agent stopped after 1 steps without a final answer)"
    assert _checkpoint_kinds(result.messages) == ["baseline_required"]


@dataclass(slots=True)
class _YieldingCompletion:
    label: str
    order: list[str]
    results: list[ChatCompletionResult]

    async def __call__(
        self, request: ChatCompletionRequest, *, cancel_token: CancellationToken | None = None
    ) -> ChatCompletionResult:
        self.order.append(self.label)
        await asyncio.sleep(0)
        return self.results.pop(0)


async def test_shared_session_lock_serializes_concurrent_runs() -> None:
    session = _session()
    lock = asyncio.Lock()
    order: list[str] = []
    executor = _EchoExecutor()
    first = AgentRunner(
        _YieldingCompletion("A", order, [_calls(_exec("a1", "bt")), _text("A done")]),
        executor,
        session=session,
        session_lock=lock,
    )
    second = AgentRunner(
        _YieldingCompletion("B", order, [_calls(_exec("b1", "lm")), _text("B done")]),
        executor,
        session=session,
        session_lock=lock,
    )

    results = await asyncio.gather(
        first.run([ChatMessage.user("show threads")]),
        second.run([ChatMessage.user("list modules")]),
    )

    assert [result.text for result in results] == ["A done", "B done"]
    assert order == ["A", "A", "B", "B"]
    assert [call.id for call in executor.calls] == ["a1", "b1"]
    entries = session.evidence.entries
    assert [entry.evidence_id for entry in entries] == ["E1", "E2"]
    assert [json.loads(entry.arguments_json)["command"] for entry in entries] == ["bt", "lm"]
    assert not lock.locked()
