"""
dumpscope — evidence-gated tool-calling agent loop

File: src/dumpscope/control_plane/agent_runner.py
Last updated: 2026-02-13

Purpose
- Drive a bounded completion/tool-execution loop for one analysis session, recording every tool
  outcome as evidence and refusing to surface conclusions the baseline policy or juror reject.

What should be included in this file
- ``AgentState`` state machine, ``AgentRunResult``, ``AgentRunner``.
- Baseline gate, juror gate, loop guard, carry-forward checkpoints.

Functional requirements
- Tool failures never fail the loop; they become ``ERROR:`` tool output and error evidence.
- Tool output is redacted before it is appended to the conversation or recorded.
- Evidence is only written after a tool returns.

Non-functional requirements
- Sequential within a session. Given ``session_lock`` (``SessionStateStore.lock_for``), a run
  holds it from the first completion to the final result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

import structlog

from dumpscope.constants import (
    DEFAULT_LOOP_GUARD_ITERATIONS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PREVIEW_CHARS,
)
from dumpscope.control_plane.baseline import evaluate_baseline
from dumpscope.control_plane.checkpoints import Checkpoint, CheckpointBuilder
from dumpscope.control_plane.prompt_classifier import (
    PromptKind,
    classify_prompt,
    last_user_prompt,
)
from dumpscope.control_plane.tool_results import is_tool_error
from dumpscope.knowledge_plane.tool_tagging import tag_tool_call
from dumpscope.security.redaction import redact_text
from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatTool,
    ChatToolCall,
)
from dumpscope.synthesis_plane.sampling.progress import compact_one_line
from dumpscope.utils.concurrency import CancellationToken, run_cancellable

if TYPE_CHECKING:
    from dumpscope.control_plane.juror import Juror, Verdict
    from dumpscope.control_plane.protocols import CompletionFn, ToolExecutor
    from dumpscope.knowledge_plane.session_state import SessionState

NO_CONTENT_TEXT: Final[str] = "(LLM returned no content)"
TOOL_ERROR_PREFIX: Final[str] = "ERROR: "


class AgentState(StrEnum):
    RUNNING = "running"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    TOOL_EXECUTED = "tool_executed"
    DONE = "done"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class AgentRunResult:
    text: str
    state: AgentState
    iterations: int
    tool_calls_executed: int
    new_evidence: int
    prompt_kind: PromptKind
    verdict: Verdict | None = None
    messages: tuple[ChatMessage, ...] = ()


def exhausted_text(max_iterations: int, final_text: str | None) -> str:
    if final_text is None:
        return f"(LLM agent stopped after {max_iterations} steps without a final answer)"
    return f"(LLM agent stopped after {max_iterations} steps)\n{final_text}"


def withheld_conclusion_message(verdict: Verdict) -> ChatMessage:
    lines = [
        "The juror did not accept the proposed conclusion; do not present it as final yet.",
        f"Juror rationale: {verdict.rationale or '(none)'}",
    ]
    if verdict.missing_evidence_next_steps:
        lines.append("Gather this missing evidence next:")
        lines.extend(
            f"- {step.tool} {step.args_json}" for step in verdict.missing_evidence_next_steps
        )
    return ChatMessage.user("\n".join(lines))


class AgentRunner:
    """One bounded agent turn over an optional session.

    ``complete`` and ``executor`` are injected so the loop stays provider- and tool-agnostic.
    Without a session the loop still runs but records no evidence, and neither gates nor the
    loop guard apply.
    """

    def __init__(
        self,
        complete: CompletionFn,
        executor: ToolExecutor,
        *,
        tools: Sequence[ChatTool] = (),
        session: SessionState | None = None,
        session_lock: asyncio.Lock | None = None,
        juror: Juror | None = None,
        checkpoints: CheckpointBuilder | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        loop_guard_iterations: int = DEFAULT_LOOP_GUARD_ITERATIONS,
        require_baseline: bool = True,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
        reasoning_effort: str | None = None,
        logger: Any | None = None,
    ) -> None:
        self._complete = complete
        self._executor = executor
        self._tools = tuple(tools)
        self._session = session
        self._session_lock = session_lock
        self._juror = juror
        self._checkpoints = checkpoints if checkpoints is not None else CheckpointBuilder()
        self._max_iterations = max_iterations if max_iterations > 0 else DEFAULT_MAX_ITERATIONS
        self._loop_guard_iterations = max(1, loop_guard_iterations)
        self._require_baseline = require_baseline
        self._preview_chars = preview_chars
        self._reasoning_effort = reasoning_effort
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def session(self) -> SessionState | None:
        return self._session

    @property
    def juror(self) -> Juror | None:
        return self._juror

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @property
    def loop_guard_iterations(self) -> int:
        return self._loop_guard_iterations

    @property
    def require_baseline(self) -> bool:
        return self._require_baseline

    @property
    def preview_chars(self) -> int:
        return self._preview_chars

    async def run(
        self,
        seed_messages: Sequence[ChatMessage],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> AgentRunResult:
        """Run the loop, holding the session lock (when one was given) for the whole turn."""

        if self._session_lock is None:
            return await self._run(seed_messages, cancel_token=cancel_token)
        async with self._session_lock:
            return await self._run(seed_messages, cancel_token=cancel_token)

    async def _run(
        self,
        seed_messages: Sequence[ChatMessage],
        *,
        cancel_token: CancellationToken | None,
    ) -> AgentRunResult:
        messages: list[ChatMessage] = list(seed_messages)
        session = self._session
        user_prompt = last_user_prompt(messages)
        prompt_kind = classify_prompt(
            user_prompt,
            last_checkpoint=session.last_checkpoint if session is not None else None,
            baseline_complete=(
                evaluate_baseline(session.evidence).complete if session is not None else False
            ),
        )
        self._logger.info(
            "agent_run_started",
            prompt_kind=prompt_kind.value,
            max_iterations=self._max_iterations,
            tools=len(self._tools),
            session=session is not None,
        )

        final_text: str | None = None
        tool_calls_executed = 0
        total_new_evidence = 0
        stale_iterations = 0

        for iteration in range(1, self._max_iterations + 1):
            state = AgentState.RUNNING
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            request = ChatCompletionRequest(
                messages=tuple(messages),
                tools=self._tools,
                reasoning_effort=self._reasoning_effort,
            )
            result = await run_cancellable(
                self._complete(request, cancel_token=cancel_token), cancel_token
            )
            if result.has_text:
                final_text = (result.text or "").strip()

            if not result.tool_calls:
                redirect = await self._apply_gates(
                    result,
                    messages,
                    prompt_kind=prompt_kind,
                    user_prompt=user_prompt,
                    final_text=final_text,
                    iteration=iteration,
                    tool_calls_executed=tool_calls_executed,
                    cancel_token=cancel_token,
                )
                if redirect is not None and not redirect.done:
                    # A gated conclusion must not resurface as the exhaustion text.
                    final_text = None
                    continue
                text = final_text if final_text is not None else NO_CONTENT_TEXT
                self._record_carry_forward(
                    prompt_kind=prompt_kind,
                    iteration=iteration,
                    tool_calls_executed=tool_calls_executed,
                    total_new_evidence=total_new_evidence,
                )
                self._logger.info(
                    "agent_state",
                    state=AgentState.DONE.value,
                    iteration=iteration,
                    tool_calls_executed=tool_calls_executed,
                )
                return AgentRunResult(
                    text=text,
                    state=AgentState.DONE,
                    iterations=iteration,
                    tool_calls_executed=tool_calls_executed,
                    new_evidence=total_new_evidence,
                    prompt_kind=prompt_kind,
                    verdict=redirect.verdict if redirect is not None else None,
                    messages=tuple(messages),
                )

            state = AgentState.TOOL_CALL_REQUESTED
            self._logger.info(
                "agent_state",
                state=state.value,
                iteration=iteration,
                calls=[call.name for call in result.tool_calls],
            )
            messages.append(result.to_assistant_message())

            iteration_new_evidence = 0
            for call in result.tool_calls:
                output = redact_text(await self._execute(call, cancel_token))
                tool_calls_executed += 1
                messages.append(ChatMessage.tool(output, tool_call_id=call.id))
                if self._record_evidence(call, output):
                    iteration_new_evidence += 1
                state = AgentState.TOOL_EXECUTED
            total_new_evidence += iteration_new_evidence
            self._logger.info(
                "agent_state",
                state=state.value,
                iteration=iteration,
                new_evidence=iteration_new_evidence,
            )

            if session is None:
                continue
            stale_iterations = stale_iterations + 1 if iteration_new_evidence == 0 else 0
            if stale_iterations >= self._loop_guard_iterations:
                checkpoint = self._checkpoints.loop_break(
                    session,
                    prompt_kind=prompt_kind,
                    iteration=iteration,
                    tool_calls_executed=tool_calls_executed,
                )
                self._append_checkpoint(messages, checkpoint)
                stale_iterations = 0

        self._record_carry_forward(
            prompt_kind=prompt_kind,
            iteration=self._max_iterations,
            tool_calls_executed=tool_calls_executed,
            total_new_evidence=total_new_evidence,
        )
        self._logger.info(
            "agent_state",
            state=AgentState.EXHAUSTED.value,
            iterations=self._max_iterations,
            tool_calls_executed=tool_calls_executed,
            new_evidence=total_new_evidence,
        )
        return AgentRunResult(
            text=exhausted_text(self._max_iterations, final_text),
            state=AgentState.EXHAUSTED,
            iterations=self._max_iterations,
            tool_calls_executed=tool_calls_executed,
            new_evidence=total_new_evidence,
            prompt_kind=prompt_kind,
            messages=tuple(messages),
        )

    async def _apply_gates(
        self,
        result: ChatCompletionResult,
        messages: list[ChatMessage],
        *,
        prompt_kind: PromptKind,
        user_prompt: str,
        final_text: str | None,
        iteration: int,
        tool_calls_executed: int,
        cancel_token: CancellationToken | None,
    ) -> _GateOutcome | None:
        """Return ``None`` when no gate applies; otherwise whether the turn may finish."""

        session = self._session
        if prompt_kind is not PromptKind.CONCLUSION or session is None:
            return None

        if self._require_baseline and not evaluate_baseline(session.evidence).complete:
            if result.has_text:
                messages.append(result.to_assistant_message())
            checkpoint = self._checkpoints.baseline_required(
                session,
                prompt_kind=prompt_kind,
                iteration=iteration,
                tool_calls_executed=tool_calls_executed,
            )
            self._append_checkpoint(messages, checkpoint)
            return _GateOutcome(done=False)

        if self._juror is None or final_text is None:
            return None

        verdict = await self._juror.review(
            session,
            user_prompt=user_prompt,
            proposed_answer=final_text,
            cancel_token=cancel_token,
        )
        if verdict.accepts(session.evidence.known_ids()):
            return _GateOutcome(done=True, verdict=verdict)

        self._logger.info(
            "agent_conclusion_withheld",
            iteration=iteration,
            confidence=verdict.confidence,
            missing_steps=len(verdict.missing_evidence_next_steps),
        )
        messages.append(result.to_assistant_message())
        messages.append(withheld_conclusion_message(verdict))
        return _GateOutcome(done=False, verdict=verdict)

    async def _execute(self, call: ChatToolCall, cancel_token: CancellationToken | None) -> str:
        try:
            output = await run_cancellable(self._executor(call, cancel_token), cancel_token)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "agent_tool_failed",
                tool=call.name,
                tool_call_id=call.id,
                error=type(exc).__name__,
            )
            return f"{TOOL_ERROR_PREFIX}{exc}"
        return output if isinstance(output, str) else str(output)

    def _record_evidence(self, call: ChatToolCall, output: str) -> bool:
        session = self._session
        if session is None:
            return False
        session.observe_tool_result(output)
        update = session.evidence.record(
            tool_name=call.name,
            arguments_json=call.arguments_json,
            result_text=output,
            preview=compact_one_line(output, self._preview_chars),
            tags=tag_tool_call(call.name, call.arguments_json),
            is_error=is_tool_error(output),
        )
        return update.is_new

    def _append_checkpoint(self, messages: list[ChatMessage], checkpoint: Checkpoint) -> None:
        if self._session is not None:
            self._session.last_checkpoint = checkpoint.to_record()
        messages.append(checkpoint.to_message())

    def _record_carry_forward(
        self,
        *,
        prompt_kind: PromptKind,
        iteration: int,
        tool_calls_executed: int,
        total_new_evidence: int,
    ) -> None:
        if self._session is None:
            return
        checkpoint = self._checkpoints.carry_forward(
            self._session,
            prompt_kind=prompt_kind,
            iteration=iteration,
            tool_calls_executed=tool_calls_executed,
            total_new_evidence=total_new_evidence,
        )
        self._session.last_checkpoint = checkpoint.to_record()


@dataclass(frozen=True, slots=True)
class _GateOutcome:
    done: bool
    verdict: Verdict | None = None


__all__ = [
    "NO_CONTENT_TEXT",
    "AgentRunResult",
    "AgentRunner",
    "AgentState",
    "exhausted_text",
    "withheld_conclusion_message",
]
