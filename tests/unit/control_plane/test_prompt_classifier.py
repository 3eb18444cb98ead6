"""
Unit tests for prompt classification.

Coverage:
- Conclusion keywords.
- Affirmative continuations only inherit a conclusion while the baseline is incomplete.
- Last user prompt selection.
"""

from __future__ import annotations

import pytest

from dumpscope.control_plane.prompt_classifier import (
    PromptKind,
    classify_prompt,
    is_affirmative_continuation,
    last_user_prompt,
)
from dumpscope.knowledge_plane.session_state import CheckpointRecord
from dumpscope.synthesis_plane.providers.base import ChatMessage

_CONCLUSION_CHECKPOINT = CheckpointRecord(kind="baseline_required", prompt_kind="conclusion", payload_json="{}")
_INTERACTIVE_CHECKPOINT = CheckpointRecord(kind="carry_forward", prompt_kind="interactive", payload_json="{}")


@pytest.mark.parametrize(
    "prompt",
    ["What is the ROOT CAUSE?", "why did it crash", "Please analyze the dump", "Explain this crash"],
)
def test_conclusion_keywords(prompt: str) -> None:
    assert classify_prompt(prompt) is PromptKind.CONCLUSION


@pytest.mark.parametrize("prompt", ["show me thread 3", "run !clrstack", "", None])
def test_interactive_prompts(prompt: str | None) -> None:
    assert classify_prompt(prompt) is PromptKind.INTERACTIVE


def test_continuation_inherits_conclusion_until_baseline_complete() -> None:
    assert classify_prompt("yes, continue", last_checkpoint=_CONCLUSION_CHECKPOINT) is PromptKind.INTERACTIVE
    assert classify_prompt("Go ahead!", last_checkpoint=_CONCLUSION_CHECKPOINT) is PromptKind.CONCLUSION
    assert (
        classify_prompt("go ahead", last_checkpoint=_CONCLUSION_CHECKPOINT, baseline_complete=True)
        is PromptKind.INTERACTIVE
    )
    assert classify_prompt("ok", last_checkpoint=_INTERACTIVE_CHECKPOINT) is PromptKind.INTERACTIVE
    assert classify_prompt("ok") is PromptKind.INTERACTIVE


def test_affirmative_continuation_normalization() -> None:
    assert is_affirmative_continuation("  Please   continue. ")
    assert not is_affirmative_continuation("yes " * 20)
    assert not is_affirmative_continuation("no")


def test_last_user_prompt_skips_blank_and_non_user_turns() -> None:
    messages = (
        ChatMessage.user("first"),
        ChatMessage.assistant("reply"),
        ChatMessage.user("   "),
        ChatMessage.tool("out", tool_call_id="c1"),
    )

    assert last_user_prompt(messages) == "first"
    assert last_user_prompt(()) == ""
