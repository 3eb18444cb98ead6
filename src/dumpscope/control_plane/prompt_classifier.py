"""Decide whether a user turn asks for a conclusion or is an interactive request."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from dumpscope.knowledge_plane.session_state import CheckpointRecord
    from dumpscope.synthesis_plane.providers.base import ChatMessage


class PromptKind(StrEnum):
    CONCLUSION = "conclusion"
    INTERACTIVE = "interactive"


CONCLUSION_KEYWORDS: Final[tuple[str, ...]] = (
    "root cause",
    "why did",
    "why does",
    "what happened",
    "analyze",
    "analysis",
    "recommend",
    "recommendation",
    "conclusion",
    "explain the crash",
    "explain this crash",
)

AFFIRMATIVE_CONTINUATIONS: Final[frozenset[str]] = frozenset(
    {
        "yes",
        "y",
        "ok",
        "okay",
        "sure",
        "continue",
        "go on",
        "go ahead",
        "proceed",
        "keep going",
        "do it",
        "yes please",
        "please continue",
    }
)
_MAX_CONTINUATION_CHARS: Final[int] = 40
_PUNCTUATION: Final[str] = ".,!?;:'\"`()[]{}-_ \t\r\n"


def is_conclusion_seeking(prompt: str | None) -> bool:
    if prompt is None or not prompt.strip():
        return False
    lowered = prompt.strip().lower()
    return any(keyword in lowered for keyword in CONCLUSION_KEYWORDS)


def is_affirmative_continuation(prompt: str | None) -> bool:
    if prompt is None:
        return False
    trimmed = prompt.strip()
    if not trimmed or len(trimmed) > _MAX_CONTINUATION_CHARS:
        return False
    normalized = " ".join(trimmed.strip(_PUNCTUATION).lower().split())
    return normalized in AFFIRMATIVE_CONTINUATIONS


def classify_prompt(
    prompt: str | None,
    *,
    last_checkpoint: CheckpointRecord | None = None,
    baseline_complete: bool = False,
) -> PromptKind:
    if is_conclusion_seeking(prompt):
        return PromptKind.CONCLUSION
    if (
        is_affirmative_continuation(prompt)
        and last_checkpoint is not None
        and last_checkpoint.prompt_kind == PromptKind.CONCLUSION
        and not baseline_complete
    ):
        return PromptKind.CONCLUSION
    return PromptKind.INTERACTIVE


def last_user_prompt(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user" and message.content.strip():
            return message.content
    return ""


__all__ = [
    "AFFIRMATIVE_CONTINUATIONS",
    "CONCLUSION_KEYWORDS",
    "PromptKind",
    "classify_prompt",
    "is_affirmative_continuation",
    "is_conclusion_seeking",
    "last_user_prompt",
]
