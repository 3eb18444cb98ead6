"""Callable seams the agent loop and juror are wired through."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from dumpscope.synthesis_plane.providers.base import (
        ChatCompletionRequest,
        ChatCompletionResult,
        ChatToolCall,
    )
    from dumpscope.utils.concurrency import CancellationToken


class CompletionFn(Protocol):
    """``ChatProvider.complete`` shape; a bound provider method satisfies it."""

    async def __call__(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChatCompletionResult: ...


class ToolExecutor(Protocol):
    """Executes one tool call and returns its textual result; may raise."""

    async def __call__(
        self,
        call: ChatToolCall,
        cancel_token: CancellationToken | None = None,
    ) -> str: ...


__all__ = ["CompletionFn", "ToolExecutor"]
