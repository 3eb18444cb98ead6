"""
dumpscope — sampling bridge

File: src/dumpscope/synthesis_plane/sampling/bridge.py
Last updated: 2026-02-13

Purpose
- Serve sampling ``createMessage`` requests by normalizing params, awaiting a chat provider,
  and rendering the provider's turn back as sampling content blocks.

What should be included in this file
- ``SamplingBridge.create_message`` orchestration and the empty-turn policy.
- Progress ordering: tool results before the completion call, requested tools after it.

Functional requirements
- No text and no tool calls is a valid empty reply only when no tools were offered.
- Raw vendor blocks are preserved for providers that need them echoed back verbatim.

Non-functional requirements
- Cancellation is honored before and during the provider call.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Final

import structlog

from dumpscope.constants import DEFAULT_PROGRESS_SUMMARY_CHARS
from dumpscope.synthesis_plane.providers.base import ChatProvider, JSONValue
from dumpscope.synthesis_plane.sampling.errors import (
    SamplingEmptyResultError,
    SamplingRequestError,
)
from dumpscope.synthesis_plane.sampling.progress import ProgressSink, ProgressTracker
from dumpscope.synthesis_plane.sampling.request_parser import parse_sampling_request
from dumpscope.synthesis_plane.sampling.response_builder import build_sampling_response
from dumpscope.synthesis_plane.sampling.text_tool_calls import recover_text_tool_calls

if TYPE_CHECKING:
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

# Providers whose tool turns carry opaque blocks that must round-trip unchanged.
BLOCK_PRESERVING_PROVIDERS: Final[frozenset[str]] = frozenset({"openrouter", "anthropic"})


def resolve_preserve_content_blocks(mode: str | None, provider_name: str) -> bool:
    """Map the ``auto|always|never`` setting to a flag for ``provider_name``."""

    normalized = (mode or "auto").strip().lower()
    if normalized == "always":
        return True
    if normalized == "never":
        return False
    return provider_name.strip().lower() in BLOCK_PRESERVING_PROVIDERS


class SamplingBridge:
    """Answers sampling requests with a single provider."""

    def __init__(
        self,
        provider: ChatProvider,
        *,
        progress: ProgressSink | None = None,
        preserve_content_blocks: str | bool | None = None,
        default_reasoning_effort: str | None = None,
        summary_chars: int = DEFAULT_PROGRESS_SUMMARY_CHARS,
    ) -> None:
        self._provider = provider
        if isinstance(preserve_content_blocks, bool):
            self._preserve_content_blocks = preserve_content_blocks
        else:
            self._preserve_content_blocks = resolve_preserve_content_blocks(
                preserve_content_blocks, provider.provider_name
            )
        self._default_reasoning_effort = (
            default_reasoning_effort
            if default_reasoning_effort is not None
            else provider.default_reasoning_effort
        )
        self._progress = ProgressTracker(progress, summary_chars=summary_chars)

    @property
    def provider(self) -> ChatProvider:
        return self._provider

    @property
    def preserve_content_blocks(self) -> bool:
        return self._preserve_content_blocks

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    async def create_message(
        self,
        params: object,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, JSONValue]:
        if not isinstance(params, Mapping):
            raise SamplingRequestError("sampling params must be a JSON object")

        self._progress.observe_request(params)
        request = parse_sampling_request(
            params,
            default_reasoning_effort=self._default_reasoning_effort,
            preserve_content_blocks=self._preserve_content_blocks,
        )
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        logger.info(
            "sampling_request",
            provider=self._provider.provider_name,
            messages=len(request.messages),
            tools=len(request.tools),
            tool_choice=request.tool_choice.mode if request.tool_choice else None,
            reasoning_effort=request.reasoning_effort,
        )
        result = await self._provider.complete(request, cancel_token=cancel_token)
        result = recover_text_tool_calls(result)

        if result.is_empty and request.tools_enabled:
            logger.warning(
                "sampling_empty_result",
                provider=self._provider.provider_name,
                tools=len(request.tools),
            )
            raise SamplingEmptyResultError("model returned no content and no tool calls")

        self._progress.observe_tool_calls(result.tool_calls)
        response = build_sampling_response(
            result,
            model=self._provider.model,
            preserve_raw_content=self._preserve_content_blocks,
        )
        logger.info(
            "sampling_response",
            provider=self._provider.provider_name,
            blocks=len(response["content"]) if isinstance(response["content"], list) else 0,
            tool_calls=len(result.tool_calls),
        )
        return response


__all__ = ["BLOCK_PRESERVING_PROVIDERS", "SamplingBridge", "resolve_preserve_content_blocks"]
