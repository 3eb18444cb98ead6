"""Sampling bridge: sampling protocol params in, sampling content blocks out."""

from dumpscope.synthesis_plane.sampling.bridge import (
    BLOCK_PRESERVING_PROVIDERS,
    SamplingBridge,
    resolve_preserve_content_blocks,
)
from dumpscope.synthesis_plane.sampling.errors import (
    SamplingEmptyResultError,
    SamplingError,
    SamplingRequestError,
)
from dumpscope.synthesis_plane.sampling.progress import (
    ProgressSink,
    ProgressTracker,
    compact_one_line,
    summarize_tool_call,
)
from dumpscope.synthesis_plane.sampling.request_parser import parse_sampling_request
from dumpscope.synthesis_plane.sampling.response_builder import build_sampling_response
from dumpscope.synthesis_plane.sampling.text_tool_calls import (
    RecoveryStrategy,
    TextToolCallRecovery,
    find_balanced_object_end,
    parse_text_tool_calls,
    recover_text_tool_calls,
)

__all__ = [
    "BLOCK_PRESERVING_PROVIDERS",
    "ProgressSink",
    "ProgressTracker",
    "RecoveryStrategy",
    "SamplingBridge",
    "SamplingEmptyResultError",
    "SamplingError",
    "SamplingRequestError",
    "TextToolCallRecovery",
    "build_sampling_response",
    "compact_one_line",
    "find_balanced_object_end",
    "parse_sampling_request",
    "parse_text_tool_calls",
    "recover_text_tool_calls",
    "resolve_preserve_content_blocks",
    "summarize_tool_call",
]
