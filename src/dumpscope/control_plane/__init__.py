"""
dumpscope — control plane

File: src/dumpscope/control_plane/__init__.py
Last updated: 2026-02-13

Purpose
- Agent loop, baseline policy, checkpoints, juror, and the default tool catalog.
"""

from dumpscope.control_plane.agent_runner import (
    NO_CONTENT_TEXT,
    AgentRunner,
    AgentRunResult,
    AgentState,
)
from dumpscope.control_plane.baseline import (
    BASELINE_POLICY,
    BaselineItem,
    BaselineState,
    evaluate_baseline,
)
from dumpscope.control_plane.checkpoints import Checkpoint, CheckpointBuilder, select_next_step
from dumpscope.control_plane.factory import build_agent_runner
from dumpscope.control_plane.juror import Juror, Verdict, build_juror_messages, parse_verdict
from dumpscope.control_plane.prompt_classifier import PromptKind, classify_prompt
from dumpscope.control_plane.protocols import CompletionFn, ToolExecutor
from dumpscope.control_plane.tool_results import (
    SuggestedToolCall,
    extract_try_hints,
    is_tool_error,
)
from dumpscope.control_plane.tools import (
    ReportSections,
    ReportToolExecutor,
    default_tools,
    report_tools,
)

__all__ = [
    "BASELINE_POLICY",
    "NO_CONTENT_TEXT",
    "AgentRunResult",
    "AgentRunner",
    "AgentState",
    "BaselineItem",
    "BaselineState",
    "Checkpoint",
    "CheckpointBuilder",
    "CompletionFn",
    "Juror",
    "PromptKind",
    "ReportSections",
    "ReportToolExecutor",
    "SuggestedToolCall",
    "ToolExecutor",
    "Verdict",
    "build_agent_runner",
    "build_juror_messages",
    "classify_prompt",
    "default_tools",
    "evaluate_baseline",
    "extract_try_hints",
    "is_tool_error",
    "parse_verdict",
    "report_tools",
    "select_next_step",
]
