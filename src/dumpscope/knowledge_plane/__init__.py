"""
dumpscope — knowledge plane

File: src/dumpscope/knowledge_plane/__init__.py
Last updated: 2026-02-13

Purpose
- Evidence tracking and per-session state consumed by the agent loop, checkpoints, and juror.
"""

from dumpscope.knowledge_plane.evidence_ledger import (
    EvidenceEntry,
    EvidenceLedger,
    EvidenceUpdate,
    build_tool_key,
    canonicalize_arguments,
)
from dumpscope.knowledge_plane.session_state import (
    CheckpointRecord,
    ReportSnapshot,
    SessionKey,
    SessionState,
    SessionStateStore,
    parse_metadata_snapshot,
)
from dumpscope.knowledge_plane.tool_tagging import REPORT_PATH_TAGS, tag_tool_call

__all__ = [
    "REPORT_PATH_TAGS",
    "CheckpointRecord",
    "EvidenceEntry",
    "EvidenceLedger",
    "EvidenceUpdate",
    "ReportSnapshot",
    "SessionKey",
    "SessionState",
    "SessionStateStore",
    "build_tool_key",
    "canonicalize_arguments",
    "parse_metadata_snapshot",
    "tag_tool_call",
]
