"""
dumpscope — agent runner wiring from effective config

File: src/dumpscope/control_plane/factory.py
Last updated: 2026-02-13

Purpose
- Build an ``AgentRunner`` whose loop bounds, gates and checkpoint sizing come from the
  ``agent`` config section, bound to a session (and its lock) from a ``SessionStateStore``.

Functional requirements
- ``agent.juror_enabled = false`` builds a runner without a juror.
- Given a store and key, the runner holds ``store.lock_for(key)`` for every run.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from dumpscope.constants import (
    DEFAULT_EVIDENCE_INDEX_LIMIT,
    DEFAULT_JUROR_EVIDENCE_LIMIT,
    DEFAULT_LOOP_GUARD_ITERATIONS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PREVIEW_CHARS,
)
from dumpscope.control_plane.agent_runner import AgentRunner
from dumpscope.control_plane.checkpoints import CheckpointBuilder
from dumpscope.control_plane.juror import Juror
from dumpscope.control_plane.tools import default_tools

if TYPE_CHECKING:
    from dumpscope.control_plane.protocols import ToolExecutor
    from dumpscope.knowledge_plane.session_state import SessionKey, SessionStateStore
    from dumpscope.synthesis_plane.providers.base import ChatProvider, ChatTool

logger = structlog.get_logger(__name__)


def build_agent_runner(
    config: Mapping[str, Any],
    provider: ChatProvider,
    executor: ToolExecutor,
    *,
    store: SessionStateStore | None = None,
    key: SessionKey | None = None,
    tools: Sequence[ChatTool] | None = None,
) -> AgentRunner:
    """Instantiate an ``AgentRunner`` from ``config["agent"]``.

    Without both ``store`` and ``key`` the runner is session-less: no evidence, no gates.
    Reasoning effort is left to the provider's configured default.
    """

    agent: Mapping[str, Any] = config.get("agent", {}) or {}
    session = None
    session_lock = None
    if store is not None and key is not None:
        session = store.get_or_create(key)
        session_lock = store.lock_for(key)

    juror = None
    if bool(agent.get("juror_enabled", True)):
        juror = Juror(
            provider.complete,
            evidence_limit=int(agent.get("juror_evidence_limit", DEFAULT_JUROR_EVIDENCE_LIMIT)),
        )

    runner = AgentRunner(
        provider.complete,
        executor,
        tools=default_tools() if tools is None else tools,
        session=session,
        session_lock=session_lock,
        juror=juror,
        checkpoints=CheckpointBuilder(
            evidence_index_limit=int(
                agent.get("evidence_index_limit", DEFAULT_EVIDENCE_INDEX_LIMIT)
            )
        ),
        max_iterations=int(agent.get("max_iterations", DEFAULT_MAX_ITERATIONS)),
        loop_guard_iterations=int(
            agent.get("loop_guard_iterations", DEFAULT_LOOP_GUARD_ITERATIONS)
        ),
        require_baseline=bool(agent.get("require_baseline", True)),
        preview_chars=int(agent.get("preview_chars", DEFAULT_PREVIEW_CHARS)),
    )
    logger.debug(
        "agent_runner_built",
        provider=provider.provider_name,
        max_iterations=runner.max_iterations,
        juror=juror is not None,
        session=session is not None,
    )
    return runner


__all__ = ["build_agent_runner"]
