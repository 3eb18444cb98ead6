"""Command-line interface router for dumpscope."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dumpscope.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_redacted,
    load_config,
    validate_config,
)
from dumpscope.control_plane.factory import build_agent_runner
from dumpscope.control_plane.tools import default_tools
from dumpscope.knowledge_plane.session_state import SessionKey, SessionStateStore
from dumpscope.observability.logging import (
    configure_console_logging,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from dumpscope.observability.trace import JsonlTraceSink, NullTraceSink, TraceSink
from dumpscope.synthesis_plane.providers.base import ChatMessage, ChatToolCall
from dumpscope.synthesis_plane.providers.factory import build_provider
from dumpscope.synthesis_plane.sampling import SamplingBridge
from dumpscope.ui.render import CLIRenderer, create_renderer
from dumpscope.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="dumpscope",
        description=(
            "dumpscope: LLM sampling bridge and evidence-gated crash-dump agent.\n\n"
            "Common workflows:\n"
            "  dumpscope config show            Print the effective (redacted) config\n"
            "  dumpscope sample --params p.json Run one sampling request\n"
            "  dumpscope agent --prompt \"...\"   Run the evidence-gated agent loop\n"
            "  dumpscope tools                  List the default agent tools\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to dumpscope TOML config (default: ./dumpscope.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--provider",
        default=None,
        choices=("openrouter", "openai", "anthropic"),
        help="Override providers.default.",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Override observability.log_level (e.g. DEBUG, INFO, WARNING).",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        help="Inspect or validate the effective configuration",
    )
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    show_parser = config_sub.add_parser(
        "show", parents=[common], help="Print the redacted effective config"
    )
    show_parser.add_argument("--json", action="store_true", help="Emit compact JSON output")
    show_parser.set_defaults(handler=_cmd_config_show)
    validate_parser = config_sub.add_parser(
        "validate", parents=[common], help="Validate the config and report issues"
    )
    validate_parser.set_defaults(handler=_cmd_config_validate)

    # sample --------------------------------------------------------------
    sample_parser = subparsers.add_parser(
        "sample",
        parents=[common],
        help="Run one sampling request through the configured provider",
        description=(
            "Read sampling params (systemPrompt, messages, tools, ...) from a JSON file and\n"
            "print the assistant content blocks.\n\n"
            "Examples:\n"
            "  dumpscope sample --params request.json\n"
            "  dumpscope sample --params - < request.json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sample_parser.add_argument(
        "--params", required=True, help="Path to the params JSON file ('-' for stdin)."
    )
    sample_parser.set_defaults(handler=_cmd_sample)

    # agent ---------------------------------------------------------------
    agent_parser = subparsers.add_parser(
        "agent",
        parents=[common],
        help="Run the evidence-gated agent loop for one prompt",
        description=(
            "Run one agent turn with the [agent] config section. Tool calls are answered from\n"
            "a JSON file mapping tool name to output text; unmapped tools return ERROR text.\n\n"
            "Examples:\n"
            "  dumpscope agent --prompt \"What is the root cause?\" --tool-outputs outputs.json\n"
            "  dumpscope agent --prompt - --profile quick < prompt.txt\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    agent_parser.add_argument("--prompt", required=True, help="User prompt ('-' for stdin).")
    agent_parser.add_argument("--session", default="cli", help="Session id (default: cli).")
    agent_parser.add_argument("--dump", default="", help="Dump (artifact) id for the session key.")
    agent_parser.add_argument(
        "--tool-outputs",
        default=None,
        help="JSON object file mapping tool name to the output text returned for it.",
    )
    agent_parser.set_defaults(handler=_cmd_agent)

    # tools ---------------------------------------------------------------
    tools_parser = subparsers.add_parser(
        "tools", parents=[common], help="List the default agent tools"
    )
    tools_parser.add_argument("--json", action="store_true", help="Emit JSON tool contracts")
    tools_parser.add_argument(
        "--with-report-tools",
        action="store_true",
        help="Include attached-report section tools.",
    )
    tools_parser.set_defaults(handler=_cmd_tools)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    configure_console_logging()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_config_show(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    redacted = dump_redacted(config)
    renderer = _get_renderer(args)
    if _flag(args, "json"):
        renderer.json(redacted, indent=None)
        return 0
    renderer.kv("Active profile", args.profile or "(default)")
    renderer.kv("Provider", config["providers"]["default"])
    renderer.json(redacted)
    return 0


def _cmd_config_validate(args: argparse.Namespace) -> int:
    renderer = _get_renderer(args)
    try:
        config = load_config(
            args.config_path, profile=args.profile, cli_overrides=_cli_overrides(args)
        )
    except ConfigValidationError as exc:
        for issue in exc.issues:
            renderer.fail(f"{issue.path}: {issue.message}")
        return 2
    except ConfigLoadError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    result = validate_config(config, active_profile=args.profile)
    if not result.is_valid:
        for issue in result.issues:
            renderer.fail(f"{issue.path}: {issue.message}")
        return 2
    renderer.ok("configuration is valid")
    return 0


def _cmd_tools(args: argparse.Namespace) -> int:
    tools = default_tools(include_report_tools=_flag(args, "with_report_tools"))
    renderer = _get_renderer(args)
    if _flag(args, "json"):
        renderer.json([tool.to_dict() for tool in tools])
        return 0
    rows = [(tool.name, _required_params(tool.parameters), tool.description or "") for tool in tools]
    renderer.table(("Tool", "Required", "Description"), rows, title="Agent tools")
    return 0


def _cmd_sample(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    params = _read_params(args.params)
    renderer = _get_renderer(args)
    handle = setup_logging(config["observability"], level=args.log_level)
    try:
        with correlation_scope(run_id=uuid.uuid4().hex):
            response = asyncio.run(_run_sample(config, params, renderer))
    finally:
        shutdown_logging(handle)
    renderer.json(response)
    return 0


async def _run_sample(
    config: Mapping[str, Any],
    params: Mapping[str, object],
    renderer: CLIRenderer,
) -> dict[str, object]:
    provider = build_provider(config, trace_sink=_trace_sink(config))
    sampling = config["sampling"]
    bridge = SamplingBridge(
        provider,
        progress=renderer.progress,
        preserve_content_blocks=sampling.get("preserve_content_blocks"),
        summary_chars=int(sampling.get("progress_summary_chars", 160)),
    )
    try:
        return await bridge.create_message(params)
    finally:
        await provider.aclose()


@dataclass(frozen=True, slots=True)
class _CannedToolExecutor:
    """Answer tool calls from a fixed name-to-output mapping."""

    outputs: Mapping[str, str]

    async def __call__(
        self, call: ChatToolCall, cancel_token: CancellationToken | None = None
    ) -> str:
        output = self.outputs.get(call.name)
        if output is None:
            return f"ERROR: No output configured for tool '{call.name}'."
        return output


def _cmd_agent(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    prompt = _read_prompt(args.prompt)
    outputs = _read_tool_outputs(args.tool_outputs) if args.tool_outputs else {}
    renderer = _get_renderer(args)
    key = SessionKey(scope="cli", session_id=args.session, artifact_id=args.dump)
    handle = setup_logging(config["observability"], level=args.log_level)
    try:
        with correlation_scope(run_id=uuid.uuid4().hex):
            summary = asyncio.run(_run_agent(config, prompt, key, _CannedToolExecutor(outputs)))
    finally:
        shutdown_logging(handle)
    renderer.json(summary)
    return 0


async def _run_agent(
    config: Mapping[str, Any],
    prompt: str,
    key: SessionKey,
    executor: _CannedToolExecutor,
) -> dict[str, object]:
    provider = build_provider(config, trace_sink=_trace_sink(config))
    store = SessionStateStore()
    runner = build_agent_runner(config, provider, executor, store=store, key=key)
    try:
        result = await runner.run([ChatMessage.user(prompt)])
    finally:
        await provider.aclose()
    session = store.get_or_create(key)
    return {
        "text": result.text,
        "state": result.state.value,
        "promptKind": result.prompt_kind.value,
        "iterations": result.iterations,
        "toolCallsExecuted": result.tool_calls_executed,
        "newEvidence": result.new_evidence,
        "evidenceIds": [entry.evidence_id for entry in session.evidence.entries],
        "verdict": (
            {
                "hypothesis": result.verdict.selected_hypothesis_id,
                "confidence": result.verdict.confidence,
            }
            if result.verdict is not None
            else None
        ),
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if getattr(args, "provider", None):
        overrides["providers.default"] = args.provider
    if getattr(args, "log_level", None):
        overrides["observability.log_level"] = str(args.log_level).upper()
    return overrides


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(
            args.config_path, profile=args.profile, cli_overrides=_cli_overrides(args)
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _read_params(source: str, *, label: str = "params file") -> dict[str, object]:
    try:
        raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"cannot read {label} {source!r}: {exc}", exit_code=2) from exc
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CLIError(f"{label} is not valid JSON: {exc.msg}", exit_code=2) from exc
    if not isinstance(document, dict):
        raise CLIError(f"{label} must contain a JSON object", exit_code=2)
    return document


def _read_prompt(source: str) -> str:
    prompt = sys.stdin.read() if source == "-" else source
    if not prompt.strip():
        raise CLIError("prompt must not be empty", exit_code=2)
    return prompt.strip()


def _read_tool_outputs(source: str) -> dict[str, str]:
    document = _read_params(source, label="tool outputs file")
    if not all(isinstance(value, str) for value in document.values()):
        raise CLIError("tool outputs file must map tool names to strings", exit_code=2)
    return {str(name): str(value) for name, value in document.items()}


def _trace_sink(config: Mapping[str, Any]) -> TraceSink:
    trace_dir = config["observability"].get("trace_dir")
    if isinstance(trace_dir, str) and trace_dir:
        return JsonlTraceSink(trace_dir)
    return NullTraceSink()


def _required_params(parameters: object) -> str:
    if isinstance(parameters, Mapping):
        required = parameters.get("required")
        if isinstance(required, list):
            return ", ".join(str(item) for item in required)
    return ""


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
