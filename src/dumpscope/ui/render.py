"""Output rendering for the dumpscope CLI.

File: src/dumpscope/ui/render.py
Last updated: 2026-02-13

Purpose
- Provide a thin rendering layer for CLI output on top of ``rich``.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

What should be included in this file
- CLIRenderer class with methods for common output patterns.
- Factory function to create a renderer with appropriate settings.

Functional requirements
- Machine-readable JSON always goes to stdout unstyled; progress and diagnostics go to stderr.
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin CLI output renderer backed by two ``rich`` consoles (stdout, stderr)."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stdout: Console | None = None,
        stderr: Console | None = None,
    ) -> None:
        self.verbose = verbose
        color = _color_allowed(no_color)
        self._out = stdout if stdout is not None else Console(no_color=not color, highlight=False)
        self._err = (
            stderr
            if stderr is not None
            else Console(stderr=True, no_color=not color, highlight=False)
        )

    def heading(self, text: str) -> None:
        self._out.print(Text(text, style="bold"))

    def kv(self, key: str, value: object) -> None:
        line = Text()
        line.append(f"{key}: ", style="bold")
        line.append(str(value))
        self._out.print(line)

    def text(self, line: str) -> None:
        self._out.print(Text(line))

    def section(self, title: str) -> None:
        self._out.print()
        self._out.print(Text(title, style="bold underline"))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._out.print(Text(f"  {prefix}{entry}"))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        table = Table(title=title, show_lines=False, header_style="bold")
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        self._out.print(table)

    def json(self, payload: Mapping[str, object] | Sequence[object], *, indent: int | None = 2) -> None:
        """Write JSON verbatim to stdout (no markup, no wrapping)."""

        self._out.out(
            json.dumps(payload, indent=indent, ensure_ascii=False),
            highlight=False,
        )

    def progress(self, line: str) -> None:
        """Progress channel sink: one line per event, on stderr."""

        self._err.print(Text(f"» {line}", style="cyan"), soft_wrap=True)

    def ok(self, label: str) -> None:
        self._err.print(Text(f"OK  {label}", style="green"))

    def fail(self, label: str) -> None:
        self._err.print(Text(f"FAIL  {label}", style="bold red"))


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
