"""Module entrypoint for ``python -m dumpscope``."""

from __future__ import annotations

from dumpscope.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
