"""
dumpscope — package root

File: src/dumpscope/__init__.py
Last updated: 2026-02-13

Purpose
- LLM protocol normalization (Anthropic, OpenAI, OpenRouter), a sampling bridge, and an
  evidence-gated crash-dump analysis agent loop.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
