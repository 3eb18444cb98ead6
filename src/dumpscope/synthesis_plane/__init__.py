"""
dumpscope — synthesis plane

File: src/dumpscope/synthesis_plane/__init__.py
Last updated: 2026-02-13

Purpose
- Synthesis plane: vendor adapters plus the sampling bridge that fronts them.

Functional requirements
- Must be provider-agnostic through adapters.
"""
