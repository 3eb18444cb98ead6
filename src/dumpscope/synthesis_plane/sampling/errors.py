"""Sampling-bridge error types."""

from __future__ import annotations


class SamplingError(RuntimeError):
    """Base class for failures raised by the sampling bridge."""

    code: str = "sampling"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"[{self.code}] {detail}")


class SamplingRequestError(SamplingError):
    """Sampling params could not be interpreted at all."""

    code = "invalid_params"


class SamplingEmptyResultError(SamplingError):
    """The model produced neither text nor tool calls although tools were offered."""

    code = "empty_result"


__all__ = ["SamplingEmptyResultError", "SamplingError", "SamplingRequestError"]
