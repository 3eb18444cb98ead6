"""
dumpscope — OpenAI provider adapter

File: src/dumpscope/synthesis_plane/providers/openai_adapter.py
Last updated: 2026-02-13

Purpose
- OpenAI chat-completions adapter (GPT- and o-series models).

What should be included in this file
- Model-name normalization and validation.
- Token-budget field selection and the single field-substitution retry.

Functional requirements
- Reasoning-family models send ``max_completion_tokens``; others send ``max_tokens``.
- A 400 "unsupported parameter" rejection naming the sent field is retried once with the
  alternate field; never more than two attempts per call.

Non-functional requirements
- Must be configurable and safe; no secrets in logs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, ClassVar, Final

import structlog

from dumpscope.synthesis_plane.providers.base import (
    ChatCompletionRequest,
    ProviderConfigurationError,
)
from dumpscope.synthesis_plane.providers.openai_compat import OpenAICompatibleAdapter

if TYPE_CHECKING:
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

DEFAULT_OPENAI_MODEL: Final[str] = "gpt-4o-mini"
DEFAULT_OPENAI_BASE_URL: Final[str] = "https://api.openai.com/v1"
MAX_TOKENS_FIELD: Final[str] = "max_tokens"
MAX_COMPLETION_TOKENS_FIELD: Final[str] = "max_completion_tokens"

_MODEL_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")
_REASONING_MODEL_PREFIXES: Final[tuple[str, ...]] = ("gpt-5", "o1", "o3", "o4")


def normalize_openai_model(model: str | None) -> str:
    """Strip any ``vendor/`` prefix and validate the remaining model id."""

    text = (model or "").strip()
    if "/" in text:
        text = text[text.rfind("/") + 1 :]
    if not text:
        raise ProviderConfigurationError("OpenAI model is not configured", provider="openai")
    if not _MODEL_NAME_PATTERN.fullmatch(text):
        raise ProviderConfigurationError(
            f"OpenAI model name is invalid: {text!r}",
            provider="openai",
        )
    return text


def prefers_max_completion_tokens(model: str) -> bool:
    normalized = model.strip().lower()
    return normalized.startswith(_REASONING_MODEL_PREFIXES)


def mentions_unsupported_parameter(body: str, parameter: str) -> bool:
    lowered = body.lower()
    return "unsupported parameter" in lowered and parameter.lower() in lowered


class OpenAIAdapter(OpenAICompatibleAdapter):
    """OpenAI ``/chat/completions`` adapter."""

    provider_name: ClassVar[str] = "openai"
    display_name: ClassVar[str] = "OpenAI"
    fallback_api_key_envs: ClassVar[tuple[str, ...]] = ("OPENAI_API_KEY",)
    null_content_with_tool_calls: ClassVar[bool] = True

    def wire_model(self) -> str:
        return normalize_openai_model(self._model)

    def max_tokens_field(self, wire_model: str) -> str:
        if prefers_max_completion_tokens(wire_model):
            return MAX_COMPLETION_TOKENS_FIELD
        return MAX_TOKENS_FIELD

    async def _exchange(
        self,
        url: str,
        payload: dict[str, object],
        *,
        headers: Mapping[str, str],
        request: ChatCompletionRequest,
        cancel_token: CancellationToken | None,
    ) -> dict[str, object]:
        reply = await self._transport.send(url, payload, headers=headers, cancel_token=cancel_token)

        if reply.status == 400 and request.max_tokens is not None:
            sent_field = MAX_TOKENS_FIELD if MAX_TOKENS_FIELD in payload else MAX_COMPLETION_TOKENS_FIELD
            alternate_field = (
                MAX_COMPLETION_TOKENS_FIELD if sent_field == MAX_TOKENS_FIELD else MAX_TOKENS_FIELD
            )
            body = reply.error_text()
            if mentions_unsupported_parameter(body, sent_field) and alternate_field in body.lower():
                logger.info(
                    "openai_token_field_retry",
                    model=payload.get("model"),
                    rejected_field=sent_field,
                    retry_field=alternate_field,
                )
                retry_payload = {key: value for key, value in payload.items() if key != sent_field}
                retry_payload[alternate_field] = request.max_tokens
                reply = await self._transport.send(
                    url,
                    retry_payload,
                    headers=headers,
                    cancel_token=cancel_token,
                )

        self._transport.raise_for_reply(reply)
        return self._transport.decode(reply)


__all__ = [
    "DEFAULT_OPENAI_BASE_URL",
    "DEFAULT_OPENAI_MODEL",
    "MAX_COMPLETION_TOKENS_FIELD",
    "MAX_TOKENS_FIELD",
    "OpenAIAdapter",
    "mentions_unsupported_parameter",
    "normalize_openai_model",
    "prefers_max_completion_tokens",
]
