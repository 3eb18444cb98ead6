"""
dumpscope — shared HTTP transport for provider adapters

File: src/dumpscope/synthesis_plane/providers/http.py
Last updated: 2026-02-13

Purpose
- Post JSON to vendor endpoints through an injectable ``httpx.AsyncClient``.
- Map non-success responses and transport failures onto the provider error taxonomy.

Functional requirements
- Error bodies are read as at most 32,000 bytes, decoded as UTF-8 without ever raising,
  redacted, and capped before they reach an exception message.
- Timeouts become ``ProviderTimeoutError``; other transport failures ``ProviderServiceError``.
- Malformed success bodies become ``ProviderResponseError``.

Non-functional requirements
- No secrets in logs or exception text.
- Stateless per call; one client may be shared by concurrent sessions.
"""

from __future__ import annotations

import json
import os
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import httpx
import structlog

from dumpscope.observability.trace import TraceRecord, TraceSink, emit_trace
from dumpscope.security.redaction import redact_and_cap
from dumpscope.synthesis_plane.providers.base import (
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderContextLengthError,
    ProviderError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
)
from dumpscope.utils.concurrency import run_cancellable

if TYPE_CHECKING:
    from dumpscope.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

MAX_ERROR_BODY_BYTES: Final[int] = 32_000
ERROR_BODY_TRUNCATION_SUFFIX: Final[str] = "... (truncated) ..."
DEFAULT_TIMEOUT_SECONDS: Final[float] = 120.0
_UTF8_BACKOFF_BYTES: Final[int] = 4
_INVALID_REQUEST_STATUSES: Final[frozenset[int]] = frozenset({400, 404, 409, 422})


@dataclass(frozen=True, slots=True)
class HttpReply:
    """Status plus raw body of one vendor exchange."""

    status: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_text(self) -> str:
        return read_error_body(self.content)


def read_error_body(content: bytes, *, limit: int = MAX_ERROR_BODY_BYTES) -> str:
    """Decode at most ``limit`` bytes of an error body as UTF-8, never raising.

    A cut that lands inside a multi-byte sequence backs off up to four bytes; anything still
    undecodable falls back to replacement characters.
    """

    if len(content) <= limit:
        return content.decode("utf-8", errors="replace")

    clipped = content[:limit]
    for backoff in range(_UTF8_BACKOFF_BYTES + 1):
        try:
            text = clipped[: len(clipped) - backoff].decode("utf-8")
        except UnicodeDecodeError:
            continue
        return text + ERROR_BODY_TRUNCATION_SUFFIX
    return clipped.decode("utf-8", errors="replace") + ERROR_BODY_TRUNCATION_SUFFIX


def error_for_status(
    *,
    provider: str,
    display_name: str,
    status: int,
    body: str,
) -> ProviderError:
    """Build the taxonomy error for a non-success status with a redacted, capped detail."""

    detail = redact_and_cap(f"{display_name} request failed ({status}): {body}")
    if status in {401, 403}:
        return ProviderAuthenticationError(detail, provider=provider, http_status=status)
    if status == 429:
        return ProviderRateLimitError(detail, provider=provider, http_status=status)
    if status in _INVALID_REQUEST_STATUSES:
        lowered = body.lower()
        if "context" in lowered and "length" in lowered:
            return ProviderContextLengthError(detail, provider=provider, http_status=status)
        return ProviderInvalidRequestError(detail, provider=provider, http_status=status)
    return ProviderServiceError(
        detail,
        provider=provider,
        retryable=status >= 500,
        http_status=status,
    )


class JsonHttpTransport:
    """Thin async JSON poster with client ownership, tracing, and error mapping."""

    def __init__(
        self,
        *,
        provider: str,
        display_name: str,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        trace_sink: TraceSink | None = None,
    ) -> None:
        self._provider = provider
        self._display_name = display_name
        self._client = client
        self._owns_client = client is None
        self._timeout_seconds = timeout_seconds
        self._trace_sink = trace_sink

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        headers: Mapping[str, str],
        cancel_token: CancellationToken | None = None,
    ) -> HttpReply:
        """POST ``payload``; returns the reply for any status, raises for transport failures."""

        client = self._get_client()
        started = time.perf_counter()
        try:
            response = await run_cancellable(
                client.post(url, json=dict(payload), headers=dict(headers)),
                cancel_token,
            )
        except httpx.TimeoutException as exc:
            logger.warning("provider_request_timeout", provider=self._provider, url=url)
            raise ProviderTimeoutError(
                redact_and_cap(f"{self._display_name} request timed out: {exc}"),
                provider=self._provider,
            ) from exc
        except httpx.TransportError as exc:
            logger.warning(
                "provider_transport_error",
                provider=self._provider,
                url=url,
                error_type=type(exc).__name__,
            )
            raise ProviderServiceError(
                redact_and_cap(f"{self._display_name} transport failure: {exc}"),
                provider=self._provider,
            ) from exc

        reply = HttpReply(status=response.status_code, content=response.content)
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
        emit_trace(
            self._trace_sink,
            TraceRecord(
                provider=self._provider,
                url=url,
                request=dict(payload),
                response=read_error_body(reply.content),
                status=reply.status,
                elapsed_ms=elapsed_ms,
            ),
        )
        logger.debug(
            "provider_request_completed",
            provider=self._provider,
            status=reply.status,
            elapsed_ms=elapsed_ms,
        )
        return reply

    def raise_for_reply(self, reply: HttpReply) -> None:
        if reply.ok:
            return
        raise error_for_status(
            provider=self._provider,
            display_name=self._display_name,
            status=reply.status,
            body=reply.error_text(),
        )

    def decode(self, reply: HttpReply) -> dict[str, object]:
        """Decode a success body into a JSON object."""

        try:
            parsed = json.loads(reply.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderResponseError(
                redact_and_cap(f"{self._display_name} returned malformed JSON: {exc}"),
                provider=self._provider,
            ) from exc
        if not isinstance(parsed, dict):
            raise ProviderResponseError(
                f"{self._display_name} response must be a JSON object",
                provider=self._provider,
            )
        return parsed

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        headers: Mapping[str, str],
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, object]:
        reply = await self.send(url, payload, headers=headers, cancel_token=cancel_token)
        self.raise_for_reply(reply)
        return self.decode(reply)


def resolve_api_key(
    *,
    provider: str,
    display_name: str,
    api_key: str | None,
    api_key_env: str | None,
    fallback_envs: tuple[str, ...] = (),
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve a credential: explicit key, then the configured env var, then fallbacks."""

    if api_key is not None and api_key.strip():
        return api_key.strip()

    env = os.environ if environ is None else environ
    if api_key_env is not None:
        configured = env.get(api_key_env)
        if configured is not None and configured.strip():
            return configured.strip()

    for name in fallback_envs:
        fallback = env.get(name)
        if fallback is not None and fallback.strip():
            return fallback.strip()

    names = ", ".join(item for item in (api_key_env, *fallback_envs) if item)
    raise ProviderConfigurationError(
        f"{display_name} API key is not configured; set {names or 'an API key'}",
        provider=provider,
    )


def normalize_base_url(*, provider: str, display_name: str, base_url: str | None) -> str:
    normalized = (base_url or "").strip().rstrip("/")
    if not normalized:
        raise ProviderConfigurationError(
            f"{display_name} base URL is not configured",
            provider=provider,
        )
    return normalized


__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "ERROR_BODY_TRUNCATION_SUFFIX",
    "MAX_ERROR_BODY_BYTES",
    "HttpReply",
    "JsonHttpTransport",
    "error_for_status",
    "normalize_base_url",
    "read_error_body",
    "resolve_api_key",
]
