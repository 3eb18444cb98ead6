"""
Unit tests for the shared provider HTTP transport helpers.

Coverage:
- Error-body reading caps size and never splits a UTF-8 sequence.
- Transport timeouts and connection failures map to the error taxonomy.
- Malformed success bodies raise a protocol error.
- Every exchange is traced with redacted request data.
- Credential and base-URL resolution.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import pytest

from dumpscope.observability.trace import TraceRecord
from dumpscope.synthesis_plane.providers.base import (
    ProviderConfigurationError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
)
from dumpscope.synthesis_plane.providers.http import (
    ERROR_BODY_TRUNCATION_SUFFIX,
    JsonHttpTransport,
    normalize_base_url,
    read_error_body,
    resolve_api_key,
)


@dataclass(slots=True)
class _RecordingSink:
    records: list[TraceRecord] = field(default_factory=list)

    def write(self, record: TraceRecord) -> None:
        self.records.append(record)


@dataclass(slots=True)
class _ExplodingSink:
    def write(self, record: TraceRecord) -> None:
        raise OSError("disk full")


def _transport(handler: object, *, sink: object | None = None) -> JsonHttpTransport:
    return JsonHttpTransport(
        provider="openai",
        display_name="OpenAI",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),  # type: ignore[arg-type]
        trace_sink=sink,  # type: ignore[arg-type]
    )


def test_error_body_under_limit_is_decoded_leniently() -> None:
    assert read_error_body(b"plain") == "plain"
    assert "\ufffd" in read_error_body(b"bad \xff byte")


def test_error_body_truncation_backs_off_multibyte_sequence() -> None:
    content = ("a" * 9 + "é").encode("utf-8")

    text = read_error_body(content, limit=10)

    assert text == "a" * 9 + ERROR_BODY_TRUNCATION_SUFFIX


async def test_timeout_maps_to_retryable_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderTimeoutError) as excinfo:
        await _transport(handler).post_json("https://api.test/v1/x", {}, headers={})

    assert excinfo.value.retryable is True


async def test_connection_failure_maps_to_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderServiceError):
        await _transport(handler).post_json("https://api.test/v1/x", {}, headers={})


async def test_malformed_success_body_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with pytest.raises(ProviderResponseError):
        await _transport(handler).post_json("https://api.test/v1/x", {}, headers={})


async def test_non_object_success_body_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[1, 2, 3])

    with pytest.raises(ProviderResponseError, match="JSON object"):
        await _transport(handler).post_json("https://api.test/v1/x", {}, headers={})


async def test_exchange_is_traced_with_redaction() -> None:
    sink = _RecordingSink()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    body = await _transport(handler, sink=sink).post_json(
        "https://api.test/v1/x",
        {"api_key": "should-not-leak", "model": "m"},
        headers={},
    )

    assert body == {"ok": True}
    assert len(sink.records) == 1
    traced = sink.records[0].to_dict()
    assert traced["status"] == 200
    assert traced["request"] == {"api_key": "***REDACTED***", "model": "m"}


async def test_failing_trace_sink_does_not_break_the_call() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    body = await _transport(handler, sink=_ExplodingSink()).post_json(
        "https://api.test/v1/x", {}, headers={}
    )

    assert body == {"ok": True}


def test_resolve_api_key_precedence() -> None:
    environ = {"CUSTOM_KEY": "from-custom", "OPENAI_API_KEY": "from-fallback"}

    assert resolve_api_key(
        provider="openai",
        display_name="OpenAI",
        api_key=" explicit ",
        api_key_env="CUSTOM_KEY",
        fallback_envs=("OPENAI_API_KEY",),
        environ=environ,
    ) == "explicit"
    assert resolve_api_key(
        provider="openai",
        display_name="OpenAI",
        api_key=None,
        api_key_env="CUSTOM_KEY",
        fallback_envs=("OPENAI_API_KEY",),
        environ=environ,
    ) == "from-custom"
    assert resolve_api_key(
        provider="openai",
        display_name="OpenAI",
        api_key="  ",
        api_key_env="UNSET_KEY",
        fallback_envs=("OPENAI_API_KEY",),
        environ=environ,
    ) == "from-fallback"


def test_resolve_api_key_error_names_env_vars() -> None:
    with pytest.raises(ProviderConfigurationError, match="UNSET_KEY, OPENAI_API_KEY"):
        resolve_api_key(
            provider="openai",
            display_name="OpenAI",
            api_key=None,
            api_key_env="UNSET_KEY",
            fallback_envs=("OPENAI_API_KEY",),
            environ={},
        )


def test_normalize_base_url() -> None:
    assert normalize_base_url(provider="p", display_name="P", base_url=" https://x.test/v1/ ") == (
        "https://x.test/v1"
    )
    with pytest.raises(ProviderConfigurationError):
        normalize_base_url(provider="p", display_name="P", base_url="")
