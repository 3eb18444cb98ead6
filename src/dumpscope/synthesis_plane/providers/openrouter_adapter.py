"""OpenRouter adapter: OpenAI-compatible wire format with attribution headers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, ClassVar, Final

from dumpscope.synthesis_plane.providers.http import DEFAULT_TIMEOUT_SECONDS
from dumpscope.synthesis_plane.providers.openai_compat import OpenAICompatibleAdapter

if TYPE_CHECKING:
    import httpx

    from dumpscope.observability.trace import TraceSink

DEFAULT_OPENROUTER_MODEL: Final[str] = "openrouter/auto"
DEFAULT_OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"
DEFAULT_APP_TITLE: Final[str] = "dumpscope"


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter ``/chat/completions`` adapter.

    Assistant turns keep vendor round-trip fields (``reasoning_details`` and friends) in
    ``extension_fields`` so they are echoed back verbatim when the turn is replayed.
    """

    provider_name: ClassVar[str] = "openrouter"
    display_name: ClassVar[str] = "OpenRouter"
    fallback_api_key_envs: ClassVar[tuple[str, ...]] = ("OPENROUTER_API_KEY",)
    null_content_with_tool_calls: ClassVar[bool] = False

    def __init__(
        self,
        *,
        model: str = DEFAULT_OPENROUTER_MODEL,
        base_url: str = DEFAULT_OPENROUTER_BASE_URL,
        api_key: str | None = None,
        api_key_env: str | None = None,
        reasoning_effort: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        trace_sink: TraceSink | None = None,
        environ: Mapping[str, str] | None = None,
        app_title: str | None = DEFAULT_APP_TITLE,
        app_referer: str | None = None,
    ) -> None:
        super().__init__(
            model=model,
            base_url=base_url,
            api_key=api_key,
            api_key_env=api_key_env,
            reasoning_effort=reasoning_effort,
            timeout_seconds=timeout_seconds,
            client=client,
            trace_sink=trace_sink,
            environ=environ,
        )
        self._app_title = (app_title or "").strip() or None
        self._app_referer = (app_referer or "").strip() or None

    def build_headers(self, api_key: str) -> dict[str, str]:
        headers = super().build_headers(api_key)
        if self._app_title is not None:
            headers["X-Title"] = self._app_title
        if self._app_referer is not None:
            headers["HTTP-Referer"] = self._app_referer
        return headers


__all__ = [
    "DEFAULT_APP_TITLE",
    "DEFAULT_OPENROUTER_BASE_URL",
    "DEFAULT_OPENROUTER_MODEL",
    "OpenRouterAdapter",
]
