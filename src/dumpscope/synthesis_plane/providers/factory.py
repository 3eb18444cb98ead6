"""Build provider adapters and a populated registry from effective config."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from dumpscope.constants import PROVIDER_NAMES
from dumpscope.synthesis_plane.providers.anthropic_adapter import (
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_MODEL,
    AnthropicAdapter,
    ThinkingBudgetPolicy,
)
from dumpscope.synthesis_plane.providers.base import (
    ChatProvider,
    ProviderRegistry,
    ProviderUnavailableError,
)
from dumpscope.synthesis_plane.providers.http import DEFAULT_TIMEOUT_SECONDS
from dumpscope.synthesis_plane.providers.openai_adapter import (
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    OpenAIAdapter,
)
from dumpscope.synthesis_plane.providers.openrouter_adapter import (
    DEFAULT_APP_TITLE,
    DEFAULT_OPENROUTER_BASE_URL,
    DEFAULT_OPENROUTER_MODEL,
    OpenRouterAdapter,
)

if TYPE_CHECKING:
    import httpx

    from dumpscope.observability.trace import TraceSink


def build_provider(
    config: Mapping[str, Any],
    name: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    trace_sink: TraceSink | None = None,
    environ: Mapping[str, str] | None = None,
) -> ChatProvider:
    """Instantiate the adapter named ``name`` (or ``providers.default``) from config."""

    providers = config.get("providers", {})
    selected = (name or providers.get("default") or "").strip().lower()
    if selected not in PROVIDER_NAMES:
        raise ProviderUnavailableError(
            provider=selected or "provider",
            detail="provider is not registered",
        )
    settings: Mapping[str, Any] = providers.get(selected, {}) or {}
    timeout = float(settings.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
    common: dict[str, Any] = {
        "api_key_env": settings.get("api_key_env"),
        "reasoning_effort": settings.get("reasoning_effort"),
        "timeout_seconds": timeout,
        "client": client,
        "trace_sink": trace_sink,
        "environ": environ,
    }

    if selected == "openrouter":
        return OpenRouterAdapter(
            model=settings.get("model", DEFAULT_OPENROUTER_MODEL),
            base_url=settings.get("base_url", DEFAULT_OPENROUTER_BASE_URL),
            app_title=settings.get("app_title", DEFAULT_APP_TITLE),
            app_referer=settings.get("app_referer"),
            **common,
        )
    if selected == "openai":
        return OpenAIAdapter(
            model=settings.get("model", DEFAULT_OPENAI_MODEL),
            base_url=settings.get("base_url", DEFAULT_OPENAI_BASE_URL),
            **common,
        )

    budgets = settings.get("thinking_budgets")
    return AnthropicAdapter(
        model=settings.get("model", DEFAULT_ANTHROPIC_MODEL),
        base_url=settings.get("base_url", DEFAULT_ANTHROPIC_BASE_URL),
        thinking_budgets=ThinkingBudgetPolicy(budgets) if budgets else None,
        **common,
    )


def build_registry(
    config: Mapping[str, Any],
    *,
    client: httpx.AsyncClient | None = None,
    trace_sink: TraceSink | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProviderRegistry:
    registry = ProviderRegistry()
    for provider_name in PROVIDER_NAMES:
        registry.register(
            provider_name,
            lambda selected=provider_name: build_provider(
                config,
                selected,
                client=client,
                trace_sink=trace_sink,
                environ=environ,
            ),
        )
    return registry


__all__ = ["build_provider", "build_registry"]
