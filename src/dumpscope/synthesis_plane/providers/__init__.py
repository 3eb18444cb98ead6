"""
dumpscope — provider adapters and shared provider API

File: src/dumpscope/synthesis_plane/providers/__init__.py
Last updated: 2026-02-13

Purpose
- Provider adapters (OpenRouter, OpenAI, Anthropic) over one canonical chat/tool model.

Functional requirements
- Must normalize responses (text, tool calls, raw blocks) into a common format.

Non-functional requirements
- Must never log secrets or raw API keys.
"""

from dumpscope.synthesis_plane.providers.anthropic_adapter import (
    AnthropicAdapter,
    ThinkingBudgetPolicy,
)
from dumpscope.synthesis_plane.providers.base import (
    RESERVED_MESSAGE_KEYS,
    ChatCompletionRequest,
    ChatCompletionResult,
    ChatMessage,
    ChatProvider,
    ChatTool,
    ChatToolCall,
    ChatToolChoice,
    JSONValue,
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderContextLengthError,
    ProviderEmptyResultError,
    ProviderError,
    ProviderFactory,
    ProviderInvalidRequestError,
    ProviderProtocol,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    downgrade_orphan_tool_messages,
    normalize_reasoning_effort,
    parse_tool_arguments,
)
from dumpscope.synthesis_plane.providers.factory import build_provider, build_registry
from dumpscope.synthesis_plane.providers.openai_adapter import OpenAIAdapter
from dumpscope.synthesis_plane.providers.openrouter_adapter import OpenRouterAdapter

__all__ = [
    "RESERVED_MESSAGE_KEYS",
    "AnthropicAdapter",
    "ChatCompletionRequest",
    "ChatCompletionResult",
    "ChatMessage",
    "ChatProvider",
    "ChatTool",
    "ChatToolCall",
    "ChatToolChoice",
    "JSONValue",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "ProviderAuthenticationError",
    "ProviderConfigurationError",
    "ProviderContextLengthError",
    "ProviderEmptyResultError",
    "ProviderError",
    "ProviderFactory",
    "ProviderInvalidRequestError",
    "ProviderProtocol",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ThinkingBudgetPolicy",
    "build_provider",
    "build_registry",
    "downgrade_orphan_tool_messages",
    "normalize_reasoning_effort",
    "parse_tool_arguments",
]
