"""
dumpscope — canonical chat model, provider base class, and shared utilities

File: src/dumpscope/synthesis_plane/providers/base.py
Last updated: 2026-02-13

Purpose
- Vendor-neutral chat/tool request and result models every adapter translates to/from.
- Abstract provider interface and the normalized provider error taxonomy.

What should be included in this file
- Message, tool, tool-choice, request, and result models.
- Tool-argument fallback parsing, orphan tool-message downgrade, extension-field filtering.
- Reasoning-effort normalization shared by config, bridge, and adapters.
- Error taxonomy with deterministic machine-readable fields.

Functional requirements
- A malformed tool call is never dropped: unparsable arguments get a stable fallback payload.
- No orphan ``tool`` message ever reaches a vendor.
- Extension fields can never shadow the reserved message keys.

Non-functional requirements
- Must make it easy to add new providers without touching core logic.
- Models are immutable and safe to share across concurrent sessions.
"""

from __future__ import annotations

import abc
import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Final, Protocol, TypeAlias, cast, runtime_checkable

if TYPE_CHECKING:
    from dumpscope.utils.concurrency import CancellationToken

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

RESERVED_MESSAGE_KEYS: Final[frozenset[str]] = frozenset(
    {"role", "content", "tool_calls", "tool_call_id"}
)
REASONING_EFFORT_LEVELS: Final[tuple[str, ...]] = ("low", "medium", "high")
_REASONING_EFFORT_UNSET_TOKENS: Final[frozenset[str]] = frozenset(
    {"unset", "default", "auto", "none"}
)
TOOL_CHOICE_MODES: Final[tuple[str, ...]] = ("auto", "none", "required", "function")
DEFAULT_TOOL_SCHEMA: Final[dict[str, JSONValue]] = {"type": "object", "properties": {}}

MISSING_TOOL_CALL_ID_PREFIX: Final[str] = "[tool output missing tool_call_id]"
ORPHANED_TOOL_OUTPUT_PREFIX: Final[str] = "[orphaned tool output for tool_call_id={call_id}]"


def _validate_non_empty_str(value: str, field_name: str, *, strip: bool = True) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip() if strip else value
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _validate_optional_str(value: str | None, field_name: str, *, strip: bool = True) -> str | None:
    if value is None:
        return None
    return _validate_non_empty_str(value, field_name, strip=strip)


def _coerce_json_value(value: object, *, path: str) -> JSONValue:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"{path} keys must be strings")
            out[key] = _coerce_json_value(item, path=f"{path}.{key}")
        return out
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_coerce_json_value(item, path=f"{path}[]") for item in value]
    raise TypeError(f"{path} must be JSON-serializable")


def _coerce_json_mapping(mapping: Mapping[str, object], *, path: str) -> dict[str, JSONValue]:
    out: dict[str, JSONValue] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise TypeError(f"{path} keys must be strings")
        out[key] = _coerce_json_value(value, path=f"{path}.{key}")
    return out


def parse_tool_arguments(arguments_json: str | None) -> dict[str, JSONValue]:
    """Parse tool-call arguments text into a JSON object without ever failing.

    Empty text yields ``{}``. Text that is not a JSON object yields ``{"raw": <text>}`` so the
    call still reaches the vendor with a well-formed payload.
    """

    if arguments_json is None or not arguments_json.strip():
        return {}
    try:
        parsed = json.loads(arguments_json)
    except json.JSONDecodeError:
        return {"raw": arguments_json}
    if not isinstance(parsed, dict):
        return {"raw": arguments_json}
    return _coerce_json_mapping(parsed, path="arguments")


def filter_extension_fields(fields: Mapping[str, JSONValue] | None) -> dict[str, JSONValue]:
    """Drop reserved message keys (case-insensitive) from vendor extension fields."""

    if not fields:
        return {}
    return {
        key: value
        for key, value in fields.items()
        if key.strip().lower() not in RESERVED_MESSAGE_KEYS
    }


def normalize_reasoning_effort(value: str | None) -> str | None:
    """Return ``low|medium|high`` for a recognized effort, else ``None``."""

    if value is None or not value.strip():
        return None
    normalized = value.strip().lower()
    if normalized in REASONING_EFFORT_LEVELS:
        return normalized
    return None


def is_reasoning_effort_unset_token(value: str | None) -> bool:
    """Return whether ``value`` explicitly clears a configured reasoning effort."""

    if value is None or not value.strip():
        return False
    return value.strip().lower() in _REASONING_EFFORT_UNSET_TOKENS


class ReasoningEffortStatus(str, Enum):
    """Outcome of parsing a caller-supplied reasoning-effort value."""

    NOT_SPECIFIED = "not_specified"
    INVALID = "invalid"
    EXPLICIT_CLEAR = "explicit_clear"
    VALID = "valid"


@dataclass(frozen=True, slots=True)
class ReasoningEffortParse:
    status: ReasoningEffortStatus
    value: str | None = None

    def resolve(self, default: str | None) -> str | None:
        """Apply the override to ``default``: invalid and absent values keep the default."""

        if self.status is ReasoningEffortStatus.VALID:
            return self.value
        if self.status is ReasoningEffortStatus.EXPLICIT_CLEAR:
            return None
        return normalize_reasoning_effort(default)


def parse_reasoning_effort(raw: object, *, specified: bool = True) -> ReasoningEffortParse:
    if not specified:
        return ReasoningEffortParse(ReasoningEffortStatus.NOT_SPECIFIED)
    if not isinstance(raw, str) or not raw.strip():
        return ReasoningEffortParse(ReasoningEffortStatus.INVALID)
    if is_reasoning_effort_unset_token(raw):
        return ReasoningEffortParse(ReasoningEffortStatus.EXPLICIT_CLEAR)
    normalized = normalize_reasoning_effort(raw)
    if normalized is None:
        return ReasoningEffortParse(ReasoningEffortStatus.INVALID)
    return ReasoningEffortParse(ReasoningEffortStatus.VALID, normalized)


@dataclass(frozen=True, slots=True)
class ChatToolCall:
    """Tool invocation requested by the model; ``arguments_json`` is kept verbatim."""

    id: str
    name: str
    arguments_json: str = "{}"

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _validate_non_empty_str(self.id, "ChatToolCall.id"))
        object.__setattr__(self, "name", _validate_non_empty_str(self.name, "ChatToolCall.name"))
        if not isinstance(self.arguments_json, str):
            raise TypeError("ChatToolCall.arguments_json must be a string")

    def arguments(self) -> dict[str, JSONValue]:
        return parse_tool_arguments(self.arguments_json)

    def to_dict(self) -> dict[str, JSONValue]:
        return {"id": self.id, "name": self.name, "arguments_json": self.arguments_json}


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One conversation turn in canonical form."""

    role: str
    content: str = ""
    raw_content: JSONValue = None
    tool_call_id: str | None = None
    tool_calls: tuple[ChatToolCall, ...] = ()
    extension_fields: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "role", _validate_non_empty_str(self.role, "ChatMessage.role").lower()
        )
        if self.content is None:
            object.__setattr__(self, "content", "")
        if not isinstance(self.content, str):
            raise TypeError("ChatMessage.content must be a string")
        object.__setattr__(
            self,
            "raw_content",
            _coerce_json_value(self.raw_content, path="ChatMessage.raw_content"),
        )
        tool_call_id = self.tool_call_id
        if tool_call_id is not None and not tool_call_id.strip():
            tool_call_id = None
        object.__setattr__(self, "tool_call_id", tool_call_id)
        calls = tuple(self.tool_calls)
        for call in calls:
            if not isinstance(call, ChatToolCall):
                raise TypeError("ChatMessage.tool_calls items must be ChatToolCall")
        object.__setattr__(self, "tool_calls", calls)
        object.__setattr__(
            self,
            "extension_fields",
            _coerce_json_mapping(dict(self.extension_fields), path="ChatMessage.extension_fields"),
        )

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str = "", *, tool_calls: Iterable[ChatToolCall] = ()) -> ChatMessage:
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, content: str, *, tool_call_id: str | None) -> ChatMessage:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"role": self.role, "content": self.content}
        if self.raw_content is not None:
            payload["raw_content"] = self.raw_content
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.extension_fields:
            payload["extension_fields"] = dict(self.extension_fields)
        return payload


@dataclass(frozen=True, slots=True)
class ChatTool:
    """Tool contract offered to the model."""

    name: str
    description: str | None = None
    parameters: JSONValue = field(default_factory=lambda: dict(DEFAULT_TOOL_SCHEMA))

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _validate_non_empty_str(self.name, "ChatTool.name"))
        object.__setattr__(
            self,
            "description",
            _validate_optional_str(self.description, "ChatTool.description", strip=False)
            if self.description
            else None,
        )
        parameters = _coerce_json_value(self.parameters, path="ChatTool.parameters")
        if parameters is None:
            parameters = dict(DEFAULT_TOOL_SCHEMA)
        object.__setattr__(self, "parameters", parameters)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"name": self.name, "parameters": self.parameters}
        if self.description is not None:
            payload["description"] = self.description
        return payload


@dataclass(frozen=True, slots=True)
class ChatToolChoice:
    """Tool-choice mode: ``auto``, ``none``, ``required``, or ``function`` with a name."""

    mode: str = "auto"
    function_name: str | None = None

    def __post_init__(self) -> None:
        mode = (self.mode or "").strip().lower()
        name = self.function_name.strip() if isinstance(self.function_name, str) else None
        name = name or None
        if mode == "any":
            mode = "required"
        if mode == "tool":
            mode = "function"
        if name is not None and mode not in {"none"}:
            mode = "function"
        if mode not in TOOL_CHOICE_MODES:
            mode = "auto"
        if mode == "function" and name is None:
            mode = "auto"
        object.__setattr__(self, "mode", mode)
        object.__setattr__(self, "function_name", name if mode == "function" else None)

    @classmethod
    def function(cls, name: str) -> ChatToolChoice:
        return cls(mode="function", function_name=_validate_non_empty_str(name, "function_name"))

    @property
    def disables_tools(self) -> bool:
        return self.mode == "none"

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"mode": self.mode}
        if self.function_name is not None:
            payload["function_name"] = self.function_name
        return payload


@dataclass(frozen=True, slots=True)
class ChatCompletionRequest:
    """Ordered messages plus optional tools, tool choice, token budget, and effort."""

    messages: tuple[ChatMessage, ...]
    tools: tuple[ChatTool, ...] = ()
    tool_choice: ChatToolChoice | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None

    def __post_init__(self) -> None:
        messages = tuple(self.messages)
        for message in messages:
            if not isinstance(message, ChatMessage):
                raise TypeError("ChatCompletionRequest.messages items must be ChatMessage")
        object.__setattr__(self, "messages", messages)
        tools = tuple(self.tools or ())
        for tool in tools:
            if not isinstance(tool, ChatTool):
                raise TypeError("ChatCompletionRequest.tools items must be ChatTool")
        object.__setattr__(self, "tools", tools)
        if self.max_tokens is not None:
            if isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int):
                raise TypeError("ChatCompletionRequest.max_tokens must be an integer")
            if self.max_tokens <= 0:
                raise ValueError("ChatCompletionRequest.max_tokens must be > 0")
        if self.reasoning_effort is not None:
            normalized = normalize_reasoning_effort(self.reasoning_effort)
            if normalized is None:
                raise ValueError(
                    "ChatCompletionRequest.reasoning_effort must be one of "
                    + ", ".join(REASONING_EFFORT_LEVELS)
                )
            object.__setattr__(self, "reasoning_effort", normalized)

    @property
    def tools_enabled(self) -> bool:
        """Tools are sent only when non-empty and not disabled by a ``none`` choice."""

        if not self.tools:
            return False
        return self.tool_choice is None or not self.tool_choice.disables_tools

    def with_messages(self, messages: Iterable[ChatMessage]) -> ChatCompletionRequest:
        return ChatCompletionRequest(
            messages=tuple(messages),
            tools=self.tools,
            tool_choice=self.tool_choice,
            max_tokens=self.max_tokens,
            reasoning_effort=self.reasoning_effort,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "messages": [message.to_dict() for message in self.messages],
            "tools": [tool.to_dict() for tool in self.tools],
        }
        if self.tool_choice is not None:
            payload["tool_choice"] = self.tool_choice.to_dict()
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.reasoning_effort is not None:
            payload["reasoning_effort"] = self.reasoning_effort
        return payload


@dataclass(frozen=True, slots=True)
class ChatCompletionResult:
    """Canonical model turn: text, ordered tool calls, and optional verbatim vendor data."""

    model: str | None = None
    text: str | None = None
    tool_calls: tuple[ChatToolCall, ...] = ()
    raw_content: JSONValue = None
    extension_fields: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.text is not None and not isinstance(self.text, str):
            raise TypeError("ChatCompletionResult.text must be a string")
        calls = tuple(self.tool_calls)
        for call in calls:
            if not isinstance(call, ChatToolCall):
                raise TypeError("ChatCompletionResult.tool_calls items must be ChatToolCall")
        object.__setattr__(self, "tool_calls", calls)
        object.__setattr__(
            self,
            "raw_content",
            _coerce_json_value(self.raw_content, path="ChatCompletionResult.raw_content"),
        )
        object.__setattr__(
            self,
            "extension_fields",
            _coerce_json_mapping(
                dict(self.extension_fields), path="ChatCompletionResult.extension_fields"
            ),
        )

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    @property
    def is_empty(self) -> bool:
        return not self.has_text and not self.tool_calls

    def to_assistant_message(self) -> ChatMessage:
        """Render this result as the assistant turn to feed back as history."""

        return ChatMessage(
            role="assistant",
            content=self.text or "",
            raw_content=self.raw_content,
            tool_calls=self.tool_calls,
            extension_fields=self.extension_fields,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "model": self.model,
            "text": self.text,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
        }
        if self.raw_content is not None:
            payload["raw_content"] = self.raw_content
        if self.extension_fields:
            payload["extension_fields"] = dict(self.extension_fields)
        return payload


def downgrade_orphan_tool_messages(messages: Sequence[ChatMessage]) -> tuple[ChatMessage, ...]:
    """Rewrite ``tool`` messages that cannot be tied to an earlier tool call as ``user`` turns.

    A tool call counts as seen when it appears in a prior assistant turn, either as a structured
    call or as a ``tool_use`` block in the assistant's raw content. Ids compare case-insensitively.
    """

    seen_ids: set[str] = set()
    out: list[ChatMessage] = []
    for message in messages:
        if message.role == "assistant":
            seen_ids.update(call.id.casefold() for call in message.tool_calls)
            seen_ids.update(item.casefold() for item in _raw_tool_use_ids(message.raw_content))
            out.append(message)
            continue

        if message.role != "tool":
            out.append(message)
            continue

        if message.tool_call_id is None:
            out.append(
                ChatMessage(role="user", content=f"{MISSING_TOOL_CALL_ID_PREFIX}\n{message.content}")
            )
            continue

        if message.tool_call_id.casefold() not in seen_ids:
            prefix = ORPHANED_TOOL_OUTPUT_PREFIX.format(call_id=message.tool_call_id)
            out.append(ChatMessage(role="user", content=f"{prefix}\n{message.content}"))
            continue

        out.append(message)
    return tuple(out)


def _raw_tool_use_ids(raw_content: JSONValue) -> list[str]:
    if not isinstance(raw_content, list):
        return []
    ids: list[str] = []
    for item in raw_content:
        if not isinstance(item, dict):
            continue
        if str(item.get("type", "")).lower() != "tool_use":
            continue
        block_id = item.get("id")
        if isinstance(block_id, str) and block_id.strip():
            ids.append(block_id)
    return ids


def extract_text(content: object) -> str | None:
    """Extract visible text from a vendor ``content`` value (string, block list, or block)."""

    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, Mapping):
        block_type = str(content.get("type", "")).lower()
        text = content.get("text")
        if block_type in {"", "text", "output_text"} and isinstance(text, str):
            return text
        return None
    if isinstance(content, Sequence) and not isinstance(content, (bytes, bytearray)):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                if item.strip():
                    parts.append(item)
                continue
            piece = extract_text(item) if isinstance(item, Mapping) else None
            if piece is not None and piece.strip():
                parts.append(piece)
        if not parts:
            return None
        return "\n".join(parts)
    return None


class ChatProvider(abc.ABC):
    """Provider-agnostic adapter API: canonical request in, canonical result out."""

    provider_name: str = "provider"
    default_reasoning_effort: str | None = None

    @abc.abstractmethod
    async def complete(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChatCompletionResult:
        """Send one canonical request and return the canonical result."""

    async def simple_chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        """Return the model's non-empty text reply; whitespace-only replies are failures."""

        result = await self.complete(
            ChatCompletionRequest(
                messages=tuple(messages),
                reasoning_effort=self.default_reasoning_effort,
            ),
            cancel_token=cancel_token,
        )
        if not result.has_text:
            raise ProviderEmptyResultError(
                "response did not contain any message content",
                provider=self.provider_name,
            )
        return cast("str", result.text).strip()

    async def aclose(self) -> None:
        """Release transport resources owned by the adapter."""

    @property
    def model(self) -> str | None:
        return None


@runtime_checkable
class ProviderProtocol(Protocol):
    """Protocol implemented by concrete provider adapters."""

    async def complete(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ChatCompletionResult:
        """Send one canonical request and return the canonical result."""


ProviderFactory: TypeAlias = Callable[[], ChatProvider]


class ProviderError(RuntimeError):
    """Base normalized provider error with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status
        self.provider_code = _validate_optional_str(provider_code, "provider_code")

        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        if self.provider_code is not None:
            parts.append(f"provider_code={self.provider_code}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class ProviderConfigurationError(ProviderError):
    """Missing credential, endpoint, or model; raised before any network attempt."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="configuration", detail=detail, retryable=False)


class ProviderUnavailableError(ProviderError):
    """Raised when a provider is not registered or cannot be constructed."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail, retryable=False)


class ProviderAuthenticationError(ProviderError):
    """Authentication/authorization failures."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="auth",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderInvalidRequestError(ProviderError):
    """Request payload invalid for provider API."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="invalid_request",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderContextLengthError(ProviderError):
    """Request exceeds provider context constraints."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="context_length",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderRateLimitError(ProviderError):
    """Provider rate-limit responses."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=True,
            http_status=http_status,
        )


class ProviderTimeoutError(ProviderError):
    """Provider timeout failures."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="timeout", detail=detail, retryable=True)


class ProviderServiceError(ProviderError):
    """Provider API/service failures and unclassified non-success responses."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        retryable: bool = True,
        http_status: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="service",
            detail=detail,
            retryable=retryable,
            http_status=http_status,
            provider_code=provider_code,
        )


class ProviderResponseError(ProviderError):
    """Provider response could not be parsed into the canonical result."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="protocol", detail=detail, retryable=False)


class ProviderEmptyResultError(ProviderError):
    """The model produced no usable content where content was required."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="empty_result", detail=detail, retryable=False)


TRANSPORT_ERROR_TYPES: Final[tuple[type[ProviderError], ...]] = (
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderContextLengthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderServiceError,
)


class ProviderRegistry:
    """Registry for provider adapter factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory, *, overwrite: bool = False) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        if normalized in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._factories[normalized] = factory

    def unregister(self, name: str) -> None:
        normalized = _validate_non_empty_str(name, "name").lower()
        self._factories.pop(normalized, None)

    def is_registered(self, name: str) -> bool:
        normalized = _validate_non_empty_str(name, "name").lower()
        return normalized in self._factories

    def list(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories.keys()))

    def get(self, name: str) -> ChatProvider:
        normalized = _validate_non_empty_str(name, "name").lower()
        factory = self._factories.get(normalized)
        if factory is None:
            raise ProviderUnavailableError(
                provider=normalized,
                detail="provider is not registered",
            )
        adapter = factory()
        if not isinstance(adapter, ProviderProtocol):
            raise TypeError(f"provider factory returned invalid adapter for {normalized}")
        return adapter


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


__all__ = [
    "DEFAULT_TOOL_SCHEMA",
    "MISSING_TOOL_CALL_ID_PREFIX",
    "ORPHANED_TOOL_OUTPUT_PREFIX",
    "REASONING_EFFORT_LEVELS",
    "RESERVED_MESSAGE_KEYS",
    "TOOL_CHOICE_MODES",
    "TRANSPORT_ERROR_TYPES",
    "ChatCompletionRequest",
    "ChatCompletionResult",
    "ChatMessage",
    "ChatProvider",
    "ChatTool",
    "ChatToolCall",
    "ChatToolChoice",
    "JSONValue",
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
    "ReasoningEffortParse",
    "ReasoningEffortStatus",
    "downgrade_orphan_tool_messages",
    "extract_text",
    "filter_extension_fields",
    "is_reasoning_effort_unset_token",
    "normalize_reasoning_effort",
    "parse_reasoning_effort",
    "parse_tool_arguments",
]
