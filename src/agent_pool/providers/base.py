"""
agent-pool — agent capability, prompt values and error taxonomy

File: src/agent_pool/providers/base.py
Last updated: 2026-10-19

Purpose
- Shared contract between the dispatcher and every concrete provider adapter.

What should be included in this file
- Prompt and chat message value types.
- AgentHandle protocol (one async prompt operation).
- PromptError taxonomy with deterministic machine-readable fields.

Functional requirements
- Every failure an adapter can produce must be expressible as a PromptError subclass.
- The empty-pool failure must stay catchable as MaxDepthError for older callers.

Non-functional requirements
- No network or SDK imports here; adapters depend on this module, never the reverse.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol, TypeAlias, runtime_checkable

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

ChatRole: TypeAlias = Literal["user", "assistant", "system", "tool"]

_CHAT_ROLES: frozenset[str] = frozenset({"user", "assistant", "system", "tool"})


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


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One turn of prior conversation carried alongside a prompt."""

    role: ChatRole
    content: str

    def __post_init__(self) -> None:
        if self.role not in _CHAT_ROLES:
            raise ValueError(f"ChatMessage.role must be one of {sorted(_CHAT_ROLES)}")
        if not isinstance(self.content, str):
            raise TypeError("ChatMessage.content must be a string")

    def to_dict(self) -> dict[str, JSONValue]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class Prompt:
    """Input payload for a single chat call."""

    text: str
    history: tuple[ChatMessage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        text = _validate_non_empty_str(self.text, "Prompt.text", strip=False)
        object.__setattr__(self, "text", text)
        history = tuple(self.history)
        for index, item in enumerate(history):
            if not isinstance(item, ChatMessage):
                raise TypeError(f"Prompt.history[{index}] must be ChatMessage")
        object.__setattr__(self, "history", history)

    @classmethod
    def coerce(cls, value: str | Prompt) -> Prompt:
        if isinstance(value, Prompt):
            return value
        if isinstance(value, str):
            return cls(text=value)
        raise TypeError(f"cannot build Prompt from {type(value).__name__}")

    def __str__(self) -> str:
        return self.text


PromptLike: TypeAlias = "str | Prompt"


@runtime_checkable
class AgentHandle(Protocol):
    """Shared capability that answers one prompt per call."""

    async def prompt(self, message: Prompt) -> str:
        """Send one prompt and return the reply text, raising PromptError on failure."""


class PromptError(RuntimeError):
    """Base error for anything a prompt call can fail with."""

    code: str = "prompt"

    def __init__(self, detail: str, *, provider: str | None = None) -> None:
        self.provider = _validate_optional_str(provider, "provider")
        self.detail = _normalize_detail(detail)
        parts = [f"code={self.code}"]
        if self.provider is not None:
            parts.append(f"provider={self.provider}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class MaxDepthError(PromptError):
    """Multi-turn depth exceeded; also the historical shape of the empty-pool error."""

    code = "max_depth"

    def __init__(
        self,
        *,
        depth: int,
        history: Sequence[ChatMessage] = (),
        prompt: str,
        provider: str | None = None,
    ) -> None:
        if depth < 0:
            raise ValueError("depth must be >= 0")
        self.depth = depth
        self.history = tuple(history)
        self.prompt = prompt
        super().__init__(f"max depth {depth} reached for prompt: {prompt}", provider=provider)


class NoValidAgentsError(MaxDepthError):
    """Pool is empty or every entry has reached its failure ceiling."""

    code = "no_valid_agents"

    def __init__(self) -> None:
        super().__init__(depth=0, history=(), prompt="no valid agent")


class ProviderError(PromptError):
    """Remote endpoint returned a non-success status or an error body."""

    code = "provider"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        http_status: int | None = None,
    ) -> None:
        self.message = _normalize_detail(message)
        self.http_status = http_status
        detail = self.message
        if http_status is not None:
            detail = f"http_status={http_status} {self.message}"
        super().__init__(detail, provider=provider)


class ProviderUnavailableError(ProviderError):
    """Provider SDK is not installed or no credential could be resolved."""

    code = "unavailable"


class TransportError(PromptError):
    """Connection, TLS or timeout failure below the provider protocol."""

    code = "transport"

    def __init__(self, cause: BaseException | str, *, provider: str | None = None) -> None:
        self.cause = cause
        if isinstance(cause, BaseException):
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = cause
        super().__init__(detail, provider=provider)


class ConversionError(PromptError):
    """Message shape cannot be expressed in the provider's wire format."""

    code = "conversion"

    def __init__(self, reason: str, *, provider: str | None = None) -> None:
        self.reason = _normalize_detail(reason)
        super().__init__(self.reason, provider=provider)


class ResponseError(PromptError):
    """Successful HTTP reply that carries nothing usable."""

    code = "response"

    def __init__(self, reason: str, *, provider: str | None = None) -> None:
        self.reason = _normalize_detail(reason)
        super().__init__(self.reason, provider=provider)


class RetryExhaustedError(PromptError):
    """Retry driver reached its attempt cap; wraps the last underlying error."""

    code = "retry_exhausted"

    def __init__(self, *, attempts: int, last_error: PromptError) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"gave up after {attempts} attempt(s): {last_error}",
            provider=last_error.provider,
        )


RandAgentError: TypeAlias = RetryExhaustedError


__all__ = [
    "AgentHandle",
    "ChatMessage",
    "ChatRole",
    "ConversionError",
    "JSONValue",
    "MaxDepthError",
    "NoValidAgentsError",
    "Prompt",
    "PromptError",
    "PromptLike",
    "ProviderError",
    "ProviderUnavailableError",
    "RandAgentError",
    "ResponseError",
    "RetryExhaustedError",
    "TransportError",
]
