"""
agent-pool — Anthropic messages agent

File: src/agent_pool/providers/anthropic_adapter.py
Last updated: 2026-10-19

Purpose
- AgentHandle backed by the Anthropic messages API.

Functional requirements
- System prompt travels in the dedicated ``system`` field, not as a message.
- Reply text is the concatenation of all text content blocks.

Non-functional requirements
- The ``anthropic`` SDK is optional and only imported on first use.
"""

from __future__ import annotations

import importlib
from typing import Final, Protocol, cast

from agent_pool.providers.base import (
    Prompt,
    ProviderUnavailableError,
    ResponseError,
    _validate_non_empty_str,
    _validate_optional_str,
)
from agent_pool.providers.common import (
    map_sdk_exception,
    read_sequence,
    read_str,
    resolve_api_key,
    validate_base_url,
)

PROVIDER_NAME: Final[str] = "anthropic"
DEFAULT_MAX_TOKENS: Final[int] = 4096


class _AnthropicMessagesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI

    async def close(self) -> None: ...


class AnthropicAgent:
    """Anthropic messages agent with optional SDK dependency and injected client support."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
        name: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
    ) -> None:
        self.provider = PROVIDER_NAME
        self.model = _validate_non_empty_str(model, "model")
        self.name = _validate_optional_str(name, "name")
        self.system_prompt = system_prompt
        self.base_url = validate_base_url(base_url)
        self._api_key = api_key
        self._api_key_env = _validate_optional_str(api_key_env, "api_key_env")

        if max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        self.max_tokens = max_tokens
        if temperature is not None and not (0.0 <= temperature <= 1.0):
            raise ValueError("temperature must be between 0.0 and 1.0")
        self.temperature = temperature
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = False

    async def prompt(self, message: Prompt) -> str:
        messages: list[dict[str, str]] = [
            {"role": item.role, "content": item.content}
            for item in message.history
            if item.role in {"user", "assistant"}
        ]
        messages.append({"role": "user", "content": message.text})

        payload: dict[str, object] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if self.system_prompt:
            payload["system"] = self.system_prompt
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        client = self._ensure_client()
        try:
            raw = await client.messages.create(**payload)
        except Exception as exc:
            raise map_sdk_exception(exc, provider=self.provider) from exc
        return _extract_text(raw)

    async def aclose(self) -> None:
        """Close the SDK client this agent created; injected clients are left open."""

        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            self._owns_client = False
            await client.close()

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        self._owns_client = True
        return self._client

    def _create_default_client(self) -> _AnthropicClient:
        try:
            anthropic_module = importlib.import_module("anthropic")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "anthropic SDK is not installed; install agent-pool[providers]",
                provider=self.provider,
            ) from exc

        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise ProviderUnavailableError(
                "anthropic SDK does not expose AsyncAnthropic",
                provider=self.provider,
            )

        init_kwargs: dict[str, object] = {
            "api_key": resolve_api_key(
                provider=self.provider,
                api_key=self._api_key,
                api_key_env=self._api_key_env,
            ),
        }
        if self.base_url is not None:
            init_kwargs["base_url"] = self.base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_AnthropicClient", async_anthropic(**init_kwargs))

    def __repr__(self) -> str:
        return f"AnthropicAgent(model={self.model!r})"


def _extract_text(raw_response: object) -> str:
    blocks = read_sequence(raw_response, "content")
    parts = [
        text
        for block in blocks
        if read_str(block, "type") == "text" and (text := read_str(block, "text")) is not None
    ]
    if not parts:
        raise ResponseError("Response contained no text content", provider=PROVIDER_NAME)
    return "".join(parts)


__all__ = ["AnthropicAgent"]
