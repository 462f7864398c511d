"""
agent-pool — OpenAI-compatible chat completions agent

File: src/agent_pool/providers/openai_compatible.py
Last updated: 2026-10-19

Purpose
- AgentHandle for every provider that speaks the OpenAI chat-completions protocol.

What should be included in this file
- Default endpoint per provider tag.
- Lazy ``openai.AsyncOpenAI`` construction with an injectable client for tests.
- Mapping of SDK failures onto the prompt error taxonomy.

Functional requirements
- ``api_base_url`` overrides the provider's default endpoint.
- Missing credentials surface as ProviderUnavailableError on first use, not at construction.

Non-functional requirements
- Must never log secrets or raw API keys.
"""

from __future__ import annotations

import importlib
import logging
import time
from collections.abc import Mapping
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
    read_value,
    resolve_api_key,
    validate_base_url,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS: Final[Mapping[str, str]] = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "together": "https://api.together.xyz/v1",
    "xai": "https://api.x.ai/v1",
    "deepseek": "https://api.deepseek.com",
    "galadriel": "https://api.galadriel.com/v1",
    "groq": "https://api.groq.com/openai/v1",
    "hyperbolic": "https://api.hyperbolic.xyz/v1",
    "mira": "https://api.mira.network/v1",
    "moonshot": "https://api.moonshot.cn/v1",
    "ollama": "http://localhost:11434/v1",
    "mistral": "https://api.mistral.ai/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "cohere": "https://api.cohere.ai/compatibility/v1",
    "huggingface": "https://router.huggingface.co/v1",
}

# Local runtimes accept any bearer value.
KEYLESS_PROVIDERS: Final[frozenset[str]] = frozenset({"ollama"})


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI

    async def close(self) -> None: ...


class OpenAICompatibleAgent:
    """Chat-completions agent with optional SDK dependency and injected client support."""

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
        name: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider").lower()
        self.model = _validate_non_empty_str(model, "model")
        self.name = _validate_optional_str(name, "name")
        self.system_prompt = system_prompt
        self._api_key = api_key
        self._api_key_env = _validate_optional_str(api_key_env, "api_key_env")

        resolved_base_url = (
            base_url if base_url is not None else DEFAULT_BASE_URLS.get(self.provider)
        )
        if resolved_base_url is None:
            raise ValueError(
                f"no default endpoint for provider {self.provider!r}; set api_base_url"
            )
        self.base_url = cast("str", validate_base_url(resolved_base_url))

        if temperature is not None and not (0.0 <= temperature <= 2.0):
            raise ValueError("temperature must be between 0.0 and 2.0")
        self.temperature = temperature
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = False

    async def prompt(self, message: Prompt) -> str:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": self._build_messages(message),
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        client = self._ensure_client()
        started = time.perf_counter()
        try:
            raw = await client.chat.completions.create(**payload)
        except Exception as exc:
            raise map_sdk_exception(exc, provider=self.provider) from exc
        latency_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "chat completion finished",
            extra={"provider": self.provider, "model": self.model, "latency_ms": latency_ms},
        )
        return _extract_text(raw, provider=self.provider)

    def _build_messages(self, message: Prompt) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend({"role": item.role, "content": item.content} for item in message.history)
        messages.append({"role": "user", "content": message.text})
        return messages

    async def aclose(self) -> None:
        """Close the SDK client this agent created; injected clients are left open."""

        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            self._owns_client = False
            await client.close()

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        self._owns_client = True
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                "openai SDK is not installed; install agent-pool[providers]",
                provider=self.provider,
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                "openai SDK does not expose AsyncOpenAI",
                provider=self.provider,
            )

        api_key = resolve_api_key(
            provider=self.provider,
            api_key=self._api_key,
            api_key_env=self._api_key_env,
            required=self.provider not in KEYLESS_PROVIDERS,
        )

        init_kwargs: dict[str, object] = {
            "api_key": api_key if api_key is not None else self.provider,
            "base_url": self.base_url,
        }
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def __repr__(self) -> str:
        return f"OpenAICompatibleAgent(provider={self.provider!r}, model={self.model!r})"


def _extract_text(raw_response: object, *, provider: str) -> str:
    choices = read_sequence(raw_response, "choices")
    if not choices:
        raise ResponseError("Response contained no choices", provider=provider)
    message = read_value(choices[0], "message")
    if message is None:
        raise ResponseError("Response contained no assistant message", provider=provider)
    content = read_str(message, "content")
    if content is None:
        raise ResponseError("Response contained no text content", provider=provider)
    return content


__all__ = ["DEFAULT_BASE_URLS", "KEYLESS_PROVIDERS", "OpenAICompatibleAgent"]
