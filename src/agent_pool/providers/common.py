"""Helpers shared by provider adapters: credentials, endpoint checks, SDK error mapping."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from typing import cast

import httpx

from agent_pool.providers.base import (
    PromptError,
    ProviderError,
    ProviderUnavailableError,
    TransportError,
)


def env_key_name(provider: str) -> str:
    """Environment variable consulted when a config carries no explicit key."""

    return f"{provider.strip().upper()}_API_KEY"


def resolve_api_key(
    *,
    provider: str,
    api_key: str | None,
    api_key_env: str | None = None,
    environ: Mapping[str, str] | None = None,
    required: bool = True,
) -> str | None:
    """Explicit key, then the configured env var, then ``<PROVIDER>_API_KEY``."""

    if api_key is not None and api_key.strip():
        return api_key.strip()

    env = os.environ if environ is None else environ
    if api_key_env is not None:
        configured = env.get(api_key_env)
        if configured is not None and configured.strip():
            return configured.strip()
        if required:
            raise ProviderUnavailableError(
                f"missing API key in configured env var {api_key_env}",
                provider=provider,
            )
        return None

    fallback_name = env_key_name(provider)
    fallback = env.get(fallback_name)
    if fallback is not None and fallback.strip():
        return fallback.strip()
    if required:
        raise ProviderUnavailableError(
            f"missing API key; set {fallback_name} or api_key in the agent config",
            provider=provider,
        )
    return None


def validate_base_url(value: str | None, *, field_name: str = "api_base_url") -> str | None:
    """Reject endpoints that are not absolute http(s) URLs."""

    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        raise ValueError(f"{field_name} cannot be empty")
    try:
        parsed = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        raise ValueError(f"{field_name} is not a valid URL: {candidate!r}") from exc
    if parsed.scheme not in {"http", "https"} or not parsed.host:
        raise ValueError(f"{field_name} must be an absolute http(s) URL: {candidate!r}")
    return candidate


def map_sdk_exception(exc: Exception, *, provider: str) -> PromptError:
    """Translate an SDK or transport exception into the prompt error taxonomy."""

    if isinstance(exc, PromptError):
        return exc

    class_name = exc.__class__.__name__.lower()
    if isinstance(exc, (asyncio.TimeoutError, httpx.TransportError)):
        return TransportError(exc, provider=provider)
    if "timeout" in class_name or "connection" in class_name:
        return TransportError(exc, provider=provider)

    status_code = read_status_code(exc)
    return ProviderError(exception_detail(exc), provider=provider, http_status=status_code)


def exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int):
            return nested
    return None


def read_value(value: object, key: str, *, default: object | None = None) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key, default))
    return cast("object | None", getattr(value, key, default))


def read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = read_value(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


def read_str(value: object, key: str) -> str | None:
    candidate = read_value(value, key)
    if isinstance(candidate, str) and candidate.strip():
        return candidate
    return None


def read_int(value: object, key: str) -> int | None:
    candidate = read_value(value, key)
    if isinstance(candidate, int) and not isinstance(candidate, bool):
        return candidate
    return None


__all__ = [
    "env_key_name",
    "exception_detail",
    "map_sdk_exception",
    "read_int",
    "read_sequence",
    "read_status_code",
    "read_str",
    "read_value",
    "resolve_api_key",
    "validate_base_url",
]
