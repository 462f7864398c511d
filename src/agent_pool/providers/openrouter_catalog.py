"""OpenRouter public model catalog: fetch and filter the models OpenRouter lists."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Final

import httpx

from agent_pool.providers.base import ProviderError, ResponseError, TransportError

OPENROUTER_MODELS_URL: Final[str] = "https://openrouter.ai/api/frontend/models"
BROWSER_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
)

_PROVIDER = "openrouter"


@dataclass(frozen=True, slots=True)
class OpenRouterEndpoint:
    name: str
    context_length: int
    model_variant_slug: str
    model_variant_permaslug: str
    is_free: bool

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> OpenRouterEndpoint:
        return cls(
            name=str(payload.get("name", "")),
            context_length=int(payload.get("context_length") or 0),
            model_variant_slug=str(payload.get("model_variant_slug", "")),
            model_variant_permaslug=str(payload.get("model_variant_permaslug", "")),
            is_free=bool(payload.get("is_free", False)),
        )


@dataclass(frozen=True, slots=True)
class OpenRouterModel:
    slug: str
    name: str
    short_name: str
    author: str
    description: str
    context_length: int
    input_modalities: tuple[str, ...]
    output_modalities: tuple[str, ...]
    has_text_output: bool
    group: str
    permaslug: str
    created_at: str = ""
    updated_at: str = ""
    endpoint: OpenRouterEndpoint | None = None

    @property
    def is_free(self) -> bool:
        return self.endpoint is not None and self.endpoint.is_free

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> OpenRouterModel:
        slug = payload.get("slug")
        if not isinstance(slug, str) or not slug:
            raise ResponseError("model entry has no slug", provider=_PROVIDER)
        endpoint = payload.get("endpoint")
        return cls(
            slug=slug,
            name=str(payload.get("name", "")),
            short_name=str(payload.get("short_name", "")),
            author=str(payload.get("author", "")),
            description=str(payload.get("description", "")),
            context_length=int(payload.get("context_length") or 0),
            input_modalities=tuple(payload.get("input_modalities") or ()),
            output_modalities=tuple(payload.get("output_modalities") or ()),
            has_text_output=bool(payload.get("has_text_output", False)),
            group=str(payload.get("group", "")),
            permaslug=str(payload.get("permaslug", "")),
            created_at=str(payload.get("created_at", "")),
            updated_at=str(payload.get("updated_at", "")),
            endpoint=(
                OpenRouterEndpoint.from_dict(endpoint) if isinstance(endpoint, Mapping) else None
            ),
        )


async def fetch_openrouter_model_list(
    *,
    http_client: httpx.AsyncClient | None = None,
    url: str = OPENROUTER_MODELS_URL,
) -> list[OpenRouterModel]:
    """Download the catalog OpenRouter shows on its models page."""

    headers = {"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"}
    owns_client = http_client is None
    client = http_client if http_client is not None else httpx.AsyncClient(timeout=30.0)
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(exc, provider=_PROVIDER) from exc
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise ProviderError(
            f"request failed: {response.status_code}",
            provider=_PROVIDER,
            http_status=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise ResponseError("model list is not JSON", provider=_PROVIDER) from exc
    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, list):
        raise ResponseError("model list has no data array", provider=_PROVIDER)
    return [OpenRouterModel.from_dict(item) for item in data if isinstance(item, Mapping)]


def free_models(models: Iterable[OpenRouterModel]) -> list[OpenRouterModel]:
    return [model for model in models if model.is_free]


__all__ = [
    "OPENROUTER_MODELS_URL",
    "OpenRouterEndpoint",
    "OpenRouterModel",
    "fetch_openrouter_model_list",
    "free_models",
]
