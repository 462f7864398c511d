"""
agent-pool — provider constructor registry

File: src/agent_pool/providers/registry.py
Last updated: 2026-10-19

Purpose
- Map each ProviderTag onto a constructor that turns an AgentConfig into an AgentHandle.

What should be included in this file
- ProviderRegistry with register / unregister / lookup.
- Default registrations for every supported tag.
- build_agents: construct handles for a config list, skipping entries that cannot be built.

Functional requirements
- A misconfigured entry is logged and skipped; it never aborts pool construction.
- Tags without a constructor (Azure, Perplexity) and unknown tags are skipped with a warning.
- Absent system prompt falls back to the global default; absent agent name to "rand agent".

Non-functional requirements
- Adding a provider means one registration here; nothing in the dispatcher changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Final, TypeAlias

from agent_pool.config.schema import DEFAULT_AGENT_NAME, AgentConfig, ProviderTag
from agent_pool.providers.anthropic_adapter import AnthropicAgent
from agent_pool.providers.base import AgentHandle, PromptError
from agent_pool.providers.bigmodel import BIGMODEL_API_BASE_URL, BigmodelClient
from agent_pool.providers.common import resolve_api_key
from agent_pool.providers.openai_compatible import DEFAULT_BASE_URLS, OpenAICompatibleAgent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AgentSettings:
    """Config values after defaults have been applied."""

    system_prompt: str
    agent_name: str


AgentConstructor: TypeAlias = Callable[[AgentConfig, AgentSettings], AgentHandle]

UNSUPPORTED_TAGS: Final[frozenset[ProviderTag]] = frozenset(
    {ProviderTag.AZURE, ProviderTag.PERPLEXITY}
)


@dataclass(frozen=True, slots=True)
class BuiltAgent:
    config: AgentConfig
    handle: AgentHandle


class ProviderRegistry:
    """Registry of agent constructors keyed by provider tag."""

    def __init__(self) -> None:
        self._constructors: dict[ProviderTag, AgentConstructor] = {}

    @classmethod
    def default(cls) -> ProviderRegistry:
        registry = cls()
        for tag in DEFAULT_BASE_URLS:
            registry.register(ProviderTag(tag), _build_openai_compatible)
        registry.register(ProviderTag.ANTHROPIC, _build_anthropic)
        registry.register(ProviderTag.BIGMODEL, _build_bigmodel)
        return registry

    def register(
        self,
        tag: ProviderTag | str,
        constructor: AgentConstructor,
        *,
        overwrite: bool = False,
    ) -> None:
        normalized = _coerce_tag(tag)
        if normalized in self._constructors and not overwrite:
            raise ValueError(f"provider already registered: {normalized}")
        self._constructors[normalized] = constructor

    def unregister(self, tag: ProviderTag | str) -> None:
        self._constructors.pop(_coerce_tag(tag), None)

    def is_registered(self, tag: ProviderTag | str) -> bool:
        try:
            return _coerce_tag(tag) in self._constructors
        except ValueError:
            return False

    def tags(self) -> tuple[ProviderTag, ...]:
        return tuple(sorted(self._constructors, key=lambda item: item.value))

    def create(self, config: AgentConfig, default_system_prompt: str) -> AgentHandle:
        """Build one handle; raises KeyError when the tag has no constructor."""

        tag = config.provider_tag
        if tag is None or tag not in self._constructors:
            raise KeyError(config.provider_name)
        settings = AgentSettings(
            system_prompt=(
                config.system_prompt if config.system_prompt is not None else default_system_prompt
            ),
            agent_name=config.agent_name if config.agent_name is not None else DEFAULT_AGENT_NAME,
        )
        return self._constructors[tag](config, settings)


def build_agents(
    configs: Sequence[AgentConfig],
    default_system_prompt: str,
    *,
    registry: ProviderRegistry | None = None,
) -> list[BuiltAgent]:
    """Construct handles for ``configs`` in order, skipping entries that cannot be built."""

    active = registry if registry is not None else ProviderRegistry.default()
    built: list[BuiltAgent] = []
    for config in configs:
        tag = config.provider_tag
        if tag is None:
            logger.warning(
                "skipping agent with unknown provider",
                extra={"agent_id": config.id, "provider": config.provider_name},
            )
            continue
        if not active.is_registered(tag):
            if tag in UNSUPPORTED_TAGS:
                logger.warning(
                    "provider has no agent constructor yet; skipping",
                    extra={"agent_id": config.id, "provider": tag.value},
                )
            else:
                logger.warning(
                    "provider not registered; skipping",
                    extra={"agent_id": config.id, "provider": tag.value},
                )
            continue
        try:
            handle = active.create(config, default_system_prompt)
        except (ValueError, TypeError, PromptError) as exc:
            logger.error(
                "failed to build agent; skipping",
                extra={
                    "agent_id": config.id,
                    "provider": tag.value,
                    "model": config.model_name,
                    "error": str(exc),
                },
            )
            continue
        built.append(BuiltAgent(config=config, handle=handle))
    logger.info(
        "agent pool built",
        extra={"configured": len(configs), "built": len(built)},
    )
    return built


def _coerce_tag(tag: ProviderTag | str) -> ProviderTag:
    if isinstance(tag, ProviderTag):
        return tag
    return ProviderTag.parse(tag)


def _build_openai_compatible(config: AgentConfig, settings: AgentSettings) -> AgentHandle:
    return OpenAICompatibleAgent(
        provider=config.provider_name,
        model=config.model_name,
        api_key=config.api_key or None,
        api_key_env=config.api_key_env,
        base_url=config.api_base_url,
        system_prompt=settings.system_prompt,
        name=settings.agent_name,
    )


def _build_anthropic(config: AgentConfig, settings: AgentSettings) -> AgentHandle:
    return AnthropicAgent(
        model=config.model_name,
        api_key=config.api_key or None,
        api_key_env=config.api_key_env,
        base_url=config.api_base_url,
        system_prompt=settings.system_prompt,
        name=settings.agent_name,
    )


def _build_bigmodel(config: AgentConfig, settings: AgentSettings) -> AgentHandle:
    api_key = resolve_api_key(
        provider=ProviderTag.BIGMODEL.value,
        api_key=config.api_key or None,
        api_key_env=config.api_key_env,
    )
    client = BigmodelClient(
        api_key or "",
        base_url=config.api_base_url if config.api_base_url is not None else BIGMODEL_API_BASE_URL,
    )
    return client.agent(
        config.model_name,
        preamble=settings.system_prompt,
        name=settings.agent_name,
    )


__all__ = [
    "UNSUPPORTED_TAGS",
    "AgentConstructor",
    "AgentSettings",
    "BuiltAgent",
    "ProviderRegistry",
    "build_agents",
]
