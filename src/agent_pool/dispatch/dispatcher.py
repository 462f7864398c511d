"""
agent-pool — health-aware random dispatcher

File: src/agent_pool/dispatch/dispatcher.py
Last updated: 2026-10-19

Purpose
- Public facade: route each prompt to a uniformly random valid agent and track its health.

What should be included in this file
- Dispatcher with prompt / prompt_with_info and their retrying variants.
- Pool management passthroughs (add, counts, stats, reset, lookups).
- DispatcherBuilder for fluent construction from handles or declarative configs.

Functional requirements
- The pool lock is never held while a handle is awaited.
- Every handle failure increments that entry's counter and is re-raised unchanged.
- The invalidation callback fires once, under the lock, on the valid -> invalid transition.
- Cancellation of an in-flight prompt leaves all counters untouched.

Non-functional requirements
- One dispatcher instance is safe to share across any number of concurrent tasks.
- Decision events are emitted through structlog so callers can route them anywhere.
"""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from agent_pool.dispatch.pool import (
    DEFAULT_MAX_FAILURES,
    AgentEntry,
    AgentInfo,
    AgentPool,
    FailureStat,
    InvalidationCallback,
)
from agent_pool.dispatch.retry import RetryDriver, RetryPolicy, SleepFn
from agent_pool.providers.base import (
    AgentHandle,
    NoValidAgentsError,
    Prompt,
    PromptError,
    RetryExhaustedError,
)

if TYPE_CHECKING:
    from agent_pool.config.schema import AgentConfig
    from agent_pool.providers.registry import ProviderRegistry

_ResultT = TypeVar("_ResultT")


class Dispatcher:
    """Uniform random selector over valid agents with per-entry failure accounting."""

    def __init__(
        self,
        pool: AgentPool | None = None,
        *,
        on_agent_invalid: InvalidationCallback | None = None,
        rng: random_module.Random | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        default_max_failures: int = DEFAULT_MAX_FAILURES,
        logger: Any | None = None,
    ) -> None:
        if default_max_failures < 1:
            raise ValueError("default_max_failures must be >= 1")
        self._pool = pool if pool is not None else AgentPool()
        self._on_agent_invalid = on_agent_invalid
        self._rng = rng if rng is not None else random_module.Random()
        self._default_max_failures = default_max_failures
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._retry = RetryDriver(
            retry_policy,
            sleep=sleep,
            random_fn=self._rng.random,
            on_retry=self._log_retry,
        )

    @property
    def pool(self) -> AgentPool:
        return self._pool

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry.policy

    async def prompt(self, message: str | Prompt) -> str:
        text, _ = await self._dispatch(Prompt.coerce(message))
        return text

    async def prompt_with_info(self, message: str | Prompt) -> tuple[str, AgentInfo]:
        return await self._dispatch(Prompt.coerce(message))

    async def try_invoke_with_retry(
        self,
        message: str | Prompt,
        max_attempts: int | None = None,
    ) -> str:
        prompt = Prompt.coerce(message)
        return await self._with_retries(lambda: self.prompt(prompt), max_attempts)

    async def try_invoke_with_info_retry(
        self,
        message: str | Prompt,
        max_attempts: int | None = None,
    ) -> tuple[str, AgentInfo]:
        prompt = Prompt.coerce(message)
        return await self._with_retries(lambda: self.prompt_with_info(prompt), max_attempts)

    # Backward-compatible name.
    prompt_with_retry = try_invoke_with_retry

    async def add_agent(
        self,
        handle: AgentHandle,
        *,
        id: int,  # noqa: A002
        provider: str,
        model: str,
        max_failures: int | None = None,
    ) -> int:
        entry = AgentEntry(
            id=id,
            handle=handle,
            provider=provider,
            model=model,
            max_failures=max_failures if max_failures is not None else self._default_max_failures,
        )
        return await self._pool.push(entry)

    async def len_valid(self) -> int:
        return await self._pool.len_valid()

    async def len_total(self) -> int:
        return await self._pool.len_total()

    async def is_empty(self) -> bool:
        return await self._pool.is_empty()

    async def failure_stats(self) -> list[FailureStat]:
        stats, _ = await self._pool.snapshot_stats()
        return stats

    async def reset_failures(self) -> None:
        await self._pool.reset_all()
        self._logger.info("agent_pool_failures_reset")

    async def get_agents_info(self) -> list[AgentInfo]:
        _, infos = await self._pool.snapshot_stats()
        return infos

    async def get_agent_by_id(self, agent_id: int) -> AgentInfo | None:
        return await self._pool.find_by_id(agent_id)

    async def get_agent_by_name(self, provider: str, model: str) -> AgentInfo | None:
        return await self._pool.find_by(provider, model)

    async def aclose(self) -> None:
        """Close every pooled handle that owns a connection (it has an ``aclose``).

        All handles are closed even when one fails; the first failure is re-raised.
        """

        first_error: Exception | None = None
        for handle in await self._pool.handles():
            close = getattr(handle, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:
                self._logger.warning("agent_close_failed", error=str(exc))
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> Dispatcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _dispatch(self, prompt: Prompt) -> tuple[str, AgentInfo]:
        selection = await self._pool.checkout(self._rng)
        if selection is None:
            self._logger.warning("agent_pool_no_valid_agents")
            raise NoValidAgentsError()

        self._logger.debug(
            "agent_selected",
            agent_id=selection.info.id,
            provider=selection.info.provider,
            model=selection.info.model,
        )

        try:
            text = await selection.handle.prompt(prompt)
        except Exception as exc:
            outcome = await self._pool.update(
                selection.index,
                False,
                on_invalid=self._notify_invalid,
            )
            self._logger.info(
                "agent_prompt_failed",
                agent_id=selection.info.id,
                provider=selection.info.provider,
                model=selection.info.model,
                failure_count=outcome.failure_count,
                invalidated=outcome.invalidated,
                error=str(exc),
            )
            raise

        await self._pool.update(selection.index, True)
        info = AgentInfo(
            id=selection.info.id,
            provider=selection.info.provider,
            model=selection.info.model,
            failure_count=0,
            max_failures=selection.info.max_failures,
        )
        return text, info

    def _notify_invalid(self, agent_id: int) -> None:
        self._logger.warning("agent_invalidated", agent_id=agent_id)
        if self._on_agent_invalid is not None:
            self._on_agent_invalid(agent_id)

    async def _with_retries(
        self,
        operation: Callable[[], Awaitable[_ResultT]],
        max_attempts: int | None,
    ) -> _ResultT:
        attempts = 0

        async def counted() -> _ResultT:
            nonlocal attempts
            attempts += 1
            return await operation()

        try:
            return await self._retry.run(counted, max_attempts=max_attempts)
        except PromptError as exc:
            raise RetryExhaustedError(attempts=attempts, last_error=exc) from exc

    def _log_retry(self, error: PromptError, delay_seconds: float) -> None:
        self._logger.warning(
            "agent_prompt_retry",
            error_code=error.code,
            error=str(error),
            delay_seconds=delay_seconds,
        )


class DispatcherBuilder:
    """Fluent construction of a Dispatcher."""

    def __init__(self) -> None:
        self._max_failures = DEFAULT_MAX_FAILURES
        self._on_agent_invalid: InvalidationCallback | None = None
        self._retry_policy: RetryPolicy | None = None
        self._rng: random_module.Random | None = None
        self._logger: Any | None = None
        self._entries: list[tuple[AgentHandle, int, str, str, int | None]] = []

    def max_failures(self, max_failures: int) -> DispatcherBuilder:
        if max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        self._max_failures = max_failures
        return self

    def on_agent_invalid(self, callback: InvalidationCallback) -> DispatcherBuilder:
        self._on_agent_invalid = callback
        return self

    def retry_policy(self, policy: RetryPolicy) -> DispatcherBuilder:
        self._retry_policy = policy
        return self

    def rng(self, rng: random_module.Random) -> DispatcherBuilder:
        self._rng = rng
        return self

    def logger(self, logger: Any) -> DispatcherBuilder:
        self._logger = logger
        return self

    def add_agent(
        self,
        handle: AgentHandle,
        *,
        id: int,  # noqa: A002
        provider: str,
        model: str,
        max_failures: int | None = None,
    ) -> DispatcherBuilder:
        self._entries.append((handle, id, provider, model, max_failures))
        return self

    def add_configs(
        self,
        configs: Sequence[AgentConfig],
        default_system_prompt: str,
        *,
        registry: ProviderRegistry | None = None,
    ) -> DispatcherBuilder:
        """Construct handles for ``configs``; entries that fail to build are skipped."""

        from agent_pool.providers.registry import build_agents

        for built in build_agents(configs, default_system_prompt, registry=registry):
            self._entries.append(
                (
                    built.handle,
                    built.config.id,
                    built.config.provider_name,
                    built.config.model_name,
                    built.config.max_failures,
                )
            )
        return self

    def build(self) -> Dispatcher:
        entries = [
            AgentEntry(
                id=agent_id,
                handle=handle,
                provider=provider,
                model=model,
                max_failures=max_failures if max_failures is not None else self._max_failures,
            )
            for handle, agent_id, provider, model, max_failures in self._entries
        ]
        return Dispatcher(
            AgentPool(entries),
            on_agent_invalid=self._on_agent_invalid,
            rng=self._rng,
            retry_policy=self._retry_policy,
            default_max_failures=self._max_failures,
            logger=self._logger,
        )


__all__ = ["Dispatcher", "DispatcherBuilder"]
