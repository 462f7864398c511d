"""Exponential backoff retry driver for prompt-style coroutines."""

from __future__ import annotations

import asyncio
import random as random_module
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeAlias, TypeVar

from agent_pool.providers.base import PromptError

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]
RetryNotify: TypeAlias = Callable[[PromptError, float], None]

_ResultT = TypeVar("_ResultT")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff policy.

    ``max_attempts`` counts every call, the first one included. ``None`` means the
    driver never gives up on its own.
    """

    max_attempts: int | None = 3
    initial_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 60.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        if self.initial_delay_seconds > self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be <= max_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

    def with_max_attempts(self, max_attempts: int | None) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max_attempts,
            initial_delay_seconds=self.initial_delay_seconds,
            multiplier=self.multiplier,
            max_delay_seconds=self.max_delay_seconds,
            jitter_ratio=self.jitter_ratio,
        )


def compute_backoff_delay(
    *,
    retry_number: int,
    policy: RetryPolicy,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return bounded exponential backoff delay for retry N (1-based)."""

    if retry_number <= 0:
        raise ValueError("retry_number must be > 0")

    base_delay = policy.initial_delay_seconds * (policy.multiplier ** (retry_number - 1))
    bounded_delay = min(base_delay, policy.max_delay_seconds)

    if policy.jitter_ratio == 0.0:
        return bounded_delay

    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")

    max_jitter = bounded_delay * policy.jitter_ratio
    jitter = ((random_value * 2.0) - 1.0) * max_jitter
    return max(0.0, min(policy.max_delay_seconds, bounded_delay + jitter))


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    policy: RetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    random_fn: RandomFn = random_module.random,
    on_retry: RetryNotify | None = None,
) -> _ResultT:
    """Call ``operation`` until it succeeds or ``policy.max_attempts`` calls were made.

    Every PromptError is retried. The last error is re-raised unchanged; anything
    that is not a PromptError propagates on the first occurrence.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except PromptError as exc:
            if policy.max_attempts is not None and attempt >= policy.max_attempts:
                raise
            delay_seconds = compute_backoff_delay(
                retry_number=attempt,
                policy=policy,
                random_fn=random_fn,
            )
            if on_retry is not None:
                on_retry(exc, delay_seconds)
            await sleep(delay_seconds)


class RetryDriver:
    """Policy, timer and notification hook bundled for repeated use."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
        on_retry: RetryNotify | None = None,
    ) -> None:
        self.policy = policy if policy is not None else RetryPolicy()
        self._sleep = sleep
        self._random_fn = random_fn
        self._on_retry = on_retry

    async def run(
        self,
        operation: Callable[[], Awaitable[_ResultT]],
        *,
        max_attempts: int | None = None,
        on_retry: RetryNotify | None = None,
    ) -> _ResultT:
        policy = self.policy
        if max_attempts is not None:
            policy = policy.with_max_attempts(max_attempts)
        return await run_with_retries(
            operation,
            policy=policy,
            sleep=self._sleep,
            random_fn=self._random_fn,
            on_retry=on_retry if on_retry is not None else self._on_retry,
        )


__all__ = [
    "RandomFn",
    "RetryDriver",
    "RetryNotify",
    "RetryPolicy",
    "SleepFn",
    "compute_backoff_delay",
    "run_with_retries",
]
