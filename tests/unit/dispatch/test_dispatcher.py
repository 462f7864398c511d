"""
agent-pool — unit tests for the random dispatcher

File: tests/unit/dispatch/test_dispatcher.py
Last updated: 2026-10-19

Purpose
- Validate selection, failure accounting, invalidation and retry behavior end to end
  with scripted agent handles.

What this test file should cover
- Literal scenarios: mixed healthy/failing pool, single agent exhaustion, empty pool,
  concurrent fan-out, lookup by (provider, model).
- Invalidation callback firing rules and error propagation.
- Cancellation leaves counters untouched.
- Retry variants and the fluent builder.

Functional requirements
- Offline; no provider SDKs or network.

Non-functional requirements
- Deterministic through seeded RNGs and injected sleep.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

import pytest

from agent_pool.config.schema import AgentConfig, ProviderTag
from agent_pool.dispatch import AgentInfo, Dispatcher, DispatcherBuilder, RetryPolicy
from agent_pool.providers.base import (
    AgentHandle,
    MaxDepthError,
    NoValidAgentsError,
    Prompt,
    ProviderError,
    RetryExhaustedError,
)
from agent_pool.providers.bigmodel import BigmodelAgent
from agent_pool.providers.registry import AgentSettings, ProviderRegistry


@dataclass
class ScriptedAgent:
    """Replays ``outcomes`` in order, then repeats ``default`` forever."""

    outcomes: list[str | Exception] = field(default_factory=list)
    default: str | Exception = "ok"
    yield_first: bool = False
    calls: int = 0
    seen: list[Prompt] = field(default_factory=list)

    async def prompt(self, message: Prompt) -> str:
        self.calls += 1
        self.seen.append(message)
        if self.yield_first:
            await asyncio.sleep(0)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass
class RecordingLogger:
    events: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def debug(self, event: str, **fields: Any) -> None:
        self.events.append(("debug", event, fields))

    def info(self, event: str, **fields: Any) -> None:
        self.events.append(("info", event, fields))

    def warning(self, event: str, **fields: Any) -> None:
        self.events.append(("warning", event, fields))

    def names(self) -> list[str]:
        return [name for _, name, _ in self.events]


def _failure(provider: str = "stub") -> ProviderError:
    return ProviderError("boom", provider=provider, http_status=500)


async def _no_sleep(_: float) -> None:
    return None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_agent_is_invalidated_once_and_healthy_agent_serves_the_rest() -> None:
    invalidated: list[int] = []
    healthy = ScriptedAgent(default="ok-A")
    broken = ScriptedAgent(default=_failure())
    dispatcher = Dispatcher(on_agent_invalid=invalidated.append, rng=random.Random(7))
    await dispatcher.add_agent(healthy, id=1, provider="stub", model="a", max_failures=3)
    await dispatcher.add_agent(broken, id=2, provider="stub", model="b", max_failures=3)

    replies: list[str] = []
    for _ in range(100):
        try:
            replies.append(await dispatcher.prompt("hi"))
        except ProviderError:
            continue

    assert invalidated == [2]
    assert broken.calls == 3
    assert len(replies) == 97
    assert set(replies) == {"ok-A"}

    info = await dispatcher.get_agent_by_id(2)
    assert info is not None
    assert info.failure_count == 3
    assert info.is_valid is False
    assert await dispatcher.len_valid() == 1
    assert await dispatcher.len_total() == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_single_agent_exhausts_then_recovers_after_reset() -> None:
    invalidated: list[int] = []
    agent = ScriptedAgent(outcomes=[_failure(), _failure()], default="ok-A")
    dispatcher = Dispatcher(on_agent_invalid=invalidated.append, rng=random.Random(1))
    await dispatcher.add_agent(agent, id=11, provider="stub", model="a", max_failures=2)

    with pytest.raises(ProviderError):
        await dispatcher.prompt("one")
    assert [stat.failure_count for stat in await dispatcher.failure_stats()] == [1]
    assert invalidated == []

    with pytest.raises(ProviderError):
        await dispatcher.prompt("two")
    assert [stat.failure_count for stat in await dispatcher.failure_stats()] == [2]
    assert invalidated == [11]

    with pytest.raises(NoValidAgentsError):
        await dispatcher.prompt("three")
    assert agent.calls == 2
    assert await dispatcher.is_empty() is True

    await dispatcher.reset_failures()
    assert await dispatcher.prompt("four") == "ok-A"
    assert [stat.failure_count for stat in await dispatcher.failure_stats()] == [0]
    assert invalidated == [11]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_pool_raises_no_valid_agents_with_max_depth_fields() -> None:
    dispatcher = Dispatcher()

    with pytest.raises(MaxDepthError) as exc_info:
        await dispatcher.prompt("anything")

    error = exc_info.value
    assert isinstance(error, NoValidAgentsError)
    assert error.depth == 0
    assert error.history == ()
    assert error.prompt == "no valid agent"
    assert await dispatcher.is_empty() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_prompts_spread_uniformly_across_valid_agents() -> None:
    dispatcher = Dispatcher(rng=random.Random(1234))
    for agent_id, label in enumerate(("A", "B", "C"), start=1):
        await dispatcher.add_agent(
            ScriptedAgent(default=label, yield_first=True),
            id=agent_id,
            provider="stub",
            model=label.lower(),
        )

    replies = await asyncio.gather(*(dispatcher.prompt(f"q{i}") for i in range(1000)))

    assert len(replies) == 1000
    counts = Counter(replies)
    assert set(counts) == {"A", "B", "C"}
    for label in ("A", "B", "C"):
        assert abs(counts[label] / 1000 - 1 / 3) <= 0.05


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_agent_by_name_matches_provider_and_model() -> None:
    dispatcher = Dispatcher()
    await dispatcher.add_agent(ScriptedAgent(), id=1, provider="openai", model="gpt-4o-mini")
    await dispatcher.add_agent(ScriptedAgent(), id=2, provider="bigmodel", model="glm-4-flash")

    found = await dispatcher.get_agent_by_name("bigmodel", "glm-4-flash")
    assert found == AgentInfo(
        id=2, provider="bigmodel", model="glm-4-flash", failure_count=0, max_failures=3
    )

    other = Dispatcher()
    await other.add_agent(ScriptedAgent(), id=1, provider="openai", model="gpt-4o-mini")
    assert await other.get_agent_by_name("bigmodel", "glm-4-flash") is None
    assert await other.get_agent_by_name("openai", "glm-4-flash") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_agent_is_never_selected_until_reset() -> None:
    broken = ScriptedAgent(default=_failure())
    healthy = ScriptedAgent(default="fine")
    dispatcher = Dispatcher(rng=random.Random(3))
    await dispatcher.add_agent(broken, id=1, provider="stub", model="broken", max_failures=2)
    await dispatcher.add_agent(healthy, id=2, provider="stub", model="healthy", max_failures=2)

    while broken.calls < 2:
        try:
            await dispatcher.prompt("x")
        except ProviderError:
            pass

    for _ in range(50):
        assert await dispatcher.prompt("x") == "fine"
    assert broken.calls == 2

    await dispatcher.reset_failures()
    assert await dispatcher.len_valid() == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_success_resets_counter_to_zero() -> None:
    agent = ScriptedAgent(outcomes=[_failure(), _failure(), "ok", "ok"])
    dispatcher = Dispatcher()
    await dispatcher.add_agent(agent, id=5, provider="stub", model="m", max_failures=5)

    for _ in range(2):
        with pytest.raises(ProviderError):
            await dispatcher.prompt("x")
    assert (await dispatcher.failure_stats())[0].failure_count == 2

    text, info = await dispatcher.prompt_with_info("x")
    assert text == "ok"
    assert info.failure_count == 0
    assert info.id == 5

    await dispatcher.prompt("x")
    assert (await dispatcher.failure_stats())[0].failure_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_prompt_with_info_reports_serving_agent_identity() -> None:
    dispatcher = Dispatcher()
    await dispatcher.add_agent(ScriptedAgent(default="reply"), id=9, provider="groq", model="x")

    text, info = await dispatcher.prompt_with_info(Prompt("hello"))

    assert text == "reply"
    assert info.to_dict() == {
        "id": 9,
        "provider": "groq",
        "model": "x",
        "failure_count": 0,
        "max_failures": 3,
        "is_valid": True,
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_plain_text_is_coerced_to_prompt_for_handles() -> None:
    agent = ScriptedAgent()
    dispatcher = Dispatcher()
    await dispatcher.add_agent(agent, id=1, provider="stub", model="m")

    await dispatcher.prompt("plain text")

    assert agent.seen == [Prompt("plain text")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_prompt_error_from_handle_counts_as_failure_and_propagates() -> None:
    agent = ScriptedAgent(default=KeyError("weird"))
    dispatcher = Dispatcher()
    await dispatcher.add_agent(agent, id=1, provider="stub", model="m")

    with pytest.raises(KeyError):
        await dispatcher.prompt("x")

    assert (await dispatcher.failure_stats())[0].failure_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_callback_exception_propagates_after_counter_is_recorded() -> None:
    def explode(agent_id: int) -> None:
        raise RuntimeError(f"callback failed for {agent_id}")

    dispatcher = Dispatcher(on_agent_invalid=explode)
    await dispatcher.add_agent(
        ScriptedAgent(default=_failure()), id=4, provider="stub", model="m", max_failures=1
    )

    with pytest.raises(RuntimeError, match="callback failed for 4"):
        await dispatcher.prompt("x")

    info = await dispatcher.get_agent_by_id(4)
    assert info is not None
    assert info.is_valid is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_prompt_leaves_counters_untouched() -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    @dataclass
    class BlockingAgent:
        async def prompt(self, message: Prompt) -> str:
            started.set()
            await release.wait()
            return "late"

    dispatcher = Dispatcher()
    await dispatcher.add_agent(BlockingAgent(), id=1, provider="stub", model="slow")
    await dispatcher.pool.update(0, False)

    task = asyncio.create_task(dispatcher.prompt("x"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    stats = await dispatcher.failure_stats()
    assert [stat.failure_count for stat in stats] == [1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lock_is_released_while_handle_is_awaited() -> None:
    release = asyncio.Event()
    entered = asyncio.Event()

    @dataclass
    class GateAgent:
        async def prompt(self, message: Prompt) -> str:
            entered.set()
            await release.wait()
            return "done"

    dispatcher = Dispatcher()
    await dispatcher.add_agent(GateAgent(), id=1, provider="stub", model="gate")

    task = asyncio.create_task(dispatcher.prompt("x"))
    await entered.wait()
    assert await asyncio.wait_for(dispatcher.len_total(), timeout=1.0) == 1
    release.set()
    assert await task == "done"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_duplicate_ids_resolve_to_earliest_inserted_entry() -> None:
    dispatcher = Dispatcher()
    await dispatcher.add_agent(ScriptedAgent(), id=7, provider="first", model="m")
    await dispatcher.add_agent(ScriptedAgent(), id=7, provider="second", model="m")

    info = await dispatcher.get_agent_by_id(7)
    assert info is not None
    assert info.provider == "first"
    assert await dispatcher.get_agent_by_id(8) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reset_failures_zeroes_every_counter() -> None:
    dispatcher = Dispatcher()
    for agent_id in range(3):
        await dispatcher.add_agent(
            ScriptedAgent(default=_failure()), id=agent_id, provider="stub", model=str(agent_id)
        )
    for index in range(3):
        await dispatcher.pool.update(index, False)
        await dispatcher.pool.update(index, False)

    await dispatcher.reset_failures()

    stats = await dispatcher.failure_stats()
    assert [stat.failure_count for stat in stats] == [0, 0, 0]
    assert [stat.index for stat in stats] == [0, 1, 2]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_decision_events_are_logged() -> None:
    recorder = RecordingLogger()
    dispatcher = Dispatcher(logger=recorder)
    await dispatcher.add_agent(
        ScriptedAgent(outcomes=["ok"], default=_failure()),
        id=3,
        provider="stub",
        model="m",
        max_failures=1,
    )

    await dispatcher.prompt("x")
    with pytest.raises(ProviderError):
        await dispatcher.prompt("x")
    with pytest.raises(NoValidAgentsError):
        await dispatcher.prompt("x")

    assert recorder.names() == [
        "agent_selected",
        "agent_selected",
        "agent_invalidated",
        "agent_prompt_failed",
        "agent_pool_no_valid_agents",
    ]
    _, _, selected = recorder.events[0]
    assert selected == {"agent_id": 3, "provider": "stub", "model": "m"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_returns_result_after_transient_failures() -> None:
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    agent = ScriptedAgent(outcomes=[_failure(), _failure()], default="hello")
    dispatcher = Dispatcher(
        sleep=record_sleep,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay_seconds=0.001, multiplier=2.0),
    )
    await dispatcher.add_agent(agent, id=1, provider="stub", model="m", max_failures=5)

    assert await dispatcher.try_invoke_with_retry("x") == "hello"
    assert delays == [0.001, 0.002]
    assert agent.calls == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_exhaustion_wraps_last_error() -> None:
    dispatcher = Dispatcher(sleep=_no_sleep)
    await dispatcher.add_agent(
        ScriptedAgent(default=_failure()), id=1, provider="stub", model="m", max_failures=10
    )

    with pytest.raises(RetryExhaustedError) as exc_info:
        await dispatcher.try_invoke_with_info_retry("x", max_attempts=4)

    error = exc_info.value
    assert error.attempts == 4
    assert isinstance(error.last_error, ProviderError)
    assert error.__cause__ is error.last_error
    assert (await dispatcher.failure_stats())[0].failure_count == 4


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_treats_empty_pool_as_retryable() -> None:
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    dispatcher = Dispatcher(sleep=record_sleep)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await dispatcher.prompt_with_retry("x", max_attempts=2)

    assert isinstance(exc_info.value.last_error, NoValidAgentsError)
    assert exc_info.value.attempts == 2
    assert sleeps == [1.0]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_builder_applies_default_and_per_agent_max_failures() -> None:
    invalidated: list[int] = []
    dispatcher = (
        DispatcherBuilder()
        .max_failures(2)
        .on_agent_invalid(invalidated.append)
        .rng(random.Random(0))
        .add_agent(ScriptedAgent(), id=1, provider="stub", model="a")
        .add_agent(ScriptedAgent(), id=2, provider="stub", model="b", max_failures=5)
        .build()
    )

    infos = await dispatcher.get_agents_info()
    assert [info.max_failures for info in infos] == [2, 5]

    for _ in range(2):
        await dispatcher.pool.update(0, False, on_invalid=invalidated.append)
    assert invalidated == [1]


@pytest.mark.unit
def test_builder_rejects_non_positive_max_failures() -> None:
    with pytest.raises(ValueError, match="max_failures"):
        DispatcherBuilder().max_failures(0)


def _stub_registry(calls: list[int]) -> ProviderRegistry:
    def construct(config: AgentConfig, settings: AgentSettings) -> AgentHandle:
        calls.append(config.id)
        return ScriptedAgent(default=f"{settings.agent_name}:{config.model_name}")

    registry = ProviderRegistry()
    registry.register(ProviderTag.OPENAI, construct)
    registry.register(ProviderTag.GROQ, construct)
    return registry


@pytest.mark.unit
@pytest.mark.asyncio
async def test_building_from_same_configs_twice_yields_equal_pools() -> None:
    configs = [
        AgentConfig(id=1, provider="openai", model_name="gpt-4o-mini"),
        AgentConfig(id=2, provider="groq", model_name="llama3-8b", agent_name="fast"),
        AgentConfig(id=2, provider="openai", model_name="gpt-4o"),
        AgentConfig(id=3, provider="azure", model_name="skipped"),
    ]
    calls: list[int] = []

    first = DispatcherBuilder().add_configs(configs, "sys", registry=_stub_registry(calls)).build()
    second = DispatcherBuilder().add_configs(configs, "sys", registry=_stub_registry(calls)).build()

    assert await first.len_total() == await second.len_total() == 3
    first_ids = Counter(info.id for info in await first.get_agents_info())
    second_ids = Counter(info.id for info in await second.get_agents_info())
    assert first_ids == second_ids == Counter({1: 1, 2: 2})
    assert calls == [1, 2, 2, 1, 2, 2]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_configured_agents_receive_default_name_and_prompt() -> None:
    configs = [AgentConfig(id=1, provider="openai", model_name="gpt-4o-mini", max_failures=4)]
    dispatcher = DispatcherBuilder().add_configs(
        configs, "sys", registry=_stub_registry([])
    ).build()

    assert await dispatcher.prompt("x") == "rand agent:gpt-4o-mini"
    info = await dispatcher.get_agent_by_id(1)
    assert info is not None
    assert info.provider == "openai"
    assert info.max_failures == 4


@dataclass
class ClosableAgent(ScriptedAgent):
    close_error: Exception | None = None
    closed: int = 0

    async def aclose(self) -> None:
        self.closed += 1
        if self.close_error is not None:
            raise self.close_error


@pytest.mark.unit
@pytest.mark.asyncio
async def test_context_exit_closes_each_closable_handle_once() -> None:
    shared = ClosableAgent()
    plain = ScriptedAgent()
    dispatcher = (
        DispatcherBuilder()
        .add_agent(shared, id=1, provider="stub", model="a")
        .add_agent(shared, id=2, provider="stub", model="b")
        .add_agent(plain, id=3, provider="stub", model="c")
        .build()
    )

    async with dispatcher as entered:
        assert entered is dispatcher
        await dispatcher.prompt("x")

    assert shared.closed == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_aclose_closes_remaining_handles_before_reraising_first_error() -> None:
    logger = RecordingLogger()
    failing = ClosableAgent(close_error=RuntimeError("close failed"))
    healthy = ClosableAgent()
    dispatcher = (
        DispatcherBuilder()
        .logger(logger)
        .add_agent(failing, id=1, provider="stub", model="a")
        .add_agent(healthy, id=2, provider="stub", model="b")
        .build()
    )

    with pytest.raises(RuntimeError, match="close failed"):
        await dispatcher.aclose()

    assert failing.closed == healthy.closed == 1
    assert "agent_close_failed" in logger.names()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_configured_bigmodel_agent_releases_its_http_client() -> None:
    configs = [AgentConfig(id=9, provider="bigmodel", model_name="glm-4-flash", api_key="k")]
    dispatcher = DispatcherBuilder().add_configs(configs, "sys").build()
    (handle,) = await dispatcher.pool.handles()
    assert isinstance(handle, BigmodelAgent)
    assert not handle.completion_model.client.is_closed

    async with dispatcher:
        pass

    assert handle.completion_model.client.is_closed
