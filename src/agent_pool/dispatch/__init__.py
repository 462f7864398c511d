"""Agent pool, random dispatcher and retry driver."""

from agent_pool.dispatch.dispatcher import Dispatcher, DispatcherBuilder
from agent_pool.dispatch.pool import (
    DEFAULT_MAX_FAILURES,
    AgentEntry,
    AgentInfo,
    AgentPool,
    FailureStat,
    Selection,
    UpdateOutcome,
)
from agent_pool.dispatch.retry import (
    RetryDriver,
    RetryPolicy,
    compute_backoff_delay,
    run_with_retries,
)

__all__ = [
    "DEFAULT_MAX_FAILURES",
    "AgentEntry",
    "AgentInfo",
    "AgentPool",
    "Dispatcher",
    "DispatcherBuilder",
    "FailureStat",
    "RetryDriver",
    "RetryPolicy",
    "Selection",
    "UpdateOutcome",
    "compute_backoff_delay",
    "run_with_retries",
]
