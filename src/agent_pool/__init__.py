"""
agent-pool — package root

File: src/agent_pool/__init__.py
Last updated: 2026-10-19

Purpose
- Random, health-aware dispatch of prompts across a pool of LLM provider agents.

What should be included in this file
- Version export and a minimal public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from agent_pool.dispatch import Dispatcher, DispatcherBuilder, RetryPolicy
from agent_pool.providers import (
    AgentHandle,
    NoValidAgentsError,
    Prompt,
    PromptError,
    RetryExhaustedError,
)

__version__ = "0.1.0"

__all__ = [
    "AgentHandle",
    "Dispatcher",
    "DispatcherBuilder",
    "NoValidAgentsError",
    "Prompt",
    "PromptError",
    "RetryExhaustedError",
    "RetryPolicy",
    "__version__",
]
