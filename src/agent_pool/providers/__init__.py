"""
agent-pool — provider adapters and the shared agent contract

File: src/agent_pool/providers/__init__.py
Last updated: 2026-10-19

Purpose
- Re-export the agent contract and error taxonomy.

Non-functional requirements
- Adapters and the registry are imported from their own modules so that importing
  this package never pulls in an HTTP client or an SDK.
- Must never log secrets or raw API keys.
"""

from agent_pool.providers.base import (
    AgentHandle,
    ChatMessage,
    ConversionError,
    JSONValue,
    MaxDepthError,
    NoValidAgentsError,
    Prompt,
    PromptError,
    ProviderError,
    ProviderUnavailableError,
    RandAgentError,
    ResponseError,
    RetryExhaustedError,
    TransportError,
)

__all__ = [
    "AgentHandle",
    "ChatMessage",
    "ConversionError",
    "JSONValue",
    "MaxDepthError",
    "NoValidAgentsError",
    "Prompt",
    "PromptError",
    "ProviderError",
    "ProviderUnavailableError",
    "RandAgentError",
    "ResponseError",
    "RetryExhaustedError",
    "TransportError",
]
