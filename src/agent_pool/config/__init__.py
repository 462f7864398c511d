"""
agent-pool config package public API.

File: src/agent_pool/config/__init__.py
Last updated: 2026-10-19

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``agents.toml`` (or YAML) + ``AGENT_POOL_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from agent_pool.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
    load_pool_config,
)
from agent_pool.config.schema import (
    DEFAULT_AGENT_NAME,
    DEFAULT_CONFIG,
    DEFAULT_SYSTEM_PROMPT,
    AgentConfig,
    ConfigValidationError,
    ConfigValidationIssue,
    LoggingSettings,
    PoolConfig,
    PoolSettings,
    ProviderTag,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
    to_pool_config,
    validate_config,
)

__all__ = [
    "AgentConfig",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_AGENT_NAME",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_SYSTEM_PROMPT",
    "ENV_PREFIX",
    "LoggingSettings",
    "PoolConfig",
    "PoolSettings",
    "ProviderTag",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "dump_redacted",
    "load_config",
    "load_pool_config",
    "merge_config",
    "to_pool_config",
    "validate_config",
]
