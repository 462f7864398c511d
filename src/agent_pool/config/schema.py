"""
agent-pool — config schema, defaults and validation

File: src/agent_pool/config/schema.py
Last updated: 2026-10-19

Purpose
- Typed view over the agent-pool config document and strict validation of raw payloads.

What should be included in this file
- ProviderTag enumeration and AgentConfig record.
- Built-in defaults for the pool, retry and logging sections.
- Validation that collects every issue with a dotted/indexed path.
- Redacted dumps safe to log.

Functional requirements
- Unknown provider tags survive validation as raw strings; the registry skips them.
- Unknown keys are rejected so typos surface early.

Non-functional requirements
- Validation is deterministic: same input, same issues in the same order.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final, TypedDict

from agent_pool.dispatch.pool import DEFAULT_MAX_FAILURES
from agent_pool.dispatch.retry import RetryPolicy

INT32_MIN: Final[int] = -(2**31)
INT32_MAX: Final[int] = 2**31 - 1

DEFAULT_SYSTEM_PROMPT: Final[str] = "You are a helpful assistant."
DEFAULT_AGENT_NAME: Final[str] = "rand agent"

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_REDACTED: Final[str] = "***REDACTED***"
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({"api_key", "token", "secret", "password"})


class ProviderTag(StrEnum):
    ANTHROPIC = "anthropic"
    COHERE = "cohere"
    GEMINI = "gemini"
    HUGGINGFACE = "huggingface"
    MISTRAL = "mistral"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    TOGETHER = "together"
    XAI = "xai"
    AZURE = "azure"
    DEEPSEEK = "deepseek"
    GALADRIEL = "galadriel"
    GROQ = "groq"
    HYPERBOLIC = "hyperbolic"
    MIRA = "mira"
    MOONSHOT = "moonshot"
    OLLAMA = "ollama"
    PERPLEXITY = "perplexity"
    BIGMODEL = "bigmodel"

    @classmethod
    def parse(cls, value: str) -> ProviderTag:
        """Parse a tag case-insensitively; raises ValueError for unknown tags."""

        normalized = value.strip().lower()
        normalized = _TAG_ALIASES.get(normalized, normalized)
        return cls(normalized)

    @property
    def env_key_name(self) -> str:
        return f"{self.value.upper()}_API_KEY"


_TAG_ALIASES: Final[dict[str, str]] = {
    "mooshot": "moonshot",
    "open_ai": "openai",
    "open-ai": "openai",
    "open_router": "openrouter",
    "deep_seek": "deepseek",
    "x-ai": "xai",
}


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Declarative description of one agent, consumed once by the provider registry."""

    id: int
    provider: ProviderTag | str
    model_name: str
    api_key: str = ""
    api_key_env: str | None = None
    api_base_url: str | None = None
    system_prompt: str | None = None
    agent_name: str | None = None
    max_failures: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise TypeError("AgentConfig.id must be an int")
        if not (INT32_MIN <= self.id <= INT32_MAX):
            raise ValueError("AgentConfig.id must fit in a signed 32-bit integer")
        if isinstance(self.provider, str) and not isinstance(self.provider, ProviderTag):
            try:
                object.__setattr__(self, "provider", ProviderTag.parse(self.provider))
            except ValueError:
                object.__setattr__(self, "provider", self.provider.strip().lower())
        if not isinstance(self.model_name, str) or not self.model_name.strip():
            raise ValueError("AgentConfig.model_name cannot be empty")
        if not isinstance(self.api_key, str):
            raise TypeError("AgentConfig.api_key must be a string")
        if self.max_failures is not None and self.max_failures < 1:
            raise ValueError("AgentConfig.max_failures must be >= 1")

    @property
    def provider_tag(self) -> ProviderTag | None:
        return self.provider if isinstance(self.provider, ProviderTag) else None

    @property
    def provider_name(self) -> str:
        return str(self.provider)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> AgentConfig:
        return cls(
            id=payload["id"],
            provider=payload["provider"],
            model_name=payload["model_name"],
            api_key=payload.get("api_key", ""),
            api_key_env=payload.get("api_key_env"),
            api_base_url=payload.get("api_base_url"),
            system_prompt=payload.get("system_prompt"),
            agent_name=payload.get("agent_name"),
            max_failures=payload.get("max_failures"),
        )

    def __repr__(self) -> str:
        key = _REDACTED if self.api_key else ""
        return (
            f"AgentConfig(id={self.id}, provider={self.provider_name!r}, "
            f"model_name={self.model_name!r}, api_key={key!r}, "
            f"api_base_url={self.api_base_url!r})"
        )


class PoolSection(TypedDict):
    max_failures: int
    default_system_prompt: str


class RetrySection(TypedDict):
    max_attempts: int
    initial_delay_seconds: float
    multiplier: float
    max_delay_seconds: float
    jitter_ratio: float


class LoggingSection(TypedDict, total=False):
    level: str
    json: bool
    log_path: str


class AgentPoolDocument(TypedDict):
    pool: PoolSection
    retry: RetrySection
    logging: LoggingSection
    agents: list[dict[str, Any]]


DEFAULT_CONFIG: Final[AgentPoolDocument] = {
    "pool": {
        "max_failures": DEFAULT_MAX_FAILURES,
        "default_system_prompt": DEFAULT_SYSTEM_PROMPT,
    },
    "retry": {
        "max_attempts": 3,
        "initial_delay_seconds": 1.0,
        "multiplier": 2.0,
        "max_delay_seconds": 60.0,
        "jitter_ratio": 0.0,
    },
    "logging": {
        "level": "INFO",
        "json": True,
    },
    "agents": [],
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


@dataclass(frozen=True, slots=True)
class PoolSettings:
    max_failures: int = DEFAULT_MAX_FAILURES
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass(frozen=True, slots=True)
class LoggingSettings:
    level: str = "INFO"
    json: bool = True
    log_path: str | None = None


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Validated, typed config document."""

    pool: PoolSettings = field(default_factory=PoolSettings)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    agents: tuple[AgentConfig, ...] = ()


def default_config() -> AgentPoolDocument:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base``; lists are replaced, not concatenated."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(
    config: Mapping[str, object] | object,
) -> tuple[dict[str, Any] | None, tuple[ConfigValidationIssue, ...]]:
    """Validate a raw document; returns the normalized document or the issues found."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return None, issues.items()

    _reject_unknown_keys(root, {"pool", "retry", "logging", "agents"}, "", issues)
    normalized: dict[str, Any] = {}

    pool = _as_object(root.get("pool", {}), "pool", issues)
    if pool is not None:
        normalized["pool"] = _validate_pool(pool, issues)
    retry = _as_object(root.get("retry", {}), "retry", issues)
    if retry is not None:
        normalized["retry"] = _validate_retry(retry, issues)
    logging_section = _as_object(root.get("logging", {}), "logging", issues)
    if logging_section is not None:
        normalized["logging"] = _validate_logging(logging_section, issues)
    normalized["agents"] = _validate_agents(root.get("agents", []), issues)

    if issues.has_issues:
        return None, issues.items()
    return normalized, ()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    normalized, issues = validate_config(config)
    if normalized is None:
        raise ConfigValidationError(issues)
    return normalized


def to_pool_config(config: Mapping[str, Any]) -> PoolConfig:
    """Build typed settings from an already validated document."""

    pool = config.get("pool", {})
    retry = config.get("retry", {})
    logging_section = config.get("logging", {})
    defaults = PoolSettings()
    return PoolConfig(
        pool=PoolSettings(
            max_failures=pool.get("max_failures", defaults.max_failures),
            default_system_prompt=pool.get(
                "default_system_prompt", defaults.default_system_prompt
            ),
        ),
        retry=RetryPolicy(**retry),
        logging=LoggingSettings(
            level=logging_section.get("level", "INFO"),
            json=logging_section.get("json", True),
            log_path=logging_section.get("log_path"),
        ),
        agents=tuple(AgentConfig.from_mapping(item) for item in config.get("agents", [])),
    )


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a copy of ``config`` with secret-looking values masked."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _validate_pool(payload: dict[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"max_failures", "default_system_prompt"}, "pool", issues)
    out: dict[str, Any] = {}
    if "max_failures" in payload:
        value = _as_int(payload["max_failures"], "pool.max_failures", issues, minimum=1)
        if value is not None:
            out["max_failures"] = value
    if "default_system_prompt" in payload:
        prompt = payload["default_system_prompt"]
        if isinstance(prompt, str):
            out["default_system_prompt"] = prompt
        else:
            issues.add(
                "pool.default_system_prompt",
                f"expected string, got {type(prompt).__name__}",
            )
    return out


def _validate_retry(payload: dict[str, object], issues: _IssueCollector) -> dict[str, Any]:
    allowed = {
        "max_attempts",
        "initial_delay_seconds",
        "multiplier",
        "max_delay_seconds",
        "jitter_ratio",
    }
    _reject_unknown_keys(payload, allowed, "retry", issues)
    out: dict[str, Any] = {}
    if "max_attempts" in payload:
        attempts = _as_int(payload["max_attempts"], "retry.max_attempts", issues, minimum=1)
        if attempts is not None:
            out["max_attempts"] = attempts
    for key, minimum in (
        ("initial_delay_seconds", 0.0),
        ("multiplier", 1.0),
        ("max_delay_seconds", 0.0),
        ("jitter_ratio", 0.0),
    ):
        if key not in payload:
            continue
        value = _as_float(payload[key], f"retry.{key}", issues, minimum=minimum)
        if value is not None:
            out[key] = value
    if out.get("jitter_ratio", 0.0) > 1.0:
        issues.add("retry.jitter_ratio", "must be <= 1.0")
    initial = out.get("initial_delay_seconds", DEFAULT_CONFIG["retry"]["initial_delay_seconds"])
    maximum = out.get("max_delay_seconds", DEFAULT_CONFIG["retry"]["max_delay_seconds"])
    if initial > maximum:
        issues.add("retry.initial_delay_seconds", "must be <= retry.max_delay_seconds")
    return out


def _validate_logging(payload: dict[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"level", "json", "log_path"}, "logging", issues)
    out: dict[str, Any] = {}
    if "level" in payload:
        level = _as_str(payload["level"], "logging.level", issues)
        if level is not None:
            if level.upper() not in LOG_LEVELS:
                expected = ", ".join(LOG_LEVELS)
                issues.add(
                    "logging.level",
                    f"invalid value {level!r}; expected one of: {expected}",
                )
            else:
                out["level"] = level.upper()
    if "json" in payload:
        if isinstance(payload["json"], bool):
            out["json"] = payload["json"]
        else:
            issues.add("logging.json", f"expected boolean, got {type(payload['json']).__name__}")
    if "log_path" in payload:
        log_path = _as_str(payload["log_path"], "logging.log_path", issues)
        if log_path is not None:
            out["log_path"] = log_path
    return out


_AGENT_KEYS: Final[frozenset[str]] = frozenset(
    {
        "id",
        "provider",
        "model_name",
        "api_key",
        "api_key_env",
        "api_base_url",
        "system_prompt",
        "agent_name",
        "max_failures",
    }
)


def _validate_agents(value: object, issues: _IssueCollector) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        issues.add("agents", f"expected array, got {type(value).__name__}")
        return []

    agents: list[dict[str, Any]] = []
    for index, raw in enumerate(value):
        path = f"agents[{index}]"
        entry = _as_object(raw, path, issues)
        if entry is None:
            continue
        _reject_unknown_keys(entry, set(_AGENT_KEYS), path, issues)
        for required in ("id", "provider", "model_name"):
            if required not in entry:
                issues.add(f"{path}.{required}", "missing required field")

        out: dict[str, Any] = {}
        if "id" in entry:
            agent_id = _as_int(entry["id"], f"{path}.id", issues)
            if agent_id is not None and not (INT32_MIN <= agent_id <= INT32_MAX):
                issues.add(f"{path}.id", "must fit in a signed 32-bit integer")
            elif agent_id is not None:
                out["id"] = agent_id
        for key in ("provider", "model_name", "api_key_env", "api_base_url", "agent_name"):
            if key in entry:
                parsed = _as_str(entry[key], f"{path}.{key}", issues)
                if parsed is not None:
                    out[key] = parsed.lower() if key == "provider" else parsed
        for key in ("api_key", "system_prompt"):
            if key in entry:
                raw_text = entry[key]
                if isinstance(raw_text, str):
                    out[key] = raw_text
                else:
                    issues.add(f"{path}.{key}", f"expected string, got {type(raw_text).__name__}")
        if "max_failures" in entry:
            ceiling = _as_int(entry["max_failures"], f"{path}.max_failures", issues, minimum=1)
            if ceiling is not None:
                out["max_failures"] = ceiling
        agents.append(out)
    return agents


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        else:
            target[key] = copy.deepcopy(value)


def _redact_value(value: object, *, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {
            str(key): _redact_value(item, parent_key=str(key))
            for key, item in sorted(value.items(), key=lambda pair: str(pair[0]))
        }
    if isinstance(value, list):
        return [_redact_value(item, parent_key=parent_key) for item in value]
    if parent_key is not None and parent_key.lower() in _SENSITIVE_KEYS and value:
        return _REDACTED
    return value


__all__ = [
    "DEFAULT_AGENT_NAME",
    "DEFAULT_CONFIG",
    "DEFAULT_SYSTEM_PROMPT",
    "AgentConfig",
    "AgentPoolDocument",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "LoggingSettings",
    "PoolConfig",
    "PoolSettings",
    "ProviderTag",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "to_pool_config",
    "validate_config",
]
