"""
agent-pool — unit tests for config loading

File: tests/unit/config/test_config_loader.py
Last updated: 2026-10-19

Purpose
- Validate deterministic config loading from defaults, TOML/YAML files, env overrides,
  and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Env var path mapping and type coercion.
- Typed settings and agent entries produced from the document.
- Redacted effective config dumping.

Functional requirements
- Works without provider keys or network.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from agent_pool.config import (
    ConfigLoadError,
    ConfigValidationError,
    ProviderTag,
    dump_effective_config,
    load_config,
    load_pool_config,
)

_TOML = """
[pool]
max_failures = 5
default_system_prompt = "You answer in one sentence."

[retry]
max_attempts = 4
initial_delay_seconds = 0.5

[[agents]]
id = 1
provider = "Bigmodel"
model_name = "glm-4-flash"
api_key = "bm-secret-value"

[[agents]]
id = 2
provider = "openrouter"
model_name = "meta-llama/llama-3-8b-instruct:free"
agent_name = "llama"
max_failures = 2
""".strip()


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
def test_toml_file_is_merged_over_defaults(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path / "agents.toml", _TOML), environ={})

    assert config["pool"] == {
        "max_failures": 5,
        "default_system_prompt": "You answer in one sentence.",
    }
    assert config["retry"]["max_attempts"] == 4
    assert config["retry"]["initial_delay_seconds"] == 0.5
    assert config["retry"]["multiplier"] == 2.0
    assert config["logging"] == {"level": "INFO", "json": True}
    assert [agent["provider"] for agent in config["agents"]] == ["bigmodel", "openrouter"]


@pytest.mark.unit
def test_typed_pool_config(tmp_path: Path) -> None:
    pool_config = load_pool_config(_write(tmp_path / "agents.toml", _TOML), environ={})

    assert pool_config.pool.max_failures == 5
    assert pool_config.retry.max_attempts == 4
    assert pool_config.retry.initial_delay_seconds == 0.5
    first, second = pool_config.agents
    assert first.provider is ProviderTag.BIGMODEL
    assert first.api_key == "bm-secret-value"
    assert "bm-secret-value" not in repr(first)
    assert second.agent_name == "llama"
    assert second.max_failures == 2
    assert second.system_prompt is None


@pytest.mark.unit
def test_yaml_file_is_supported(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "agents.yaml",
        """
pool:
  max_failures: 2
agents:
  - id: 7
    provider: groq
    model_name: llama3-8b-8192
    api_key_env: TEAM_GROQ_KEY
""".strip(),
    )

    pool_config = load_pool_config(path, environ={})

    assert pool_config.pool.max_failures == 2
    assert pool_config.agents[0].provider is ProviderTag.GROQ
    assert pool_config.agents[0].api_key_env == "TEAM_GROQ_KEY"


@pytest.mark.unit
def test_precedence_cli_over_env_over_file(tmp_path: Path) -> None:
    path = _write(tmp_path / "agents.toml", _TOML)
    environ = {
        "AGENT_POOL_POOL_MAX_FAILURES": "7",
        "AGENT_POOL_RETRY_MAX_ATTEMPTS": "6",
        "AGENT_POOL_LOGGING_JSON": "off",
        "AGENT_POOL_LOGGING_LOG_PATH": "logs/pool.jsonl",
    }

    config = load_config(
        path,
        environ=environ,
        cli_overrides={"retry.max_attempts": 9, "logging.level": None},
    )

    assert config["pool"]["max_failures"] == 7
    assert config["retry"]["max_attempts"] == 9
    assert config["logging"]["json"] is False
    assert config["logging"]["log_path"] == "logs/pool.jsonl"
    assert config["logging"]["level"] == "INFO"


@pytest.mark.unit
def test_env_values_are_type_checked(tmp_path: Path) -> None:
    path = _write(tmp_path / "agents.toml", "")

    with pytest.raises(ConfigLoadError, match="AGENT_POOL_POOL_MAX_FAILURES"):
        load_config(path, environ={"AGENT_POOL_POOL_MAX_FAILURES": "many"})
    with pytest.raises(ConfigLoadError, match="boolean"):
        load_config(path, environ={"AGENT_POOL_LOGGING_JSON": "maybe"})


@pytest.mark.unit
def test_agents_are_not_bound_to_env(tmp_path: Path) -> None:
    path = _write(tmp_path / "agents.toml", _TOML)

    config = load_config(path, environ={"AGENT_POOL_AGENTS": "[]"})

    assert len(config["agents"]) == 2


@pytest.mark.unit
def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="not found"):
        load_config(tmp_path / "absent.toml", environ={})


@pytest.mark.unit
def test_missing_default_file_yields_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    pool_config = load_pool_config(environ={})

    assert pool_config.agents == ()
    assert pool_config.pool.default_system_prompt == "You are a helpful assistant."


@pytest.mark.unit
def test_malformed_files_raise_load_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(_write(tmp_path / "bad.toml", "[pool"), environ={})
    with pytest.raises(ConfigLoadError, match="invalid YAML"):
        load_config(_write(tmp_path / "bad.yml", "agents: [unclosed"), environ={})
    with pytest.raises(ConfigLoadError, match="must be an object"):
        load_config(_write(tmp_path / "list.yaml", "- 1\n- 2\n"), environ={})


@pytest.mark.unit
def test_validation_errors_surface_from_loader(tmp_path: Path) -> None:
    path = _write(tmp_path / "agents.toml", "[pool]\nmax_failures = 0\n")

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(path, environ={})

    assert [issue.path for issue in exc_info.value.issues] == ["pool.max_failures"]


@pytest.mark.unit
def test_effective_config_dump_is_redacted_and_stable(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path / "agents.toml", _TOML), environ={})

    first = dump_effective_config(config)
    second = dump_effective_config(load_config(tmp_path / "agents.toml", environ={}))

    assert first == second
    assert "bm-secret-value" not in first
    assert json.loads(first)["agents"][0]["api_key"] == "***REDACTED***"
