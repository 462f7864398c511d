"""
agent-pool — runtime config loader.

File: src/agent_pool/config/loader.py
Last updated: 2026-10-19

Purpose
- Build the effective agent-pool config from built-in defaults, one TOML/YAML file,
  ``AGENT_POOL_*`` environment variables and CLI overrides, in that order.

What should be included in this file
- File readers keyed by suffix (``tomllib`` for TOML, ``yaml.safe_load`` for YAML).
- The table of environment variables and the converter each one uses.
- Dotted-key CLI overrides.
- JSON dump of the effective config with secrets masked.

Functional requirements
- Every merged document goes through schema validation before it is returned.
- Agent entries come from the file only; no environment variable creates or edits one.

Non-functional requirements
- Same inputs give the same document and the same error messages.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

import yaml

from agent_pool.config.schema import (
    PoolConfig,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
    to_pool_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "agents.toml"
ENV_PREFIX: Final[str] = "AGENT_POOL_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


class ConfigLoadError(ValueError):
    """A config source could not be read, parsed or coerced."""


def _to_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _to_float(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


def _to_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (1/0, true/false, yes/no, on/off)")


def _to_str(raw: str) -> str:
    return raw


# config path -> converter; the env var name is derived from the path
_ENV_FIELDS: Final[dict[tuple[str, str], Callable[[str], object]]] = {
    ("pool", "max_failures"): _to_int,
    ("pool", "default_system_prompt"): _to_str,
    ("retry", "max_attempts"): _to_int,
    ("retry", "initial_delay_seconds"): _to_float,
    ("retry", "multiplier"): _to_float,
    ("retry", "max_delay_seconds"): _to_float,
    ("retry", "jitter_ratio"): _to_float,
    ("logging", "level"): _to_str,
    ("logging", "json"): _to_bool,
    ("logging", "log_path"): _to_str,
}


def env_var_name(section: str, key: str) -> str:
    """``("retry", "max_attempts")`` -> ``AGENT_POOL_RETRY_MAX_ATTEMPTS``."""

    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated config document (CLI > env > file > defaults).

    Without ``config_path`` the loader looks for ``agents.toml`` in the working
    directory and silently falls back to defaults when it is absent. An explicit
    path that does not exist is an error.
    """

    if config_path is None:
        document_path = Path.cwd() / DEFAULT_CONFIG_FILE
        from_file = _read_document(document_path) if document_path.is_file() else {}
    else:
        document_path = Path(config_path).expanduser()
        if not document_path.is_file():
            raise ConfigLoadError(f"config file not found: {document_path}")
        from_file = _read_document(document_path)

    layers = (
        from_file,
        _env_layer(os.environ if environ is None else environ),
        _cli_layer(cli_overrides or {}),
    )
    document: dict[str, Any] = dict(default_config())
    for layer in layers:
        document = merge_config(document, layer)
    return assert_valid_config(document)


def load_pool_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> PoolConfig:
    """Like :func:`load_config`, converted to typed settings."""

    document = load_config(config_path, cli_overrides=cli_overrides, environ=environ)
    return to_pool_config(document)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of ``config`` with credentials masked."""

    return json.dumps(
        dump_redacted(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _read_document(path: Path) -> dict[str, Any]:
    if path.suffix.lower() in {".yaml", ".yml"}:
        parsed = _parse(path, "YAML", yaml.safe_load, yaml.YAMLError)
    else:
        parsed = _parse(path, "TOML", tomllib.loads, tomllib.TOMLDecodeError)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        kind = type(parsed).__name__
        raise ConfigLoadError(f"config root must be an object, got {kind}: {path}")
    return parsed


def _parse(
    path: Path,
    label: str,
    parser: Callable[[str], object],
    parse_error: type[Exception],
) -> object:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"cannot read {path}: {exc}") from exc
    try:
        return parser(text)
    except parse_error as exc:
        raise ConfigLoadError(f"invalid {label} in {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for (section, key), convert in _ENV_FIELDS.items():
        name = env_var_name(section, key)
        if name not in environ:
            continue
        try:
            value = convert(environ[name].strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} ({section}.{key}) {exc}") from exc
        layer.setdefault(section, {})[key] = value
    return layer


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        node = layer
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    return layer


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "load_pool_config",
]
