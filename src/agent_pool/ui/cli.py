"""Command-line interface router for agent-pool."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from agent_pool.config import PoolConfig, load_pool_config
from agent_pool.dispatch import AgentInfo, Dispatcher, DispatcherBuilder
from agent_pool.observability import (
    LoggingConfig,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from agent_pool.providers.openrouter_catalog import (
    OpenRouterModel,
    fetch_openrouter_model_list,
    free_models,
)
from agent_pool.ui.render import CLIRenderer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_HINT: Final[str] = "agents.toml"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="agent-pool",
        description=(
            "agent-pool — random, health-aware dispatch across LLM provider agents.\n\n"
            "Common workflows:\n"
            '  agent-pool prompt "hello"     Send one prompt to a random healthy agent\n'
            "  agent-pool agents             List configured agents\n"
            "  agent-pool models --free      List free OpenRouter models\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help=f"Agent config, TOML or YAML (default: ./{DEFAULT_CONFIG_HINT} if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level regardless of the configured level.",
    )
    common.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        default=False,
        help="Print machine-readable JSON instead of text.",
    )

    subparsers = parser.add_subparsers(dest="command")

    prompt_parser = subparsers.add_parser(
        "prompt",
        parents=[common],
        help="Send one prompt through the pool and print the reply.",
    )
    prompt_parser.add_argument("text", nargs="+", help="Prompt text.")
    prompt_parser.add_argument(
        "--retry",
        dest="retry",
        type=int,
        default=None,
        help="Maximum attempts; 1 disables retries (default: retry.max_attempts).",
    )
    prompt_parser.set_defaults(handler=_cmd_prompt)

    agents_parser = subparsers.add_parser(
        "agents",
        parents=[common],
        help="List the agents built from config and their health.",
    )
    agents_parser.set_defaults(handler=_cmd_agents)

    models_parser = subparsers.add_parser(
        "models",
        parents=[common],
        help="List models from the OpenRouter public catalog.",
    )
    models_parser.add_argument(
        "--free",
        action="store_true",
        default=False,
        help="Only show models with a free endpoint.",
    )
    models_parser.set_defaults(handler=_cmd_models)
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_prompt(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if args.retry is not None and args.retry < 1:
        raise CLIError("--retry must be >= 1", exit_code=2)
    dispatcher = _build_dispatcher(config)
    text = " ".join(args.text)
    reply, info = asyncio.run(_send_prompt(dispatcher, text, args.retry))

    renderer = CLIRenderer()
    if args.json_output:
        renderer.json({"reply": reply, "agent": info.to_dict()})
    else:
        renderer.text(reply)
    return 0


def _cmd_agents(args: argparse.Namespace) -> int:
    config = _load_config(args)
    dispatcher = _build_dispatcher(config)
    infos = asyncio.run(_list_agents(dispatcher))

    renderer = CLIRenderer()
    if args.json_output:
        renderer.json([info.to_dict() for info in infos])
        return 0
    if not infos:
        renderer.text("No agents configured.")
        return 0
    rows = [
        [
            str(info.id),
            info.provider,
            info.model,
            f"{info.failure_count}/{info.max_failures}",
            "yes" if info.is_valid else "no",
        ]
        for info in infos
    ]
    renderer.table(["ID", "Provider", "Model", "Failures", "Valid"], rows)
    renderer.text(f"\n{len(infos)} of {len(config.agents)} configured agents built")
    return 0


def _cmd_models(args: argparse.Namespace) -> int:
    _configure_logging(None, verbose=args.verbose)
    models = asyncio.run(fetch_openrouter_model_list())
    if args.free:
        models = free_models(models)

    renderer = CLIRenderer()
    if args.json_output:
        renderer.json([_model_payload(model) for model in models])
        return 0
    rows = [
        [model.slug, model.name, str(model.context_length), "yes" if model.is_free else "no"]
        for model in models
    ]
    renderer.table(["Slug", "Name", "Context", "Free"], rows)
    renderer.text(f"\n{len(models)} models")
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _send_prompt(
    dispatcher: Dispatcher,
    text: str,
    max_attempts: int | None,
) -> tuple[str, AgentInfo]:
    async with dispatcher:
        with correlation_scope(request_id="cli"):
            return await dispatcher.try_invoke_with_info_retry(text, max_attempts)


async def _list_agents(dispatcher: Dispatcher) -> list[AgentInfo]:
    async with dispatcher:
        return await dispatcher.get_agents_info()


def _load_config(args: argparse.Namespace) -> PoolConfig:
    config = load_pool_config(_optional_path(args.config_path))
    _configure_logging(config, verbose=args.verbose)
    return config


def _configure_logging(config: PoolConfig | None, *, verbose: bool) -> None:
    settings = config.logging if config is not None else None
    level = "DEBUG" if verbose else (settings.level if settings is not None else "WARNING")
    setup_structured_logging(
        LoggingConfig(
            level=level,
            json_lines=settings.json if settings is not None else False,
            log_path=settings.log_path if settings is not None else None,
        )
    )


def _build_dispatcher(config: PoolConfig) -> Dispatcher:
    if not config.agents:
        raise CLIError(
            f"no agents configured; add [[agents]] entries to {DEFAULT_CONFIG_HINT}",
            exit_code=2,
        )
    return (
        DispatcherBuilder()
        .max_failures(config.pool.max_failures)
        .retry_policy(config.retry)
        .on_agent_invalid(_log_invalidated)
        .add_configs(config.agents, config.pool.default_system_prompt)
        .build()
    )


def _log_invalidated(agent_id: int) -> None:
    logger.warning("agent marked invalid", extra={"agent_id": agent_id})


def _model_payload(model: OpenRouterModel) -> dict[str, object]:
    return {
        "slug": model.slug,
        "name": model.name,
        "author": model.author,
        "context_length": model.context_length,
        "is_free": model.is_free,
    }


def _optional_path(raw: str | None) -> Path | None:
    return Path(raw) if raw else None


__all__ = ["CLIError", "build_parser", "run_cli"]
