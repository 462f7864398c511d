"""Process entrypoint for ``agent-pool``: runs the CLI and maps failures to exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

_MISSING_SDK_MODULES = frozenset({"openai", "anthropic"})


class ExitCode(IntEnum):
    """Exit codes of the ``agent-pool`` command."""

    SUCCESS = 0
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI; used by ``python -m agent_pool`` and the console script."""

    from agent_pool.ui import cli

    try:
        return _as_exit_code(cli.run_cli(argv))
    except SystemExit as exc:
        # argparse exits on --help and usage errors
        return _as_exit_code(exc.code)
    except KeyboardInterrupt:
        _stderr_line("interrupted")
        return ExitCode.INTERNAL_ERROR.value
    except Exception as exc:  # noqa: BLE001 - last line before the process exits
        code = classify_failure(exc)
        _report(exc, code)
        return code.value


def classify_failure(exc: BaseException) -> ExitCode:
    """Pick an exit code by walking ``exc`` and the errors it was raised from."""

    from agent_pool.config import ConfigLoadError, ConfigValidationError
    from agent_pool.providers.base import PromptError

    config_failures = (
        ConfigLoadError,
        ConfigValidationError,
        FileNotFoundError,
        NotADirectoryError,
        PermissionError,
    )
    for link in _causes(exc):
        if isinstance(link, config_failures):
            return ExitCode.CONFIG_ERROR
        if isinstance(link, PromptError):
            return ExitCode.PROVIDER_ERROR
        if isinstance(link, ModuleNotFoundError) and link.name in _MISSING_SDK_MODULES:
            return ExitCode.PROVIDER_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return ExitCode.SUCCESS.value
    if isinstance(raw, int):
        known = {member.value for member in ExitCode}
        return raw if raw in known else ExitCode.INTERNAL_ERROR.value
    text = str(raw).strip()
    if text:
        _stderr_line(text)
    return ExitCode.INTERNAL_ERROR.value


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
    else:
        _stderr_line(f"error: {str(exc).strip() or type(exc).__name__}")


def _stderr_line(message: str) -> None:
    print(message.rstrip("\n"), file=sys.stderr)


__all__ = ["ExitCode", "classify_failure", "cli_entrypoint"]
