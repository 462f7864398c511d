"""
agent-pool — unit tests for structured logging

File: tests/unit/observability/test_structured_logging.py
Last updated: 2026-10-19

Purpose
- Validate JSON-lines and text logging with redaction, correlation metadata and the
  structlog bridge used by the dispatcher.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation scope nesting and propagation.
- structlog events landing in the same sinks as stdlib records.
- Queue drain/shutdown behavior.

Functional requirements
- Offline operation.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from agent_pool.observability import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()
    structlog.reset_defaults()


def _logger_name() -> str:
    return f"agent_pool.tests.logging.{uuid4().hex}"


def _file_config(tmp_path: Path, logger_name: str, **overrides: object) -> LoggingConfig:
    options: dict[str, object] = {
        "log_path": tmp_path / "logs" / "pool.jsonl",
        "log_to_stderr": False,
        "logger_name": logger_name,
    }
    options.update(overrides)
    return LoggingConfig(**options)  # type: ignore[arg-type]


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.mark.unit
def test_json_lines_redact_secrets_and_carry_correlation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    config = _file_config(tmp_path, logger_name)
    handle = setup_structured_logging(config)
    logger = logging.getLogger(logger_name)

    with correlation_scope(request_id="req-9", agent_id=4):
        logger.warning(
            "calling provider token=tok-FAKE with sk-FAKE123456789012345",
            extra={"headers": {"Authorization": "Bearer abc"}, "usage": {"total_tokens": 12}},
        )

    shutdown_logging(handle)

    (event,) = _read_json_lines(tmp_path / "logs" / "pool.jsonl")
    assert event["level"] == "WARNING"
    assert event["logger"] == logger_name
    assert event["request_id"] == "req-9"
    assert event["agent_id"] == "4"
    assert str(event["timestamp"]).endswith("Z")
    assert event["fields"] == {
        "headers": {"Authorization": "***REDACTED***"},
        "usage": {"total_tokens": 12},
    }
    line = (tmp_path / "logs" / "pool.jsonl").read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "sk-FAKE" not in line


@pytest.mark.unit
def test_text_mode_appends_fields_as_key_value(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        _file_config(tmp_path, logger_name, json_lines=False, log_path=tmp_path / "pool.log")
    )

    with correlation_scope(request_id="cli"):
        logging.getLogger(logger_name).info("retrying", extra={"attempt": 2, "api_key": "k"})
    shutdown_logging(handle)

    (line,) = (tmp_path / "pool.log").read_text(encoding="utf-8").splitlines()
    assert f"INFO {logger_name}: retrying" in line
    assert "attempt=2" in line
    assert "request_id=cli" in line
    assert "api_key=***REDACTED***" in line


@pytest.mark.unit
def test_structlog_events_share_the_stdlib_sinks(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(_file_config(tmp_path, logger_name))

    structlog.get_logger(f"{logger_name}.dispatch").info(
        "agent_selected", agent_id=17, failures=0
    )
    structlog.get_logger(f"{logger_name}.dispatch").debug("below_threshold")
    shutdown_logging(handle)

    (event,) = _read_json_lines(tmp_path / "logs" / "pool.jsonl")
    assert event["message"] == "agent_selected"
    assert event["logger"] == f"{logger_name}.dispatch"
    assert event["agent_id"] == "17"
    assert event["fields"] == {"failures": 0}


@pytest.mark.unit
def test_structlog_routing_can_be_disabled(tmp_path: Path) -> None:
    structlog.reset_defaults()
    config = _file_config(tmp_path, _logger_name(), route_structlog=False)
    handle = setup_structured_logging(config)

    assert not structlog.is_configured()
    shutdown_logging(handle)


@pytest.mark.unit
def test_correlation_scope_nests_and_restores() -> None:
    assert get_correlation_context() == {}

    with correlation_scope(request_id="outer", agent_id=1):
        with correlation_scope(agent_id=None, correlation_id="c-1"):
            assert get_correlation_context() == {"request_id": "outer", "correlation_id": "c-1"}
        assert get_correlation_context() == {"request_id": "outer", "agent_id": "1"}

    assert get_correlation_context() == {}


@pytest.mark.unit
def test_default_redactor_keeps_token_counters() -> None:
    redacted = default_log_redactor(
        {
            "prompt_tokens": 5,
            "completion_tokens": 7,
            "refresh_token": "r-1",
            "note": "sent Bearer abc.def to the endpoint",
            "items": ["password=hunter2"],
        }
    )

    assert redacted == {
        "prompt_tokens": 5,
        "completion_tokens": 7,
        "refresh_token": "***REDACTED***",
        "note": "sent Bearer ***REDACTED*** to the endpoint",
        "items": ["password=***REDACTED***"],
    }


@pytest.mark.unit
def test_setup_replaces_previous_handle_and_restores_propagation(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = logging.getLogger(logger_name)
    assert logger.propagate is True

    first = setup_structured_logging(_file_config(tmp_path, logger_name))
    assert logger.propagate is False
    second = setup_structured_logging(
        _file_config(tmp_path, logger_name, log_path=tmp_path / "second.jsonl")
    )

    assert first.is_shutdown
    assert get_active_logging_handle() is second
    shutdown_logging()
    assert second.is_shutdown
    assert get_active_logging_handle() is None
    assert logger.propagate is True


@pytest.mark.unit
def test_invalid_settings_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="queue_size"):
        setup_structured_logging(_file_config(tmp_path, _logger_name(), queue_size=0))
    with pytest.raises(ValueError, match="unsupported logging level"):
        setup_structured_logging(_file_config(tmp_path, _logger_name(), level="chatty"))


@pytest.mark.unit
def test_multithreaded_logging_flushes_every_record_on_shutdown(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(_file_config(tmp_path, logger_name, queue_size=10_000))
    logger = logging.getLogger(logger_name)
    total_threads = 6
    per_thread = 50

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info("attempt %s", i, extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"})

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    lines = (tmp_path / "logs" / "pool.jsonl").read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == total_threads * per_thread
    assert all("sk-FAKE" not in line for line in lines)
