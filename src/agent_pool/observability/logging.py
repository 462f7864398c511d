"""
agent-pool — structured logging

File: src/agent_pool/observability/logging.py
Last updated: 2026-10-19

Purpose
- Route every ``agent_pool`` log record (stdlib and structlog) through one background
  writer that emits JSON lines or key=value text, with credentials masked.

What should be included in this file
- ``LoggingConfig`` and ``setup_structured_logging`` returning a shutdown handle.
- A queue handler that never blocks the event loop: records are dropped and counted
  when the queue is full.
- Correlation fields bound with ``correlation_scope`` and stamped on each record.
- The default redactor for secret-looking keys and inline credentials.

Functional requirements
- Only one setup is active at a time; a new setup closes the previous one.
- Shutdown drains the queue before sinks are closed.

Non-functional requirements
- Never write an API key, bearer token or password to a sink.
"""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from agent_pool.providers.base import JSONValue

LogRedactor = Callable[[JSONValue], JSONValue]

MASK: Final[str] = "***REDACTED***"
CORRELATION_KEYS: Final[tuple[str, ...]] = ("correlation_id", "request_id", "agent_id")

_SECRET_KEY_PARTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "credential",
)
# usage counters, not credentials
_COUNTER_KEYS: Final[frozenset[str]] = frozenset(
    {"prompt_tokens", "completion_tokens", "total_tokens"}
)

_INLINE_SECRET_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(r"(?i)\b(api[_-]?key|token|password|secret|authorization)(\s*[:=]\s*)[^\s,;]+"),
        rf"\1\2{MASK}",
    ),
    (re.compile(r"(?i)\bbearer\s+[\w.~+/-]+=*"), f"Bearer {MASK}"),
    (re.compile(r"\bsk-[\w-]{12,}"), MASK),
)

# attributes every LogRecord carries; anything else arrived through ``extra=``
_BUILTIN_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "agent_pool_correlation", default=()
)

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how ``agent_pool`` logs are written."""

    level: int | str = "INFO"
    json_lines: bool = True
    log_path: Path | str | None = None
    log_to_stderr: bool = True
    logger_name: str = "agent_pool"
    queue_size: int = 4096
    redactor: LogRedactor | None = None
    route_structlog: bool = True


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


@contextmanager
def correlation_scope(**fields: str | int | None) -> Iterator[None]:
    """Bind correlation fields for records logged inside the block.

    A ``None`` value hides an outer binding of the same key until the block exits.
    """

    bound = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        else:
            bound[key] = str(value)
    token = _correlation.set(tuple(bound.items()))
    try:
        yield
    finally:
        _correlation.reset(token)


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys and credentials embedded in strings."""

    return _mask(value, key=None)


def _mask(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and _is_secret_key(key):
        return MASK
    if isinstance(value, str):
        for pattern, replacement in _INLINE_SECRET_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, dict):
        return {name: _mask(item, key=name) for name, item in value.items()}
    if isinstance(value, list):
        return [_mask(item, key=None) for item in value]
    return value


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return lowered not in _COUNTER_KEYS and any(part in lowered for part in _SECRET_KEY_PARTS)


# ---------------------------------------------------------------------------
# Record rendering
# ---------------------------------------------------------------------------


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value) if isinstance(value, Path) else repr(value)


def _scalar_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _split_record(record: logging.LogRecord) -> tuple[dict[str, str], dict[str, JSONValue]]:
    """Return (correlation fields, remaining ``extra=`` fields) for ``record``."""

    correlation = dict(getattr(record, "correlation", ()))
    extras: dict[str, JSONValue] = {}
    for name, value in vars(record).items():
        if name in _BUILTIN_RECORD_ATTRS or name.startswith("_"):
            continue
        if name in CORRELATION_KEYS:
            if value is not None and str(value).strip():
                correlation[name] = str(value).strip()
            continue
        extras[name] = _jsonable(value)
    return correlation, extras


class _RedactingFormatter(logging.Formatter):
    def __init__(self, redactor: LogRedactor, fmt: str | None = None) -> None:
        super().__init__(fmt)
        self.redactor = redactor

    def _redacted_text(self, text: str) -> str:
        return _scalar_text(self.redactor(text))


class _JsonLinesFormatter(_RedactingFormatter):
    """One compact JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        correlation, extras = _split_record(record)
        stamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        event: dict[str, JSONValue] = {
            "timestamp": stamp.replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redacted_text(record.getMessage()),
            **correlation,
        }
        if extras:
            event["fields"] = self.redactor(extras)
        if record.exc_text:
            event["exception"] = self._redacted_text(record.exc_text)
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class _KeyValueFormatter(_RedactingFormatter):
    """``<time> LEVEL logger: message key=value ...`` for terminals."""

    def __init__(self, redactor: LogRedactor) -> None:
        super().__init__(redactor, "%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = self._redacted_text(super().format(record))
        correlation, extras = _split_record(record)
        merged: dict[str, JSONValue] = {**correlation, **extras}
        if not merged:
            return line
        masked = self.redactor(merged)
        if not isinstance(masked, dict):
            return f"{line} {_scalar_text(masked)}"
        pairs = " ".join(f"{key}={_scalar_text(masked[key])}" for key in sorted(masked))
        return f"{line} {pairs}"


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Hands records to the writer thread; a full queue drops the record."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0
        self._traceback_formatter = logging.Formatter()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # freeze the message and traceback now; the writer thread sees a plain copy
        prepared = logging.makeLogRecord(vars(record))
        prepared.msg = record.getMessage()
        prepared.args = None
        if record.exc_info and not prepared.exc_text:
            prepared.exc_text = self._traceback_formatter.formatException(record.exc_info)
        prepared.exc_info = None
        bound = _correlation.get()
        if bound:
            prepared.correlation = bound
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


# ---------------------------------------------------------------------------
# Setup and shutdown
# ---------------------------------------------------------------------------


class StructuredLoggingHandle:
    """Owns the writer thread and sinks created by one ``setup_structured_logging`` call."""

    def __init__(
        self,
        logger: logging.Logger,
        handler: _DroppingQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
        *,
        restore_propagate: bool,
    ) -> None:
        self.logger = logger
        self._handler = handler
        self._listener = listener
        self._sinks = sinks
        self._restore_propagate = restore_propagate
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def dropped_records(self) -> int:
        return self._handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        """Wait (bounded) for queued records to reach the sinks, then flush them."""

        pending = self._listener.queue
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while isinstance(pending, queue.Queue) and pending.unfinished_tasks:
            if time.monotonic() >= deadline:
                break
            time.sleep(0.005)
        for sink in self._sinks:
            sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self.logger.removeHandler(self._handler)
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.propagate = self._restore_propagate
            for sink in self._sinks:
                sink.close()
            self._handler.close()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed logging on ``config.logger_name`` and return its handle."""

    global _active, _atexit_hooked

    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _level_number(config.level)
    redactor = config.redactor or default_log_redactor

    with _active_lock:
        previous, _active = _active, None
    if previous is not None:
        previous.shutdown()

    formatter = _JsonLinesFormatter(redactor) if config.json_lines else _KeyValueFormatter(redactor)
    sinks: list[logging.Handler] = []
    if config.log_path is not None:
        path = Path(config.log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(path, encoding="utf-8"))
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setFormatter(formatter)

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    handler = _DroppingQueueHandler(log_queue)
    listener = logging.handlers.QueueListener(log_queue, *sinks)

    logger = logging.getLogger(config.logger_name)
    restore_propagate = logger.propagate
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False
    listener.start()
    logger.addHandler(handler)

    if config.route_structlog:
        configure_structlog()

    handle = StructuredLoggingHandle(
        logger, handler, listener, tuple(sinks), restore_propagate=restore_propagate
    )
    with _active_lock:
        _active = handle
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return handle


def configure_structlog() -> None:
    """Make structlog loggers hand their events to stdlib logging.

    Event keyword arguments become ``extra=`` fields, so structlog events share the
    sinks, correlation fields and redaction configured above.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Close ``handle`` (default: the active one); safe to call more than once."""

    global _active

    with _active_lock:
        target = handle if handle is not None else _active
        if target is not None and target is _active:
            _active = None
    if target is not None:
        target.shutdown(timeout_seconds=timeout_seconds)


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {level!r}")
    return number


__all__ = [
    "CORRELATION_KEYS",
    "MASK",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
