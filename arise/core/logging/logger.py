"""
ARISE Logging

Stdlib `logging` wired for an async progression core:

- a ContextVar holds the current operation context (which user, which quest
  log, which correlation id) and `ContextFilter` stamps it on every record;
- records go through a bounded queue to a background listener so a slow
  sink never blocks the event loop; when the queue is full records are
  dropped and counted;
- console output is JSON in production and plain or colored text elsewhere,
  with an optional daily-rotated JSON file.

Usage
-----
    log = get_logger(__name__)

    async with LogContext(user_id="u-1", operation="close_day"):
        log.info("Day closed", extra={"expired_quests": 2})
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from arise.core.config.config import Config

CONTEXT_KEYS = ("user_id", "quest_log_id", "correlation_id", "component", "operation")

_log_context: ContextVar[Dict[str, Any]] = ContextVar("arise_log_context", default={})

_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_QUEUE_SIZE = 10_000
_LOG_FILE = "arise.json.log"


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int


@dataclass(slots=True)
class _LoggingState:
    listener: Optional[QueueListener] = None
    log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
    handler: Optional[QueueHandler] = None
    enqueued: int = 0
    dropped: int = 0
    listener_errors: int = 0
    filters: List[logging.Filter] = field(default_factory=list)

    @property
    def initialized(self) -> bool:
        return self.listener is not None


_state = _LoggingState()


def _level() -> int:
    name = Config.LOG_LEVEL if isinstance(Config.LOG_LEVEL, str) else "INFO"
    return getattr(logging, name.upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the current log context onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for key in CONTEXT_KEYS:
            if not hasattr(record, key):
                setattr(record, key, context.get(key, "-"))
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[36m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self.COLORS.get(record.levelname)
        text = super().format(record)
        return f"{color}{text}\033[0m" if color else text


class JSONFormatter(logging.Formatter):
    """
    One JSON document per record.

    Context fields are top-level keys; anything passed through `extra=` that
    is not a context field lands under "extra". Non-JSON values (ints beyond
    float range, Decimals, datetimes) are written with `str()` so XP amounts
    stay exact.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        document: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for key in CONTEXT_KEYS:
            value = getattr(record, key, "-")
            if value != "-":
                document[key] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and key not in CONTEXT_KEYS and not key.startswith("_")
        }
        if extra:
            document["extra"] = extra

        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)

        return json.dumps(document, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _BoundedQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
            _state.enqueued += 1
        except queue.Full:
            _state.dropped += 1


class _CountingListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _state.listener_errors += 1


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    elif sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(_CONSOLE_FORMAT, _DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, _DATE_FORMAT))
    return handler


def _file_handler() -> logging.Handler:
    logs_dir = Path(Config.LOGS_DIR).resolve()
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(logs_dir / _LOG_FILE),
        when="midnight",
        backupCount=7,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue handler on the root logger. Safe to call twice."""
    if _state.initialized:
        return

    level = _level()
    handlers = [_console_handler()]
    if Config.LOG_TO_FILE and not Config.is_testing():
        handlers.append(_file_handler())
    for handler in handlers:
        handler.setLevel(level)

    _state.log_queue = queue.Queue(_QUEUE_SIZE)
    _state.listener = _CountingListener(_state.log_queue, *handlers, respect_handler_level=True)
    _state.listener.start()

    _state.handler = _BoundedQueueHandler(_state.log_queue)
    _state.handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_state.handler)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio", "testcontainers"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={"environment": Config.ENVIRONMENT, "json": _use_json()},
    )


def shutdown_logging() -> None:
    """Flush the queue and detach the handler."""
    if not _state.initialized:
        return

    _state.listener.stop()
    logging.getLogger().removeHandler(_state.handler)
    _state.handler.close()
    _state.listener = None
    _state.handler = None
    _state.log_queue = None


def get_logging_health() -> LoggingHealth:
    log_queue = _state.log_queue
    return LoggingHealth(
        initialized=_state.initialized,
        queue_size=log_queue.qsize() if log_queue is not None else 0,
        queue_max_size=log_queue.maxsize if log_queue is not None else 0,
        records_enqueued=_state.enqueued,
        records_dropped=_state.dropped,
        listener_errors=_state.listener_errors,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _merge_context(base: Dict[str, Any], **values: Any) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in values.items():
        if value is None:
            continue
        merged[key] = str(value) if key in ("user_id", "quest_log_id") else value
    return merged


class LogContext:
    """
    Bind log context for the duration of a block, sync or async.

    Nested contexts inherit the outer values; a correlation id is generated
    when none is bound yet.
    """

    def __init__(self, **values: Any) -> None:
        self.context = _merge_context(_log_context.get(), **values)
        self.context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**values: Any) -> None:
    """Merge values into the current context without a scope."""
    _log_context.set(_merge_context(_log_context.get(), **values))


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
