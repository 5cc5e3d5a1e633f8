"""Logging setup with task context propagation.

Every record carries the id of the task being processed. Pipeline stages log
structured events (event, data, duration_ms) through `extra`; the JSON
formatter emits them as top-level fields while the text formatter relies on
the "Event | key=value" message already built by `log_event`.

Usage:
    >>> from observability.logging import setup_logging, set_task_context
    >>> setup_logging(config)
    >>> set_task_context("task-42")
    >>> logger.info("Crawl started")  # Includes task_id automatically
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILE_NAME = "herald.log"
NO_TASK = "-"

task_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("task_id", default=NO_TASK)

# Structured fields attached by log_event
EVENT_FIELDS = ("event", "data", "duration_ms")

QUIET_LOGGERS = ("aiohttp", "asyncio", "openai", "httpx", "httpcore", "MARKDOWN")


def set_task_context(task_id: Any) -> None:
    """Bind a task id to the current context (and tasks spawned from it)."""
    task_id_var.set(str(task_id))


def clear_context() -> None:
    task_id_var.set(NO_TASK)


class ContextFilter(logging.Filter):
    """Stamps `task_id` on records; an explicit `extra={"task_id": ...}` wins."""

    def filter(self, record: logging.LogRecord) -> bool:
        explicit = getattr(record, "task_id", None)
        record.task_id = task_id_var.get() if explicit is None else str(explicit)
        return True


def _jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Example:
        {"timestamp": "...", "level": "INFO", "logger": "chains.crawling",
         "task_id": "42", "message": "...", "event": "crawl.list.fetch.done",
         "data": {"html_length": 5120}, "duration_ms": 84}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "task_id": getattr(record, "task_id", NO_TASK),
            "message": record.getMessage(),
        }
        for name in EVENT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = _jsonable(value)

        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """TIME [LEVEL] [task_id] logger: message"""

    def __init__(self, include_date: bool = False):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] [%(task_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S" if include_date else "%H:%M:%S",
        )


def _file_handler(log_dir: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    """Size-based rotation when max_bytes is set, otherwise daily rotation."""
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / LOG_FILE_NAME
    if max_bytes > 0:
        return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    return TimedRotatingFileHandler(path, when="midnight", backupCount=backup_count, encoding="utf-8")


def setup_logging(config: Any, verbose: bool = False) -> bool:
    """Install console and rotating file handlers on the root logger.

    The console follows LOG_LEVEL (DEBUG with verbose); the file always
    records DEBUG. An unwritable log directory leaves console-only logging.

    Returns:
        True if file logging is enabled
    """
    json_output = config.log_format == "json"
    context_filter = ContextFilter()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO))
    console.setFormatter(JsonFormatter() if json_output else TextFormatter())
    console.addFilter(context_filter)
    root.addHandler(console)

    try:
        file_handler = _file_handler(config.log_dir, config.log_max_bytes, config.log_backup_count)
    except OSError as e:
        print(
            f"Warning: Cannot write to log directory '{config.log_dir}': {e}. "
            "Falling back to console-only logging.",
            file=sys.stderr,
        )
        file_logging_enabled = False
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter() if json_output else TextFormatter(include_date=True))
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)
        file_logging_enabled = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return file_logging_enabled
