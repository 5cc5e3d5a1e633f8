"""Start/done/error logging around a single awaited operation.

Every pipeline stage runs through `LoggingExecutor.execute`, which gives the
logs a fixed shape:

    <event>.start  data=start_fields
    <event>.done   data=start_fields | done_fields(result), duration_ms
    <event>.error  data=start_fields, duration_ms (plus an ERROR record with
                   the traceback)

The executor never retries and never swallows: the original exception is
re-raised unchanged after the error records are written.
"""

import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO}
_MAX_FIELD_CHARS = 80


def _short(value: Any) -> str:
    """Render a field value for the human-readable message."""
    if isinstance(value, (list, tuple, set)):
        return f"[{len(value)} items]"
    text = str(value)
    if len(text) > _MAX_FIELD_CHARS:
        return text[:_MAX_FIELD_CHARS] + "..."
    return text


def format_fields(data: dict[str, Any]) -> str:
    return " ".join(f"{key}={_short(value)}" for key, value in data.items())


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    task_id: Any = None,
    data: dict[str, Any] | None = None,
    duration_ms: float | None = None,
    exc_info: Any = None,
) -> None:
    """Write one structured event record.

    The message reads `event | key=value ...`; the raw fields travel in
    `extra` for the JSON formatter.
    """
    data = data or {}
    extra: dict[str, Any] = {"event": event, "data": data}
    if task_id is not None:
        extra["task_id"] = task_id
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 1)

    fields = format_fields(data)
    if duration_ms is not None:
        fields = f"{fields} duration_ms={duration_ms:.0f}".strip()
    if fields:
        logger.log(level, "%s | %s", event, fields, extra=extra, exc_info=exc_info)
    else:
        logger.log(level, "%s", event, extra=extra, exc_info=exc_info)


class LoggingExecutor:
    """Runs awaitables with standardized start/done/error events.

    Example:
        >>> executor = LoggingExecutor(logger, task_id)
        >>> html = await executor.execute(
        ...     lambda: fetch_html(url),
        ...     event="crawl.list.fetch",
        ...     start_fields={"target": url},
        ...     done_fields=lambda html: {"size": len(html)},
        ... )
    """

    def __init__(self, logger: logging.Logger, task_id: Any):
        self.logger = logger
        self.task_id = task_id

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        event: str,
        level: str = "debug",
        start_fields: dict[str, Any] | None = None,
        done_fields: Callable[[T], dict[str, Any] | None] | None = None,
    ) -> T:
        """Await `fn()` between start and done/error events.

        Args:
            fn: Zero-argument callable returning the awaitable to run
            event: Base event key, e.g. 'crawl.group'
            level: 'debug' or 'info'
            start_fields: Fields attached to every event of this call
            done_fields: Builds extra fields from the result on success

        Returns:
            Whatever `fn()` resolved to
        """
        log_level = _LEVELS[level]
        start = dict(start_fields or {})

        log_event(self.logger, log_level, f"{event}.start", self.task_id, start)
        started = time.monotonic()

        try:
            result = await fn()
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            log_event(self.logger, log_level, f"{event}.error", self.task_id, start, duration_ms)
            log_event(
                self.logger, logging.ERROR, f"{event}.error", self.task_id,
                {"type": type(e).__name__, "error": str(e)},
                exc_info=e,
            )
            raise

        duration_ms = (time.monotonic() - started) * 1000
        extra = (done_fields(result) or {}) if done_fields else {}
        log_event(
            self.logger, log_level, f"{event}.done", self.task_id,
            {**start, **extra}, duration_ms,
        )
        return result
