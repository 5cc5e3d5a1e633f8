"""Observability: structured logging, stage event logging, optional tracing.

setup_logging:
    Console and rotating file handlers, text or JSON format, task id context.

LoggingExecutor:
    Start/done/error events with durations around every pipeline stage.

setup_tracing / trace_operation:
    Optional Logfire spans with PydanticAI instrumentation.

Example:
    >>> from observability import LoggingExecutor, setup_logging
    >>> setup_logging(config)
    >>> executor = LoggingExecutor(logger, task_id)
"""

from observability.executor import LoggingExecutor, log_event
from observability.logging import clear_context, set_task_context, setup_logging
from observability.tracing import TracingContext, setup_tracing, trace_operation

__all__ = [
    "LoggingExecutor",
    "log_event",
    "setup_logging",
    "set_task_context",
    "clear_context",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
