"""Optional Logfire tracing.

When enabled, Logfire is configured once per process and instruments every
PydanticAI agent call, so model requests show up as spans under the run.

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional for cloud dashboard

Usage:
    >>> tracing = setup_tracing(enabled=True, service_name="herald")
    >>> with trace_operation(tracing, "newsletter_run", {"factory": "hosts:build"}):
    ...     await pipeline.generate()
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """Result of tracing setup, passed to trace_operation."""

    enabled: bool = False
    service_name: str = "herald"
    configured: bool = False


def setup_tracing(
    enabled: bool = False,
    service_name: str = "herald",
    token: str = "",
) -> TracingContext:
    """Set up tracing with Logfire.

    Args:
        enabled: Whether to enable tracing
        service_name: Name of the service for tracing
        token: Logfire authentication token

    Returns:
        TracingContext describing what was configured
    """
    context = TracingContext(enabled=enabled, service_name=service_name)
    if not enabled:
        logger.debug("Tracing disabled")
        return context

    try:
        import logfire
    except ImportError:
        logger.warning("Logfire not installed, tracing disabled | hint=pip install 'herald[tracing]'")
        context.enabled = False
        return context

    try:
        logfire.configure(service_name=service_name, token=token or None)
        logfire.instrument_pydantic_ai()
    except Exception as e:
        logger.error("Failed to configure Logfire | error=%s", e)
        context.enabled = False
        return context

    context.configured = True
    logger.info("Logfire tracing enabled | service=%s", service_name)
    return context


@contextmanager
def trace_operation(
    context: TracingContext,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Span around an operation when tracing is configured, otherwise a no-op.

    Yields:
        Dictionary for adding attributes to the span during the operation
    """
    started = time.monotonic()
    result_attrs: dict[str, Any] = {}

    try:
        if context.enabled and context.configured:
            import logfire

            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation completed | name=%s duration_s=%.2f", name, time.monotonic() - started)
