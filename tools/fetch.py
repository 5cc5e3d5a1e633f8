"""Resilient HTML fetching for crawl targets.

`fetch_html` retrieves a page body as text while behaving like a regular
browser and tolerating flaky origins.

Features:
    - Up to 5 attempts, each with its own growing timeout (5s-30s)
    - Random browser User-Agent, Accept-Language and Referer per attempt
    - Exponential backoff with jitter, honoring Retry-After when present
    - Short randomized pause after every success to go easy on the origin

Retry Classification:
    - 429 and 5xx responses are retried
    - Any other non-2xx response fails immediately
    - Timeouts and connection errors are retried; anything else fails

Failures raise FetchError carrying the most recent failure message.
"""

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import aiohttp

from errors import FetchError
from observability.executor import log_event
from tools.utils import DEFAULT_REFERER, browser_headers, create_ssl_context

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
BASE_TIMEOUT_MS = 10_000
MIN_TIMEOUT_MS = 5_000
MAX_TIMEOUT_MS = 30_000
MAX_RETRY_AFTER_MS = 60_000

# Substrings that mark an exception as transient
_RETRYABLE_MARKERS = ("aborted", "timeout", "network", "fetch")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def attempt_timeout_ms(attempt: int) -> float:
    """Per-attempt timeout: 10s * 1.3^(attempt-1), clamped to [5s, 30s]."""
    return _clamp(BASE_TIMEOUT_MS * 1.3 ** (attempt - 1), MIN_TIMEOUT_MS, MAX_TIMEOUT_MS)


def backoff_ms(attempt: int) -> float:
    """Exponential backoff 2^(attempt-1) seconds plus up to 1s of jitter."""
    return 2 ** (attempt - 1) * 1000 + random.random() * 1000


def parse_retry_after(header: str | None, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header into milliseconds.

    Accepts delta-seconds or an HTTP date. The result is clamped to
    [0, 60000]. Dates in the past and unparsable values yield None.
    """
    if not header:
        return None
    value = header.strip()

    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None and not math.isnan(seconds):
        return _clamp(seconds * 1000, 0, MAX_RETRY_AFTER_MS)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    diff_ms = (when - now).total_seconds() * 1000
    if diff_ms > 0:
        return _clamp(diff_ms, 0, MAX_RETRY_AFTER_MS)
    return None


def should_retry(status: int | None, error: BaseException | None = None) -> bool:
    """Decide whether a failed attempt is worth repeating."""
    if status == 429:
        return True
    if status is not None and status >= 500:
        return True
    if status is not None and 400 <= status < 500:
        return False
    if error is None:
        return False
    if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError)):
        return True
    message = f"{type(error).__name__} {error}".lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


async def _sleep(ms: float) -> None:
    await asyncio.sleep(ms / 1000)


@dataclass
class _Response:
    status: int
    body: str
    content_type: str
    retry_after: str | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


async def _request(
    session: aiohttp.ClientSession,
    url: str,
    referer: str,
    timeout_ms: float,
) -> _Response:
    async with session.get(
        url,
        headers=browser_headers(referer),
        timeout=aiohttp.ClientTimeout(total=timeout_ms / 1000),
        ssl=create_ssl_context(),
        allow_redirects=True,
    ) as resp:
        ok = 200 <= resp.status < 300
        body = await resp.text(errors="replace") if ok else ""
        return _Response(
            status=resp.status,
            body=body,
            content_type=resp.headers.get("Content-Type", ""),
            retry_after=resp.headers.get("Retry-After"),
        )


async def _fetch_with_retries(session: aiohttp.ClientSession, url: str, referer: str) -> str:
    for attempt in range(1, MAX_ATTEMPTS + 1):
        timeout_ms = attempt_timeout_ms(attempt)
        started = time.monotonic()

        try:
            response = await _request(session, url, referer, timeout_ms)
        except Exception as e:
            can_retry = should_retry(None, e)
            message = _error_message(e)
            log_event(logger, logging.DEBUG, "fetch.catch", data={
                "url": url, "attempt": attempt, "can_retry": can_retry, "error": message,
            })
            if not can_retry or attempt == MAX_ATTEMPTS:
                log_event(logger, logging.ERROR, "fetch.failed", data={
                    "url": url, "attempt": attempt, "error": message,
                })
                raise FetchError(message, url=url, attempt=attempt) from e
            await _sleep(backoff_ms(attempt))
            continue

        duration_ms = (time.monotonic() - started) * 1000

        if not response.ok:
            retry_after_ms = parse_retry_after(response.retry_after)
            can_retry = should_retry(response.status)
            log_event(logger, logging.DEBUG, "fetch.error", data={
                "url": url,
                "status": response.status,
                "attempt": attempt,
                "can_retry": can_retry,
                "duration_ms": round(duration_ms),
                "retry_after_ms": retry_after_ms,
            })
            if not can_retry or attempt == MAX_ATTEMPTS:
                message = f"Request failed (status={response.status}) - {url}"
                log_event(logger, logging.ERROR, "fetch.failed", data={
                    "url": url, "attempt": attempt, "error": message,
                })
                raise FetchError(message, url=url, status=response.status, attempt=attempt)
            delay = backoff_ms(attempt)
            if retry_after_ms is not None:
                delay = max(retry_after_ms, delay)
            await _sleep(delay)
            continue

        if "text/html" not in response.content_type.lower():
            log_event(logger, logging.DEBUG, "fetch.non_html", data={
                "url": url, "content_type": response.content_type, "attempt": attempt,
            })

        log_event(logger, logging.DEBUG, "fetch.success", data={
            "url": url,
            "status": response.status,
            "attempt": attempt,
            "duration_ms": round(duration_ms),
            "size": len(response.body),
        })

        await _sleep(random.uniform(250, 750))
        return response.body

    # Unreachable: the last attempt always returns or raises
    raise FetchError(f"Request failed - {url}", url=url, attempt=MAX_ATTEMPTS)


async def fetch_html(
    url: str,
    referer: str = DEFAULT_REFERER,
    *,
    session: aiohttp.ClientSession | None = None,
) -> str:
    """Fetch a page body as text with retries.

    Args:
        url: Page to fetch
        referer: Referer header value (defaults to a search engine origin)
        session: Optional shared session; it is reused but never closed

    Returns:
        Response body decoded as text

    Raises:
        FetchError: On a non-retryable failure or after the last attempt
    """
    if session is not None:
        return await _fetch_with_retries(session, url, referer)
    async with aiohttp.ClientSession() as own_session:
        return await _fetch_with_retries(own_session, url, referer)
