"""Tests for the resilient fetcher."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import aiohttp
import pytest

from errors import FetchError
from tools import fetch
from tools.fetch import (
    attempt_timeout_ms,
    fetch_html,
    parse_retry_after,
    should_retry,
)
from tools.utils import DEFAULT_REFERER, USER_AGENTS, browser_headers

URL = "https://board.example/list"


class ScriptedRequests:
    """Stands in for tools.fetch._request, replaying statuses or exceptions."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, session, url, referer, timeout_ms):
        self.calls.append({"url": url, "referer": referer, "timeout_ms": timeout_ms})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return fetch._Response(status=outcome, body="<html>ok</html>" if outcome < 300 else "",
                                   content_type="text/html; charset=utf-8", retry_after=None)
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    delays = []

    async def record(ms):
        delays.append(ms)

    monkeypatch.setattr(fetch, "_sleep", record)
    monkeypatch.setattr(fetch.random, "random", lambda: 0.0)
    return delays


def install(monkeypatch, outcomes) -> ScriptedRequests:
    requests = ScriptedRequests(outcomes)
    monkeypatch.setattr(fetch, "_request", requests)
    return requests


class TestRetryClassification:
    """Which failures are worth another attempt."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 599])
    def test_rate_limit_and_server_errors_retry(self, status):
        assert should_retry(status) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_other_client_errors_are_fatal(self, status):
        assert should_retry(status) is False

    def test_transient_exceptions_retry(self):
        assert should_retry(None, asyncio.TimeoutError())
        assert should_retry(None, aiohttp.ServerDisconnectedError())
        assert should_retry(None, RuntimeError("network unreachable"))
        assert should_retry(None, RuntimeError("The operation was aborted"))

    def test_other_exceptions_are_fatal(self):
        assert should_retry(None, ValueError("bad url")) is False


class TestRetryAfter:
    def test_seconds(self):
        assert parse_retry_after("3") == 3000

    def test_seconds_clamped_to_one_minute(self):
        assert parse_retry_after("120") == 60_000

    def test_negative_seconds_clamped_to_zero(self):
        assert parse_retry_after("-5") == 0

    def test_http_date_in_future(self):
        now = datetime(2025, 6, 2, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=10), usegmt=True)
        assert parse_retry_after(header, now=now) == pytest.approx(10_000)

    def test_http_date_in_past_is_ignored(self):
        now = datetime(2025, 6, 2, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(seconds=10), usegmt=True)
        assert parse_retry_after(header, now=now) is None

    @pytest.mark.parametrize("header", [None, "", "soon", "Mon, 99 Foo 2025"])
    def test_unparsable_is_ignored(self, header):
        assert parse_retry_after(header) is None


class TestTimeouts:
    def test_attempt_timeouts_grow_and_clamp(self):
        assert attempt_timeout_ms(1) == 10_000
        assert attempt_timeout_ms(2) == pytest.approx(13_000)
        assert attempt_timeout_ms(6) == 30_000


class TestHeaders:
    def test_browser_headers(self):
        headers = browser_headers()
        assert headers["User-Agent"] in USER_AGENTS
        assert headers["Referer"] == DEFAULT_REFERER
        assert headers["Connection"] == "keep-alive"
        assert "Accept-Language" in headers


class TestFetchHtml:
    """fetch_html retry loop with scripted responses."""

    @pytest.mark.asyncio
    async def test_recovers_after_two_server_errors(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [500, 500, 200])

        body = await fetch_html(URL, session=object())

        assert body == "<html>ok</html>"
        assert len(requests.calls) == 3
        assert sleeps[0] == 1000
        assert sleeps[1] == 2000
        # Post-success throttle
        assert 250 <= sleeps[2] <= 750
        assert [c["timeout_ms"] for c in requests.calls] == [
            attempt_timeout_ms(1), attempt_timeout_ms(2), attempt_timeout_ms(3),
        ]

    @pytest.mark.asyncio
    async def test_fatal_status_fails_without_retry(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [404])

        with pytest.raises(FetchError) as exc_info:
            await fetch_html(URL, session=object())

        assert len(requests.calls) == 1
        assert exc_info.value.status == 404
        assert exc_info.value.attempt == 1
        assert exc_info.value.message == f"Request failed (status=404) - {URL}"
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [503] * 5)

        with pytest.raises(FetchError) as exc_info:
            await fetch_html(URL, session=object())

        assert len(requests.calls) == 5
        assert exc_info.value.attempt == 5
        assert exc_info.value.status == 503
        assert sleeps == [1000, 2000, 4000, 8000]

    @pytest.mark.asyncio
    async def test_retry_after_extends_backoff(self, monkeypatch, sleeps):
        limited = fetch._Response(status=429, body="", content_type="text/html", retry_after="5")
        install(monkeypatch, [limited, 200])

        await fetch_html(URL, session=object())

        assert sleeps[0] == 5000

    @pytest.mark.asyncio
    async def test_short_retry_after_keeps_backoff(self, monkeypatch, sleeps):
        limited = fetch._Response(status=503, body="", content_type="text/html", retry_after="0")
        install(monkeypatch, [limited, 200])

        await fetch_html(URL, session=object())

        assert sleeps[0] == 1000

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [asyncio.TimeoutError(), 200])

        assert await fetch_html(URL, session=object()) == "<html>ok</html>"
        assert len(requests.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_fatal(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [ValueError("bad url")])

        with pytest.raises(FetchError) as exc_info:
            await fetch_html(URL, session=object())

        assert len(requests.calls) == 1
        assert exc_info.value.message == "bad url"
        assert exc_info.value.status is None
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_passes_referer(self, monkeypatch, sleeps):
        requests = install(monkeypatch, [200])

        await fetch_html(URL, "https://board.example/", session=object())

        assert requests.calls[0]["referer"] == "https://board.example/"

    @pytest.mark.asyncio
    async def test_non_html_is_logged_but_returned(self, monkeypatch, sleeps, caplog):
        json_response = fetch._Response(status=200, body="{}", content_type="application/json", retry_after=None)
        install(monkeypatch, [json_response])

        with caplog.at_level(logging.DEBUG, logger="tools.fetch"):
            body = await fetch_html(URL, session=object())

        assert body == "{}"
        assert any(getattr(r, "event", None) == "fetch.non_html" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, monkeypatch, sleeps, caplog):
        install(monkeypatch, [403])

        with caplog.at_level(logging.DEBUG, logger="tools.fetch"):
            with pytest.raises(FetchError):
                await fetch_html(URL, session=object())

        failed = [r for r in caplog.records if getattr(r, "event", None) == "fetch.failed"]
        assert len(failed) == 1
        assert failed[0].levelno == logging.ERROR
