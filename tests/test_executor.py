"""Tests for the start/done/error stage logger."""

import logging

import pytest

from observability.executor import LoggingExecutor, format_fields


def events(caplog):
    return [(r.event, r.levelno) for r in caplog.records if hasattr(r, "event")]


class TestLoggingExecutor:
    @pytest.mark.asyncio
    async def test_success_emits_start_and_done(self, caplog, test_logger):
        executor = LoggingExecutor(test_logger, "task-9")

        async def work():
            return [1, 2, 3]

        with caplog.at_level(logging.DEBUG, logger=test_logger.name):
            result = await executor.execute(
                work,
                event="crawl.list.parse",
                start_fields={"target": "a"},
                done_fields=lambda items: {"count": len(items)},
            )

        assert result == [1, 2, 3]
        assert events(caplog) == [
            ("crawl.list.parse.start", logging.DEBUG),
            ("crawl.list.parse.done", logging.DEBUG),
        ]
        done = caplog.records[-1]
        assert done.data == {"target": "a", "count": 3}
        assert done.task_id == "task-9"
        assert done.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_info_level(self, caplog, test_logger):
        executor = LoggingExecutor(test_logger, "task-9")

        async def work():
            return None

        with caplog.at_level(logging.DEBUG, logger=test_logger.name):
            await executor.execute(work, event="task", level="info")

        assert events(caplog) == [("task.start", logging.INFO), ("task.done", logging.INFO)]

    @pytest.mark.asyncio
    async def test_failure_reraises_original_exception(self, caplog, test_logger):
        executor = LoggingExecutor(test_logger, "task-9")
        original = RuntimeError("boom")

        async def work():
            raise original

        with caplog.at_level(logging.DEBUG, logger=test_logger.name):
            with pytest.raises(RuntimeError) as exc_info:
                await executor.execute(work, event="crawl.save", start_fields={"count": 2})

        assert exc_info.value is original
        assert events(caplog) == [
            ("crawl.save.start", logging.DEBUG),
            ("crawl.save.error", logging.DEBUG),
            ("crawl.save.error", logging.ERROR),
        ]
        error_record = caplog.records[-1]
        assert error_record.data == {"type": "RuntimeError", "error": "boom"}
        assert error_record.exc_info is not None

    @pytest.mark.asyncio
    async def test_never_retries(self, test_logger):
        executor = LoggingExecutor(test_logger, "task-9")
        calls = []

        async def work():
            calls.append(1)
            raise ValueError("once")

        with pytest.raises(ValueError):
            await executor.execute(work, event="x")
        assert calls == [1]


def test_format_fields_shortens_collections():
    assert format_fields({"ids": [1, 2, 3], "name": "a"}) == "ids=[3 items] name=a"
