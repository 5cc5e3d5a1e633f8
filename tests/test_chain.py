"""Tests for stage composition, whole-sequence retry and batching."""

import asyncio
import logging

import pytest

from chains.chain import Chain
from errors import NonRetryableError, StructuralMismatchError


class Flaky:
    """Stage that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: type[Exception] = RuntimeError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, ctx):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("flaky")
        return {"flaky": self.calls}


class TestInvoke:
    @pytest.mark.asyncio
    async def test_stages_run_in_order_with_shallow_merge(self):
        seen = []

        async def first(ctx):
            seen.append(dict(ctx))
            return {"a": 1, "shared": "first"}

        async def second(ctx):
            seen.append(dict(ctx))
            return {"b": ctx["a"] + 1, "shared": "second"}

        result = await Chain("t", [first, second]).invoke({"input": True})

        assert result == {"input": True, "a": 1, "b": 2, "shared": "second"}
        assert seen == [{"input": True}, {"input": True, "a": 1, "shared": "first"}]

    @pytest.mark.asyncio
    async def test_input_context_is_not_mutated(self):
        async def stage(ctx):
            return {"added": 1}

        original = {"x": 1}
        await Chain("t", [stage]).invoke(original)
        assert original == {"x": 1}

    @pytest.mark.asyncio
    async def test_retry_restarts_from_first_stage(self):
        first_calls = []

        async def first(ctx):
            first_calls.append(dict(ctx))
            return {"from_first": True}

        flaky = Flaky(failures=2)
        result = await Chain("t", [first, flaky], stop_after_attempt=3).invoke({"seed": 1})

        assert result["flaky"] == 3
        assert len(first_calls) == 3
        # Every attempt starts from the original input
        assert all(ctx == {"seed": 1} for ctx in first_calls)

    @pytest.mark.asyncio
    async def test_retry_warning_uses_module_logger_by_default(self, caplog):
        flaky = Flaky(failures=1)

        with caplog.at_level(logging.WARNING, logger="chains.chain"):
            await Chain("t", [flaky], stop_after_attempt=2).invoke()

        [record] = caplog.records
        assert record.name == "chains.chain"
        assert "chain=t attempt=1/2" in record.getMessage()

    @pytest.mark.asyncio
    async def test_last_exception_propagates_after_attempts(self):
        flaky = Flaky(failures=10)

        with pytest.raises(RuntimeError, match="flaky"):
            await Chain("t", [flaky], stop_after_attempt=3).invoke()
        assert flaky.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_is_raised_immediately(self):
        flaky = Flaky(failures=10, error=NonRetryableError)

        with pytest.raises(NonRetryableError):
            await Chain("t", [flaky], stop_after_attempt=5).invoke()
        assert flaky.calls == 1

    @pytest.mark.asyncio
    async def test_structural_mismatch_is_not_retried(self):
        calls = []

        async def stage(ctx):
            calls.append(1)
            raise StructuralMismatchError("no match", correlation_id="abc")

        with pytest.raises(StructuralMismatchError):
            await Chain("t", [stage], stop_after_attempt=3).invoke()
        assert calls == [1]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            Chain("t", [], stop_after_attempt=0)


class TestBatch:
    @pytest.mark.asyncio
    async def test_failures_do_not_cancel_siblings(self):
        async def stage(ctx):
            await asyncio.sleep(0)
            if ctx["n"] == 2:
                raise RuntimeError("two")
            return {"double": ctx["n"] * 2}

        results = await Chain("t", [stage]).batch([{"n": 1}, {"n": 2}, {"n": 3}])

        assert results[0]["double"] == 2
        assert isinstance(results[1], RuntimeError)
        assert results[2]["double"] == 6

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def stage(ctx):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return {}

        await Chain("t", [stage]).batch([{"n": i} for i in range(8)], max_concurrency=3)

        assert peak == 3
