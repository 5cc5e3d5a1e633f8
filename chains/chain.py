"""Stage composition with whole-sequence retry.

A Chain is a named, ordered list of async stages. Each stage receives the
current context dict and returns a partial dict, which is merged shallowly
into the context (later keys win) before the next stage runs.

Retry Semantics:
    - The whole sequence is retried from its first stage, with the original
      input, up to `stop_after_attempt` attempts in total.
    - There is no per-stage retry here. Stages that need finer retries (the
      fetcher, the model agents) handle them internally.
    - NonRetryableError subclasses are re-raised on the first occurrence.
    - The last exception propagates unchanged once attempts run out.

BaseChain holds the wiring every concrete chain shares: provider, task id,
options, and the LoggingExecutor used to wrap each stage.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Sequence

from errors import NonRetryableError
from observability.executor import LoggingExecutor
from providers import PipelineOptions


Context = dict[str, Any]
Stage = Callable[[Context], Awaitable[Context | None]]


class Chain:
    """Ordered async stages over one context dict.

    Example:
        >>> chain = Chain("example", [fetch_stage, parse_stage], stop_after_attempt=3)
        >>> result = await chain.invoke({"target": target})
        >>> results = await chain.batch([{"target": t} for t in targets], max_concurrency=5)
    """

    def __init__(
        self,
        name: str,
        stages: Sequence[Stage],
        *,
        stop_after_attempt: int = 1,
        logger: logging.Logger | None = None,
    ):
        if stop_after_attempt < 1:
            raise ValueError("stop_after_attempt must be at least 1")
        self.name = name
        self.stages = list(stages)
        self.stop_after_attempt = stop_after_attempt
        self.logger = logger or logging.getLogger(__name__)

    async def _run_once(self, context: Context) -> Context:
        current = dict(context)
        for stage in self.stages:
            update = await stage(current)
            if update:
                current = {**current, **update}
        return current

    async def invoke(self, context: Context | None = None) -> Context:
        """Run every stage in order, replaying the whole sequence on failure."""
        original = dict(context or {})

        for attempt in range(1, self.stop_after_attempt + 1):
            try:
                return await self._run_once(original)
            except NonRetryableError:
                raise
            except Exception as e:
                if attempt >= self.stop_after_attempt:
                    raise
                self.logger.warning(
                    "Chain attempt failed, retrying | chain=%s attempt=%d/%d type=%s error=%s",
                    self.name, attempt, self.stop_after_attempt, type(e).__name__, e,
                )

        # Unreachable: the final attempt returns or raises
        raise RuntimeError(f"Chain {self.name} made no attempts")

    async def batch(
        self,
        inputs: Iterable[Context],
        max_concurrency: int = 5,
    ) -> list[Context | BaseException]:
        """Invoke the chain per input with bounded concurrency.

        Outcomes are collected independently: a failing input yields its
        exception in the result list and never cancels its siblings.

        Returns:
            One entry per input, in input order
        """
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run_one(item: Context) -> Context:
            async with semaphore:
                return await self.invoke(item)

        return await asyncio.gather(*(run_one(item) for item in inputs), return_exceptions=True)


class BaseChain:
    """Shared construction for the crawl, analysis, and content chains."""

    def __init__(
        self,
        *,
        provider: Any,
        task_id: Any,
        executor: LoggingExecutor,
        options: PipelineOptions | None = None,
        logger: logging.Logger | None = None,
    ):
        self.provider = provider
        self.task_id = task_id
        self.executor = executor
        self.options = options or PipelineOptions()
        self.logger = logger or logging.getLogger(type(self).__module__)

    def build(self) -> Chain:
        raise NotImplementedError

    async def invoke(self, context: Context | None = None) -> Context:
        return await self.build().invoke(context)
