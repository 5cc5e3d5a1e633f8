"""Crawl pipeline: list page to saved articles, per target.

Pipeline Flow (per target, strictly in order):
    1. crawl.list.fetch    - fetch the list page
    2. crawl.list.parse    - parse rows, tag each with a fresh correlation id
    3. crawl.list.dedupe   - one lookup of all detail URLs, drop known ones
    4. crawl.detail.fetch  - fetch all surviving detail pages at once
    5. crawl.detail.parse  - parse each page, keeping its correlation id
    6. crawl.merge         - rejoin details with list rows by correlation id
    7. crawl.save          - persist through the provider, return the count

Concurrency:
    Groups run concurrently. Targets in a group run through a semaphore
    (`max_concurrency`, default 5). Detail fetches inside a target are not
    capped beyond the list size.

Error Handling:
    Each target's sequence is retried as a whole (chain_stop_after_attempt).
    A target that still fails contributes 0 and its siblings carry on. A
    correlation mismatch is never retried and fails the group once every
    sibling has finished.
"""

import asyncio
import logging
import uuid
from functools import partial
from typing import Any, Awaitable, Callable

from chains.chain import BaseChain, Chain, Context
from errors import NonRetryableError, StructuralMismatchError
from models.crawling import (
    Correlated,
    CrawlTarget,
    CrawlTargetGroup,
    ParsedArticle,
    ParsedDetail,
    ParsedListItem,
    detail_url_of,
)
from observability.executor import log_event
from providers import CrawlingProvider, SaveContext
from tools.fetch import fetch_html

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5

Fetcher = Callable[[str], Awaitable[str]]


class CrawlingChain(BaseChain):
    """Crawls every target group and returns `{group name: saved count}`."""

    provider: CrawlingProvider

    def __init__(self, *, fetcher: Fetcher | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.fetch = fetcher or fetch_html

    @property
    def max_concurrency(self) -> int:
        return getattr(self.provider, "max_concurrency", None) or DEFAULT_MAX_CONCURRENCY

    def build(self) -> Chain:
        return Chain("crawl", [self._crawl_all_groups], logger=self.logger)

    async def _crawl_all_groups(self, context: Context) -> Context:
        groups = list(self.provider.crawl_target_groups)
        results = await asyncio.gather(
            *(self.crawl_group(group) for group in groups),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException):
                raise result

        return {group.name: count for group, count in zip(groups, results)}

    def target_chain(self, group: CrawlTargetGroup) -> Chain:
        """Per-target stage sequence with whole-sequence retry."""
        return Chain(
            f"crawl.target.{group.name}",
            [
                self._fetch_list_page,
                self._parse_list_page,
                self._dedupe_list_items,
                self._fetch_detail_pages,
                self._parse_detail_pages,
                self._merge_parsed_articles,
                partial(self._save_articles, group),
            ],
            stop_after_attempt=self.options.chain_stop_after_attempt,
            logger=self.logger,
        )

    async def crawl_group(self, group: CrawlTargetGroup) -> int:
        """Run every target of a group and sum the saved counts."""
        chain = self.target_chain(group)
        failed: list[str] = []

        async def run() -> int:
            results = await chain.batch(
                [{"target": target} for target in group.targets],
                max_concurrency=self.max_concurrency,
            )

            total = 0
            fatal: BaseException | None = None
            for target, result in zip(group.targets, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    failed.append(target.url)
                    log_event(self.logger, logging.ERROR, "crawl.target.failed", self.task_id, {
                        "group": group.name,
                        "target": target.describe(),
                        "type": type(result).__name__,
                        "error": str(result),
                    })
                    if isinstance(result, NonRetryableError) and fatal is None:
                        fatal = result
                    continue
                total += result["count"]

            if fatal is not None:
                raise fatal
            return total

        return await self.executor.execute(
            run,
            event="crawl.group",
            start_fields={"group": group.name, "targets": len(group.targets)},
            done_fields=lambda total: {"total_saved": total, "failed": len(failed)},
        )

    # === Stages ===

    async def _fetch_list_page(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        html = await self.executor.execute(
            lambda: self.fetch(target.url),
            event="crawl.list.fetch",
            start_fields={"target": target.describe()},
            done_fields=lambda html: {"html_length": len(html)},
        )
        return {"list_html": html}

    async def _parse_list_page(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        html: str = ctx["list_html"]

        async def parse() -> list[Correlated[ParsedListItem]]:
            items = await target.list_items(html)
            return [Correlated(uuid.uuid4().hex, item) for item in items]

        parsed = await self.executor.execute(
            parse,
            event="crawl.list.parse",
            start_fields={"target": target.describe(), "html_length": len(html)},
            done_fields=lambda items: {"count": len(items)},
        )
        return {"parsed_list": parsed}

    async def _dedupe_list_items(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        parsed: list[Correlated[ParsedListItem]] = ctx["parsed_list"]

        async def dedupe() -> list[Correlated[ParsedListItem]]:
            existing = await self.provider.fetch_existing_articles_by_urls(
                [entry.value.detail_url for entry in parsed]
            )
            known = {detail_url_of(record) for record in existing}
            return [entry for entry in parsed if entry.value.detail_url not in known]

        remaining = await self.executor.execute(
            dedupe,
            event="crawl.list.dedupe",
            start_fields={"target": target.describe(), "in_count": len(parsed)},
            done_fields=lambda kept: {"out_count": len(kept), "filtered": len(parsed) - len(kept)},
        )
        return {"list": remaining}

    async def _fetch_detail_pages(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        items: list[Correlated[ParsedListItem]] = ctx["list"]

        async def fetch_all() -> list[Correlated[str]]:
            pages = await asyncio.gather(*(self.fetch(entry.value.detail_url) for entry in items))
            return [Correlated(entry.correlation_id, html) for entry, html in zip(items, pages)]

        pages = await self.executor.execute(
            fetch_all,
            event="crawl.detail.fetch",
            start_fields={"target": target.describe(), "count": len(items)},
            done_fields=lambda pages: {"count": len(pages)},
        )
        return {"detail_pages": pages}

    async def _parse_detail_pages(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        pages: list[Correlated[str]] = ctx["detail_pages"]

        async def parse_all() -> list[Correlated[ParsedDetail]]:
            details = await asyncio.gather(*(target.detail(page.value) for page in pages))
            return [Correlated(page.correlation_id, detail) for page, detail in zip(pages, details)]

        details = await self.executor.execute(
            parse_all,
            event="crawl.detail.parse",
            start_fields={"target": target.describe(), "count": len(pages)},
            done_fields=lambda details: {"count": len(details)},
        )
        return {"parsed_details": details}

    async def _merge_parsed_articles(self, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        items: list[Correlated[ParsedListItem]] = ctx["list"]
        details: list[Correlated[ParsedDetail]] = ctx["parsed_details"]

        async def merge() -> list[ParsedArticle]:
            return merge_by_correlation(items, details, target)

        articles = await self.executor.execute(
            merge,
            event="crawl.merge",
            start_fields={
                "target": target.describe(),
                "list_count": len(items),
                "detail_count": len(details),
            },
            done_fields=lambda merged: {"count": len(merged)},
        )
        return {"articles": articles}

    async def _save_articles(self, group: CrawlTargetGroup, ctx: Context) -> Context:
        target: CrawlTarget = ctx["target"]
        articles: list[ParsedArticle] = ctx["articles"]
        save_context = SaveContext(task_id=self.task_id, target_group=group.info(), target=target)

        count = await self.executor.execute(
            lambda: self.provider.save_crawled_articles(articles, save_context),
            event="crawl.save",
            start_fields={
                "group": {"id": group.id, "name": group.name},
                "target": target.describe(),
                "count": len(articles),
            },
            done_fields=lambda saved: {"saved": saved},
        )
        return {"count": count}


def merge_by_correlation(
    items: list[Correlated[ParsedListItem]],
    details: list[Correlated[ParsedDetail]],
    target: CrawlTarget | None = None,
) -> list[ParsedArticle]:
    """Join detail records to list rows by correlation id.

    Raises:
        StructuralMismatchError: A detail has no list row with its id
    """
    by_id = {entry.correlation_id: entry.value for entry in items}
    merged = []
    for detail in details:
        item = by_id.get(detail.correlation_id)
        if item is None:
            raise StructuralMismatchError(
                f"No matching list item for detail with correlation id: {detail.correlation_id}",
                correlation_id=detail.correlation_id,
                target=target.url if target else None,
            )
        merged.append(ParsedArticle.merge(item, detail.value))
    return merged
