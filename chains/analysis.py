"""Analysis stage: enrich every unscored article and store the results."""

import logging

from chains.chain import BaseChain, Chain, Context
from chains.insights import ArticleInsightsChain, InsightsResult
from models.article import ScoredArticle, UnscoredArticle
from providers import AnalysisProvider

logger = logging.getLogger(__name__)


class AnalysisChain(BaseChain):
    """Fetch unscored articles, run the enrichment loop, persist each article."""

    provider: AnalysisProvider

    def build(self) -> Chain:
        return Chain(
            "analysis",
            [self._fetch, self._analyze, self._update],
            stop_after_attempt=self.options.chain_stop_after_attempt,
            logger=self.logger,
        )

    async def analyze(self) -> int:
        """Returns the number of articles updated."""
        result = await self.invoke()
        return result["processed_count"]

    async def _fetch(self, ctx: Context) -> Context:
        articles = await self.executor.execute(
            self.provider.fetch_unscored_articles,
            event="analysis.articles.fetch",
            done_fields=lambda items: {"count": len(items)},
        )
        tags = await self.executor.execute(
            self.provider.fetch_tags,
            event="analysis.tags.fetch",
            done_fields=lambda items: {"count": len(items)},
        )
        return {"articles": articles, "tags": tags}

    async def _analyze(self, ctx: Context) -> Context:
        articles: list[UnscoredArticle] = ctx["articles"]
        insights = ArticleInsightsChain(
            provider=self.provider,
            task_id=self.task_id,
            executor=self.executor,
            options=self.options,
            logger=self.logger,
            articles=articles,
            existing_tags=ctx["tags"],
        )

        result: InsightsResult = await self.executor.execute(
            insights.generate_insights,
            event="analysis.articles.analyze",
            level="info",
            start_fields={"count": len(articles)},
            done_fields=lambda r: {"iterations": r.iterations, "converged": r.converged},
        )
        return {"scored_articles": result.articles}

    async def _update(self, ctx: Context) -> Context:
        articles: list[ScoredArticle] = ctx["scored_articles"]

        async def update_all() -> int:
            for article in articles:
                await self.provider.update(article)
            return len(articles)

        processed = await self.executor.execute(
            update_all,
            event="analysis.articles.update",
            start_fields={"count": len(articles)},
            done_fields=lambda n: {"processed": n},
        )
        return {"processed_count": processed}
