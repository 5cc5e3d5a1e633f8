"""Iterative article enrichment: tags, image context, importance score.

One pass runs four phases in order:

    insights.articles.classify    - tag articles missing any of tag1..tag3
    insights.images.extract       - describe attached images not yet described
    insights.context.merge        - fold the new tags/image context in by id
    insights.importance.determine - score new or changed articles

Model failures are soft: a failed classification or image analysis leaves
the article as it was, and a failed score falls back to 1. Articles still
missing a tag after a pass get another pass, up to MAX_ITERATIONS passes in
total. Articles that are already complete and unchanged are never sent to a
model again.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from chains.chain import BaseChain, Chain, Context
from models.analysis import minimum_score_for
from models.article import ScoredArticle, UnscoredArticle
from observability.executor import log_event
from providers import AnalysisProvider

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 5
FALLBACK_SCORE = 1


@dataclass
class InsightsResult:
    """Enriched articles and how the loop ended."""

    articles: list[ScoredArticle]
    iterations: int
    converged: bool


def _score_of(article: UnscoredArticle) -> int | None:
    return getattr(article, "importance_score", None)


def is_incomplete(article: UnscoredArticle) -> bool:
    """Missing a tag or an importance score."""
    return not article.has_all_tags or _score_of(article) is None


class ArticleInsightsChain(BaseChain):
    """Enrichment loop over one batch of articles.

    Example:
        >>> chain = ArticleInsightsChain(
        ...     provider=provider, task_id=task_id, executor=executor,
        ...     articles=articles, existing_tags=tags,
        ... )
        >>> result = await chain.generate_insights()
        >>> result.converged, result.iterations
        (True, 1)
    """

    provider: AnalysisProvider

    def __init__(
        self,
        *,
        articles: Sequence[UnscoredArticle],
        existing_tags: Sequence[str] = (),
        max_iterations: int = MAX_ITERATIONS,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.articles = list(articles)
        self.vocabulary = list(existing_tags)
        self.max_iterations = max_iterations

    def build(self) -> Chain:
        return Chain(
            "insights.pass",
            [self._classify, self._extract_images, self._merge_context, self._determine_importance],
            logger=self.logger,
        )

    async def generate_insights(self) -> InsightsResult:
        chain = self.build()

        context = await chain.invoke({"articles": self.articles, "iteration": 1})
        accumulator: dict[str | int, ScoredArticle] = {a.id: a for a in context["scored"]}
        iterations = 1

        while iterations < self.max_iterations:
            incomplete = [a for a in accumulator.values() if is_incomplete(a)]
            if not incomplete:
                break

            iterations += 1
            log_event(self.logger, logging.INFO, "insights.retry", self.task_id, {
                "iteration": iterations,
                "incomplete": len(incomplete),
                "ids": [a.id for a in incomplete],
            })
            context = await chain.invoke({"articles": list(accumulator.values()), "iteration": iterations})
            for article in context["scored"]:
                accumulator[article.id] = article

        articles = list(accumulator.values())
        remaining = [a.id for a in articles if is_incomplete(a)]
        if remaining:
            log_event(self.logger, logging.WARNING, "insights.warning.max_iterations_reached", self.task_id, {
                "iterations": iterations,
                "incomplete_ids": remaining,
            })

        return InsightsResult(articles=articles, iterations=iterations, converged=not remaining)

    # === Pass phases ===

    async def _classify(self, ctx: Context) -> Context:
        articles: list[UnscoredArticle] = ctx["articles"]
        pending = [a for a in articles if not a.has_all_tags]

        async def classify_all() -> dict[str | int, list[str]]:
            tags_by_id: dict[str | int, list[str]] = {}
            # Sequential: each result extends the vocabulary offered to the next call
            for article in pending:
                log_event(self.logger, logging.DEBUG, "insights.articles.classify.start", self.task_id, {"id": article.id})
                try:
                    tag_set = await self.provider.tagger.classify(article, list(self.vocabulary))
                except Exception as e:
                    log_event(self.logger, logging.WARNING, "insights.articles.classify.end.error", self.task_id, {
                        "id": article.id, "type": type(e).__name__, "error": str(e),
                    })
                    continue

                tags = tag_set.as_list()
                for tag in tags:
                    if tag and tag not in self.vocabulary:
                        self.vocabulary.append(tag)
                tags_by_id[article.id] = tags
                log_event(self.logger, logging.DEBUG, "insights.articles.classify.end", self.task_id, {
                    "id": article.id, "tags": tags,
                })
            return tags_by_id

        tags_by_id = await self.executor.execute(
            classify_all,
            event="insights.articles.classify",
            start_fields={"iteration": ctx["iteration"], "count": len(pending)},
            done_fields=lambda result: {"classified": len(result), "vocabulary": len(self.vocabulary)},
        )
        return {"tags_by_id": tags_by_id}

    async def _analyze_image(self, article: UnscoredArticle) -> tuple[str | int, str | None]:
        if not article.has_attached_image:
            log_event(self.logger, logging.DEBUG, "insights.images.extract.pass.noimage", self.task_id, {"id": article.id})
            return article.id, None
        if article.image_context:
            log_event(self.logger, logging.DEBUG, "insights.images.extract.pass.exist", self.task_id, {"id": article.id})
            return article.id, None

        log_event(self.logger, logging.DEBUG, "insights.images.extract.start", self.task_id, {"id": article.id})
        try:
            description = await self.provider.image_analyzer.analyze(article)
        except Exception as e:
            log_event(self.logger, logging.WARNING, "insights.images.extract.end.error", self.task_id, {
                "id": article.id, "type": type(e).__name__, "error": str(e),
            })
            return article.id, None

        if not description:
            log_event(self.logger, logging.DEBUG, "insights.images.extract.end.noimage", self.task_id, {"id": article.id})
            return article.id, None

        log_event(self.logger, logging.DEBUG, "insights.images.extract.end", self.task_id, {
            "id": article.id, "length": len(description),
        })
        return article.id, description

    async def _extract_images(self, ctx: Context) -> Context:
        articles: list[UnscoredArticle] = ctx["articles"]

        async def extract_all() -> dict[str | int, str]:
            results = await asyncio.gather(*(self._analyze_image(a) for a in articles))
            return {article_id: text for article_id, text in results if text}

        contexts = await self.executor.execute(
            extract_all,
            event="insights.images.extract",
            start_fields={"iteration": ctx["iteration"], "count": len(articles)},
            done_fields=lambda result: {"extracted": len(result)},
        )
        return {"image_context_by_id": contexts}

    async def _merge_context(self, ctx: Context) -> Context:
        articles: list[UnscoredArticle] = ctx["articles"]
        tags_by_id: dict = ctx["tags_by_id"]
        images_by_id: dict = ctx["image_context_by_id"]

        async def merge() -> tuple[list[UnscoredArticle], set]:
            merged = []
            changed = set()
            for article in articles:
                update = {}
                tags = tags_by_id.get(article.id)
                if tags is not None:
                    update.update(tag1=tags[0], tag2=tags[1], tag3=tags[2])
                if article.id in images_by_id:
                    update["image_context"] = images_by_id[article.id]

                if update and any(getattr(article, key) != value for key, value in update.items()):
                    changed.add(article.id)
                    article = article.model_copy(update=update)
                merged.append(article)
            return merged, changed

        merged, changed = await self.executor.execute(
            merge,
            event="insights.context.merge",
            start_fields={"iteration": ctx["iteration"], "count": len(articles)},
            done_fields=lambda result: {"changed": len(result[1])},
        )
        return {"merged": merged, "changed_ids": changed}

    async def _score_one(self, article: UnscoredArticle, needs_score: bool) -> ScoredArticle:
        if not needs_score:
            return ScoredArticle.model_validate(article.model_dump())

        floor = minimum_score_for(self.provider.minimum_score_rules, article.target_url)
        data = article.model_dump()
        try:
            score = await self.provider.scorer.score(article, floor)
            # A score that is not a whole number is a scoring failure too
            return ScoredArticle.model_validate({**data, "importance_score": score})
        except Exception as e:
            log_event(self.logger, logging.WARNING, "insights.importance.determine.error", self.task_id, {
                "id": article.id, "type": type(e).__name__, "error": str(e), "fallback": FALLBACK_SCORE,
            })

        return ScoredArticle.model_validate({**data, "importance_score": FALLBACK_SCORE})

    async def _determine_importance(self, ctx: Context) -> Context:
        merged: list[UnscoredArticle] = ctx["merged"]
        changed: set = ctx["changed_ids"]
        flags = [_score_of(a) is None or a.id in changed for a in merged]

        async def score_all() -> list[ScoredArticle]:
            return list(await asyncio.gather(*(
                self._score_one(article, needs) for article, needs in zip(merged, flags)
            )))

        scored = await self.executor.execute(
            score_all,
            event="insights.importance.determine",
            start_fields={"iteration": ctx["iteration"], "count": len(merged), "to_score": sum(flags)},
        )
        return {"scored": scored}
