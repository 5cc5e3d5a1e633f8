"""Content stage: decide whether to publish, write, render, and save an issue.

Stages:
    generate.content.articles.fetch     - candidate articles from the provider
    generate.content.core.generate      - publication criteria, then the writer
    generate.content.html.render        - markdown to HTML inside the template
    generate.content.newsletter.create  - persist with issue order and date

When the criteria are not met the chain still completes, with
`newsletter_id` set to None.
"""

import logging
import re
from typing import Callable

import markdown

from chains.chain import BaseChain, Chain, Context
from models.article import ContentArticle
from models.newsletter import Newsletter, NewsletterDraft
from observability.executor import log_event
from providers import ContentProvider, DateService, LocalDateService, PublicationCriteria

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]

_ANCHOR_RE = re.compile(r"<a (?![^>]*\btarget=)")
_DEL_RE = re.compile(r"</?del>")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")


def render_markdown(text: str) -> str:
    """Markdown to email-friendly HTML.

    Links open in a new tab, strikethrough markup is shown as '~' (mail
    clients render <del> inconsistently), and bold markers the parser left
    untouched, e.g. inside raw HTML blocks, become <b>.
    """
    html = markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)
    html = _ANCHOR_RE.sub('<a target="_blank" ', html)
    html = _DEL_RE.sub("~", html)
    return _BOLD_RE.sub(r"<b>\1</b>", html)


def meets_publication_criteria(
    candidates: list[ContentArticle],
    criteria: PublicationCriteria,
) -> bool:
    """More than the minimum number of candidates, or at least one priority article."""
    if not candidates:
        return False
    if len(candidates) > criteria.minimum_article_count:
        return True
    return any(a.importance_score >= criteria.priority_score_threshold for a in candidates)


class ContentGenerateChain(BaseChain):
    """Builds and saves one newsletter issue when the candidates justify it."""

    provider: ContentProvider

    def __init__(
        self,
        *,
        date_service: DateService | None = None,
        render_markdown: Callable[[str], str] = render_markdown,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.date_service = date_service or LocalDateService()
        self.render_markdown = render_markdown

    @property
    def criteria(self) -> PublicationCriteria:
        return self.provider.publication_criteria or PublicationCriteria()

    def build(self) -> Chain:
        return Chain(
            "generate.content",
            [self._fetch_candidates, self._generate_core, self._render_html, self._create_newsletter],
            stop_after_attempt=self.options.chain_stop_after_attempt,
            logger=self.logger,
        )

    async def generate(self) -> str | int | None:
        """Returns the saved newsletter id, or None when nothing was published."""
        result = await self.invoke()
        return result["newsletter_id"]

    async def _fetch_candidates(self, ctx: Context) -> Context:
        candidates = await self.executor.execute(
            self.provider.fetch_article_candidates,
            event="generate.content.articles.fetch",
            done_fields=lambda items: {"count": len(items)},
        )
        return {"candidates": candidates}

    async def _generate_core(self, ctx: Context) -> Context:
        candidates: list[ContentArticle] = ctx["candidates"]
        criteria = self.criteria

        async def generate() -> NewsletterDraft | None:
            if not candidates:
                log_event(self.logger, logging.INFO, "generate.content.core.generate.noarticle", self.task_id)
                return None
            if not meets_publication_criteria(candidates, criteria):
                log_event(self.logger, logging.INFO, "generate.content.core.generate.criteria", self.task_id, {
                    "count": len(candidates),
                    "minimum_article_count": criteria.minimum_article_count,
                    "priority_score_threshold": criteria.priority_score_threshold,
                })
                return None
            return await self.provider.writer.write(candidates)

        draft = await self.executor.execute(
            generate,
            event="generate.content.core.generate",
            level="info",
            start_fields={"count": len(candidates)},
            done_fields=lambda d: {"generated": d is not None, "title": d.title if d else None},
        )
        return {"draft": draft}

    async def _render_html(self, ctx: Context) -> Context:
        draft: NewsletterDraft | None = ctx["draft"]
        if draft is None:
            return {"html_body": None}

        async def render() -> str:
            return self.provider.html_template.render(draft.title, self.render_markdown(draft.content))

        html_body = await self.executor.execute(
            render,
            event="generate.content.html.render",
            start_fields={"markdown_length": len(draft.content)},
            done_fields=lambda html: {"html_length": len(html)},
        )
        return {"html_body": html_body}

    async def _create_newsletter(self, ctx: Context) -> Context:
        draft: NewsletterDraft | None = ctx["draft"]
        if draft is None:
            return {"newsletter_id": None}

        newsletter = Newsletter(
            title=draft.title,
            content=draft.content,
            html_body=ctx["html_body"],
            issue_order=self.provider.issue_order,
            date=self.date_service.current_iso_date(),
        )
        used_articles: list[ContentArticle] = ctx["candidates"]

        newsletter_id = await self.executor.execute(
            lambda: self.provider.save_newsletter(newsletter, used_articles),
            event="generate.content.newsletter.create",
            level="info",
            start_fields={"issue_order": newsletter.issue_order, "articles": len(used_articles)},
            done_fields=lambda nid: {"id": nid},
        )
        return {"newsletter_id": newsletter_id}
