"""Top-level orchestration: crawl, analyze, generate.

Pipeline Flow:
    1. START:    task_service.start() returns the task id used in every log
    2. CRAWL:    CrawlingChain saves new articles for every target group
    3. ANALYZE:  AnalysisChain tags, describes and scores unscored articles
    4. GENERATE: ContentGenerateChain writes and saves an issue if warranted
    5. END:      task_service.end(), always, even after a failure
    6. PREVIEW:  optional preview email for a newly created issue

The three macro stages run strictly in order inside one "task" event. Each
carries its own whole-sequence retry; the macro sequence itself is not
retried. Preview failures are logged and never change the result.
"""

import logging
from typing import Callable

from chains.analysis import AnalysisChain
from chains.chain import Chain, Context
from chains.content import ContentGenerateChain, render_markdown
from chains.crawling import CrawlingChain, Fetcher
from notifications import compose_preview_message
from observability.executor import LoggingExecutor, log_event
from observability.logging import clear_context, set_task_context
from providers import (
    AnalysisProvider,
    ContentProvider,
    CrawlingProvider,
    DateService,
    LocalDateService,
    PipelineOptions,
    PreviewOptions,
    TaskService,
)


class NewsletterPipeline:
    """One newsletter run over host-supplied providers.

    Example:
        >>> pipeline = NewsletterPipeline(
        ...     task_service=tasks,
        ...     crawling_provider=crawling,
        ...     analysis_provider=analysis,
        ...     content_provider=content,
        ... )
        >>> newsletter_id = await pipeline.generate()
    """

    def __init__(
        self,
        *,
        task_service: TaskService,
        crawling_provider: CrawlingProvider,
        analysis_provider: AnalysisProvider,
        content_provider: ContentProvider,
        date_service: DateService | None = None,
        options: PipelineOptions | None = None,
        preview: PreviewOptions | None = None,
        fetcher: Fetcher | None = None,
        render_markdown: Callable[[str], str] = render_markdown,
        logger: logging.Logger | None = None,
    ):
        self.task_service = task_service
        self.crawling_provider = crawling_provider
        self.analysis_provider = analysis_provider
        self.content_provider = content_provider
        self.date_service = date_service or LocalDateService()
        self.options = options or PipelineOptions()
        self.preview = preview
        self.fetcher = fetcher
        self.render_markdown = render_markdown
        self.logger = logger or logging.getLogger(__name__)

    async def generate(self) -> str | int | None:
        """Run the whole pipeline once.

        Returns:
            Id of the newly saved newsletter, or None when the publication
            criteria were not met
        """
        task_id = await self.task_service.start()
        set_task_context(task_id)
        executor = LoggingExecutor(self.logger, task_id)

        try:
            result = await executor.execute(
                lambda: self._build_chain(task_id, executor).invoke({}),
                event="task",
                level="info",
            )
        finally:
            try:
                await self.task_service.end()
            finally:
                clear_context()

        newsletter_id = result.get("newsletter_id")
        if newsletter_id is None:
            log_event(self.logger, logging.INFO, "generate.result.skipped", task_id, {
                "reason": "publication criteria not met",
            })
        else:
            log_event(self.logger, logging.INFO, "generate.result.created", task_id, {"id": newsletter_id})

        await self._send_preview(task_id, newsletter_id)
        return newsletter_id

    def _build_chain(self, task_id, executor: LoggingExecutor) -> Chain:
        shared = {
            "task_id": task_id,
            "executor": executor,
            "options": self.options,
            "logger": self.logger,
        }
        crawling = CrawlingChain(provider=self.crawling_provider, fetcher=self.fetcher, **shared)
        analysis = AnalysisChain(provider=self.analysis_provider, **shared)
        content = ContentGenerateChain(
            provider=self.content_provider,
            date_service=self.date_service,
            render_markdown=self.render_markdown,
            **shared,
        )

        async def crawl(ctx: Context) -> Context:
            return {"crawl_results": await crawling.invoke()}

        async def analyze(ctx: Context) -> Context:
            return {"processed_count": await analysis.analyze()}

        async def generate(ctx: Context) -> Context:
            return {"newsletter_id": await content.generate()}

        return Chain("newsletter", [crawl, analyze, generate], logger=self.logger)

    async def _send_preview(self, task_id, newsletter_id) -> None:
        if self.preview is None:
            return
        if newsletter_id is None:
            log_event(self.logger, logging.INFO, "generate.preview.skip", task_id, {
                "reason": "no newsletter created",
            })
            return

        try:
            newsletter = await self.preview.fetch_newsletter_for_preview()
            message = compose_preview_message(newsletter, self.preview.envelope)
            await self.preview.email_service.send(message)
            log_event(self.logger, logging.INFO, "generate.preview.sent", task_id, {
                "id": newsletter_id,
                "to": message.to,
                "subject": message.subject,
            })
        except Exception as e:
            log_event(self.logger, logging.ERROR, "generate.preview.error", task_id, {
                "id": newsletter_id,
                "type": type(e).__name__,
                "error": str(e),
            }, exc_info=e)
