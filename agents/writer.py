"""Newsletter writer: turns scored candidate articles into one issue.

The model returns its draft together with three self-checks (output
language, copyright, fact accuracy). A draft failing any check is thrown
away and regenerated, up to MAX_DRAFT_ATTEMPTS times.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from pydantic_ai import Agent, PromptedOutput, RunContext
from pydantic_ai.settings import ModelSettings

from agents.base import AgentContext, create_model, log_usage
from errors import DraftRejectedError
from models.article import ContentArticle
from models.newsletter import NewsletterDraft, WrittenNewsletter
from providers import DateService, LocalDateService

logger = logging.getLogger(__name__)

MAX_DRAFT_ATTEMPTS = 3


WRITER_PROMPT = """You produce the "{brand}" newsletter, which tracks trends in {fields} for practitioners who need to understand complex news quickly and decide what to do about it.

## Accuracy
1. Use only facts stated in the provided posts. No inference, speculation or forecasts.
2. Never describe standards, policies or plans the posts do not mention.
3. Leave out anything uncertain rather than hedging it.
4. Rewrite facts in your own dry wording; do not reuse the sources' phrasing or structure.

## Sources
Every mention of a post links to it as [original title](URL). Never use generic link text such as "View" or "Post 3".

## Dates
Write date ranges with a hyphen ("June 1-2"), never a tilde, which renders as strikethrough.

## Structure
1. Language: {language}
2. Open with a level-1 heading "{display_date} {fields} News" (translate "News" into {language}), then a neutral greeting and a one-paragraph overview.
3. Briefing: the main patterns across today's posts and the changes with immediate impact, backed by simple figures where possible.
4. Categories: group posts by topic (policy, budget, research, products, operations, events...), each with a short trend summary and an emoji heading. Sort by importance inside each category and merge duplicates reported by several sources.
5. Length by importance score:
   - 9-10: full detail (key fact in bold with link, who is affected, dates and procedures, figures).
   - 6-8: at most 3 sentences, no bullets or subsections.
   - 1-5: exactly 1 sentence with the link; several may share one bullet list.
6. Permits, reports and notices: one table row per item, never "and N more"; missing values are "-".
7. Close with a short factual summary and upcoming deadlines. No preview of the next issue, no contact details.
8. Title: 20-50 characters, the 1-2 most important facts first, neutral verbs, 1-2 emoji allowed.
{subscribe_line}
## Self-check
Set is_written_in_output_language, copyright_verified and fact_accuracy truthfully for the draft you return."""


@dataclass
class WriterContext(AgentContext):
    """AgentContext plus the issue-level details the writer needs."""

    brand_name: str = "Herald"
    subscribe_page_url: str = ""
    display_date: str = ""


def build_system_prompt(ctx: WriterContext) -> str:
    subscribe_line = ""
    if ctx.subscribe_page_url:
        subscribe_line = (
            f"9. Add a link button to {ctx.subscribe_page_url} (Subscribe to {ctx.brand_name}) "
            "at a natural, visible spot.\n"
        )
    return WRITER_PROMPT.format(
        brand=ctx.brand_name,
        fields=ctx.fields,
        language=ctx.output_language,
        display_date=ctx.display_date,
        subscribe_line=subscribe_line,
    )


def build_user_prompt(articles: Sequence[ContentArticle], fields: str, display_date: str) -> str:
    posts = []
    for index, article in enumerate(articles, start=1):
        lines = [
            f"## Post {index}",
            f"Title: {article.title}",
            f"Content: {article.detail_content}",
            f"Importance: {article.importance_score}/10",
            f"Tags: {', '.join(article.tags)}",
            f"Content Type: {article.content_type}",
            f"URL: {article.url}",
        ]
        if article.image_context:
            lines.append(f"Image Analysis: {article.image_context}")
        posts.append("\n".join(lines))

    return (
        f"Below are all newly collected {fields} posts:\n\n"
        + "\n\n".join(posts)
        + f"\n\n---\nWrite the {fields} newsletter for {display_date} from these posts only, "
        "following the structure and length rules in your instructions."
    )


def _create_agent(model: str, retries: int) -> Agent[WriterContext, WrittenNewsletter]:
    agent = Agent(
        create_model(model),
        output_type=PromptedOutput(WrittenNewsletter),
        deps_type=WriterContext,
        retries=retries,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[WriterContext]) -> str:
        return build_system_prompt(ctx.deps)

    return agent


class NewsletterWriterAgent:
    """NewsletterWriter backed by a PydanticAI agent.

    Example:
        >>> writer = NewsletterWriterAgent(config.writer_model, context, brand_name="Herald")
        >>> draft = await writer.write(candidates)
    """

    def __init__(
        self,
        model: str,
        context: AgentContext,
        retries: int = 5,
        *,
        brand_name: str = "Herald",
        subscribe_page_url: str = "",
        date_service: DateService | None = None,
        temperature: float = 0.3,
        top_p: float | None = None,
        max_tokens: int | None = None,
        presence_penalty: float | None = None,
        frequency_penalty: float | None = None,
        max_attempts: int = MAX_DRAFT_ATTEMPTS,
    ):
        self._context = context
        self._brand_name = brand_name
        self._subscribe_page_url = subscribe_page_url
        self._date_service = date_service or LocalDateService()
        self._max_attempts = max_attempts
        self._agent = _create_agent(model, retries)

        settings: ModelSettings = {"temperature": temperature}
        if top_p is not None:
            settings["top_p"] = top_p
        if max_tokens is not None:
            settings["max_tokens"] = max_tokens
        if presence_penalty is not None:
            settings["presence_penalty"] = presence_penalty
        if frequency_penalty is not None:
            settings["frequency_penalty"] = frequency_penalty
        self._settings = settings

    async def write(self, articles: Sequence[ContentArticle]) -> NewsletterDraft:
        display_date = self._date_service.display_date()
        deps = WriterContext(
            output_language=self._context.output_language,
            expert_fields=self._context.expert_fields,
            brand_name=self._brand_name,
            subscribe_page_url=self._subscribe_page_url,
            display_date=display_date,
        )
        prompt = build_user_prompt(articles, self._context.fields, display_date)

        checks: dict[str, bool] = {}
        for attempt in range(1, self._max_attempts + 1):
            result = await self._agent.run(prompt, deps=deps, model_settings=self._settings)
            log_usage("Drafted newsletter", f"attempt {attempt}", result)

            written = result.output
            if written.passed_checks:
                return written.draft()

            checks = {
                "is_written_in_output_language": written.is_written_in_output_language,
                "copyright_verified": written.copyright_verified,
                "fact_accuracy": written.fact_accuracy,
            }
            logger.warning(
                "Draft failed self-check, regenerating | attempt=%d/%d checks=%s",
                attempt, self._max_attempts, checks,
            )

        raise DraftRejectedError(
            f"Newsletter draft failed self-checks after {self._max_attempts} attempts",
            attempts=self._max_attempts,
            checks=checks,
        )
