"""Importance scorer: rates an article for the newsletter's audience.

The lower bound of the requested range comes from the caller (per crawl
target minimum score rules). When it is above 1, the prompt drops the
criterion describing score 1 so the model is not offered that option.
"""

import logging
from dataclasses import dataclass

from pydantic_ai import Agent, PromptedOutput, RunContext

from agents.base import AgentContext, create_model, log_usage
from models.analysis import ImportanceScore
from models.article import UnscoredArticle
from providers import DateService, LocalDateService

logger = logging.getLogger(__name__)


SCORER_PROMPT = """You evaluate the importance of news and announcements in {fields}.

Readers are practitioners: researchers, public officials, graduate students and field experts in {fields}.
Score on urgency, impact and scarcity of the information.

Importance Score Criteria ({min_score}-10):
10: Immediate, significant impact on the whole field (major legislation, large budgets, field-changing discoveries)
8-9: Important impact on many stakeholders (major policy changes, major findings, large project announcements)
7-8: Notable academic or professional output (journal publications, research results, professional reports, datasets, mid-size bids)
5-6: Useful information limited to a field or region (small permits, event notices, small bids)
4-5: General industry news, small or mid-size events
2-3: Simple information sharing or routine daily news
{lowest_criterion}
Also weigh:
- Academic value: publications, research reports and symposiums score at least 7
- Practical impact: policies, regulations, bids and recruitment that need a response
- Reach: how many stakeholders are affected
- Scarcity: how exclusive the information is
- Timing: deadlines and schedules relative to today{timing_note}"""

LOWEST_CRITERION = (
    "1: No current value (expired programs, past events, closed bids or recruitment, "
    "administrative notices such as meeting minutes or fee status)\n"
)


@dataclass
class ScoringContext(AgentContext):
    """AgentContext plus the floor of the requested score range."""

    min_score: int = 1


def build_system_prompt(ctx: ScoringContext) -> str:
    has_floor = ctx.min_score > 1
    return SCORER_PROMPT.format(
        fields=ctx.fields,
        min_score=ctx.min_score,
        lowest_criterion="" if has_floor else LOWEST_CRITERION,
        timing_note="" if has_floor else " (recent academic output keeps a high score)",
    )


def _create_agent(model: str, retries: int) -> Agent[ScoringContext, ImportanceScore]:
    agent = Agent(
        create_model(model),
        output_type=PromptedOutput(ImportanceScore),
        deps_type=ScoringContext,
        retries=retries,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[ScoringContext]) -> str:
        return build_system_prompt(ctx.deps)

    return agent


class ImportanceScorerAgent:
    """ImportanceScorer backed by a PydanticAI agent.

    The returned score is whatever the model produced within 1-10; the
    range floor only shapes the prompt.
    """

    def __init__(
        self,
        model: str,
        context: AgentContext,
        retries: int = 5,
        date_service: DateService | None = None,
    ):
        self._context = context
        self._date_service = date_service or LocalDateService()
        self._agent = _create_agent(model, retries)

    def build_prompt(self, article: UnscoredArticle, min_score: int) -> str:
        tags = ", ".join(article.tags)
        prompt = f"""Rate the importance of this article from {min_score} to 10.

Current Date: {self._date_service.current_iso_date()}
Title: {article.title or 'No Title'}
Content: {article.detail_content or 'No Content'}
Tags: {tags}"""
        if article.image_context:
            prompt += f"\nImage Analysis: {article.image_context}"
        return prompt

    async def score(self, article: UnscoredArticle, min_score: int) -> int:
        deps = ScoringContext(
            output_language=self._context.output_language,
            expert_fields=self._context.expert_fields,
            min_score=min_score,
        )
        result = await self._agent.run(self.build_prompt(article, min_score), deps=deps)
        log_usage("Scored", article.id, result)
        return result.output.importance_score
