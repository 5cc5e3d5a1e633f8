"""Build the default agent set from Config."""

from dataclasses import dataclass

from agents.base import AgentContext
from agents.image_analyst import ImageAnalyzerAgent
from agents.scorer import ImportanceScorerAgent
from agents.tagger import TagClassifierAgent
from agents.writer import NewsletterWriterAgent
from config import Config
from providers import DateService, LocalDateService


@dataclass
class HeraldAgents:
    tagger: TagClassifierAgent
    image_analyzer: ImageAnalyzerAgent
    scorer: ImportanceScorerAgent
    writer: NewsletterWriterAgent


def build_agents(config: Config, date_service: DateService | None = None) -> HeraldAgents:
    """Create every model-backed capability a host provider needs.

    Example:
        >>> agents = build_agents(Config.load())
        >>> provider.tagger = agents.tagger
    """
    date_service = date_service or LocalDateService()
    context = AgentContext(output_language=config.output_language, expert_fields=config.expert_fields)
    retries = config.llm_max_retries

    return HeraldAgents(
        tagger=TagClassifierAgent(config.tagger_model, context, retries),
        image_analyzer=ImageAnalyzerAgent(config.image_model, context, retries),
        scorer=ImportanceScorerAgent(config.scorer_model, context, retries, date_service=date_service),
        writer=NewsletterWriterAgent(
            config.writer_model,
            context,
            retries,
            brand_name=config.newsletter_brand_name,
            subscribe_page_url=config.subscribe_page_url,
            date_service=date_service,
            temperature=config.writer_temperature,
        ),
    )
