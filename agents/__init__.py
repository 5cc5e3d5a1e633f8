"""PydanticAI agents behind the Herald model capabilities.

TagClassifierAgent:
    Three tags per article, reusing the known tag vocabulary.

ImageAnalyzerAgent:
    Multimodal description of the images embedded in an article.

ImportanceScorerAgent:
    1-10 importance score, with a per-target floor on the requested range.

NewsletterWriterAgent:
    Markdown newsletter draft with self-checks and bounded regeneration.

Example:
    >>> from agents import build_agents
    >>> agents = build_agents(config)
    >>> tags = await agents.tagger.classify(article, existing_tags)
"""

from agents.base import AgentContext
from agents.factory import HeraldAgents, build_agents
from agents.image_analyst import ImageAnalyzerAgent
from agents.scorer import ImportanceScorerAgent
from agents.tagger import TagClassifierAgent
from agents.writer import NewsletterWriterAgent

__all__ = [
    "AgentContext",
    "HeraldAgents",
    "build_agents",
    "TagClassifierAgent",
    "ImageAnalyzerAgent",
    "ImportanceScorerAgent",
    "NewsletterWriterAgent",
]
