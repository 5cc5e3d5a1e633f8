"""Image analyst: turns the images embedded in an article into text context."""

import logging
import re

from pydantic_ai import Agent, ImageUrl, PromptedOutput, RunContext

from agents.base import AgentContext, create_model, log_usage
from models.analysis import ImageContext
from models.article import UnscoredArticle

logger = logging.getLogger(__name__)

MAX_IMAGES = 5

_IMAGE_RE = re.compile(r"!\[.*?\]\(([^)]+)\)")


IMAGE_ANALYST_PROMPT = """You are an image analysis expert in {fields}.

## Responsibilities
- Extract information the article text does not already give.
- Read and transcribe visible text, figures, charts and tables accurately.
- Identify domain-relevant subjects: people, places, facilities, equipment.
- Relate what the images show to the article and to {fields}.

## Output
- Language: {language}
- One cohesive explanation, not a numbered list.
- Written for practitioners: specific, factual, no speculation."""


def extract_image_urls(markdown: str, limit: int = MAX_IMAGES) -> list[str]:
    """Absolute image URLs from markdown image syntax, in document order.

    Relative paths and data URIs are skipped since the model fetches images
    itself.
    """
    urls = []
    for match in _IMAGE_RE.finditer(markdown or ""):
        url = match.group(1).strip()
        if url.startswith("//"):
            url = "https:" + url
        if url.startswith(("http://", "https://")):
            urls.append(url)
    return urls[:limit]


def _create_agent(model: str, retries: int) -> Agent[AgentContext, ImageContext]:
    agent = Agent(
        create_model(model),
        output_type=PromptedOutput(ImageContext),
        deps_type=AgentContext,
        retries=retries,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[AgentContext]) -> str:
        return IMAGE_ANALYST_PROMPT.format(fields=ctx.deps.fields, language=ctx.deps.output_language)

    return agent


class ImageAnalyzerAgent:
    """ImageAnalyzer backed by a multimodal PydanticAI agent."""

    def __init__(self, model: str, context: AgentContext, retries: int = 5):
        self._context = context
        self._agent = _create_agent(model, retries)

    async def analyze(self, article: UnscoredArticle) -> str | None:
        """Describe the article's images; None when it has no usable image."""
        if not article.has_attached_image or not article.detail_content:
            return None

        urls = extract_image_urls(article.detail_content)
        if not urls:
            return None

        text = f"""Analyze the attached images of this article.

Title: {article.title}
Content: {article.detail_content}

Describe the domain-relevant content, transcribe visible text and data, and
explain what a {self._context.fields} professional should take from the images
beyond what the text already says. Write one flowing narrative."""

        result = await self._agent.run(
            [text, *(ImageUrl(url=url) for url in urls)],
            deps=self._context,
        )
        log_usage("Analyzed images", article.id, result)
        return result.output.image_context
