"""Tag classifier: three detailed tags per article, reusing known tags.

The running tag vocabulary is passed in with every call so that similar
articles converge on the same tags instead of near-duplicates.
"""

import json
import logging
from typing import Sequence

from pydantic_ai import Agent, PromptedOutput, RunContext

from agents.base import AgentContext, create_model, log_usage
from models.analysis import TagSet
from models.article import UnscoredArticle

logger = logging.getLogger(__name__)


TAGGER_PROMPT = """You classify articles for professionals working in {fields}.

## Task
Read the title and content and return exactly 3 specific tags (tag1, tag2, tag3), most relevant first.

## Output Language
Write every tag in {language}.

## Rules
1. Reuse an existing tag when it fits the article at least 80% as well as a new one would.
2. Create a new tag only when no existing tag fits and the new tag would suit many similar future articles.
3. Tags are 3-15 characters, clear {language} terms that balance domain precision with readability.
4. Never use tags as broad as the fields themselves ({quoted_fields}); they carry no information for this audience.

## Priorities
Accuracy to the content first, then consistency with the existing tag set, then searchability."""


def _create_agent(model: str, retries: int) -> Agent[AgentContext, TagSet]:
    agent = Agent(
        create_model(model),
        output_type=PromptedOutput(TagSet),
        deps_type=AgentContext,
        retries=retries,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[AgentContext]) -> str:
        return TAGGER_PROMPT.format(
            fields=ctx.deps.fields,
            language=ctx.deps.output_language,
            quoted_fields=", ".join(f'"{f}"' for f in ctx.deps.expert_fields),
        )

    return agent


class TagClassifierAgent:
    """TagClassifier backed by a PydanticAI agent.

    Failures propagate; the enrichment loop logs them and retries the
    article on its next pass.
    """

    def __init__(self, model: str, context: AgentContext, retries: int = 5):
        self._context = context
        self._agent = _create_agent(model, retries)

    def build_prompt(self, article: UnscoredArticle, existing_tags: Sequence[str]) -> str:
        return f"""Classify this article with 3 tags.

Title: {article.title}
Content: {article.detail_content}

Existing tags:
```
{json.dumps(list(existing_tags), ensure_ascii=False, indent=2)}
```"""

    async def classify(self, article: UnscoredArticle, existing_tags: Sequence[str]) -> TagSet:
        result = await self._agent.run(self.build_prompt(article, existing_tags), deps=self._context)
        log_usage("Classified", article.id, result)
        return result.output
