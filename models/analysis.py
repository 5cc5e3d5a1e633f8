"""Structured outputs returned by the model agents.

These models double as PydanticAI output types, so the field descriptions
are what the model sees.
"""

from pydantic import BaseModel, Field


class TagSet(BaseModel):
    """Three classification tags for one article."""

    tag1: str = Field(description="Most relevant tag")
    tag2: str = Field(description="Second tag")
    tag3: str = Field(description="Third tag")

    def as_list(self) -> list[str]:
        return [self.tag1, self.tag2, self.tag3]


class ImageContext(BaseModel):
    """Image analysis output."""

    image_context: str = Field(
        description="A comprehensive description of all information extracted from the images",
    )


class ImportanceScore(BaseModel):
    """Importance scoring output."""

    importance_score: int = Field(
        ge=1,
        le=10,
        description="Article importance score (1-10, 10 is most important)",
    )


class MinimumScoreRule(BaseModel):
    """Raise the lowest score offered to the scorer for one crawl target.

    Only the range presented to the model changes; returned scores are not
    clamped to the floor.
    """

    target_url: str = Field(description="Same as CrawlTarget.url")
    min_score: int = Field(ge=1, le=10)


def minimum_score_for(rules: list[MinimumScoreRule], target_url: str) -> int:
    """Floor of the scoring range for an article's target URL (default 1)."""
    for rule in rules:
        if rule.target_url == target_url:
            return rule.min_score
    return 1
