"""Article models across the analysis lifecycle.

    UnscoredArticle  - stored crawl result awaiting tags, image context, score
    ScoredArticle    - after enrichment; what AnalysisProvider.update receives
    ContentArticle   - newsletter candidate with content type and source URL

Identity is `id` (string or integer, whatever the host database uses).
"""

from pydantic import BaseModel, Field


class UnscoredArticle(BaseModel):
    """An article that has not been fully enriched yet."""

    id: str | int = Field(description="Storage identifier")
    title: str = Field(description="Article title")
    detail_content: str = Field(default="", description="Body in Markdown")
    has_attached_image: bool = Field(default=False)
    image_context: str | None = Field(default=None, description="Model-derived image description")
    tag1: str | None = None
    tag2: str | None = None
    tag3: str | None = None
    target_url: str = Field(description="List page URL the article was crawled from")

    @property
    def tags(self) -> list[str]:
        return [t for t in (self.tag1, self.tag2, self.tag3) if t]

    @property
    def has_all_tags(self) -> bool:
        return bool(self.tag1 and self.tag2 and self.tag3)


class ScoredArticle(UnscoredArticle):
    """An article with an importance score (1-10)."""

    importance_score: int = Field(description="Importance score, 10 is most important")


class ContentArticle(ScoredArticle):
    """A newsletter candidate."""

    content_type: str = Field(description="Usually the crawl group name, e.g. 'News'")
    url: str = Field(description="Original detail page URL")
