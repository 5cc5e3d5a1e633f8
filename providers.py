"""Collaborator interfaces consumed by the pipeline.

The pipeline owns no storage, transport, or model wiring. A host process
supplies implementations of the protocols below; the core only calls the
documented async methods. Every provider method may be invoked concurrently
from different crawl targets, so implementations must tolerate that.

Providers:
    TaskService: start()/end() around one run, e.g. to prevent duplicate runs
    DateService: dates stamped on the newsletter and shown to models
    CrawlingProvider: targets, dedup lookup, crawl persistence
    AnalysisProvider: model capabilities and analysis persistence
    ContentProvider: writer, template, publication rules, newsletter storage
    EmailService: message delivery for previews

Model capabilities (implemented in `agents/`):
    TagClassifier, ImageAnalyzer, ImportanceScorer, NewsletterWriter
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Protocol, Sequence, runtime_checkable

from models.analysis import MinimumScoreRule, TagSet
from models.article import ContentArticle, ScoredArticle, UnscoredArticle
from models.crawling import CrawlTarget, CrawlTargetGroup, CrawlTargetGroupInfo, ParsedArticle
from models.email import EmailEnvelope, EmailMessage
from models.newsletter import Newsletter, NewsletterDraft


# === Plain option records ===

@dataclass
class PipelineOptions:
    """Retry knobs shared by every chain.

    Attributes:
        llm_max_retries: Retries per model call, passed to agent construction
        chain_stop_after_attempt: Attempts for each whole-chain retry
    """

    llm_max_retries: int = 5
    chain_stop_after_attempt: int = 3


@dataclass
class PublicationCriteria:
    """When a newsletter is worth issuing.

    An issue is produced when there are more than `minimum_article_count`
    candidates, or when any candidate scores at least
    `priority_score_threshold`.
    """

    minimum_article_count: int = 5
    priority_score_threshold: int = 8


@dataclass
class HtmlTemplate:
    """HTML shell with `{{marker}}` placeholders for title and content."""

    html: str
    title_marker: str = "title"
    content_marker: str = "content"

    def render(self, title: str, content_html: str) -> str:
        return (
            self.html
            .replace(f"{{{{{self.title_marker}}}}}", title)
            .replace(f"{{{{{self.content_marker}}}}}", content_html)
        )


@dataclass
class SaveContext:
    """Where a batch of crawled articles came from."""

    task_id: Any
    target_group: CrawlTargetGroupInfo
    target: CrawlTarget


# === Services ===

class TaskService(Protocol):
    async def start(self) -> Any:
        """Begin a run and return its task id. May raise if one is running."""
        ...

    async def end(self) -> None:
        ...


class DateService(Protocol):
    def current_iso_date(self) -> str:
        """Today as YYYY-MM-DD."""
        ...

    def display_date(self) -> str:
        """Today formatted for readers of the newsletter."""
        ...


class LocalDateService:
    """DateService backed by the local clock."""

    def __init__(self, display_format: str = "%B %d, %Y"):
        self.display_format = display_format

    def current_iso_date(self) -> str:
        return date.today().isoformat()

    def display_date(self) -> str:
        return date.today().strftime(self.display_format)


@runtime_checkable
class EmailService(Protocol):
    async def send(self, message: EmailMessage) -> None:
        """Deliver a message. May raise on delivery failure."""
        ...


# === Model capabilities ===

class TagClassifier(Protocol):
    async def classify(self, article: UnscoredArticle, existing_tags: Sequence[str]) -> TagSet:
        ...


class ImageAnalyzer(Protocol):
    async def analyze(self, article: UnscoredArticle) -> str | None:
        """Describe the article's images, or None when none are usable."""
        ...


class ImportanceScorer(Protocol):
    async def score(self, article: UnscoredArticle, min_score: int) -> int:
        """Score in [min_score, 10]."""
        ...


class NewsletterWriter(Protocol):
    async def write(self, articles: Sequence[ContentArticle]) -> NewsletterDraft:
        ...


# === Providers ===

class CrawlingProvider(Protocol):
    crawl_target_groups: list[CrawlTargetGroup]
    max_concurrency: int | None

    async def fetch_existing_articles_by_urls(self, urls: list[str]) -> Sequence[Any]:
        """Previously stored articles whose detail_url is in `urls`."""
        ...

    async def save_crawled_articles(self, articles: list[ParsedArticle], context: SaveContext) -> int:
        """Persist one target's articles and return the saved count."""
        ...


class AnalysisProvider(Protocol):
    tagger: TagClassifier
    image_analyzer: ImageAnalyzer
    scorer: ImportanceScorer
    minimum_score_rules: list[MinimumScoreRule]

    async def fetch_unscored_articles(self) -> list[UnscoredArticle]:
        ...

    async def fetch_tags(self) -> list[str]:
        ...

    async def update(self, article: ScoredArticle) -> None:
        ...


class ContentProvider(Protocol):
    writer: NewsletterWriter
    issue_order: int
    html_template: HtmlTemplate
    publication_criteria: PublicationCriteria | None

    async def fetch_article_candidates(self) -> list[ContentArticle]:
        ...

    async def save_newsletter(self, newsletter: Newsletter, used_articles: list[ContentArticle]) -> str | int:
        """Persist the issue (with its article relations) and return its id."""
        ...


@dataclass
class PreviewOptions:
    """Send a preview of each new issue to reviewers.

    Attributes:
        fetch_newsletter_for_preview: Loads the issue to preview
        email_service: Delivery implementation
        envelope: Addressing fields; subject and bodies are composed
    """

    fetch_newsletter_for_preview: Callable[[], Awaitable[Newsletter]]
    email_service: EmailService
    envelope: EmailEnvelope
