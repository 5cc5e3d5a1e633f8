"""Shared fakes for pipeline tests.

Pages in these tests are JSON strings: a list page is a JSON array of list
items and a detail page a JSON object of detail fields, so `json.loads`
doubles as a parser.
"""

import json
import logging

import pytest

from models.analysis import MinimumScoreRule, TagSet
from models.article import ContentArticle, UnscoredArticle
from models.crawling import CrawlTarget, CrawlTargetGroup
from models.newsletter import NewsletterDraft
from observability.executor import LoggingExecutor
from providers import HtmlTemplate, PublicationCriteria


# === Pages and fetching ===

def list_page(*detail_urls: str) -> str:
    return json.dumps([
        {"title": f"Title {i}", "date": "2025-01-0%d" % (i + 1), "detail_url": url}
        for i, url in enumerate(detail_urls)
    ])


def detail_page(content: str, **extra) -> str:
    return json.dumps({"detail_content": content, **extra})


async def parse_detail_async(html: str) -> dict:
    return json.loads(html)


def make_target(url: str, name: str = "Board") -> CrawlTarget:
    return CrawlTarget(id=url, name=name, url=url, parse_list=json.loads, parse_detail=parse_detail_async)


class FakeFetcher:
    """Serves pages from a dict and records every requested URL."""

    def __init__(self, pages: dict[str, str], failures: dict[str, Exception] | None = None):
        self.pages = pages
        self.failures = failures or {}
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if url in self.failures:
            raise self.failures[url]
        return self.pages[url]


# === Providers ===

class FakeTaskService:
    def __init__(self, task_id="task-1"):
        self.task_id = task_id
        self.started = 0
        self.ended = 0

    async def start(self):
        self.started += 1
        return self.task_id

    async def end(self):
        self.ended += 1


class FakeCrawlingProvider:
    def __init__(self, groups: list[CrawlTargetGroup], existing_urls=(), max_concurrency=None):
        self.crawl_target_groups = groups
        self.max_concurrency = max_concurrency
        self.existing_urls = set(existing_urls)
        self.lookups: list[list[str]] = []
        self.saved: list[tuple] = []

    async def fetch_existing_articles_by_urls(self, urls):
        self.lookups.append(list(urls))
        return [{"detail_url": url} for url in urls if url in self.existing_urls]

    async def save_crawled_articles(self, articles, context):
        self.saved.append((articles, context))
        return len(articles)


class ScriptedTagger:
    """Returns (or raises) scripted outcomes per article id, in call order."""

    def __init__(self, script: dict | None = None, default: TagSet | None = None):
        self.script = {key: list(value) for key, value in (script or {}).items()}
        self.default = default or TagSet(tag1="policy", tag2="budget", tag3="research")
        self.calls: list[tuple] = []

    async def classify(self, article, existing_tags):
        self.calls.append((article.id, list(existing_tags)))
        outcomes = self.script.get(article.id)
        outcome = outcomes.pop(0) if outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeImageAnalyzer:
    def __init__(self, result: str | None = "A chart of rainfall", error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list = []

    async def analyze(self, article):
        self.calls.append(article.id)
        if self.error:
            raise self.error
        return self.result


class FakeScorer:
    def __init__(self, score: int = 5, error: Exception | None = None):
        self.score_value = score
        self.error = error
        self.calls: list[tuple] = []

    async def score(self, article, min_score):
        self.calls.append((article.id, min_score))
        if self.error:
            raise self.error
        return self.score_value


class FakeAnalysisProvider:
    def __init__(self, articles, tags=(), tagger=None, image_analyzer=None, scorer=None, rules=()):
        self.articles = list(articles)
        self.tags = list(tags)
        self.tagger = tagger or ScriptedTagger()
        self.image_analyzer = image_analyzer or FakeImageAnalyzer()
        self.scorer = scorer or FakeScorer()
        self.minimum_score_rules = list(rules)
        self.updated: list = []

    async def fetch_unscored_articles(self):
        return list(self.articles)

    async def fetch_tags(self):
        return list(self.tags)

    async def update(self, article):
        self.updated.append(article)


class FakeWriter:
    def __init__(self, draft: NewsletterDraft | None = None):
        self.draft = draft or NewsletterDraft(title="Weekly water policy roundup", content="# News\n\nHello")
        self.calls: list = []

    async def write(self, articles):
        self.calls.append(list(articles))
        return self.draft


class FakeContentProvider:
    def __init__(self, candidates, writer=None, criteria=None, issue_order=7, newsletter_id="nl-1"):
        self.candidates = list(candidates)
        self.writer = writer or FakeWriter()
        self.issue_order = issue_order
        self.html_template = HtmlTemplate("<html><h1>{{title}}</h1>{{content}}</html>")
        self.publication_criteria = criteria or PublicationCriteria()
        self.newsletter_id = newsletter_id
        self.saved: list[tuple] = []

    async def fetch_article_candidates(self):
        return list(self.candidates)

    async def save_newsletter(self, newsletter, used_articles):
        self.saved.append((newsletter, used_articles))
        return self.newsletter_id


class FixedDateService:
    def current_iso_date(self) -> str:
        return "2025-06-02"

    def display_date(self) -> str:
        return "June 2, 2025"


# === Article builders ===

def unscored(article_id, **fields) -> UnscoredArticle:
    data = {"title": f"Article {article_id}", "detail_content": "Body", "target_url": "https://a.example/list"}
    data.update(fields)
    return UnscoredArticle(id=article_id, **data)


def candidate(article_id, score: int) -> ContentArticle:
    return ContentArticle(
        id=article_id,
        title=f"Article {article_id}",
        detail_content="Body",
        target_url="https://a.example/list",
        tag1="policy",
        tag2="budget",
        tag3="research",
        importance_score=score,
        content_type="News",
        url=f"https://a.example/{article_id}",
    )


# === Fixtures ===

@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("tests.herald")


@pytest.fixture
def executor(test_logger) -> LoggingExecutor:
    return LoggingExecutor(test_logger, "task-1")


@pytest.fixture
def score_rules() -> list[MinimumScoreRule]:
    return [MinimumScoreRule(target_url="https://b.example/list", min_score=4)]
