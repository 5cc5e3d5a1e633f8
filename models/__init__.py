"""Pydantic models for the Herald newsletter pipeline.

Crawling:
    CrawlTarget / CrawlTargetGroup: what to crawl and how to parse it.
    ParsedListItem / ParsedDetail / ParsedArticle: parsed page records.

Articles:
    UnscoredArticle -> ScoredArticle -> ContentArticle as an article moves
    through analysis and into a newsletter.

Agent outputs:
    TagSet, ImageContext, ImportanceScore, WrittenNewsletter.

Publishing:
    Newsletter, NewsletterDraft, EmailMessage.
"""

from models.analysis import ImageContext, ImportanceScore, MinimumScoreRule, TagSet
from models.article import ContentArticle, ScoredArticle, UnscoredArticle
from models.crawling import (
    CrawlTarget,
    CrawlTargetGroup,
    CrawlTargetGroupInfo,
    DateType,
    ParsedArticle,
    ParsedDetail,
    ParsedListItem,
)
from models.email import EmailAttachment, EmailEnvelope, EmailMessage
from models.newsletter import Newsletter, NewsletterDraft, WrittenNewsletter

__all__ = [
    "CrawlTarget",
    "CrawlTargetGroup",
    "CrawlTargetGroupInfo",
    "DateType",
    "ParsedListItem",
    "ParsedDetail",
    "ParsedArticle",
    "UnscoredArticle",
    "ScoredArticle",
    "ContentArticle",
    "TagSet",
    "ImageContext",
    "ImportanceScore",
    "MinimumScoreRule",
    "Newsletter",
    "NewsletterDraft",
    "WrittenNewsletter",
    "EmailAttachment",
    "EmailEnvelope",
    "EmailMessage",
]
