"""Crawl target definitions and parsed page records.

A crawl target is one list (board) page on a website plus the two parsing
callables that turn its HTML into records:

    parse_list(list_html)     -> list of ParsedListItem
    parse_detail(detail_html) -> ParsedDetail

Either callable may be a plain function or a coroutine function, so host code
can plug in rule-based parsers or model-backed ones. The crawl chain awaits
both uniformly through `CrawlTarget.list_items` / `CrawlTarget.detail`.

Parsed records allow extra fields: whatever a parser adds beyond the
documented ones is carried into the merged ParsedArticle unchanged.
"""

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, Mapping, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class DateType(str, Enum):
    """Whether a list item date is a registration date or a period."""

    REGISTERED = "registered"
    DURATION = "duration"


class ParsedListItem(BaseModel):
    """One row of a parsed list page."""

    model_config = ConfigDict(extra="allow")

    uniq_id: str | None = Field(default=None, description="Site-provided id, if any")
    title: str = Field(description="Article title")
    date: str = Field(description="ISO date (YYYY-MM-DD), no time")
    date_type: DateType = Field(default=DateType.REGISTERED)
    detail_url: str = Field(description="Link to the detail page")


class ParsedDetail(BaseModel):
    """Parsed content of a detail page."""

    model_config = ConfigDict(extra="allow")

    detail_content: str = Field(description="Page body converted to Markdown")
    has_attached_file: bool = Field(default=False)
    has_attached_image: bool = Field(default=False)


class ParsedArticle(ParsedListItem, ParsedDetail):
    """List item and detail fields combined into one crawled article."""

    @classmethod
    def merge(cls, item: ParsedListItem, detail: ParsedDetail) -> "ParsedArticle":
        """Combine a list item with its detail; detail fields win on overlap."""
        return cls(**{**item.model_dump(), **detail.model_dump()})


ListParser = Callable[[str], Union[Iterable[Any], Awaitable[Iterable[Any]]]]
DetailParser = Callable[[str], Union[Any, Awaitable[Any]]]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _as_list_item(value: Any) -> ParsedListItem:
    if isinstance(value, ParsedListItem):
        return value
    return ParsedListItem.model_validate(value)


def _as_detail(value: Any) -> ParsedDetail:
    if isinstance(value, ParsedDetail):
        return value
    return ParsedDetail.model_validate(value)


@dataclass
class CrawlTarget:
    """A single list page to crawl.

    Attributes:
        id: Unique identifier (uuid recommended)
        name: Display name, e.g. 'Notice Board'
        url: List page URL; also the article's target_url after crawling
        parse_list: Sync or async list page parser
        parse_detail: Sync or async detail page parser
    """

    id: str
    name: str
    url: str
    parse_list: ListParser
    parse_detail: DetailParser

    async def list_items(self, html: str) -> list[ParsedListItem]:
        items = await _resolve(self.parse_list(html))
        return [_as_list_item(item) for item in items]

    async def detail(self, html: str) -> ParsedDetail:
        return _as_detail(await _resolve(self.parse_detail(html)))

    def describe(self) -> dict[str, str]:
        return {"name": self.name or "unknown", "url": self.url}


@dataclass(frozen=True)
class CrawlTargetGroupInfo:
    """Group identity without its targets, passed along when saving."""

    id: str
    name: str


@dataclass
class CrawlTargetGroup:
    """Targets sharing a content type, e.g. 'News' or 'Jobs'."""

    id: str
    name: str
    targets: list[CrawlTarget] = field(default_factory=list)

    def info(self) -> CrawlTargetGroupInfo:
        return CrawlTargetGroupInfo(id=self.id, name=self.name)


@dataclass(frozen=True)
class Correlated(Generic[T]):
    """A value tagged with the correlation id of its originating list item."""

    correlation_id: str
    value: T


def detail_url_of(record: Any) -> str | None:
    """Read detail_url from a model or mapping returned by storage."""
    if isinstance(record, Mapping):
        return record.get("detail_url")
    return getattr(record, "detail_url", None)
