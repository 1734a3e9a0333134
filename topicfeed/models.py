from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SourceType(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    JSON = "json"
    WEBSITE = "website"


class TopicType(str, Enum):
    TOPIC = "topic"
    COMPANY = "company"
    KEYWORD = "keyword"
    TREND = "trend"
    THREAT = "threat"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Source:
    """A subscribed feed endpoint."""
    id: str
    url: str
    title: str = ""
    site_url: str = ""
    type: SourceType = SourceType.RSS
    folder_id: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_fetched_at: Optional[datetime] = None
    fetch_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "site_url": self.site_url,
            "type": self.type.value,
            "folder_id": self.folder_id,
            "tags": list(self.tags),
            "created_at": _iso(self.created_at),
            "last_fetched_at": _iso(self.last_fetched_at),
            "fetch_error": self.fetch_error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Source":
        return cls(
            id=data["id"],
            url=data["url"],
            title=data.get("title", ""),
            site_url=data.get("site_url", ""),
            type=SourceType(data.get("type", "rss")),
            folder_id=data.get("folder_id"),
            tags=list(data.get("tags", [])),
            created_at=_from_iso(data.get("created_at")) or utcnow(),
            last_fetched_at=_from_iso(data.get("last_fetched_at")),
            fetch_error=data.get("fetch_error"),
        )


@dataclass
class Folder:
    """A named group of sources. Deleting one leaves its sources unfiled."""
    id: str
    name: str
    color: str = "#3b82f6"
    order: int = 0
    icon: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "order": self.order,
            "icon": self.icon,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Folder":
        return cls(
            id=data["id"],
            name=data["name"],
            color=data.get("color", "#3b82f6"),
            order=int(data.get("order", 0)),
            icon=data.get("icon"),
        )


@dataclass(frozen=True)
class Article:
    """A normalized item ingested from a source. Immutable once created."""
    id: str
    source_id: str
    title: str
    url: str
    published_at: datetime
    content_html: str = ""
    content_text: str = ""
    summary: str = ""  # stripped description, max 500 chars
    author: Optional[str] = None
    categories: tuple[str, ...] = ()
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "title": self.title,
            "url": self.url,
            "content_html": self.content_html,
            "content_text": self.content_text,
            "summary": self.summary,
            "published_at": _iso(self.published_at),
            "author": self.author,
            "categories": list(self.categories),
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Article":
        return cls(
            id=data["id"],
            source_id=data["source_id"],
            title=data.get("title", ""),
            url=data.get("url", ""),
            published_at=_from_iso(data.get("published_at")) or utcnow(),
            content_html=data.get("content_html", ""),
            content_text=data.get("content_text", ""),
            summary=data.get("summary", ""),
            author=data.get("author"),
            categories=tuple(data.get("categories", [])),
            image_url=data.get("image_url"),
        )


@dataclass
class ArticleMetadata:
    """Mutable per-article enrichment and reading state."""
    id: str
    is_read: bool = False
    is_saved: bool = False
    is_muted: bool = False
    priority_score: int = 0  # 0-100, written by the classifier only
    labels: list[str] = field(default_factory=list)
    ai_labels: list[str] = field(default_factory=list)
    last_viewed_at: Optional[datetime] = None
    duplicate_group_id: Optional[str] = None  # id of the group's primary article
    is_primary: bool = True
    ai_summary_short: Optional[str] = None
    ai_summary_detailed: Optional[str] = None
    classified_at: Optional[datetime] = None  # last successful classification

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "is_read": self.is_read,
            "is_saved": self.is_saved,
            "is_muted": self.is_muted,
            "priority_score": self.priority_score,
            "labels": list(self.labels),
            "ai_labels": list(self.ai_labels),
            "last_viewed_at": _iso(self.last_viewed_at),
            "duplicate_group_id": self.duplicate_group_id,
            "is_primary": self.is_primary,
            "ai_summary_short": self.ai_summary_short,
            "ai_summary_detailed": self.ai_summary_detailed,
            "classified_at": _iso(self.classified_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArticleMetadata":
        return cls(
            id=data["id"],
            is_read=bool(data.get("is_read", False)),
            is_saved=bool(data.get("is_saved", False)),
            is_muted=bool(data.get("is_muted", False)),
            priority_score=int(data.get("priority_score", 0)),
            labels=list(data.get("labels", [])),
            ai_labels=list(data.get("ai_labels", [])),
            last_viewed_at=_from_iso(data.get("last_viewed_at")),
            duplicate_group_id=data.get("duplicate_group_id"),
            is_primary=bool(data.get("is_primary", True)),
            ai_summary_short=data.get("ai_summary_short"),
            ai_summary_detailed=data.get("ai_summary_detailed"),
            classified_at=_from_iso(data.get("classified_at")),
        )


@dataclass
class TopicCriteria:
    """Keyword hints folded into the classification prompt (not enforced)."""
    must_contain: list[str] = field(default_factory=list)
    should_contain: list[str] = field(default_factory=list)
    must_not_contain: list[str] = field(default_factory=list)


@dataclass
class AITopic:
    """A user-defined classification rule."""
    id: str
    name: str
    type: TopicType = TopicType.TOPIC
    description: str = ""
    criteria: TopicCriteria = field(default_factory=TopicCriteria)
    positive_examples: list[str] = field(default_factory=list)  # article ids, max 10
    negative_examples: list[str] = field(default_factory=list)  # article ids, max 10
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "criteria": {
                "must_contain": list(self.criteria.must_contain),
                "should_contain": list(self.criteria.should_contain),
                "must_not_contain": list(self.criteria.must_not_contain),
            },
            "positive_examples": list(self.positive_examples),
            "negative_examples": list(self.negative_examples),
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AITopic":
        criteria = data.get("criteria") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            type=TopicType(data.get("type", "topic")),
            description=data.get("description", ""),
            criteria=TopicCriteria(
                must_contain=list(criteria.get("must_contain", [])),
                should_contain=list(criteria.get("should_contain", [])),
                must_not_contain=list(criteria.get("must_not_contain", [])),
            ),
            positive_examples=list(data.get("positive_examples", [])),
            negative_examples=list(data.get("negative_examples", [])),
            created_at=_from_iso(data.get("created_at")) or utcnow(),
        )


@dataclass
class MuteRule:
    """Hide articles mentioning any keyword (optionally only for some sources)."""
    id: str
    keywords: list[str] = field(default_factory=list)
    source_ids: list[str] = field(default_factory=list)  # empty = every source
    description: str = ""
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "keywords": list(self.keywords),
            "source_ids": list(self.source_ids),
            "description": self.description,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MuteRule":
        return cls(
            id=data["id"],
            keywords=list(data.get("keywords", [])),
            source_ids=list(data.get("source_ids", [])),
            description=data.get("description", ""),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class FeedItem:
    """One entry of a parsed feed, normalized across RSS, Atom and JSON Feed."""
    title: str
    link: str
    description: str
    content: str
    published_at: datetime
    author: Optional[str] = None
    categories: list[str] = field(default_factory=list)
    image_url: Optional[str] = None


@dataclass
class ParsedFeed:
    title: str
    link: str
    description: str
    items: list[FeedItem] = field(default_factory=list)


@dataclass
class Classification:
    labels: list[str]
    score: int


@dataclass
class DuplicateGroup:
    ids: list[str]
    primary_id: str


@dataclass
class FetchOutcome:
    articles: list[Article] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class FeedValidation:
    valid: bool
    title: Optional[str] = None
    type: Optional[SourceType] = None
    site_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RefreshResult:
    """Counts reported after a refresh; enrichment counts stay 0 when skipped."""
    succeeded: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)  # source id -> message
    new_articles: int = 0
    classified: int = 0
    duplicate_groups: int = 0

