"""Turn parsed feed items into Articles and merge them into the retained set."""

from __future__ import annotations

import hashlib
import logging

from topicfeed.fetchers.feed_parser import strip_html
from topicfeed.models import Article, FeedItem, Source

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_SOURCE = 500


def generate_article_id(source_id: str, url: str, title: str) -> str:
    """Stable article id derived from the source and the item's URL (or title)."""
    key = f"{source_id}-{url or title}"
    return "article-" + hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def ingest(source: Source, items: list[FeedItem]) -> list[Article]:
    """Build Article records for one source's parsed items."""
    return [
        Article(
            id=generate_article_id(source.id, item.link, item.title),
            source_id=source.id,
            title=item.title,
            url=item.link,
            content_html=item.content,
            content_text=strip_html(item.content),
            summary=item.description,
            published_at=item.published_at,
            author=item.author,
            categories=tuple(item.categories),
            image_url=item.image_url,
        )
        for item in items
    ]


def _newest_first(article: Article):
    return (article.published_at, article.id)


def merge_articles(
    existing: list[Article],
    incoming: list[Article],
    max_per_source: int = DEFAULT_MAX_PER_SOURCE,
) -> list[Article]:
    """Merge ``incoming`` into ``existing`` and cap every source at ``max_per_source``.

    Articles whose id is already present are ignored (first occurrence wins
    within ``incoming`` too). Each source's articles are then sorted newest
    first by ``published_at`` and truncated, so eviction always drops the
    oldest. Ties are broken by id, which makes the retained set depend only
    on the set of articles and the cap, never on fetch order.
    """
    max_per_source = max(0, max_per_source)
    seen = {a.id for a in existing}
    combined = list(existing)
    for article in incoming:
        if article.id in seen:
            continue
        seen.add(article.id)
        combined.append(article)

    by_source: dict[str, list[Article]] = {}
    for article in combined:
        by_source.setdefault(article.source_id, []).append(article)

    retained: list[Article] = []
    for source_id, articles in by_source.items():
        articles.sort(key=_newest_first, reverse=True)
        if len(articles) > max_per_source:
            logger.debug(f"  [Ingest] {source_id}: evicting {len(articles) - max_per_source} oldest articles")
        retained.extend(articles[:max_per_source])

    retained.sort(key=_newest_first, reverse=True)
    return retained
