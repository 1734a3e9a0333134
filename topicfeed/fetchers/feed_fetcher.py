"""Fetch and validate feeds for subscribed sources."""

import logging

from topicfeed.errors import FetchError, ParseError
from topicfeed.fetchers.feed_parser import detect_feed_type, parse_feed
from topicfeed.fetchers.transport import Transport
from topicfeed.models import FeedValidation, FetchOutcome, Source
from topicfeed.processing.ingestor import ingest

logger = logging.getLogger(__name__)


def fetch_feed(source: Source, transport: Transport) -> FetchOutcome:
    """Fetch and parse one source. Transport and parse failures become ``error``."""
    try:
        text = transport.fetch_text(source.url)
        parsed = parse_feed(text)
    except (FetchError, ParseError) as e:
        logger.warning(f"  [Feed] {source.title or source.url}: {e}")
        return FetchOutcome(articles=[], error=str(e))
    except Exception as e:
        logger.exception(f"  [Feed] {source.title or source.url}: unexpected error")
        return FetchOutcome(articles=[], error=f"Failed to parse feed: {e}")

    articles = ingest(source, parsed.items)
    logger.info(f"  [Feed] {source.title or source.url} — {len(articles)} items")
    return FetchOutcome(articles=articles, error=None)


def validate_feed_url(url: str, transport: Transport) -> FeedValidation:
    """Check that ``url`` serves a parsable feed and report its title and type."""
    try:
        text = transport.fetch_text(url)
        parsed = parse_feed(text)
        feed_type = detect_feed_type(text)
    except (FetchError, ParseError) as e:
        return FeedValidation(valid=False, error=str(e))

    return FeedValidation(
        valid=True,
        title=parsed.title,
        type=feed_type,
        site_url=parsed.link or url,
    )
