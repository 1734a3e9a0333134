"""Find the feed behind a website URL: <link> autodiscovery, then common paths."""

import logging
from typing import Optional
from urllib.parse import urljoin

from lxml import etree
from lxml import html as lxml_html

from topicfeed.errors import FetchError, ParseError
from topicfeed.fetchers.feed_parser import parse_feed
from topicfeed.fetchers.transport import Transport

logger = logging.getLogger(__name__)

FEED_MIME_TYPES = frozenset({
    "application/rss+xml",
    "application/atom+xml",
    "application/feed+json",
    "application/json",
})

COMMON_FEED_PATHS = ("/feed", "/rss", "/feed.xml", "/rss.xml", "/atom.xml", "/feed/")


def find_feed_links(html_text: str, base_url: str) -> list[str]:
    """Absolute URLs of every feed <link> in the page, in document order."""
    try:
        doc = lxml_html.fromstring(html_text)
    except (etree.ParserError, ValueError):
        return []

    links = []
    for link in doc.cssselect("link[type]"):
        link_type = (link.get("type") or "").split(";")[0].strip().lower()
        if link_type not in FEED_MIME_TYPES:
            continue
        href = (link.get("href") or "").strip()
        if href:
            links.append(urljoin(base_url, href))
    return links


def discover_feed_url(site_url: str, transport: Transport) -> Optional[str]:
    """Return the feed URL for ``site_url``, or None when no feed is found.

    A miss is a normal outcome, not an error: transport and parse failures
    along the way are logged and the next candidate is tried.
    """
    try:
        page = transport.fetch_text(site_url)
    except FetchError as e:
        logger.info(f"  [Discover] Could not fetch {site_url}: {e}")
        page = None

    if page:
        links = find_feed_links(page, site_url)
        if links:
            logger.info(f"  [Discover] {site_url} advertises {links[0]}")
            return links[0]

    for path in COMMON_FEED_PATHS:
        candidate = urljoin(site_url, path)
        try:
            parse_feed(transport.fetch_text(candidate))
        except (FetchError, ParseError):
            continue
        logger.info(f"  [Discover] Found feed at {candidate}")
        return candidate

    logger.info(f"  [Discover] No feed found for {site_url}")
    return None
