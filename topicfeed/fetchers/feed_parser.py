"""Parse JSON Feed, RSS 2.0, RSS 1.0 (RDF) and Atom documents into a ParsedFeed.

Format detection runs JSON first: a decoded object whose ``version`` starts
with ``https://jsonfeed.org/`` is a JSON Feed and never reaches the XML
grammars. Everything else is parsed as XML and routed by the root element:
``rss`` -> RSS 2.0, ``feed`` -> Atom, ``RDF`` -> RSS rules with items taken
from the RDF root.

Every item field is resolved by probing an ordered list of candidate
locations and falling back to a default, so all three grammars produce the
same FeedItem shape.
"""

import html
import json
import re
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as dateparser
from lxml import etree

from topicfeed.errors import ParseError
from topicfeed.models import FeedItem, ParsedFeed, SourceType, utcnow

JSON_FEED_PREFIX = "https://jsonfeed.org/"
DESCRIPTION_MAX = 500

ATOM_NS = "http://www.w3.org/2005/Atom"
ATOM03_NS = "http://purl.org/atom/ns#"
RSS1_NS = "http://purl.org/rss/1.0/"
RSS090_NS = "http://my.netscape.com/rdf/simple/0.9/"
RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
DC_NS = "http://purl.org/dc/elements/1.1/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
MEDIA_NS = "http://search.yahoo.com/mrss/"

CONTENT_ENCODED = f"{{{CONTENT_NS}}}encoded"
DC_CREATOR = f"{{{DC_NS}}}creator"
DC_DATE = f"{{{DC_NS}}}date"
DC_SUBJECT = f"{{{DC_NS}}}subject"
MEDIA_CONTENT = f"{{{MEDIA_NS}}}content"
MEDIA_THUMBNAIL = f"{{{MEDIA_NS}}}thumbnail"
MEDIA_GROUP = f"{{{MEDIA_NS}}}group"
ATOM_LINK = f"{{{ATOM_NS}}}link"
RDF_ABOUT = f"{{{RDF_NS}}}about"

# Plain names match elements with no namespace or one of the core feed namespaces
_CORE_NAMESPACES = frozenset({None, ATOM_NS, ATOM03_NS, RSS1_NS, RSS090_NS})

_XML_DECL = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_WS = re.compile(r"\s+")
_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_feed(text: str) -> ParsedFeed:
    """Detect the feed format of ``text`` and parse it.

    Raises:
        ParseError: "invalid xml", "unknown format" or "invalid feed structure".
    """
    data = _load_json_feed(text)
    if data is not None:
        return _parse_json_feed(data)

    root = _parse_xml(text)
    name = _localname(root)
    if name == "rss":
        channel = _find(root, "channel")
        if channel is None:
            raise ParseError("invalid feed structure")
        return _parse_rss(channel, _find_all(channel, "item"))
    if name == "feed":
        return _parse_atom(root)
    if name == "RDF":
        channel = _find(root, "channel")
        items = _find_all(root, "item") or (_find_all(channel, "item") if channel is not None else [])
        return _parse_rss(channel, items)
    raise ParseError("unknown format")


def detect_feed_type(text: str) -> SourceType:
    """Report which grammar ``parse_feed`` would use for ``text``."""
    if _load_json_feed(text) is not None:
        return SourceType.JSON
    root = _parse_xml(text)
    if _localname(root) == "feed":
        return SourceType.ATOM
    return SourceType.RSS


def strip_html(markup: str) -> str:
    """Remove tags, unescape entities and collapse whitespace."""
    if not markup:
        return ""
    return _WS.sub(" ", html.unescape(_TAG.sub(" ", markup))).strip()


def first_image(markup: str) -> Optional[str]:
    match = _IMG_SRC.search(markup or "")
    return match.group(1) if match else None


def parse_date(raw: Optional[str]) -> datetime:
    """Parse a feed date to aware UTC; missing or unparsable -> now."""
    if raw:
        try:
            parsed = dateparser.parse(raw)
        except (ValueError, OverflowError, TypeError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    return utcnow()


# ---------------------------------------------------------------------------
# JSON Feed
# ---------------------------------------------------------------------------

def _load_json_feed(text: str) -> Optional[dict]:
    try:
        data = json.loads(text)
    except (ValueError, TypeError):
        return None
    if isinstance(data, dict) and str(data.get("version", "")).startswith(JSON_FEED_PREFIX):
        return data
    return None


def _parse_json_feed(data: dict) -> ParsedFeed:
    raw_items = data.get("items", [])
    if not isinstance(raw_items, list):
        raise ParseError("invalid feed structure")

    items = []
    for entry in raw_items:
        if not isinstance(entry, dict):
            continue
        content_html = _json_str(entry, "content_html")
        content_text = _json_str(entry, "content_text")
        content = content_html or content_text
        items.append(FeedItem(
            title=_first(entry.get("title")) or "Untitled",
            link=_first(entry.get("url"), entry.get("external_url")) or "",
            description=_summarize(_json_str(entry, "summary").strip() or content_html or content_text),
            content=content,
            published_at=parse_date(_first(entry.get("date_published"), entry.get("date_modified"))),
            author=_json_author(entry),
            categories=_json_tags(entry),
            image_url=_first(entry.get("image"), entry.get("banner_image")) or first_image(content_html),
        ))

    return ParsedFeed(
        title=_first(data.get("title")) or "Unknown Feed",
        link=_first(data.get("home_page_url"), data.get("feed_url")) or "",
        description=_first(data.get("description")) or "",
        items=items,
    )


def _json_str(entry: dict, key: str) -> str:
    """String field of a JSON Feed item; absent or null -> "", any other type is malformed."""
    value = entry.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError("invalid feed structure")
    return value


def _json_tags(entry: dict) -> list[str]:
    tags = entry.get("tags")
    if tags is None:
        return []
    if not isinstance(tags, list):
        raise ParseError("invalid feed structure")
    return [t.strip() for t in tags if isinstance(t, str) and t.strip()]


def _json_author(entry: dict) -> Optional[str]:
    candidates = []
    author = entry.get("author")
    if author is not None and not isinstance(author, dict):
        raise ParseError("invalid feed structure")
    if author:
        candidates.append(author.get("name"))
    authors = entry.get("authors")
    if authors is not None and not isinstance(authors, list):
        raise ParseError("invalid feed structure")
    candidates.extend(a.get("name") for a in authors or [] if isinstance(a, dict))
    return _first(*candidates)


# ---------------------------------------------------------------------------
# RSS 2.0 / RDF
# ---------------------------------------------------------------------------

def _parse_rss(channel, items: list) -> ParsedFeed:
    if channel is not None:
        title = _probe_text(channel, "title")
        link = _probe_text(channel, "link")
        description = _probe_text(channel, "description")
    else:
        title = link = description = None
    return ParsedFeed(
        title=title or "Unknown Feed",
        link=link or "",
        description=description or "",
        items=[_parse_rss_item(item) for item in items],
    )


def _parse_rss_item(item) -> FeedItem:
    description_markup = _markup(_find(item, "description"))
    content = _markup(_find(item, CONTENT_ENCODED)) or description_markup
    return FeedItem(
        title=_probe_text(item, "title") or "Untitled",
        link=_rss_link(item),
        description=_summarize(description_markup),
        content=content,
        published_at=parse_date(_probe_text(item, "pubDate", DC_DATE)),
        author=_probe_text(item, "author", DC_CREATOR),
        categories=_texts(item, "category", DC_SUBJECT),
        image_url=_media_image(item) or first_image(description_markup),
    )


def _rss_link(item) -> str:
    link = _probe_text(item, "link")
    if link:
        return link
    atom_link = _find(item, ATOM_LINK)
    if atom_link is not None and atom_link.get("href"):
        return atom_link.get("href").strip()
    guid = _find(item, "guid")
    if guid is not None and guid.get("isPermaLink", "true").lower() != "false":
        text = (guid.text or "").strip()
        if text.startswith(("http://", "https://")):
            return text
    return (item.get(RDF_ABOUT) or "").strip()


def _media_image(item) -> Optional[str]:
    """Enclosure / media:content / media:thumbnail image URL, in that order."""
    for enclosure in _find_all(item, "enclosure"):
        enc_type = (enclosure.get("type") or "").lower()
        if enclosure.get("url") and (not enc_type or enc_type.startswith("image/")):
            return enclosure.get("url").strip()

    containers = [item] + _find_all(item, MEDIA_GROUP)
    for container in containers:
        for media in _find_all(container, MEDIA_CONTENT):
            medium = (media.get("medium") or "").lower()
            media_type = (media.get("type") or "").lower()
            if not media.get("url"):
                continue
            if medium in ("", "image") and (not media_type or media_type.startswith("image/")):
                return media.get("url").strip()
        thumb = _find(container, MEDIA_THUMBNAIL)
        if thumb is not None and thumb.get("url"):
            return thumb.get("url").strip()
    return None


# ---------------------------------------------------------------------------
# Atom
# ---------------------------------------------------------------------------

def _parse_atom(feed) -> ParsedFeed:
    return ParsedFeed(
        title=_probe_text(feed, "title") or "Unknown Feed",
        link=_atom_link(feed),
        description=_probe_text(feed, "subtitle", "tagline") or "",
        items=[_parse_atom_entry(entry) for entry in _find_all(feed, "entry")],
    )


def _parse_atom_entry(entry) -> FeedItem:
    content_markup = _markup(_find(entry, "content"))
    summary_markup = _markup(_find(entry, "summary"))
    content = content_markup or summary_markup
    return FeedItem(
        title=_probe_text(entry, "title") or "Untitled",
        link=_atom_link(entry),
        description=_summarize(summary_markup or content_markup),
        content=content,
        published_at=parse_date(_probe_text(entry, "published", "updated", "issued", "modified")),
        author=_atom_author(entry),
        categories=[
            c for c in ((el.get("term") or _plain(el)).strip() for el in _find_all(entry, "category")) if c
        ],
        image_url=(
            _media_image(entry) or _atom_enclosure_image(entry) or first_image(summary_markup or content_markup)
        ),
    )


def _atom_link(el) -> str:
    """First link that is rel=alternate or has no rel, in document order."""
    for link in _find_all(el, "link"):
        rel = link.get("rel")
        if (rel is None or rel == "alternate") and link.get("href"):
            return link.get("href").strip()
    return ""


def _atom_enclosure_image(entry) -> Optional[str]:
    for link in _find_all(entry, "link"):
        if link.get("rel") == "enclosure" and (link.get("type") or "").lower().startswith("image/"):
            return link.get("href")
    return None


def _atom_author(entry) -> Optional[str]:
    author = _find(entry, "author")
    if author is not None:
        name = _probe_text(author, "name")
        if name:
            return name
    return _probe_text(entry, DC_CREATOR)


# ---------------------------------------------------------------------------
# XML helpers
# ---------------------------------------------------------------------------

def _parse_xml(text: str):
    body = _XML_DECL.sub("", (text or "").lstrip("\ufeff"), count=1).strip()
    parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=False)
    try:
        return etree.fromstring(body.encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise ParseError("invalid xml") from e


def _localname(el) -> str:
    return etree.QName(el).localname


def _matches(el, name: str) -> bool:
    if not isinstance(el.tag, str):
        return False
    if name.startswith("{"):
        return el.tag == name
    qname = etree.QName(el)
    return qname.localname == name and qname.namespace in _CORE_NAMESPACES


def _find(el, *names: str):
    """First child matching the earliest name in ``names`` (priority order)."""
    for name in names:
        for child in el:
            if _matches(child, name):
                return child
    return None


def _find_all(el, name: str) -> list:
    return [child for child in el if _matches(child, name)]


def _plain(el) -> str:
    return "".join(el.itertext()) if el is not None else ""


def _markup(el) -> str:
    """Text of ``el``, keeping inline XHTML children serialized."""
    if el is None:
        return ""
    if len(el) == 0:
        return el.text or ""
    parts = [el.text or ""]
    parts.extend(etree.tostring(child, encoding="unicode", with_tail=True) for child in el)
    return "".join(parts)


def _probe_text(el, *names: str) -> Optional[str]:
    """Text of the first populated candidate child, tried in priority order."""
    for name in names:
        for child in el:
            if _matches(child, name):
                text = _plain(child).strip()
                if text:
                    return text
    return None


def _texts(el, *names: str) -> list[str]:
    values = []
    for name in names:
        values.extend(_plain(child).strip() for child in _find_all(el, name))
    return [v for v in values if v]


def _first(*values) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _summarize(markup: str) -> str:
    return strip_html(markup)[:DESCRIPTION_MAX]
