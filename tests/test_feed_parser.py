"""Tests for feed format detection and parsing."""

import json
from datetime import datetime, timezone

import pytest

from topicfeed.errors import ParseError
from topicfeed.fetchers.feed_parser import (
    detect_feed_type,
    parse_date,
    parse_feed,
    strip_html,
)
from topicfeed.models import SourceType

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <link>https://example.com</link>
    <description>All the news</description>
    <item>
      <title>First story</title>
      <link>https://example.com/1</link>
      <description>&lt;p&gt;Short &amp;amp; &lt;b&gt;bold&lt;/b&gt;&lt;/p&gt;</description>
      <content:encoded><![CDATA[<p>Full body <img src="https://example.com/inline.png"></p>]]></content:encoded>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
      <dc:creator>Jane Doe</dc:creator>
      <category>Tech</category>
      <category>AI</category>
      <media:thumbnail url="https://example.com/thumb.jpg"/>
    </item>
    <item>
      <guid>https://example.com/2</guid>
      <enclosure url="https://example.com/episode.mp3" type="audio/mpeg"/>
    </item>
  </channel>
</rss>
"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Blog</title>
  <subtitle>Notes</subtitle>
  <link rel="self" href="https://blog.test/atom.xml"/>
  <link href="https://blog.test/"/>
  <entry>
    <title>Entry one</title>
    <link rel="self" href="https://blog.test/entries/1.xml"/>
    <link rel="alternate" href="https://blog.test/entries/1"/>
    <link rel="enclosure" type="image/png" href="https://blog.test/cover.png"/>
    <updated>2024-02-03T04:05:06Z</updated>
    <author><name>Sam</name></author>
    <category term="python"/>
    <summary>A summary</summary>
    <content type="html">&lt;p&gt;The content&lt;/p&gt;</content>
  </entry>
</feed>
"""

RDF = """<?xml version="1.0"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="https://rdf.test/">
    <title>RDF Site</title>
    <link>https://rdf.test/</link>
    <description>Old school</description>
  </channel>
  <item rdf:about="https://rdf.test/a">
    <title>RDF item</title>
    <dc:date>2023-05-06T07:08:09+02:00</dc:date>
    <dc:subject>History</dc:subject>
  </item>
</rdf:RDF>
"""

JSON_FEED = {
    "version": "https://jsonfeed.org/version/1.1",
    "title": "JSON Site",
    "home_page_url": "https://json.test/",
    "items": [
        {
            "id": "1",
            "url": "https://json.test/1",
            "title": "JSON item",
            "content_html": "<p>Hello <img src='https://json.test/pic.png'></p>",
            "date_published": "2024-03-04T05:06:07Z",
            "authors": [{"name": "Ada"}],
            "tags": ["news", " "],
        },
        {"id": "2", "content_text": "No title here"},
    ],
}


class TestRSS:
    def test_channel_and_item_fields(self) -> None:
        """Test channel metadata and the per-item field fallbacks."""
        feed = parse_feed(RSS)
        assert feed.title == "Example News"
        assert feed.link == "https://example.com"
        item = feed.items[0]
        assert item.title == "First story"
        assert item.link == "https://example.com/1"
        assert item.description == "Short & bold"
        assert "Full body" in item.content
        assert item.published_at == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        assert item.author == "Jane Doe"
        assert item.categories == ["Tech", "AI"]
        assert item.image_url == "https://example.com/thumb.jpg"

    def test_missing_fields_fall_back(self) -> None:
        """Test the untitled item uses its permalink guid and skips audio enclosures."""
        item = parse_feed(RSS).items[1]
        assert item.title == "Untitled"
        assert item.link == "https://example.com/2"
        assert item.image_url is None
        assert item.author is None

    def test_rss_without_channel(self) -> None:
        """Test an rss root with no channel is an invalid structure."""
        with pytest.raises(ParseError, match="invalid feed structure"):
            parse_feed('<rss version="2.0"></rss>')

    def test_description_truncated(self) -> None:
        """Test descriptions are capped at 500 characters."""
        body = "x" * 800
        text = f"<rss><channel><title>t</title><item><description>{body}</description></item></channel></rss>"
        assert len(parse_feed(text).items[0].description) == 500

    def test_leading_bom_and_whitespace(self) -> None:
        """Test a byte-order mark before the XML declaration is tolerated."""
        feed = parse_feed("\ufeff  " + RSS)
        assert feed.title == "Example News"


class TestAtom:
    def test_entry_fields(self) -> None:
        """Test Atom links, author, categories and enclosure image."""
        feed = parse_feed(ATOM)
        assert feed.title == "Atom Blog"
        assert feed.link == "https://blog.test/"
        assert feed.description == "Notes"
        entry = feed.items[0]
        assert entry.link == "https://blog.test/entries/1"
        assert entry.author == "Sam"
        assert entry.categories == ["python"]
        assert entry.description == "A summary"
        assert entry.content == "<p>The content</p>"
        assert entry.image_url == "https://blog.test/cover.png"
        assert entry.published_at == datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc)

    def test_image_from_summary_markup(self) -> None:
        """Test the <img> fallback reads the summary before the content."""
        text = (
            "<feed xmlns='http://www.w3.org/2005/Atom'><entry><title>E</title>"
            "<summary type='html'>&lt;img src='https://x.test/summary.png'&gt;</summary>"
            "<content type='html'>&lt;img src='https://x.test/content.png'&gt;</content>"
            "</entry></feed>"
        )
        assert parse_feed(text).items[0].image_url == "https://x.test/summary.png"

    def test_feed_root_is_always_atom(self) -> None:
        """Test a <feed> root without the Atom namespace still routes to Atom."""
        text = "<feed><title>Bare</title><entry><title>E</title><link href='https://x.test/e'/></entry></feed>"
        feed = parse_feed(text)
        assert feed.items[0].link == "https://x.test/e"
        assert detect_feed_type(text) == SourceType.ATOM


class TestRDF:
    def test_items_taken_from_root(self) -> None:
        """Test RDF items sit under the root and link via rdf:about."""
        feed = parse_feed(RDF)
        assert feed.title == "RDF Site"
        item = feed.items[0]
        assert item.title == "RDF item"
        assert item.link == "https://rdf.test/a"
        assert item.categories == ["History"]
        assert item.published_at == datetime(2023, 5, 6, 5, 8, 9, tzinfo=timezone.utc)
        assert detect_feed_type(RDF) == SourceType.RSS


class TestJSONFeed:
    def test_items(self) -> None:
        """Test JSON Feed fields map onto items."""
        feed = parse_feed(json.dumps(JSON_FEED))
        assert feed.title == "JSON Site"
        first, second = feed.items
        assert first.link == "https://json.test/1"
        assert first.author == "Ada"
        assert first.categories == ["news"]
        assert first.image_url == "https://json.test/pic.png"
        assert first.description == "Hello"
        assert second.title == "Untitled"
        assert second.content == "No title here"

    def test_json_feed_never_reaches_xml(self, monkeypatch) -> None:
        """Test a JSON Feed is parsed without the XML grammar."""
        def fail(*args, **kwargs):
            raise AssertionError("XML parser used for JSON Feed")

        monkeypatch.setattr("topicfeed.fetchers.feed_parser._parse_xml", fail)
        assert parse_feed(json.dumps(JSON_FEED)).title == "JSON Site"
        assert detect_feed_type(json.dumps(JSON_FEED)) == SourceType.JSON

    def test_items_must_be_a_list(self) -> None:
        """Test non-list items are an invalid structure."""
        data = dict(JSON_FEED, items={"a": 1})
        with pytest.raises(ParseError, match="invalid feed structure"):
            parse_feed(json.dumps(data))

    @pytest.mark.parametrize("field, value", [
        ("tags", 5),
        ("content_html", ["<p>x</p>"]),
        ("content_text", 3),
        ("summary", {"text": "x"}),
        ("author", "Ada"),
        ("authors", {"name": "Ada"}),
    ])
    def test_mistyped_item_field(self, field, value) -> None:
        """Test a wrongly typed item field is an invalid structure, not a crash."""
        item = {"url": "https://json.test/1", "title": "x", field: value}
        data = dict(JSON_FEED, items=[item])
        with pytest.raises(ParseError, match="invalid feed structure"):
            parse_feed(json.dumps(data))

    def test_other_json_is_not_a_feed(self) -> None:
        """Test JSON without the jsonfeed.org version falls through to XML and fails."""
        with pytest.raises(ParseError, match="invalid xml"):
            parse_feed('{"version": "1.0", "items": []}')


class TestErrors:
    def test_invalid_xml(self) -> None:
        """Test malformed markup raises invalid xml."""
        with pytest.raises(ParseError, match="invalid xml"):
            parse_feed("<rss><channel>")

    def test_unknown_root(self) -> None:
        """Test well-formed XML with an unrecognized root."""
        with pytest.raises(ParseError, match="unknown format"):
            parse_feed("<html><body/></html>")


def test_parse_date_variants() -> None:
    """Test RFC 822, ISO 8601 and naive dates all come back aware UTC."""
    assert parse_date("Tue, 02 Jan 2024 03:04:05 +0100") == datetime(2024, 1, 2, 2, 4, 5, tzinfo=timezone.utc)
    assert parse_date("2024-01-02T03:04:05") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_parse_date_missing_uses_now() -> None:
    """Test undated and unparsable values are stamped with the current time."""
    before = datetime.now(timezone.utc)
    assert parse_date(None) >= before
    assert parse_date("not a date") >= before


def test_strip_html() -> None:
    """Test tags are removed, entities unescaped and whitespace collapsed."""
    assert strip_html("<p>A&nbsp;&amp;\n <b>B</b></p>") == "A & B"
