"""Tests for keyword mute rules."""

from topicfeed.models import MuteRule
from topicfeed.processing.muting import find_muted, is_muted


def test_keyword_in_title_or_summary(article_factory) -> None:
    """Test matching is case-insensitive over title and summary."""
    rules = [MuteRule(id="r", keywords=["Crypto"])]
    assert is_muted(article_factory("a", title="crypto crash"), rules)
    assert is_muted(article_factory("b", summary="A CRYPTO story"), rules)
    assert not is_muted(article_factory("c", title="Weather"), rules)


def test_inactive_and_scoped_rules(article_factory) -> None:
    """Test inactive rules are ignored and scoped rules apply to their sources only."""
    rules = [
        MuteRule(id="off", keywords=["sports"], is_active=False),
        MuteRule(id="scoped", keywords=["sports"], source_ids=["espn"]),
    ]
    assert not is_muted(article_factory("a", title="sports", source_id="bbc"), rules)
    assert is_muted(article_factory("b", title="sports", source_id="espn"), rules)


def test_find_muted_flags_every_article(article_factory) -> None:
    """Test unmatched articles are reported as unmuted."""
    rules = [MuteRule(id="r", keywords=["spam"])]
    flags = find_muted([article_factory("a", title="spam"), article_factory("b", title="ham")], rules)
    assert flags == {"a": True, "b": False}
