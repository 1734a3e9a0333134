"""Keyword mute rules."""

from topicfeed.models import Article, MuteRule


def is_muted(article: Article, rules: list[MuteRule]) -> bool:
    """True when an active rule scoped to the article's source matches its title or summary."""
    title = article.title.lower()
    summary = article.summary.lower()
    for rule in rules:
        if not rule.is_active:
            continue
        if rule.source_ids and article.source_id not in rule.source_ids:
            continue
        for keyword in rule.keywords:
            keyword = keyword.strip().lower()
            if keyword and (keyword in title or keyword in summary):
                return True
    return False


def find_muted(articles: list[Article], rules: list[MuteRule]) -> dict[str, bool]:
    return {a.id: is_muted(a, rules) for a in articles}
