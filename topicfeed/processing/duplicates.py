"""Two-stage duplicate detection: title-key bucketing, then AI confirmation."""

from __future__ import annotations

import logging
import re

from topicfeed.errors import CompletionError
from topicfeed.models import Article, DuplicateGroup
from topicfeed.processing.responses import parse_duplicates_response

logger = logging.getLogger(__name__)

MAX_BUCKETS = 10
KEY_WORDS = 5

DEDUP_SYSTEM_PROMPT = (
    "You identify duplicate news articles that cover the same story. "
    "Articles are duplicates if they report on the exact same event or news."
)

DEDUP_PROMPT = """\
Are these articles duplicates (covering the same story)?

{articles_text}

If they are duplicates, respond: DUPLICATES: [numbers of duplicate articles]
If they are NOT duplicates, respond: NOT_DUPLICATES

Choose the best/most comprehensive article as primary (first in your list).
"""

_MAGNITUDES = re.compile(r"(\d+(?:\.\d+)?)\s*(million|billion|thousand)\b")
_MAGNITUDE_SUFFIX = {"million": "m", "billion": "b", "thousand": "k"}
_PUNCTUATION = re.compile(r"[^\w\s]")


def title_bucket_key(title: str) -> str:
    """Order-independent key built from a title's significant words.

    Lowercase, spell out "<n> million" as "<n>m", strip punctuation, drop
    words of three characters or fewer, sort, keep the first five.
    """
    text = (title or "").lower()
    text = _MAGNITUDES.sub(lambda m: m.group(1) + _MAGNITUDE_SUFFIX[m.group(2)], text)
    text = _PUNCTUATION.sub("", text)
    words = sorted(w for w in text.split() if len(w) > 3)
    return " ".join(words[:KEY_WORDS])


def bucket_candidates(articles: list[Article]) -> list[list[Article]]:
    """Buckets of two or more articles sharing a title key, in first-seen order."""
    buckets: dict[str, list[Article]] = {}
    for article in articles:
        buckets.setdefault(title_bucket_key(article.title), []).append(article)
    return [bucket for bucket in buckets.values() if len(bucket) > 1]


def _confirm_bucket(completion, bucket: list[Article]) -> DuplicateGroup | None:
    articles_text = "\n".join(f'[{i + 1}] "{a.title}"' for i, a in enumerate(bucket))
    response = completion.complete(
        DEDUP_SYSTEM_PROMPT, DEDUP_PROMPT.format(articles_text=articles_text), max_tokens=100,
    )
    positions = parse_duplicates_response(response, len(bucket))
    if len(positions) < 2:
        return None
    ids = [bucket[p].id for p in positions]
    return DuplicateGroup(ids=ids, primary_id=ids[0])


def detect_duplicates(
    articles: list[Article],
    completion,
    max_buckets: int = MAX_BUCKETS,
) -> list[DuplicateGroup]:
    """Find groups of articles covering the same story.

    Only the first ``max_buckets`` candidate buckets are sent for
    confirmation (one call each); the rest are left unconfirmed. A failing
    call skips its bucket.
    """
    if len(articles) < 2:
        return []

    candidates = bucket_candidates(articles)
    if not candidates:
        logger.info("  [Dedup] No candidate buckets.")
        return []

    if len(candidates) > max_buckets:
        logger.info(f"  [Dedup] {len(candidates)} candidate buckets, confirming the first {max_buckets}")
    else:
        logger.info(f"  [Dedup] {len(candidates)} candidate buckets to confirm")

    groups: list[DuplicateGroup] = []
    for bucket in candidates[:max_buckets]:
        try:
            group = _confirm_bucket(completion, bucket)
        except CompletionError as e:
            logger.warning(f"  [Dedup] Confirmation failed for \"{bucket[0].title[:50]}\": {e}")
            continue
        if group:
            groups.append(group)

    if groups:
        logger.info(f"  [Dedup] Confirmed {len(groups)} duplicate group{'s' if len(groups) != 1 else ''}")
    return groups
