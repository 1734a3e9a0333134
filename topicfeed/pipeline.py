"""Refresh pipeline: fetch every source, merge, mute, then enrich with AI."""

import logging
from typing import Optional

from topicfeed.fetchers.discovery import discover_feed_url
from topicfeed.fetchers.feed_fetcher import fetch_feed, validate_feed_url
from topicfeed.fetchers.transport import Transport
from topicfeed.models import Article, RefreshResult, Source
from topicfeed.processing.classifier import classify
from topicfeed.processing.completion import CompletionClient
from topicfeed.processing.duplicates import detect_duplicates
from topicfeed.processing.muting import find_muted
from topicfeed.storage.state import StateStore

logger = logging.getLogger(__name__)


def _example_titles(store: StateStore) -> dict[str, str]:
    wanted = set()
    for topic in store.topics:
        wanted.update(topic.positive_examples)
        wanted.update(topic.negative_examples)
    return {a.id: a.title for a in store.articles if a.id in wanted}


def _retained(store: StateStore, fetched: list[Article]) -> list[Article]:
    """Fetched articles still in the store after the merge, in fetch order, once each."""
    kept = {a.id for a in store.articles}
    out = []
    for article in fetched:
        if article.id in kept:
            kept.discard(article.id)
            out.append(article)
    return out


def classify_new_articles(
    store: StateStore,
    completion: CompletionClient,
    articles: list[Article],
    cfg: dict,
) -> int:
    """Classify up to ``max_classify_articles`` articles and store the results.

    Raises ConfigurationError when no API key is configured.
    """
    completion.require_configured()
    batch = articles[: cfg.get("max_classify_articles", 50)]
    results = classify(
        batch,
        store.topics,
        completion,
        batch_size=cfg.get("classify_batch_size", 10),
        example_titles=_example_titles(store),
    )
    store.apply_classifications(results)
    return len(results)


def detect_duplicate_articles(
    store: StateStore,
    completion: CompletionClient,
    articles: list[Article],
    cfg: dict,
) -> int:
    """Confirm duplicate stories among up to ``max_dedup_articles`` articles.

    Raises ConfigurationError when no API key is configured.
    """
    completion.require_configured()
    groups = detect_duplicates(
        articles[: cfg.get("max_dedup_articles", 100)],
        completion,
        max_buckets=cfg.get("max_duplicate_buckets", 10),
    )
    store.apply_duplicate_groups(groups)
    return len(groups)


def refresh(
    store: StateStore,
    transport: Transport,
    completion: Optional[CompletionClient],
    cfg: dict,
) -> RefreshResult:
    """Fetch every source, merge the results in one step, then enrich what was fetched.

    A failing source is recorded on that source and never stops the loop.
    Every retained article from this fetch goes to duplicate detection, so
    coverage that arrived in an earlier refresh is still compared. Only
    articles without a successful classification are sent to the classifier.
    Enrichment runs only when an API key is configured and the matching
    ``enable_*`` flag is on; without a key it is skipped, not raised.
    """
    result = RefreshResult()
    fetched: list[Article] = []

    sources = store.sources
    logger.info(f"[Fetch] Refreshing {len(sources)} source{'s' if len(sources) != 1 else ''}...")
    for source in sources:
        outcome = fetch_feed(source, transport)
        store.record_fetch_result(source.id, outcome.error)
        if outcome.error:
            result.failed += 1
            result.errors[source.id] = outcome.error
        else:
            result.succeeded += 1
            fetched.extend(outcome.articles)

    new_articles = store.add_articles(fetched) if fetched else []
    result.new_articles = len(new_articles)
    logger.info(f"[Fetch] {result.succeeded} succeeded, {result.failed} failed, {result.new_articles} new articles")

    if store.mute_rules and new_articles:
        store.apply_muting(find_muted(new_articles, store.mute_rules))

    candidates = _retained(store, fetched)
    if not candidates:
        return result
    if completion is None or not completion.configured:
        logger.info("[AI] No API key configured, skipping classification and deduplication")
        return result

    if cfg.get("enable_topic_prioritization", True) and store.topics:
        unclassified = [a for a in candidates if store.get_metadata(a.id).classified_at is None]
        if unclassified:
            logger.info(
                f"[Classifier] Classifying {min(len(unclassified), cfg.get('max_classify_articles', 50))} articles..."
            )
            result.classified = classify_new_articles(store, completion, unclassified, cfg)

    if cfg.get("enable_deduplication", True):
        logger.info("[Dedup] Looking for duplicate stories...")
        result.duplicate_groups = detect_duplicate_articles(store, completion, candidates, cfg)

    return result


def add_source_from_url(
    store: StateStore,
    transport: Transport,
    url: str,
    title: Optional[str] = None,
    folder_id: Optional[str] = None,
) -> Source:
    """Subscribe to ``url``, discovering the feed first if it points at a website.

    Raises ValueError when no feed can be found or the feed is already added.
    """
    url = url.strip()
    if not url:
        raise ValueError("Please enter a feed URL")

    validation = validate_feed_url(url, transport)
    feed_url = url
    if not validation.valid:
        logger.info(f"[Discover] {url} is not a feed ({validation.error}), looking for one...")
        feed_url = discover_feed_url(url, transport)
        if feed_url is None:
            raise ValueError(f"No feed found at {url}")
        validation = validate_feed_url(feed_url, transport)
        if not validation.valid:
            raise ValueError(validation.error or f"No feed found at {url}")

    if any(s.url == feed_url for s in store.sources):
        raise ValueError("This feed is already added")

    return store.add_source(
        feed_url,
        title=title or validation.title or "",
        site_url=validation.site_url or url,
        type=validation.type,
        folder_id=folder_id,
    )
