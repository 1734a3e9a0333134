"""Application state: sources and folders, articles, per-article metadata, topics, mute rules.

StateStore is the only writer of the shared state. Every mutating method
runs under one lock and saves the whole state before returning, so callers
never observe a half-applied change (in particular, a feed merge is applied
in one step). Readers get copies.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterable, Optional

from topicfeed.models import (
    AITopic,
    Article,
    ArticleMetadata,
    Classification,
    DuplicateGroup,
    Folder,
    MuteRule,
    Source,
    SourceType,
    TopicCriteria,
    TopicType,
    utcnow,
)
from topicfeed.processing.feedback import record_feedback
from topicfeed.processing.ingestor import DEFAULT_MAX_PER_SOURCE, merge_articles
from topicfeed.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def default_folders() -> list[Folder]:
    return [
        Folder(id=generate_id(), name="Tech", color="#10b981", order=0),
        Folder(id=generate_id(), name="Security", color="#ef4444", order=1),
        Folder(id=generate_id(), name="World News", color="#3b82f6", order=2),
    ]


def default_sources(folders: list[Folder]) -> list[Source]:
    tech, security, world = (f.id for f in folders)
    return [
        Source(id=generate_id(), title="Hacker News", url="https://hnrss.org/frontpage",
               site_url="https://news.ycombinator.com", folder_id=tech, tags=["tech", "startups"]),
        Source(id=generate_id(), title="TechCrunch", url="https://techcrunch.com/feed/",
               site_url="https://techcrunch.com", folder_id=tech, tags=["tech", "news"]),
        Source(id=generate_id(), title="Krebs on Security", url="https://krebsonsecurity.com/feed/",
               site_url="https://krebsonsecurity.com", folder_id=security, tags=["security", "cybersecurity"]),
        Source(id=generate_id(), title="BBC News", url="https://feeds.bbci.co.uk/news/rss.xml",
               site_url="https://www.bbc.com/news", folder_id=world, tags=["news", "world"]),
    ]


def default_topics() -> list[AITopic]:
    return [
        AITopic(
            id=generate_id(),
            name="Cybersecurity Breaches",
            type=TopicType.THREAT,
            description="Data breaches, hacks, and security incidents",
            criteria=TopicCriteria(
                must_contain=["breach", "hack", "vulnerability", "exploit"],
                should_contain=["data", "security", "attack", "ransomware"],
            ),
        ),
        AITopic(
            id=generate_id(),
            name="AI Research",
            type=TopicType.TOPIC,
            description="Artificial intelligence and machine learning developments",
            criteria=TopicCriteria(
                must_contain=["AI", "artificial intelligence", "machine learning", "LLM"],
                should_contain=["model", "neural", "GPT", "training"],
            ),
        ),
    ]


def _migrate(data: dict) -> dict:
    version = data.get("schema_version", 0)
    if version < 2:
        data.setdefault("folders", [])
    if version < SCHEMA_VERSION:
        data["schema_version"] = SCHEMA_VERSION
    return data


class StateStore:
    def __init__(
        self,
        db: Database,
        max_articles_per_source: int = DEFAULT_MAX_PER_SOURCE,
        seed_defaults: bool = True,
    ):
        self.db = db
        self.max_articles_per_source = max_articles_per_source
        self._lock = threading.RLock()
        self._seed_defaults = seed_defaults

        data = db.load()
        if data is None:
            self._load_defaults()
            self._save()
        else:
            self._load(_migrate(data))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_defaults(self):
        self._folders = default_folders() if self._seed_defaults else []
        self._sources = default_sources(self._folders) if self._seed_defaults else []
        self._articles: list[Article] = []
        self._metadata: dict[str, ArticleMetadata] = {}
        self._topics = default_topics() if self._seed_defaults else []
        self._mute_rules: list[MuteRule] = []

    def _load(self, data: dict):
        self._folders = [Folder.from_dict(f) for f in data.get("folders", [])]
        self._sources = [Source.from_dict(s) for s in data.get("sources", [])]
        self._articles = [Article.from_dict(a) for a in data.get("articles", [])]
        self._metadata = {
            k: ArticleMetadata.from_dict(v) for k, v in data.get("articles_metadata", {}).items()
        }
        self._topics = [AITopic.from_dict(t) for t in data.get("ai_topics", [])]
        self._mute_rules = [MuteRule.from_dict(r) for r in data.get("mute_rules", [])]

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "schema_version": SCHEMA_VERSION,
                "sources": [s.to_dict() for s in self._sources],
                "folders": [f.to_dict() for f in self._folders],
                "articles": [a.to_dict() for a in self._articles],
                "articles_metadata": {k: m.to_dict() for k, m in self._metadata.items()},
                "ai_topics": [t.to_dict() for t in self._topics],
                "mute_rules": [r.to_dict() for r in self._mute_rules],
            }

    @property
    def state(self) -> dict:
        """Read-only snapshot of the whole state, in its persisted form."""
        return self.to_dict()

    def _save(self):
        self.db.save(self.to_dict())

    @contextmanager
    def _mutation(self):
        with self._lock:
            yield
            self._save()

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @property
    def sources(self) -> list[Source]:
        with self._lock:
            return [replace(s, tags=list(s.tags)) for s in self._sources]

    def _source_index(self, source_id: str) -> int:
        for i, source in enumerate(self._sources):
            if source.id == source_id:
                return i
        raise KeyError(f"Unknown source: {source_id}")

    def get_source(self, source_id: str) -> Source:
        with self._lock:
            return replace(self._sources[self._source_index(source_id)])

    def add_source(
        self,
        url: str,
        title: str = "",
        site_url: str = "",
        type: SourceType = SourceType.RSS,
        folder_id: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> Source:
        url = url.strip()
        with self._mutation():
            if any(s.url == url for s in self._sources):
                raise ValueError("This feed is already added")
            if folder_id is not None:
                self._folder_index(folder_id)
            source = Source(
                id=generate_id(), url=url, title=title.strip() or url, site_url=site_url or url,
                type=type, folder_id=folder_id, tags=list(tags or []),
            )
            self._sources.append(source)
        return replace(source)

    def update_source(self, source_id: str, **changes) -> Source:
        with self._mutation():
            idx = self._source_index(source_id)
            if changes.get("folder_id") is not None:
                self._folder_index(changes["folder_id"])
            self._sources[idx] = replace(self._sources[idx], **changes)
            return replace(self._sources[idx])

    def delete_source(self, source_id: str):
        """Remove a source and its articles (metadata is kept until a reset)."""
        with self._mutation():
            idx = self._source_index(source_id)
            del self._sources[idx]
            self._articles = [a for a in self._articles if a.source_id != source_id]

    def record_fetch_result(self, source_id: str, error: Optional[str]) -> Source:
        """Stamp a fetch attempt: success clears fetch_error, failure sets it."""
        return self.update_source(source_id, fetch_error=error, last_fetched_at=utcnow())

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    @property
    def folders(self) -> list[Folder]:
        with self._lock:
            return sorted((replace(f) for f in self._folders), key=lambda f: f.order)

    def _folder_index(self, folder_id: str) -> int:
        for i, folder in enumerate(self._folders):
            if folder.id == folder_id:
                return i
        raise KeyError(f"Unknown folder: {folder_id}")

    def get_folder(self, folder_id: str) -> Folder:
        with self._lock:
            return replace(self._folders[self._folder_index(folder_id)])

    def add_folder(self, name: str, color: str = "#3b82f6", icon: Optional[str] = None) -> Folder:
        if not name.strip():
            raise ValueError("Please enter a folder name")
        with self._mutation():
            order = max([0] + [f.order for f in self._folders]) + 1
            folder = Folder(id=generate_id(), name=name.strip(), color=color, order=order, icon=icon)
            self._folders.append(folder)
        return replace(folder)

    def update_folder(self, folder_id: str, **changes) -> Folder:
        with self._mutation():
            idx = self._folder_index(folder_id)
            self._folders[idx] = replace(self._folders[idx], **changes)
            return replace(self._folders[idx])

    def delete_folder(self, folder_id: str):
        """Remove a folder; its sources stay subscribed with no folder."""
        with self._mutation():
            del self._folders[self._folder_index(folder_id)]
            self._sources = [
                replace(s, folder_id=None) if s.folder_id == folder_id else s for s in self._sources
            ]

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    @property
    def articles(self) -> list[Article]:
        with self._lock:
            return list(self._articles)

    def get_article(self, article_id: str) -> Article:
        with self._lock:
            for article in self._articles:
                if article.id == article_id:
                    return article
        raise KeyError(f"Unknown article: {article_id}")

    def add_articles(self, incoming: list[Article]) -> list[Article]:
        """Merge fetched articles in one step. Returns the ones that were new and retained."""
        with self._mutation():
            known = {a.id for a in self._articles}
            self._articles = merge_articles(self._articles, incoming, self.max_articles_per_source)
            retained = {a.id for a in self._articles}
        added = []
        seen = set()
        for article in incoming:
            if article.id in known or article.id not in retained or article.id in seen:
                continue
            seen.add(article.id)
            added.append(article)
        return added

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_metadata(self, article_id: str) -> ArticleMetadata:
        with self._lock:
            meta = self._metadata.get(article_id)
            if meta is None:
                return ArticleMetadata(id=article_id)
            return replace(meta, labels=list(meta.labels), ai_labels=list(meta.ai_labels))

    def _update(self, article_id: str, **changes):
        existing = self._metadata.get(article_id) or ArticleMetadata(id=article_id)
        self._metadata[article_id] = replace(existing, **changes)

    def update_metadata(self, article_id: str, **changes) -> ArticleMetadata:
        with self._mutation():
            self._update(article_id, **changes)
        return self.get_metadata(article_id)

    def mark_read(self, article_id: str) -> ArticleMetadata:
        return self.update_metadata(article_id, is_read=True, last_viewed_at=utcnow())

    def mark_unread(self, article_id: str) -> ArticleMetadata:
        return self.update_metadata(article_id, is_read=False)

    def toggle_saved(self, article_id: str) -> ArticleMetadata:
        with self._mutation():
            current = self._metadata.get(article_id) or ArticleMetadata(id=article_id)
            self._update(article_id, is_saved=not current.is_saved)
        return self.get_metadata(article_id)

    def mark_all_read(self, article_ids: Iterable[str]):
        now = utcnow()
        with self._mutation():
            for article_id in article_ids:
                self._update(article_id, is_read=True, last_viewed_at=now)

    def apply_classifications(self, results: dict[str, Classification]):
        """Overwrite ai_labels and priority_score for every classified article."""
        now = utcnow()
        with self._mutation():
            for article_id, result in results.items():
                self._update(
                    article_id, ai_labels=list(result.labels), priority_score=result.score, classified_at=now,
                )

    def apply_duplicate_groups(self, groups: list[DuplicateGroup]):
        """Point every member at the primary; only the primary stays visible.

        A member that already belonged to another group pulls that whole group
        in, so each group id always names exactly one primary article.
        """
        with self._mutation():
            for group in groups:
                superseded = {
                    self._metadata[article_id].duplicate_group_id
                    for article_id in group.ids
                    if article_id in self._metadata
                } - {None, group.primary_id}
                members = list(group.ids)
                members.extend(
                    meta.id for meta in self._metadata.values()
                    if meta.duplicate_group_id in superseded and meta.id not in group.ids
                )
                for article_id in members:
                    self._update(
                        article_id,
                        duplicate_group_id=group.primary_id,
                        is_primary=article_id == group.primary_id,
                    )

    def apply_muting(self, flags: dict[str, bool]):
        with self._mutation():
            for article_id, muted in flags.items():
                self._update(article_id, is_muted=muted)

    def set_summary(self, article_id: str, short: str, detailed: str) -> ArticleMetadata:
        return self.update_metadata(article_id, ai_summary_short=short, ai_summary_detailed=detailed)

    def clear_ai_cache(self):
        """Reset every AI-derived field to its default."""
        with self._mutation():
            for article_id in list(self._metadata):
                self._update(
                    article_id,
                    ai_labels=[],
                    priority_score=0,
                    ai_summary_short=None,
                    ai_summary_detailed=None,
                    duplicate_group_id=None,
                    is_primary=True,
                    classified_at=None,
                )

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    @property
    def topics(self) -> list[AITopic]:
        with self._lock:
            return [replace(t) for t in self._topics]

    def _topic_index(self, topic_id: str) -> int:
        for i, topic in enumerate(self._topics):
            if topic.id == topic_id:
                return i
        raise KeyError(f"Unknown topic: {topic_id}")

    def add_topic(
        self,
        name: str,
        type: TopicType = TopicType.TOPIC,
        description: str = "",
        criteria: Optional[TopicCriteria] = None,
    ) -> AITopic:
        if not name.strip():
            raise ValueError("Please enter a topic name")
        topic = AITopic(
            id=generate_id(), name=name.strip(), type=type, description=description,
            criteria=criteria or TopicCriteria(),
        )
        with self._mutation():
            self._topics.append(topic)
        return replace(topic)

    def update_topic(self, topic_id: str, **changes) -> AITopic:
        with self._mutation():
            idx = self._topic_index(topic_id)
            self._topics[idx] = replace(self._topics[idx], **changes)
            return replace(self._topics[idx])

    def delete_topic(self, topic_id: str):
        with self._mutation():
            del self._topics[self._topic_index(topic_id)]

    def add_topic_feedback(self, topic_id: str, article_id: str, positive: bool) -> AITopic:
        with self._mutation():
            idx = self._topic_index(topic_id)
            self._topics[idx] = record_feedback(self._topics[idx], article_id, positive)
            return replace(self._topics[idx])

    # ------------------------------------------------------------------
    # Mute rules
    # ------------------------------------------------------------------

    @property
    def mute_rules(self) -> list[MuteRule]:
        with self._lock:
            return [replace(r) for r in self._mute_rules]

    def add_mute_rule(
        self, keywords: list[str], source_ids: Optional[list[str]] = None, description: str = "",
    ) -> MuteRule:
        rule = MuteRule(
            id=generate_id(), keywords=list(keywords), source_ids=list(source_ids or []),
            description=description,
        )
        with self._mutation():
            self._mute_rules.append(rule)
        return replace(rule)

    def update_mute_rule(self, rule_id: str, **changes) -> MuteRule:
        with self._mutation():
            for i, rule in enumerate(self._mute_rules):
                if rule.id == rule_id:
                    self._mute_rules[i] = replace(rule, **changes)
                    return replace(self._mute_rules[i])
        raise KeyError(f"Unknown mute rule: {rule_id}")

    def delete_mute_rule(self, rule_id: str):
        with self._mutation():
            before = len(self._mute_rules)
            self._mute_rules = [r for r in self._mute_rules if r.id != rule_id]
            if len(self._mute_rules) == before:
                raise KeyError(f"Unknown mute rule: {rule_id}")

    # ------------------------------------------------------------------
    # Import / export / reset
    # ------------------------------------------------------------------

    def export_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def import_json(self, text: str):
        data = json.loads(text)
        if not isinstance(data, dict) or not isinstance(data.get("schema_version"), int):
            raise ValueError("Invalid data format")
        with self._mutation():
            self._load(_migrate(data))

    def reset(self):
        """Drop everything and start again from the default sources and topics."""
        with self._mutation():
            self.db.reset()
            self._load_defaults()
        logger.info("State reset to defaults")
