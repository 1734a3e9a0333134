"""Command-line interface for the feed reader."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from topicfeed.config import CONFIG_PATH, load_config
from topicfeed.errors import CompletionError, ConfigurationError
from topicfeed.fetchers.discovery import discover_feed_url
from topicfeed.fetchers.transport import Transport
from topicfeed.models import TopicCriteria, TopicType
from topicfeed.pipeline import (
    add_source_from_url,
    classify_new_articles,
    detect_duplicate_articles,
    refresh,
)
from topicfeed.processing.completion import CompletionClient
from topicfeed.processing.muting import find_muted
from topicfeed.processing.summarizer import (
    EXPLAIN_MODES,
    ask_about_articles,
    explain_article,
    summarize_article,
)
from topicfeed.storage.database import Database
from topicfeed.storage.state import StateStore

logger = logging.getLogger(__name__)


class App:
    """Everything a command needs, built once from the config."""

    def __init__(self, cfg: dict):
        self.cfg = cfg
        self.db = Database(cfg["db_path"])
        self.store = StateStore(self.db, max_articles_per_source=cfg["max_articles_per_source"])
        self.transport = Transport(proxies=cfg["proxies"], timeout=cfg["fetch_timeout"])
        self.completion = CompletionClient.from_config(cfg)

    def close(self):
        self.transport.close()
        self.db.close()


def _split(values: list[str] | None) -> list[str]:
    out = []
    for value in values or []:
        out.extend(part.strip() for part in value.split(",") if part.strip())
    return out


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------

def cmd_refresh(app: App, args) -> int:
    result = refresh(app.store, app.transport, app.completion, app.cfg)
    print(f"Refreshed {result.succeeded} feeds, {result.failed} failed, {result.new_articles} new articles")
    if result.classified or result.duplicate_groups:
        print(f"  Classified: {result.classified}  Duplicate groups: {result.duplicate_groups}")
    for source_id, error in result.errors.items():
        print(f"  ! {app.store.get_source(source_id).title}: {error}")
    return 0 if result.succeeded or not result.failed else 1


def cmd_add_source(app: App, args) -> int:
    source = add_source_from_url(app.store, app.transport, args.url, title=args.title, folder_id=args.folder)
    print(f"Added {source.title} ({source.type.value}) -> {source.url}")
    return 0


def cmd_discover(app: App, args) -> int:
    feed_url = discover_feed_url(args.url, app.transport)
    if feed_url is None:
        print(f"No feed found at {args.url}")
        return 1
    print(feed_url)
    return 0


def cmd_sources(app: App, args) -> int:
    folders = {f.id: f.name for f in app.store.folders}
    for source in app.store.sources:
        status = f"ERROR: {source.fetch_error}" if source.fetch_error else "ok"
        fetched = source.last_fetched_at.strftime("%Y-%m-%d %H:%M") if source.last_fetched_at else "never"
        folder = f"  [{folders[source.folder_id]}]" if source.folder_id in folders else ""
        print(f"{source.id}  {source.title:<30}  {source.type.value:<7}  {fetched:<16}  {status}{folder}")
        print(f"    {source.url}")
    return 0


def cmd_remove_source(app: App, args) -> int:
    source = app.store.get_source(args.source_id)
    app.store.delete_source(args.source_id)
    print(f"Removed {source.title}")
    return 0


def cmd_move_source(app: App, args) -> int:
    source = app.store.update_source(args.source_id, folder_id=args.folder)
    folder = app.store.get_folder(source.folder_id).name if source.folder_id else "no folder"
    print(f"Moved {source.title} to {folder}")
    return 0


# ----------------------------------------------------------------------
# Folders
# ----------------------------------------------------------------------

def cmd_folders(app: App, args) -> int:
    sources = app.store.sources
    for folder in app.store.folders:
        count = sum(1 for s in sources if s.folder_id == folder.id)
        print(f"{folder.id}  {folder.name:<20}  {folder.color}  {count} sources")
    return 0


def cmd_add_folder(app: App, args) -> int:
    folder = app.store.add_folder(args.name, color=args.color)
    print(f"Added folder {folder.name} ({folder.id})")
    return 0


def cmd_update_folder(app: App, args) -> int:
    changes = {k: v for k, v in (("name", args.name), ("color", args.color)) if v}
    folder = app.store.update_folder(args.folder_id, **changes)
    print(f"Updated folder {folder.name}")
    return 0


def cmd_remove_folder(app: App, args) -> int:
    folder = app.store.get_folder(args.folder_id)
    app.store.delete_folder(args.folder_id)
    print(f"Removed folder {folder.name}")
    return 0


# ----------------------------------------------------------------------
# Articles
# ----------------------------------------------------------------------

def cmd_articles(app: App, args) -> int:
    shown = 0
    for article in app.store.articles:
        meta = app.store.get_metadata(article.id)
        if meta.is_muted or not meta.is_primary:
            continue
        if args.unread and meta.is_read:
            continue
        if args.saved and not meta.is_saved:
            continue
        flags = ("*" if meta.is_saved else " ") + (" " if meta.is_read else "N")
        labels = f"  [{', '.join(meta.ai_labels)}]" if meta.ai_labels else ""
        print(f"{flags} {meta.priority_score:>3}  {article.published_at:%Y-%m-%d}  {article.id}  {article.title}{labels}")
        shown += 1
        if shown >= args.limit:
            break
    return 0


def cmd_read(app: App, args) -> int:
    article = app.store.get_article(args.article_id)
    app.store.mark_read(article.id)
    print(article.title)
    print(article.url)
    print()
    print(article.content_text or article.summary)
    return 0


def cmd_star(app: App, args) -> int:
    meta = app.store.toggle_saved(args.article_id)
    print("Saved" if meta.is_saved else "Unsaved")
    return 0


def cmd_mark_all_read(app: App, args) -> int:
    ids = [a.id for a in app.store.articles if args.source is None or a.source_id == args.source]
    app.store.mark_all_read(ids)
    print(f"Marked {len(ids)} articles as read")
    return 0


# ----------------------------------------------------------------------
# AI
# ----------------------------------------------------------------------

def cmd_classify(app: App, args) -> int:
    count = classify_new_articles(app.store, app.completion, app.store.articles, app.cfg)
    print(f"Classified {count} articles")
    return 0


def cmd_dedup(app: App, args) -> int:
    count = detect_duplicate_articles(app.store, app.completion, app.store.articles, app.cfg)
    print(f"Found {count} duplicate groups")
    return 0


def cmd_summarize(app: App, args) -> int:
    article = app.store.get_article(args.article_id)
    short, detailed = summarize_article(app.completion, article)
    app.store.set_summary(article.id, short, detailed)
    print(short)
    print()
    print(detailed)
    return 0


def cmd_explain(app: App, args) -> int:
    article = app.store.get_article(args.article_id)
    print(explain_article(app.completion, article, args.mode))
    return 0


def cmd_ask(app: App, args) -> int:
    print(ask_about_articles(app.completion, args.question, app.store.articles))
    return 0


def cmd_test_ai(app: App, args) -> int:
    ok, error = app.completion.test_connection()
    print("Connection successful!" if ok else f"Connection failed: {error}")
    return 0 if ok else 1


def cmd_clear_ai_cache(app: App, args) -> int:
    app.store.clear_ai_cache()
    print("AI cache cleared")
    return 0


# ----------------------------------------------------------------------
# Topics and mute rules
# ----------------------------------------------------------------------

def cmd_topics(app: App, args) -> int:
    for topic in app.store.topics:
        print(f"{topic.id}  {topic.name} ({topic.type.value})")
        if topic.description:
            print(f"    {topic.description}")
        if topic.criteria.must_contain:
            print(f"    keywords: {', '.join(topic.criteria.must_contain)}")
        if topic.positive_examples or topic.negative_examples:
            print(f"    feedback: +{len(topic.positive_examples)} / -{len(topic.negative_examples)}")
    return 0


def cmd_add_topic(app: App, args) -> int:
    topic = app.store.add_topic(
        args.name,
        type=TopicType(args.type),
        description=args.description,
        criteria=TopicCriteria(
            must_contain=_split(args.must),
            should_contain=_split(args.should),
            must_not_contain=_split(args.exclude),
        ),
    )
    print(f"Added topic {topic.name} ({topic.id})")
    return 0


def cmd_remove_topic(app: App, args) -> int:
    app.store.delete_topic(args.topic_id)
    print("Topic removed")
    return 0


def cmd_feedback(app: App, args) -> int:
    app.store.get_article(args.article_id)
    topic = app.store.add_topic_feedback(args.topic_id, args.article_id, args.positive)
    print(f"Recorded {'positive' if args.positive else 'negative'} feedback for {topic.name}")
    return 0


def cmd_mute(app: App, args) -> int:
    rule = app.store.add_mute_rule(_split(args.keywords), source_ids=args.source, description=args.description)
    app.store.apply_muting(find_muted(app.store.articles, app.store.mute_rules))
    print(f"Added mute rule {rule.id}")
    return 0


def cmd_unmute(app: App, args) -> int:
    app.store.delete_mute_rule(args.rule_id)
    app.store.apply_muting(find_muted(app.store.articles, app.store.mute_rules))
    print("Mute rule removed")
    return 0


def cmd_mute_rules(app: App, args) -> int:
    for rule in app.store.mute_rules:
        state = "on " if rule.is_active else "off"
        scope = f"  sources: {', '.join(rule.source_ids)}" if rule.source_ids else ""
        print(f"{rule.id}  [{state}]  {', '.join(rule.keywords)}{scope}")
        if rule.description:
            print(f"    {rule.description}")
    return 0


def cmd_toggle_mute(app: App, args) -> int:
    current = next((r for r in app.store.mute_rules if r.id == args.rule_id), None)
    if current is None:
        raise KeyError(f"Unknown mute rule: {args.rule_id}")
    rule = app.store.update_mute_rule(args.rule_id, is_active=not current.is_active)
    app.store.apply_muting(find_muted(app.store.articles, app.store.mute_rules))
    print(f"Mute rule {rule.id} {'enabled' if rule.is_active else 'disabled'}")
    return 0


# ----------------------------------------------------------------------
# Data
# ----------------------------------------------------------------------

def cmd_export(app: App, args) -> int:
    Path(args.file).write_text(app.store.export_json(), encoding="utf-8")
    print(f"Exported to {args.file}")
    return 0


def cmd_import(app: App, args) -> int:
    app.store.import_json(Path(args.file).read_text(encoding="utf-8"))
    print(f"Imported {len(app.store.sources)} sources and {len(app.store.articles)} articles")
    return 0


def cmd_reset(app: App, args) -> int:
    if not args.yes:
        answer = input("This deletes all sources, articles and settings. Continue? (y/N): ")
        if answer.lower() != "y":
            return 1
    app.store.reset()
    print("All data reset")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="topicfeed", description="Topic-aware feed reader")
    parser.add_argument("--config", default=str(CONFIG_PATH), help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("refresh", help="Fetch every source and enrich new articles")
    p.set_defaults(func=cmd_refresh)

    p = sub.add_parser("add-source", help="Subscribe to a feed or website")
    p.add_argument("url")
    p.add_argument("--title")
    p.add_argument("--folder")
    p.set_defaults(func=cmd_add_source)

    p = sub.add_parser("discover", help="Find the feed URL for a website")
    p.add_argument("url")
    p.set_defaults(func=cmd_discover)

    p = sub.add_parser("sources", help="List sources and their fetch status")
    p.set_defaults(func=cmd_sources)

    p = sub.add_parser("remove-source", help="Remove a source and its articles")
    p.add_argument("source_id")
    p.set_defaults(func=cmd_remove_source)

    p = sub.add_parser("move-source", help="Put a source in a folder (omit --folder to unfile it)")
    p.add_argument("source_id")
    p.add_argument("--folder")
    p.set_defaults(func=cmd_move_source)

    p = sub.add_parser("folders", help="List folders")
    p.set_defaults(func=cmd_folders)

    p = sub.add_parser("add-folder", help="Create a folder")
    p.add_argument("name")
    p.add_argument("--color", default="#3b82f6")
    p.set_defaults(func=cmd_add_folder)

    p = sub.add_parser("update-folder", help="Rename or recolor a folder")
    p.add_argument("folder_id")
    p.add_argument("--name")
    p.add_argument("--color")
    p.set_defaults(func=cmd_update_folder)

    p = sub.add_parser("remove-folder", help="Delete a folder; its sources are kept")
    p.add_argument("folder_id")
    p.set_defaults(func=cmd_remove_folder)

    p = sub.add_parser("articles", help="List visible articles, newest first")
    p.add_argument("--limit", type=int, default=30)
    p.add_argument("--unread", action="store_true")
    p.add_argument("--saved", action="store_true")
    p.set_defaults(func=cmd_articles)

    p = sub.add_parser("read", help="Show an article and mark it read")
    p.add_argument("article_id")
    p.set_defaults(func=cmd_read)

    p = sub.add_parser("star", help="Toggle an article's saved flag")
    p.add_argument("article_id")
    p.set_defaults(func=cmd_star)

    p = sub.add_parser("mark-all-read", help="Mark every article (or one source's) as read")
    p.add_argument("--source")
    p.set_defaults(func=cmd_mark_all_read)

    p = sub.add_parser("classify", help="Classify the newest articles against topics")
    p.set_defaults(func=cmd_classify)

    p = sub.add_parser("dedup", help="Group duplicate stories among the newest articles")
    p.set_defaults(func=cmd_dedup)

    p = sub.add_parser("summarize", help="Summarize an article")
    p.add_argument("article_id")
    p.set_defaults(func=cmd_summarize)

    p = sub.add_parser("explain", help="Explain an article")
    p.add_argument("article_id")
    p.add_argument("--mode", choices=sorted(EXPLAIN_MODES), default="beginner")
    p.set_defaults(func=cmd_explain)

    p = sub.add_parser("ask", help="Ask a question about the latest articles")
    p.add_argument("question")
    p.set_defaults(func=cmd_ask)

    p = sub.add_parser("test-ai", help="Check the completion API connection")
    p.set_defaults(func=cmd_test_ai)

    p = sub.add_parser("clear-ai-cache", help="Reset labels, scores, summaries and duplicate groups")
    p.set_defaults(func=cmd_clear_ai_cache)

    p = sub.add_parser("topics", help="List topics")
    p.set_defaults(func=cmd_topics)

    p = sub.add_parser("add-topic", help="Add a topic")
    p.add_argument("name")
    p.add_argument("--type", choices=[t.value for t in TopicType], default=TopicType.TOPIC.value)
    p.add_argument("--description", default="")
    p.add_argument("--must", action="append", help="Keywords (comma-separated, repeatable)")
    p.add_argument("--should", action="append")
    p.add_argument("--exclude", action="append")
    p.set_defaults(func=cmd_add_topic)

    p = sub.add_parser("remove-topic", help="Delete a topic")
    p.add_argument("topic_id")
    p.set_defaults(func=cmd_remove_topic)

    p = sub.add_parser("feedback", help="Mark an article as a good or bad match for a topic")
    p.add_argument("topic_id")
    p.add_argument("article_id")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--positive", dest="positive", action="store_true")
    group.add_argument("--negative", dest="positive", action="store_false")
    p.set_defaults(func=cmd_feedback)

    p = sub.add_parser("mute", help="Hide articles mentioning keywords")
    p.add_argument("keywords", nargs="+")
    p.add_argument("--source", action="append", help="Limit to a source id (repeatable)")
    p.add_argument("--description", default="")
    p.set_defaults(func=cmd_mute)

    p = sub.add_parser("unmute", help="Delete a mute rule")
    p.add_argument("rule_id")
    p.set_defaults(func=cmd_unmute)

    p = sub.add_parser("mute-rules", help="List mute rules")
    p.set_defaults(func=cmd_mute_rules)

    p = sub.add_parser("toggle-mute", help="Switch a mute rule on or off")
    p.add_argument("rule_id")
    p.set_defaults(func=cmd_toggle_mute)

    p = sub.add_parser("export", help="Write all data to a JSON file")
    p.add_argument("file")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("import", help="Replace all data from a JSON export")
    p.add_argument("file")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("reset", help="Delete everything and restore defaults")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_reset)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    cfg = load_config(Path(args.config))
    app = App(cfg)
    try:
        return args.func(app, args)
    except (ConfigurationError, CompletionError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
