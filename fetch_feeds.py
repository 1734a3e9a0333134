#!/usr/bin/env python3
"""Scheduled refresh: fetch every source, then classify and group duplicates."""

import sys
import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path

from topicfeed.config import load_config
from topicfeed.fetchers.transport import Transport
from topicfeed.pipeline import refresh
from topicfeed.processing.completion import CompletionClient
from topicfeed.storage.database import Database
from topicfeed.storage.state import StateStore


LOG_RETENTION_DAYS = 7


def configure_logging(log_file: Path, keep_days: int = LOG_RETENTION_DAYS) -> logging.Logger:
    """Mirror refresh output to stdout and to a log file that rolls over daily."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = TimedRotatingFileHandler(log_file, when="midnight", backupCount=keep_days, encoding="utf-8")
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s  %(message)s"))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(file_handler)
    root.addHandler(console)
    return logging.getLogger("topicfeed.refresh")


def main():
    cfg = load_config()
    data_dir = Path(cfg["db_path"]).parent

    logger = configure_logging(data_dir / "refresh.log")

    start_time = datetime.now()
    logger.info("\n" + "=" * 60)
    logger.info("topicfeed refresh")
    logger.info(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 60)

    completion = CompletionClient.from_config(cfg)
    if not completion.configured:
        logger.info("No Anthropic API key found; articles will be fetched but not classified.")
        logger.info("Set ANTHROPIC_API_KEY env var or add to config.yaml")

    with Database(cfg["db_path"]) as db, Transport(proxies=cfg["proxies"], timeout=cfg["fetch_timeout"]) as transport:
        store = StateStore(db, max_articles_per_source=cfg["max_articles_per_source"])
        result = refresh(store, transport, completion, cfg)
        for source_id, error in result.errors.items():
            logger.info(f"  ! {store.get_source(source_id).title}: {error}")
        total_articles = len(store.articles)

    end_time = datetime.now()
    duration = (end_time - start_time).total_seconds()

    logger.info("\n" + "=" * 60)
    logger.info("Refresh Complete!")
    logger.info(f"  Started:     {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Finished:    {end_time.strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"  Duration:    {duration:.1f}s")
    logger.info(f"  Feeds:       {result.succeeded} ok, {result.failed} failed")
    logger.info(f"  New:         {result.new_articles} articles ({total_articles} stored)")
    logger.info(f"  Classified:  {result.classified}")
    logger.info(f"  Duplicates:  {result.duplicate_groups} groups")
    logger.info("=" * 60)

    if result.failed and not result.succeeded:
        sys.exit(1)


if __name__ == "__main__":
    main()
