"""Shared fixtures: article factory, in-memory store, fake completion client."""

from datetime import datetime, timezone
from unittest.mock import Mock

import httpx
import pytest

from topicfeed.fetchers.transport import Transport
from topicfeed.models import Article
from topicfeed.processing.completion import CompletionClient
from topicfeed.storage.database import Database
from topicfeed.storage.state import StateStore


def make_article(
    id: str,
    title: str = "Title",
    source_id: str = "src",
    published_at: datetime | None = None,
    summary: str = "",
    url: str = "",
) -> Article:
    return Article(
        id=id,
        source_id=source_id,
        title=title,
        url=url or f"https://example.com/{id}",
        published_at=published_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        summary=summary,
    )


@pytest.fixture
def article_factory():
    """Build Article records with sensible defaults."""
    return make_article


@pytest.fixture
def db():
    """In-memory state database."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def store(db):
    """Empty state store (no default sources or topics)."""
    return StateStore(db, seed_defaults=False)


@pytest.fixture
def completion():
    """Completion client double with an API key; set ``complete`` per test."""
    client = Mock(spec=CompletionClient)
    client.configured = True
    client.complete.return_value = ""
    return client


@pytest.fixture
def make_transport():
    """Build a Transport whose HTTP layer is an httpx.MockTransport handler."""
    transports = []

    def _make(handler, proxies=None):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        transport = Transport(proxies=proxies if proxies is not None else [], client=client)
        transports.append(client)
        return transport

    yield _make
    for client in transports:
        client.close()
