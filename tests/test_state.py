"""Tests for the state store."""

import json

import pytest

from topicfeed.models import Classification, DuplicateGroup
from topicfeed.storage.database import Database
from topicfeed.storage.state import SCHEMA_VERSION, StateStore


def test_fresh_store_has_defaults(db) -> None:
    """Test a new database is seeded with the default sources and topics."""
    store = StateStore(db)
    assert [s.title for s in store.sources] == ["Hacker News", "TechCrunch", "Krebs on Security", "BBC News"]
    assert {t.name for t in store.topics} == {"Cybersecurity Breaches", "AI Research"}
    assert [f.name for f in store.folders] == ["Tech", "Security", "World News"]
    tech = store.folders[0].id
    assert [s.title for s in store.sources if s.folder_id == tech] == ["Hacker News", "TechCrunch"]
    assert db.load()["schema_version"] == SCHEMA_VERSION


def test_state_survives_reload(tmp_path, article_factory) -> None:
    """Test every mutation is persisted and reloaded."""
    path = str(tmp_path / "state.db")
    with Database(path) as db:
        store = StateStore(db, seed_defaults=False)
        source = store.add_source("https://a.test/feed", title="A")
        store.add_articles([article_factory("x", source_id=source.id)])
        store.mark_read("x")

    with Database(path) as db:
        store = StateStore(db)
        assert [s.title for s in store.sources] == ["A"]
        assert store.get_article("x").source_id == source.id
        assert store.get_metadata("x").is_read


def test_add_source_rejects_duplicate(store) -> None:
    """Test the same feed URL cannot be added twice."""
    store.add_source("https://a.test/feed")
    with pytest.raises(ValueError, match="already added"):
        store.add_source(" https://a.test/feed ")


def test_unknown_ids_raise_key_error(store) -> None:
    """Test lookups and updates on unknown ids."""
    with pytest.raises(KeyError):
        store.get_source("missing")
    with pytest.raises(KeyError):
        store.get_article("missing")
    with pytest.raises(KeyError):
        store.delete_topic("missing")
    with pytest.raises(KeyError):
        store.delete_mute_rule("missing")
    with pytest.raises(KeyError):
        store.update_mute_rule("missing", is_active=False)
    with pytest.raises(KeyError):
        store.delete_folder("missing")


def test_record_fetch_result(store) -> None:
    """Test a failure sets fetch_error and a later success clears it."""
    source = store.add_source("https://a.test/feed")
    store.record_fetch_result(source.id, "HTTP 500")
    assert store.get_source(source.id).fetch_error == "HTTP 500"
    store.record_fetch_result(source.id, None)
    updated = store.get_source(source.id)
    assert updated.fetch_error is None
    assert updated.last_fetched_at is not None


def test_delete_source_drops_its_articles(store, article_factory) -> None:
    """Test removing a source removes only that source's articles."""
    a = store.add_source("https://a.test/feed")
    b = store.add_source("https://b.test/feed")
    store.add_articles([article_factory("a1", source_id=a.id), article_factory("b1", source_id=b.id)])
    store.delete_source(a.id)
    assert [x.id for x in store.articles] == ["b1"]


def test_add_articles_reports_new_ones(db, article_factory) -> None:
    """Test only genuinely new, retained articles are returned."""
    store = StateStore(db, max_articles_per_source=2, seed_defaults=False)
    store.add_articles([article_factory("known")])
    added = store.add_articles([article_factory("known"), article_factory("fresh"), article_factory("fresh")])
    assert [a.id for a in added] == ["fresh"]


def test_metadata_is_lazy(store) -> None:
    """Test reading metadata does not create or persist it."""
    meta = store.get_metadata("never-seen")
    assert meta.is_primary is True
    assert meta.priority_score == 0
    assert store.state["articles_metadata"] == {}


def test_toggle_saved_and_mark_all_read(store) -> None:
    """Test reading-state helpers."""
    assert store.toggle_saved("a").is_saved is True
    assert store.toggle_saved("a").is_saved is False
    store.mark_all_read(["a", "b"])
    assert store.get_metadata("b").is_read
    assert not store.mark_unread("b").is_read


def test_classification_overwrites_previous(store) -> None:
    """Test a none|0 result zeroes earlier labels and score."""
    store.apply_classifications({"a": Classification(labels=["AI Research"], score=80)})
    store.apply_classifications({"a": Classification(labels=[], score=0)})
    meta = store.get_metadata("a")
    assert meta.ai_labels == []
    assert meta.priority_score == 0


def test_apply_duplicate_groups(store) -> None:
    """Test every member points at the primary and only it stays primary."""
    store.apply_duplicate_groups([DuplicateGroup(ids=["p", "d1", "d2"], primary_id="p")])
    assert store.get_metadata("p").is_primary
    assert store.get_metadata("p").duplicate_group_id == "p"
    assert not store.get_metadata("d1").is_primary
    assert store.get_metadata("d2").duplicate_group_id == "p"


def test_regrouping_keeps_one_primary_per_group(store) -> None:
    """Test a demoted primary takes its old group's members into the new group."""
    store.apply_duplicate_groups([DuplicateGroup(ids=["a", "b"], primary_id="a")])
    store.apply_duplicate_groups([DuplicateGroup(ids=["c", "a"], primary_id="c")])

    metas = {i: store.get_metadata(i) for i in ("a", "b", "c")}
    assert {m.duplicate_group_id for m in metas.values()} == {"c"}
    assert [i for i, m in metas.items() if m.is_primary] == ["c"]


def test_regrouping_under_same_primary_keeps_members(store) -> None:
    """Test a later group led by the same primary leaves earlier members in place."""
    store.apply_duplicate_groups([DuplicateGroup(ids=["a", "b"], primary_id="a")])
    store.apply_duplicate_groups([DuplicateGroup(ids=["a", "d"], primary_id="a")])
    assert {store.get_metadata(i).duplicate_group_id for i in ("a", "b", "d")} == {"a"}
    assert not store.get_metadata("b").is_primary


def test_classification_stamps_classified_at(store) -> None:
    """Test a stored result records when the article was classified."""
    assert store.get_metadata("a").classified_at is None
    store.apply_classifications({"a": Classification(labels=[], score=0)})
    assert store.get_metadata("a").classified_at is not None


def test_folders(store) -> None:
    """Test folders are ordered and deleting one unfiles its sources."""
    news = store.add_folder("News", color="#111111")
    tools = store.add_folder("Tools")
    assert [f.name for f in store.folders] == ["News", "Tools"]
    assert tools.order == news.order + 1

    source = store.add_source("https://a.test/feed", folder_id=news.id)
    store.update_folder(news.id, name="Headlines")
    assert store.get_folder(news.id).name == "Headlines"

    store.delete_folder(news.id)
    assert [f.name for f in store.folders] == ["Tools"]
    assert store.get_source(source.id).folder_id is None


def test_sources_must_use_known_folders(store) -> None:
    """Test a source cannot point at a folder that does not exist."""
    with pytest.raises(KeyError, match="Unknown folder"):
        store.add_source("https://a.test/feed", folder_id="nope")
    source = store.add_source("https://a.test/feed")
    with pytest.raises(KeyError, match="Unknown folder"):
        store.update_source(source.id, folder_id="nope")
    assert store.update_source(source.id, folder_id=None).folder_id is None


def test_add_folder_requires_name(store) -> None:
    """Test blank folder names are rejected."""
    with pytest.raises(ValueError):
        store.add_folder(" ")


def test_update_mute_rule(store) -> None:
    """Test a mute rule can be switched off and back on."""
    rule = store.add_mute_rule(["crypto"])
    assert store.update_mute_rule(rule.id, is_active=False).is_active is False
    assert store.mute_rules[0].is_active is False
    assert store.update_mute_rule(rule.id, is_active=True).is_active is True


def test_clear_ai_cache_keeps_reading_state(store) -> None:
    """Test AI fields reset while read and saved flags survive."""
    store.mark_read("a")
    store.apply_classifications({"a": Classification(labels=["X"], score=50)})
    store.set_summary("a", "short", "long")
    store.apply_duplicate_groups([DuplicateGroup(ids=["b", "a"], primary_id="b")])
    store.clear_ai_cache()
    meta = store.get_metadata("a")
    assert meta.is_read
    assert meta.ai_labels == []
    assert meta.priority_score == 0
    assert meta.ai_summary_short is None
    assert meta.is_primary
    assert meta.duplicate_group_id is None
    assert meta.classified_at is None


def test_topic_feedback(store) -> None:
    """Test feedback is stored on the topic."""
    topic = store.add_topic("AI")
    store.add_topic_feedback(topic.id, "a1", positive=True)
    assert store.topics[0].positive_examples == ["a1"]


def test_add_topic_requires_name(store) -> None:
    """Test blank topic names are rejected."""
    with pytest.raises(ValueError):
        store.add_topic("  ")


def test_export_import_roundtrip(db, article_factory) -> None:
    """Test an export can be imported into another store."""
    source_store = StateStore(db)
    source_store.add_articles([article_factory("x")])
    exported = source_store.export_json()

    target = StateStore(Database(":memory:"), seed_defaults=False)
    target.import_json(exported)
    assert [s.title for s in target.sources] == [s.title for s in source_store.sources]
    assert target.get_article("x").title == "Title"


def test_import_rejects_bad_data(store) -> None:
    """Test imports without a schema version are refused."""
    with pytest.raises(ValueError, match="Invalid data format"):
        store.import_json(json.dumps({"sources": []}))


def test_import_migrates_old_version(store) -> None:
    """Test an older schema version is upgraded on import."""
    store.import_json(json.dumps({"schema_version": 0, "sources": [{"id": "s", "url": "https://a.test"}]}))
    assert store.state["schema_version"] == SCHEMA_VERSION
    assert store.get_source("s").url == "https://a.test"


def test_reset_restores_defaults(db, article_factory) -> None:
    """Test reset wipes data and brings back the default sources."""
    store = StateStore(db)
    store.add_articles([article_factory("x")])
    store.reset()
    assert store.articles == []
    assert len(store.sources) == 4
