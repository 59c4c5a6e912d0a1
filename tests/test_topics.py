"""Tests for topic registry operations."""

import pytest

from radar.core import topics
from radar.core.errors import NotFound, ValidationError


def test_slugify():
    assert topics.slugify("  Machine   Learning ") == "machine-learning"
    assert topics.slugify("AI") == "ai"


def test_create_topic_derives_slug(db, account_id):
    topic = topics.create_topic(db, account_id, "Deep Tech", color="#fff", icon="cpu")
    assert topic.slug == "deep-tech"
    assert topic.is_default is False
    assert [t.id for t in topics.list_topics(db, account_id)] == [topic.id]


def test_create_requires_name(db, account_id):
    with pytest.raises(ValidationError):
        topics.create_topic(db, account_id, "   ")


def test_duplicate_slug_rejected(db, account_id):
    topics.create_topic(db, account_id, "Deep Tech")
    with pytest.raises(ValidationError):
        topics.create_topic(db, account_id, "deep   tech")


def test_same_slug_allowed_in_other_account(db, account_id, other_account_id):
    topics.create_topic(db, account_id, "Deep Tech")
    other = topics.create_topic(db, other_account_id, "Deep Tech")
    assert other.account_id == other_account_id


def test_rename_updates_slug(db, account_id):
    topic = topics.create_topic(db, account_id, "Old Name")
    renamed = topics.update_topic(db, account_id, topic.id, {"name": "New Name", "color": "#000"})
    assert renamed.slug == "new-name"
    assert renamed.color == "#000"


def test_rename_to_own_slug_allowed(db, account_id):
    topic = topics.create_topic(db, account_id, "Deep Tech")
    renamed = topics.update_topic(db, account_id, topic.id, {"name": "Deep  Tech"})
    assert renamed.slug == "deep-tech"


def test_rename_onto_other_topic_rejected(db, account_id):
    topics.create_topic(db, account_id, "Alpha")
    beta = topics.create_topic(db, account_id, "Beta")
    with pytest.raises(ValidationError):
        topics.update_topic(db, account_id, beta.id, {"name": "alpha"})


def test_update_other_account_not_found(db, account_id, other_account_id):
    topic = topics.create_topic(db, account_id, "Mine")
    with pytest.raises(NotFound):
        topics.update_topic(db, other_account_id, topic.id, {"name": "Theirs"})


def test_delete_untags_content(db, account_id, make_item):
    topic = topics.create_topic(db, account_id, "Temp")
    item_id = make_item(account_id, topic_id=topic.id)
    topics.delete_topic(db, account_id, topic.id)

    entry = db.get_content_entry(account_id, item_id)
    assert entry.item.topic_id is None
    with pytest.raises(NotFound):
        topics.delete_topic(db, account_id, topic.id)


def test_seed_default_topics_once(db, account_id):
    first = topics.seed_default_topics(db, account_id)
    assert first == {"seeded": True, "count": len(topics.DEFAULT_TOPICS)}
    assert all(t.is_default for t in topics.list_topics(db, account_id))

    second = topics.seed_default_topics(db, account_id)
    assert second == {"seeded": False, "count": len(topics.DEFAULT_TOPICS)}


def test_seed_skipped_when_account_has_topics(db, account_id):
    topics.create_topic(db, account_id, "Custom")
    assert topics.seed_default_topics(db, account_id) == {"seeded": False, "count": 1}


@pytest.mark.parametrize("name", [123, ["AI"], {"name": "AI"}])
def test_non_string_name_rejected(db, account_id, name):
    with pytest.raises(ValidationError, match="name must be a string"):
        topics.create_topic(db, account_id, name)


def test_non_string_update_fields_rejected(db, account_id):
    topic = topics.create_topic(db, account_id, "Deep Tech")
    with pytest.raises(ValidationError):
        topics.update_topic(db, account_id, topic.id, {"name": 5})
    with pytest.raises(ValidationError):
        topics.update_topic(db, account_id, topic.id, {"color": ["#fff"]})


def test_rename_race_on_slug_is_validation_error(db, account_id, monkeypatch):
    topics.create_topic(db, account_id, "Alpha")
    beta = topics.create_topic(db, account_id, "Beta")
    # A concurrent rename claims the slug between the check and the write
    monkeypatch.setattr(topics, "_check_slug_free", lambda *args, **kwargs: None)

    with pytest.raises(ValidationError, match="already exists"):
        topics.update_topic(db, account_id, beta.id, {"name": "alpha"})
    assert db.get_topic(account_id, beta.id).slug == "beta"
