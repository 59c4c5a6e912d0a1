"""Topic registry: user-defined categories with derived slugs."""

from __future__ import annotations

import logging
import re
from typing import Any

from radar.core.errors import NotFound, ValidationError, expect_str
from radar.core.models import Topic
from radar.core.storage import DB

logger = logging.getLogger(__name__)

DEFAULT_TOPICS = [
    {"name": "My Brand", "slug": "my-brand", "color": "#0ea5e9", "icon": "building"},
    {"name": "Competitors", "slug": "competitors", "color": "#0ea5e9", "icon": "target"},
    {"name": "Partners", "slug": "partners", "color": "#0ea5e9", "icon": "handshake"},
    {"name": "Industry", "slug": "industry", "color": "#0ea5e9", "icon": "trending-up"},
    {"name": "Interests", "slug": "interests", "color": "#f59e0b", "icon": "star"},
    {"name": "Learning", "slug": "learning", "color": "#f59e0b", "icon": "book-open"},
]

_WHITESPACE = re.compile(r"\s+")


def slugify(name: str) -> str:
    """Lowercase, whitespace runs collapsed to single hyphens."""
    return _WHITESPACE.sub("-", name.strip().lower())


def _check_slug_free(db: DB, account_id: str, slug: str, topic_id: str | None = None) -> None:
    existing = db.get_topic_by_slug(account_id, slug)
    if existing is not None and existing.id != topic_id:
        raise ValidationError(f"A topic named '{existing.name}' already exists")


def list_topics(db: DB, account_id: str) -> list[Topic]:
    return db.list_topics(account_id)


def create_topic(
    db: DB,
    account_id: str,
    name: Any,
    color: Any = None,
    icon: Any = None,
) -> Topic:
    name = expect_str(name, "name")
    if not name:
        raise ValidationError("Name is required")
    slug = slugify(name)
    _check_slug_free(db, account_id, slug)
    topic_id = db.insert_topic(
        account_id=account_id,
        name=name,
        slug=slug,
        color=expect_str(color, "color"),
        icon=expect_str(icon, "icon"),
    )
    if topic_id is None:
        # Lost a race with a concurrent create of the same name
        raise ValidationError(f"A topic named '{name}' already exists")
    topic = db.get_topic(account_id, topic_id)
    assert topic is not None
    return topic


def update_topic(db: DB, account_id: str, topic_id: str, fields: dict[str, Any]) -> Topic:
    if db.get_topic(account_id, topic_id) is None:
        raise NotFound("Topic not found")

    updates: dict[str, Any] = {}
    if "name" in fields and fields["name"] is not None:
        name = expect_str(fields["name"], "name")
        if not name:
            raise ValidationError("Name cannot be empty")
        updates["name"] = name
        updates["slug"] = slugify(name)
        _check_slug_free(db, account_id, updates["slug"], topic_id)
    for key in ("color", "icon"):
        if key in fields:
            updates[key] = expect_str(fields[key], key)

    updated = db.update_topic(account_id, topic_id, updates)
    if updated is None:
        # Another rename took the slug after the check above
        raise ValidationError(f"A topic named '{updates['name']}' already exists")
    if not updated:
        raise NotFound("Topic not found")
    topic = db.get_topic(account_id, topic_id)
    assert topic is not None
    return topic


def delete_topic(db: DB, account_id: str, topic_id: str) -> None:
    if not db.delete_topic(account_id, topic_id):
        raise NotFound("Topic not found")


def seed_default_topics(db: DB, account_id: str) -> dict[str, Any]:
    """Create the default topic set for an account that has no topics yet."""
    inserted = db.seed_topics(account_id, DEFAULT_TOPICS)
    if inserted:
        logger.info(f"Seeded {inserted} default topics for account {account_id}")
        return {"seeded": True, "count": inserted}
    return {"seeded": False, "count": db.count_topics(account_id)}
