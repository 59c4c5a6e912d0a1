"""Digest preferences per account."""

from __future__ import annotations

import logging
import re
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from radar.core.errors import ValidationError, expect_str
from radar.core.models import DigestFrequency, UserPreferences
from radar.core.storage import DB

logger = logging.getLogger(__name__)

_TIME = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_preferences(db: DB, account_id: str) -> UserPreferences:
    """Stored preferences, or the defaults if the account never saved any."""
    return db.get_preferences(account_id) or UserPreferences(account_id=account_id)


def normalize_time(value: str) -> str:
    match = _TIME.match(value.strip())
    if not match:
        raise ValidationError("digest_time must be HH:MM or HH:MM:SS")
    hours, minutes, seconds = match.groups()
    return f"{hours}:{minutes}:{seconds or '00'}"


def validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ValidationError(f"Unknown timezone: {value}") from None
    return value


def save_preferences(db: DB, account_id: str, data: dict[str, Any]) -> UserPreferences:
    """Merge the given fields over the current preferences and store them."""
    current = get_preferences(db, account_id)
    changes: dict[str, Any] = {}

    if "digest_enabled" in data:
        if not isinstance(data["digest_enabled"], bool):
            raise ValidationError("digest_enabled must be a boolean")
        changes["digest_enabled"] = data["digest_enabled"]

    if "digest_frequency" in data:
        try:
            changes["digest_frequency"] = DigestFrequency(data["digest_frequency"])
        except ValueError:
            raise ValidationError("digest_frequency must be one of daily, weekly, both, none") from None

    digest_time = expect_str(data.get("digest_time"), "digest_time")
    if digest_time is not None:
        changes["digest_time"] = normalize_time(digest_time)

    if "digest_timezone" in data:
        tz = expect_str(data["digest_timezone"], "digest_timezone")
        changes["digest_timezone"] = validate_timezone(tz) if tz else None

    if "digest_topics" in data:
        topics = data["digest_topics"] or []
        if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
            raise ValidationError("digest_topics must be a list of topic slugs")
        changes["digest_topics"] = tuple(topics)

    if "email_address" in data:
        email = expect_str(data["email_address"], "email_address")
        if email and not _EMAIL.match(email):
            raise ValidationError("Invalid email address")
        changes["email_address"] = email or None

    prefs = UserPreferences(
        account_id=account_id,
        digest_enabled=changes.get("digest_enabled", current.digest_enabled),
        digest_frequency=changes.get("digest_frequency", current.digest_frequency),
        digest_time=changes.get("digest_time", current.digest_time),
        digest_timezone=changes.get("digest_timezone", current.digest_timezone),
        digest_topics=changes.get("digest_topics", current.digest_topics),
        email_address=changes.get("email_address", current.email_address),
    )
    return db.save_preferences(prefs)
