"""Timestamp helpers.

All timestamps are stored as UTC ISO-8601 strings with microsecond precision
so that string comparison in SQL matches chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

# Twitter/X v1.1 style: "Wed Oct 10 20:19:24 +0000 2018"
_TWITTER_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(utcnow())


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 (with or without 'Z') or Twitter-style timestamps.

    Naive values are taken as UTC. Returns None for empty, non-string or
    unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif not isinstance(value, str):
        return None
    else:
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = datetime.strptime(text, _TWITTER_FORMAT)
            except ValueError:
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> str | None:
    """Parse and re-serialize to the storage format, or None."""
    dt = parse_timestamp(value)
    return to_iso(dt) if dt else None
