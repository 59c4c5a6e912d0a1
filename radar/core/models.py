"""Domain types for accounts, sources, topics, content and interactions."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from radar.core.timeutil import parse_timestamp


class SourceType(str, Enum):
    RSS = "rss"
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    POLYMARKET = "polymarket"


class ContentType(str, Enum):
    ARTICLE = "article"
    VIDEO = "video"
    TWEET = "tweet"
    PREDICTION = "prediction"


class DigestFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BOTH = "both"
    NONE = "none"


class InviteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def _loads(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _bool(value: Any) -> bool:
    return bool(value) if value is not None else False


@dataclass(frozen=True)
class AuthContext:
    """Tenant scope established for a request."""

    account_id: str
    user_id: str


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    slug: str
    plan: str
    status: str
    created_by: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Account:
        return cls(
            id=row["id"],
            name=row["name"],
            slug=row["slug"],
            plan=row["plan"],
            status=row["status"],
            created_by=row["created_by"],
        )


# --- content metadata variants -------------------------------------------------


@dataclass
class _BaseMetadata:
    # AI summary cache
    ai_summary: str | None = None
    key_points: list[str] | None = None
    summarized_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for key, value in asdict(self).items():
            if key == "extra" or value is None:
                continue
            data[_CAMEL.get(key, key)] = value
        return data


# Stored keys that are camelCase on the wire
_CAMEL = {"end_date": "endDate"}
_SNAKE = {v: k for k, v in _CAMEL.items()}


@dataclass
class ArticleMetadata(_BaseMetadata):
    feed_url: str | None = None
    word_count: int | None = None


@dataclass
class VideoMetadata(_BaseMetadata):
    channel_id: str | None = None
    duration: int | None = None
    transcript: str | None = None


@dataclass
class TweetMetadata(_BaseMetadata):
    username: str | None = None
    profile_image: str | None = None
    metrics: dict[str, Any] | None = None


@dataclass
class PredictionMetadata(_BaseMetadata):
    end_date: str | None = None
    volume: str | None = None
    markets: list[dict[str, Any]] | None = None

    def end_datetime(self) -> datetime | None:
        return parse_timestamp(self.end_date)

    def is_expired(self, now: datetime) -> bool:
        end = self.end_datetime()
        return end is not None and end < now


ContentMetadata = Union[ArticleMetadata, VideoMetadata, TweetMetadata, PredictionMetadata]

_METADATA_TYPES: dict[ContentType, type] = {
    ContentType.ARTICLE: ArticleMetadata,
    ContentType.VIDEO: VideoMetadata,
    ContentType.TWEET: TweetMetadata,
    ContentType.PREDICTION: PredictionMetadata,
}


def parse_metadata(content_type: ContentType | str, raw: dict[str, Any] | None) -> ContentMetadata:
    """Build the metadata variant for a content type; unknown keys go to `extra`."""
    cls = _METADATA_TYPES[ContentType(content_type)]
    known = {f for f in cls.__dataclass_fields__ if f != "extra"}
    kwargs: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in (raw or {}).items():
        name = _SNAKE.get(key, key)
        if name in known:
            kwargs[name] = value
        else:
            extra[key] = value
    return cls(extra=extra, **kwargs)


# --- registries ----------------------------------------------------------------


@dataclass(frozen=True)
class Topic:
    id: str
    account_id: str
    name: str
    slug: str
    color: str | None
    icon: str | None
    is_default: bool
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Topic:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            name=row["name"],
            slug=row["slug"],
            color=row["color"],
            icon=row["icon"],
            is_default=_bool(row["is_default"]),
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Source:
    id: str
    account_id: str
    type: SourceType
    name: str
    url: str
    channel_id: str | None
    username: str | None
    topic_id: str | None
    metadata: dict[str, Any]
    is_active: bool
    last_fetched_at: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Source:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            type=SourceType(row["type"]),
            name=row["name"],
            url=row["url"],
            channel_id=row["channel_id"],
            username=row["username"],
            topic_id=row["topic_id"],
            metadata=_loads(row["metadata"]) or {},
            is_active=_bool(row["is_active"]),
            last_fetched_at=row["last_fetched_at"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


# --- content -------------------------------------------------------------------


@dataclass(frozen=True)
class ContentItem:
    id: str
    account_id: str
    source_id: str | None
    topic_id: str | None
    type: ContentType
    title: str
    summary: str | None
    content: str | None
    url: str | None
    thumbnail_url: str | None
    author: str | None
    published_at: str | None
    external_id: str | None
    metadata: ContentMetadata
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ContentItem:
        content_type = ContentType(row["type"])
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            source_id=row["source_id"],
            topic_id=row["topic_id"],
            type=content_type,
            title=row["title"],
            summary=row["summary"],
            content=row["content"],
            url=row["url"],
            thumbnail_url=row["thumbnail_url"],
            author=row["author"],
            published_at=row["published_at"],
            external_id=row["external_id"],
            metadata=parse_metadata(content_type, _loads(row["metadata"])),
            created_at=row["created_at"],
        )

    def is_expired_prediction(self, now: datetime) -> bool:
        return (
            self.type == ContentType.PREDICTION
            and isinstance(self.metadata, PredictionMetadata)
            and self.metadata.is_expired(now)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "source_id": self.source_id,
            "topic_id": self.topic_id,
            "type": self.type.value,
            "title": self.title,
            "summary": self.summary,
            "content": self.content,
            "url": self.url,
            "thumbnail_url": self.thumbnail_url,
            "author": self.author,
            "published_at": self.published_at,
            "external_id": self.external_id,
            "metadata": self.metadata.to_dict(),
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ContentInteraction:
    id: str
    account_id: str
    content_item_id: str
    is_liked: bool
    is_saved: bool
    is_dismissed: bool
    notes: str | None
    read_at: str | None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ContentInteraction:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            content_item_id=row["content_item_id"],
            is_liked=_bool(row["is_liked"]),
            is_saved=_bool(row["is_saved"]),
            is_dismissed=_bool(row["is_dismissed"]),
            notes=row["notes"],
            read_at=row["read_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ContentEntry:
    """A content item joined with its topic, source and the caller's interaction."""

    item: ContentItem
    topic: Topic | None = None
    source: Source | None = None
    interaction: ContentInteraction | None = None

    @property
    def is_dismissed(self) -> bool:
        return self.interaction is not None and self.interaction.is_dismissed

    @property
    def is_saved(self) -> bool:
        return self.interaction is not None and self.interaction.is_saved

    def to_dict(self) -> dict[str, Any]:
        data = self.item.to_dict()
        data["topic"] = self.topic.to_dict() if self.topic else None
        data["source"] = self.source.to_dict() if self.source else None
        data["interaction"] = self.interaction.to_dict() if self.interaction else None
        return data


# --- preferences, invites, publishing ------------------------------------------


@dataclass(frozen=True)
class UserPreferences:
    account_id: str
    digest_enabled: bool = True
    digest_frequency: DigestFrequency = DigestFrequency.DAILY
    digest_time: str = "06:00:00"
    digest_timezone: str | None = None
    digest_topics: tuple[str, ...] = ()
    email_address: str | None = None

    @property
    def onboarding_complete(self) -> bool:
        """Derived, never stored: onboarding ends once a timezone is chosen."""
        return self.digest_timezone is not None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> UserPreferences:
        return cls(
            account_id=row["account_id"],
            digest_enabled=_bool(row["digest_enabled"]),
            digest_frequency=DigestFrequency(row["digest_frequency"]),
            digest_time=row["digest_time"],
            digest_timezone=row["digest_timezone"],
            digest_topics=tuple(_loads(row["digest_topics"]) or ()),
            email_address=row["email_address"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "digest_enabled": self.digest_enabled,
            "digest_frequency": self.digest_frequency.value,
            "digest_time": self.digest_time,
            "digest_timezone": self.digest_timezone,
            "digest_topics": list(self.digest_topics),
            "email_address": self.email_address,
            "onboarding_complete": self.onboarding_complete,
        }


@dataclass(frozen=True)
class UserInvite:
    id: str
    account_id: str | None
    email: str
    name: str | None
    token: str
    token_expires_at: str
    status: InviteStatus
    reminder_count: int
    last_reminder_at: str | None
    invited_by_user_id: str | None
    accepted_at: str | None
    accepted_by_user_id: str | None
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> UserInvite:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            email=row["email"],
            name=row["name"],
            token=row["token"],
            token_expires_at=row["token_expires_at"],
            status=InviteStatus(row["status"]),
            reminder_count=row["reminder_count"],
            last_reminder_at=row["last_reminder_at"],
            invited_by_user_id=row["invited_by_user_id"],
            accepted_at=row["accepted_at"],
            accepted_by_user_id=row["accepted_by_user_id"],
            created_at=row["created_at"],
        )

    def expires_at(self) -> datetime:
        expires = parse_timestamp(self.token_expires_at)
        assert expires is not None, f"invite {self.id} has no expiry"
        return expires

    def is_expired(self, now: datetime) -> bool:
        return self.status == InviteStatus.EXPIRED or self.expires_at() < now

    def to_public_dict(self) -> dict[str, Any]:
        """Invite fields safe to show to admins (no token)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "status": self.status.value,
            "reminder_count": self.reminder_count,
            "token_expires_at": self.token_expires_at,
            "accepted_at": self.accepted_at,
            "created_at": self.created_at,
            "invited_by_user_id": self.invited_by_user_id,
        }


@dataclass(frozen=True)
class WhatsHotPost:
    id: str
    account_id: str
    content_item_id: str | None
    title: str
    summary: str
    url: str
    thumbnail_url: str | None
    topic_id: str | None
    author: str | None
    status: str
    published_at: str
    hashtags: tuple[str, ...] = ()
    x_post_id: str | None = None
    x_posted_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> WhatsHotPost:
        return cls(
            id=row["id"],
            account_id=row["account_id"],
            content_item_id=row["content_item_id"],
            title=row["title"],
            summary=row["summary"],
            url=row["url"],
            thumbnail_url=row["thumbnail_url"],
            topic_id=row["topic_id"],
            author=row["author"],
            status=row["status"],
            published_at=row["published_at"],
            hashtags=tuple(_loads(row["hashtags"]) or ()),
            x_post_id=row["x_post_id"],
            x_posted_at=row["x_posted_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hashtags"] = list(self.hashtags)
        return data
