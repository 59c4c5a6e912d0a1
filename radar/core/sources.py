"""Source registry: monitored feeds and channels with a per-account cap."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from radar.core.errors import NotFound, QuotaExceeded, ValidationError, expect_str
from radar.core.models import Source, SourceType
from radar.core.storage import DB, SOURCE_MUTABLE_FIELDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaStatus:
    count: int
    limit: int
    warn_threshold: int

    @property
    def near_limit(self) -> bool:
        return self.count >= self.warn_threshold

    @property
    def at_limit(self) -> bool:
        return self.count >= self.limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "limit": self.limit,
            "near_limit": self.near_limit,
            "at_limit": self.at_limit,
        }


class SourceRegistry:
    def __init__(self, db: DB, limit: int, warn_threshold: int) -> None:
        self.db = db
        self.limit = limit
        self.warn_threshold = warn_threshold

    def quota(self, account_id: str) -> QuotaStatus:
        return QuotaStatus(
            count=self.db.count_sources(account_id),
            limit=self.limit,
            warn_threshold=self.warn_threshold,
        )

    def list(self, account_id: str) -> list[Source]:
        return self.db.list_sources(account_id)

    def _check_topic(self, account_id: str, topic_id: str | None) -> None:
        if topic_id and self.db.get_topic(account_id, topic_id) is None:
            raise ValidationError("Unknown topic")

    def create(self, account_id: str, data: dict[str, Any]) -> Source:
        name = expect_str(data.get("name"), "name")
        url = expect_str(data.get("url"), "url")
        raw_type = expect_str(data.get("type"), "type")
        if not name or not raw_type or not url:
            raise ValidationError("Name, type, and URL are required")
        try:
            source_type = SourceType(raw_type)
        except ValueError:
            raise ValidationError(f"Unknown source type: {raw_type}") from None
        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")
        topic_id = expect_str(data.get("topic_id"), "topic_id")
        self._check_topic(account_id, topic_id)

        source_id = self.db.insert_source_within_quota(
            account_id=account_id,
            type=source_type.value,
            name=name,
            url=url,
            channel_id=expect_str(data.get("channel_id"), "channel_id"),
            username=expect_str(data.get("username"), "username"),
            topic_id=topic_id,
            metadata=metadata,
            limit=self.limit,
        )
        if source_id is None:
            count = self.db.count_sources(account_id)
            logger.info(f"Account {account_id} hit source cap ({count}/{self.limit})")
            raise QuotaExceeded(limit=self.limit, count=count)

        source = self.db.get_source(account_id, source_id)
        assert source is not None
        return source

    def update(self, account_id: str, source_id: str, data: dict[str, Any]) -> Source:
        fields = {k: v for k, v in data.items() if k in SOURCE_MUTABLE_FIELDS}
        for key in ("name", "url", "channel_id", "username", "topic_id"):
            if key in fields:
                fields[key] = expect_str(fields[key], key)
        if "name" in fields and not fields["name"]:
            raise ValidationError("Name cannot be empty")
        if "url" in fields and not fields["url"]:
            raise ValidationError("URL cannot be empty")
        if "metadata" in fields and fields["metadata"] is not None and not isinstance(fields["metadata"], dict):
            raise ValidationError("metadata must be an object")
        if "topic_id" in fields:
            self._check_topic(account_id, fields["topic_id"])

        if not self.db.update_source(account_id, source_id, fields):
            raise NotFound("Source not found")
        source = self.db.get_source(account_id, source_id)
        assert source is not None
        return source

    def delete(self, account_id: str, source_id: str) -> None:
        if not self.db.delete_source(account_id, source_id):
            raise NotFound("Source not found")
