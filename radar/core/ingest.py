"""Webhook ingestion of externally collected tweets."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from radar.core.errors import NotFound, ValidationError, expect_str
from radar.core.models import ContentType
from radar.core.storage import DB
from radar.core.timeutil import normalize_timestamp

logger = logging.getLogger(__name__)


def tweet_external_id(tweet_id: str) -> str:
    return f"twitter:{tweet_id}"


@dataclass
class IngestResult:
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _text_field(tweet: dict[str, Any], key: str) -> str | None:
    value = tweet.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value.strip() or None


def _tweet_row(tweet: dict[str, Any]) -> dict[str, Any]:
    raw_id = tweet.get("id")
    if isinstance(raw_id, bool) or not isinstance(raw_id, (str, int)):
        raise ValueError("id must be a string or integer")
    tweet_id = str(raw_id).strip()
    username = _text_field(tweet, "author_username")
    text = _text_field(tweet, "text")
    if not tweet_id or not username or not text:
        raise ValueError("id, text and author_username are required")

    author_name = _text_field(tweet, "author_name") or username
    published_at = normalize_timestamp(tweet.get("created_at"))
    if tweet.get("created_at") and published_at is None:
        raise ValueError(f"unparseable created_at {tweet['created_at']!r}")
    profile_image = _text_field(tweet, "author_profile_image")

    return {
        "type": ContentType.TWEET.value,
        "title": f"{author_name} (@{username})",
        "summary": text,
        "content": text,
        "url": _text_field(tweet, "url") or f"https://x.com/{username}/status/{tweet_id}",
        "thumbnail_url": _text_field(tweet, "media_url") or profile_image,
        "author": author_name,
        "published_at": published_at,
        "external_id": tweet_external_id(tweet_id),
        "metadata": {
            "username": username,
            "profile_image": profile_image,
            "metrics": tweet.get("metrics"),
        },
    }


def ingest_tweets(
    db: DB,
    account_id: Any,
    tweets: Any,
    topic_id: Any = None,
    source_id: Any = None,
) -> IngestResult:
    """Insert tweets for an account, skipping ids the account already has.

    A bad tweet is recorded in `errors` and the rest of the batch continues.
    """
    account_id = expect_str(account_id, "account_id")
    topic_id = expect_str(topic_id, "topic_id")
    source_id = expect_str(source_id, "source_id")
    if not account_id:
        raise ValidationError("account_id is required")
    if not isinstance(tweets, list) or not tweets:
        raise ValidationError("tweets array is required")
    if db.get_account(account_id) is None:
        raise NotFound("Account not found")
    if topic_id and db.get_topic(account_id, topic_id) is None:
        raise ValidationError("Unknown topic")
    if source_id and db.get_source(account_id, source_id) is None:
        raise ValidationError("Unknown source")

    result = IngestResult()
    for tweet in tweets:
        label = tweet.get("id", "?") if isinstance(tweet, dict) else "?"
        try:
            if not isinstance(tweet, dict):
                raise ValueError("tweet must be an object")
            row = _tweet_row(tweet)
            item_id = db.insert_content(
                account_id=account_id,
                topic_id=topic_id,
                source_id=source_id,
                **row,
            )
        except (ValueError, sqlite3.Error) as e:
            logger.warning(f"Skipping tweet {label} for account {account_id}: {e}")
            result.errors.append(f"Tweet {label}: {e}")
            continue

        if item_id is None:
            result.skipped += 1
        else:
            result.inserted += 1

    logger.info(
        f"Tweet ingest for {account_id}: {result.inserted} inserted, "
        f"{result.skipped} skipped, {len(result.errors)} errors"
    )
    return result
