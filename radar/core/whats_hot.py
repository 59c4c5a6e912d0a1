"""What's Hot: publish highlight snapshots and optionally cross-post them to X."""

from __future__ import annotations

import logging
import math
from typing import Any

from radar.core.errors import ValidationError, expect_str
from radar.core.storage import DB
from radar.providers.social import SocialClient, SocialPostError, compose_post_text

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 50


def _clean_hashtags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
        raise ValidationError("hashtags must be a list of strings")
    return [t.strip().lstrip("#") for t in raw if t.strip().lstrip("#")]


async def publish(db: DB, social: SocialClient, account_id: str, data: dict[str, Any]) -> dict[str, Any]:
    title = expect_str(data.get("title"), "title")
    summary = expect_str(data.get("summary"), "summary")
    url = expect_str(data.get("url"), "url")
    if not title or not summary or not url:
        raise ValidationError("Title, summary, and URL are required")

    content_item_id = expect_str(data.get("content_item_id"), "content_item_id")
    if content_item_id and not db.content_exists(account_id, content_item_id):
        raise ValidationError("Unknown content item")
    topic_id = expect_str(data.get("topic_id"), "topic_id")
    if topic_id and db.get_topic(account_id, topic_id) is None:
        raise ValidationError("Unknown topic")

    hashtags = _clean_hashtags(data.get("hashtags"))
    x_enabled = bool(data.get("x_post_enabled"))

    post = db.insert_post(
        account_id=account_id,
        content_item_id=content_item_id,
        title=title,
        summary=summary,
        url=url,
        thumbnail_url=expect_str(data.get("thumbnail_url"), "thumbnail_url"),
        topic_id=topic_id,
        author=expect_str(data.get("author"), "author"),
        hashtags=hashtags,
        x_post_enabled=x_enabled,
    )

    x_result: dict[str, Any] | None = None
    if x_enabled and social.configured:
        try:
            x_post_id = await social.post(compose_post_text(title, summary, url, hashtags))
        except SocialPostError as e:
            logger.warning(f"X post for {post.id} failed: {e}")
            x_result = {"success": False, "error": "Posting to X failed"}
        else:
            db.record_x_post(account_id, post.id, x_post_id)
            x_result = {"success": True, "post_id": x_post_id}
            post = db.get_post(account_id, post.id) or post

    return {"success": True, "post": post.to_dict(), "x_post": x_result}


def list_posts(
    db: DB,
    account_id: str,
    page: int = 1,
    limit: int = 10,
    topic_id: str | None = None,
) -> dict[str, Any]:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    limit = min(limit, MAX_PAGE_LIMIT)
    posts, total = db.list_posts(account_id, topic_id=topic_id, limit=limit, offset=(page - 1) * limit)
    return {
        "posts": [p.to_dict() for p in posts],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }
