"""Content store: the account-scoped feed query, item detail and lazy enrichment."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from radar.core.content_fetcher import ContentFetcher
from radar.core.errors import NotFound, UpstreamFailure, ValidationError
from radar.core.llm_providers import LLMError, LLMProvider, parse_json_reply
from radar.core.models import ContentEntry, ContentType
from radar.core.storage import DB
from radar.core.timeutil import now_iso, utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200

# Stored bodies at least this long already came from a full extraction
RICH_CONTENT_MIN_CHARS = 1000

SUMMARY_INPUT_CHARS = 2000


def html_to_text(html: str | None) -> str:
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(" ")
    return " ".join(text.split())


def is_visible(entry: ContentEntry, now: datetime) -> bool:
    """Dismissed items and closed prediction markets never show in the feed."""
    return not entry.is_dismissed and not entry.item.is_expired_prediction(now)


def query_content(
    db: DB,
    account_id: str,
    *,
    topic_slug: str | None = None,
    search: str | None = None,
    saved_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    now: datetime | None = None,
) -> list[ContentEntry]:
    """One page of the feed, newest first.

    Visibility filters run on the fetched page, so a page can hold fewer than
    `limit` entries even when more exist further on.
    """
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative")
    limit = min(limit, MAX_PAGE_SIZE)

    topic_id = None
    if topic_slug:
        topic = db.get_topic_by_slug(account_id, topic_slug)
        if topic is None:
            return []
        topic_id = topic.id

    search = search.strip() if search else None
    page = db.query_content(account_id, topic_id=topic_id, search=search or None, limit=limit, offset=offset)

    now = now or utcnow()
    entries = [e for e in page if is_visible(e, now)]
    if saved_only:
        entries = [e for e in entries if e.is_saved]
    return entries


def get_content(db: DB, account_id: str, item_id: str) -> ContentEntry:
    entry = db.get_content_entry(account_id, item_id)
    if entry is None:
        raise NotFound("Content not found")
    return entry


def delete_content(db: DB, account_id: str, item_id: str) -> None:
    if not db.delete_content(account_id, item_id):
        raise NotFound("Content not found")


async def get_full_article(db: DB, fetcher: ContentFetcher, account_id: str, item_id: str) -> str:
    """Article body for the reader view, extracting and storing it on first request.

    Network and extraction problems fall back to the stored content or summary.
    """
    item = get_content(db, account_id, item_id).item
    if item.type != ContentType.ARTICLE:
        raise ValidationError("Not an article")

    stored = item.content or item.summary or ""
    if not item.url or (item.content and len(item.content) >= RICH_CONTENT_MIN_CHARS):
        return stored

    result = await fetcher.fetch(item.url)
    if not result.success or not result.content:
        logger.warning(f"Full-article fetch failed for {item.id}: {result.error_message}")
        return stored

    db.save_content_body(account_id, item.id, result.content)
    logger.info(f"Backfilled {result.char_count} chars for content {item.id}")
    return result.content


def _summary_prompt(entry: ContentEntry) -> str:
    item = entry.item
    text = html_to_text(item.content or item.summary or item.title)[:SUMMARY_INPUT_CHARS]
    return (
        f"Summarize this {item.type.value} content concisely. "
        "Provide a 2-sentence summary and 3 key takeaways.\n\n"
        f"Title: {item.title}\n"
        f"Content: {text}\n\n"
        'Respond in JSON format:\n{"summary": "2-sentence summary", '
        '"keyPoints": ["point 1", "point 2", "point 3"]}\n\n'
        "Only output valid JSON."
    )


async def summarize_content(db: DB, llm: LLMProvider, account_id: str, item_id: str) -> dict[str, Any]:
    """AI summary and key points, cached in the item's metadata."""
    entry = get_content(db, account_id, item_id)
    metadata = entry.item.metadata
    if metadata.ai_summary and metadata.key_points is not None:
        return {"summary": metadata.ai_summary, "key_points": metadata.key_points, "cached": True}

    try:
        response = await llm.chat(
            [{"role": "user", "content": _summary_prompt(entry)}],
            temperature=0.3,
            max_tokens=300,
        )
    except LLMError as e:
        logger.exception(f"Summary generation failed for {item_id}")
        raise UpstreamFailure(str(e), service="llm") from e

    parsed = parse_json_reply(response.content)
    if parsed is not None:
        summary = str(parsed.get("summary") or "")
        points = parsed.get("keyPoints")
        key_points = [str(p) for p in points] if isinstance(points, list) else []
    else:
        summary = response.content[:200]
        key_points = []

    updated = replace(metadata, ai_summary=summary, key_points=key_points, summarized_at=now_iso())
    db.save_content_metadata(account_id, item_id, updated.to_dict())
    return {"summary": summary, "key_points": key_points, "cached": False}
