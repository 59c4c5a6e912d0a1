"""Digest generation: select content, write an AI insight, render the email.

Three cadences share one pipeline:
1. WINDOW: morning/evening cover yesterday and today, weekly the last 7 days
2. SELECT: non-dismissed items in the window, filtered by the account's topics
3. INSIGHT: one short paragraph from the chat model (fallback text on failure)
4. RENDER: Jinja2 email template
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from radar.core.content import html_to_text, is_visible
from radar.core.emails import render_email
from radar.core.llm_providers import LLMError, LLMProvider
from radar.core.models import ContentEntry, DigestFrequency, UserPreferences
from radar.core.storage import DB
from radar.core.timeutil import to_iso, utcnow

logger = logging.getLogger(__name__)

DAILY_ITEM_LIMIT = 5
WEEKLY_TOP_ITEMS = 5
WEEKLY_INSIGHT_ITEMS = 10
TREND_LIMIT = 5
SUMMARY_SNIPPET_CHARS = 280

FALLBACK_INSIGHT = "Today's content covers a diverse range of topics in your areas of interest."


class DigestCadence(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    WEEKLY = "weekly"

    @property
    def frequencies(self) -> tuple[str, ...]:
        """Preference frequencies that receive this cadence."""
        if self == DigestCadence.WEEKLY:
            return (DigestFrequency.WEEKLY.value, DigestFrequency.BOTH.value)
        return (DigestFrequency.DAILY.value, DigestFrequency.BOTH.value)


@dataclass
class DigestItem:
    id: str
    title: str
    summary: str
    url: str
    original_url: str | None
    author: str | None
    thumbnail_url: str | None
    topic: str | None
    topic_color: str | None


@dataclass
class GeneratedDigest:
    cadence: DigestCadence
    subject: str
    html: str
    item_count: int
    items: list[DigestItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.cadence.value,
            "subject": self.subject,
            "content_count": self.item_count,
            "html": self.html,
        }


def digest_window(cadence: DigestCadence, now: datetime) -> tuple[datetime, datetime]:
    if cadence == DigestCadence.WEEKLY:
        return now - timedelta(days=7), now
    start_of_yesterday = (now - timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return start_of_yesterday, now


def _long_date(dt: datetime) -> str:
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


def digest_subject(cadence: DigestCadence, now: datetime) -> str:
    if cadence == DigestCadence.WEEKLY:
        week_start = now - timedelta(days=7)
        return f"Your Radar Weekly Digest - Week of {week_start.strftime('%b')} {week_start.day}"
    label = "Morning" if cadence == DigestCadence.MORNING else "Evening"
    return f"Your Radar {label} Digest - {_long_date(now)}"


class DigestGenerator:
    def __init__(self, db: DB, llm: LLMProvider, base_url: str) -> None:
        self.db = db
        self.llm = llm
        self.base_url = base_url

    def select_content(
        self,
        account_id: str,
        cadence: DigestCadence,
        topics: tuple[str, ...] = (),
        now: datetime | None = None,
    ) -> list[ContentEntry]:
        now = now or utcnow()
        start, end = digest_window(cadence, now)
        entries = self.db.content_in_window(
            account_id, date_from=to_iso(start), date_to=to_iso(end), topic_slugs=topics
        )
        entries = [e for e in entries if is_visible(e, now)]
        if cadence != DigestCadence.WEEKLY:
            entries = entries[:DAILY_ITEM_LIMIT]
        return entries

    def _to_item(self, entry: ContentEntry) -> DigestItem:
        item = entry.item
        summary = html_to_text(item.summary)
        if len(summary) > SUMMARY_SNIPPET_CHARS:
            summary = summary[: SUMMARY_SNIPPET_CHARS - 3] + "..."
        return DigestItem(
            id=item.id,
            title=item.title,
            summary=summary,
            url=f"{self.base_url}/view/{item.id}",
            original_url=item.url,
            author=item.author,
            thumbnail_url=item.thumbnail_url,
            topic=entry.topic.name if entry.topic else None,
            topic_color=entry.topic.color if entry.topic else None,
        )

    async def insight(self, items: list[DigestItem]) -> str:
        """One paragraph on the themes across `items`; never raises."""
        if not items:
            return FALLBACK_INSIGHT
        listing = "\n".join(f"{i}. {d.title}: {d.summary}" for i, d in enumerate(items, 1))
        prompt = (
            "Based on these content summaries, generate a single insightful paragraph "
            "(2-3 sentences) about the key trends or themes:\n\n"
            f"{listing}\n\n"
            "Write a natural, engaging insight paragraph. No JSON, just the text."
        )
        try:
            response = await self.llm.chat([{"role": "user", "content": prompt}], max_tokens=300)
        except LLMError as e:
            logger.warning(f"Digest insight failed, using fallback: {e}")
            return FALLBACK_INSIGHT
        return response.content.strip() or FALLBACK_INSIGHT

    async def generate(
        self,
        prefs: UserPreferences,
        cadence: DigestCadence,
        now: datetime | None = None,
    ) -> GeneratedDigest:
        now = now or utcnow()
        account_id = prefs.account_id
        entries = self.select_content(account_id, cadence, prefs.digest_topics, now)
        items = [self._to_item(e) for e in entries]
        subject = digest_subject(cadence, now)

        if not items:
            return GeneratedDigest(cadence=cadence, subject=subject, html="", item_count=0)

        if cadence == DigestCadence.WEEKLY:
            start, _ = digest_window(cadence, now)
            colors = {e.topic.name: e.topic.color for e in entries if e.topic}
            counts = Counter(e.topic.name for e in entries if e.topic)
            trends = [
                {"topic": name, "count": count, "color": colors.get(name)}
                for name, count in counts.most_common(TREND_LIMIT)
            ]
            html = render_email(
                "digest_weekly.html",
                week_range=f"{start.strftime('%b')} {start.day} - {_long_date(now)}",
                week_summary=await self.insight(items[:WEEKLY_INSIGHT_ITEMS]),
                trends=trends,
                top_content=items[:WEEKLY_TOP_ITEMS],
                total_items=len(items),
                saved_items=self.db.count_saved_since(account_id, to_iso(start)),
                base_url=self.base_url,
            )
        else:
            html = render_email(
                "digest_daily.html",
                heading="Morning Digest" if cadence == DigestCadence.MORNING else "Evening Digest",
                date=_long_date(now),
                top_content=items,
                ai_insight=await self.insight(items),
                base_url=self.base_url,
            )

        return GeneratedDigest(cadence=cadence, subject=subject, html=html, item_count=len(items), items=items)
