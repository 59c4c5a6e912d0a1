"""Tests for the content store: feed query, full-article backfill and summaries."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import NOW
from radar.core import content
from radar.core.content_fetcher import FetchErrorType, FetchResult
from radar.core.errors import NotFound, UpstreamFailure, ValidationError
from radar.core.llm_providers import ChatResponse, LLMError
from radar.core.timeutil import to_iso


def _ids(entries):
    return [e.item.id for e in entries]


def _reply(text):
    return ChatResponse(
        content=text, model="gpt-4.1-mini", tokens_input=10, tokens_output=20,
        finish_reason="stop", latency_ms=5,
    )


class TestQueryContent:
    def test_newest_first(self, db, account_id, make_item):
        old = make_item(account_id, hours_ago=10)
        new = make_item(account_id, hours_ago=1)
        assert _ids(content.query_content(db, account_id, now=NOW)) == [new, old]

    def test_scoped_to_account(self, db, account_id, other_account_id, make_item):
        mine = make_item(account_id)
        make_item(other_account_id)
        assert _ids(content.query_content(db, account_id, now=NOW)) == [mine]

    def test_topic_filter(self, db, account_id, make_item):
        topic_id = db.insert_topic(account_id=account_id, name="AI", slug="ai", color=None, icon=None)
        tagged = make_item(account_id, topic_id=topic_id)
        make_item(account_id)
        assert _ids(content.query_content(db, account_id, topic_slug="ai", now=NOW)) == [tagged]

    def test_unknown_topic_is_empty(self, db, account_id, make_item):
        make_item(account_id)
        assert content.query_content(db, account_id, topic_slug="nope", now=NOW) == []

    def test_search_is_literal(self, db, account_id, make_item):
        hit = make_item(account_id, title="100% organic")
        make_item(account_id, title="1000 things")
        assert _ids(content.query_content(db, account_id, search="100%", now=NOW)) == [hit]

    def test_search_matches_summary(self, db, account_id, make_item):
        hit = make_item(account_id, title="Plain", summary="About Quantum computing")
        make_item(account_id, title="Other")
        assert _ids(content.query_content(db, account_id, search="quantum", now=NOW)) == [hit]

    def test_dismissed_hidden(self, db, account_id, make_item):
        keep = make_item(account_id)
        gone = make_item(account_id)
        db.upsert_interaction(account_id, gone, "dismiss")
        assert _ids(content.query_content(db, account_id, now=NOW)) == [keep]

    def test_expired_prediction_hidden(self, db, account_id, make_item):
        open_market = make_item(
            account_id, type="prediction", metadata={"endDate": to_iso(NOW + timedelta(days=3))}
        )
        make_item(account_id, type="prediction", metadata={"endDate": to_iso(NOW - timedelta(days=1))})
        no_end = make_item(account_id, type="prediction", metadata={})
        assert set(_ids(content.query_content(db, account_id, now=NOW))) == {open_market, no_end}

    def test_saved_only(self, db, account_id, make_item):
        saved = make_item(account_id)
        make_item(account_id)
        db.upsert_interaction(account_id, saved, "save")
        entries = content.query_content(db, account_id, saved_only=True, now=NOW)
        assert _ids(entries) == [saved]
        assert entries[0].interaction.is_saved is True

    def test_page_can_underfill(self, db, account_id, make_item):
        first = make_item(account_id, hours_ago=1)
        make_item(account_id, hours_ago=2)
        db.upsert_interaction(account_id, first, "dismiss")
        page = content.query_content(db, account_id, limit=1, now=NOW)
        assert page == []

    def test_limit_clamped(self, db, account_id, make_item):
        make_item(account_id)
        assert len(content.query_content(db, account_id, limit=10_000, now=NOW)) == 1

    def test_bad_paging_rejected(self, db, account_id):
        with pytest.raises(ValidationError):
            content.query_content(db, account_id, limit=0)
        with pytest.raises(ValidationError):
            content.query_content(db, account_id, offset=-1)

    def test_entry_carries_joins(self, db, account_id, make_item):
        topic_id = db.insert_topic(account_id=account_id, name="AI", slug="ai", color="#f00", icon=None)
        item_id = make_item(account_id, topic_id=topic_id)
        data = content.query_content(db, account_id, now=NOW)[0].to_dict()
        assert data["id"] == item_id
        assert data["topic"]["slug"] == "ai"
        assert data["source"] is None
        assert data["interaction"] is None


class TestGetDelete:
    def test_other_account_not_found(self, db, account_id, other_account_id, make_item):
        item_id = make_item(account_id)
        with pytest.raises(NotFound):
            content.get_content(db, other_account_id, item_id)
        with pytest.raises(NotFound):
            content.delete_content(db, other_account_id, item_id)
        assert content.get_content(db, account_id, item_id).item.id == item_id

    def test_delete(self, db, account_id, make_item):
        item_id = make_item(account_id)
        content.delete_content(db, account_id, item_id)
        assert db.get_content_entry(account_id, item_id) is None


@pytest.mark.asyncio
class TestFullArticle:
    @pytest.fixture
    def fetcher(self):
        fetcher = MagicMock()
        fetcher.fetch = AsyncMock(
            return_value=FetchResult(success=True, content="<p>Full body</p>", char_count=16)
        )
        return fetcher

    async def test_backfills_and_stores(self, db, account_id, make_item, fetcher):
        item_id = make_item(account_id, summary="Short summary")
        body = await content.get_full_article(db, fetcher, account_id, item_id)
        assert body == "<p>Full body</p>"
        assert db.get_content_entry(account_id, item_id).item.content == "<p>Full body</p>"
        fetcher.fetch.assert_awaited_once()

    async def test_rich_content_not_refetched(self, db, account_id, make_item, fetcher):
        long_body = "x" * content.RICH_CONTENT_MIN_CHARS
        item_id = make_item(account_id, content=long_body)
        assert await content.get_full_article(db, fetcher, account_id, item_id) == long_body
        fetcher.fetch.assert_not_awaited()

    async def test_fetch_failure_falls_back(self, db, account_id, make_item, fetcher):
        fetcher.fetch.return_value = FetchResult(success=False, error_type=FetchErrorType.TIMEOUT)
        item_id = make_item(account_id, summary="Only the summary")
        assert await content.get_full_article(db, fetcher, account_id, item_id) == "Only the summary"
        assert db.get_content_entry(account_id, item_id).item.content is None

    async def test_non_article_rejected(self, db, account_id, make_item, fetcher):
        item_id = make_item(account_id, type="video")
        with pytest.raises(ValidationError):
            await content.get_full_article(db, fetcher, account_id, item_id)


@pytest.mark.asyncio
class TestSummarize:
    @pytest.fixture
    def llm(self):
        llm = MagicMock()
        reply = json.dumps({"summary": "Two sentences.", "keyPoints": ["a", "b", "c"]})
        llm.chat = AsyncMock(return_value=_reply(reply))
        return llm

    async def test_generates_and_caches(self, db, account_id, make_item, llm):
        item_id = make_item(account_id, summary="<p>Some text</p>")
        first = await content.summarize_content(db, llm, account_id, item_id)
        assert first == {"summary": "Two sentences.", "key_points": ["a", "b", "c"], "cached": False}

        stored = db.get_content_entry(account_id, item_id).item.metadata
        assert stored.ai_summary == "Two sentences."
        assert stored.summarized_at is not None

        second = await content.summarize_content(db, llm, account_id, item_id)
        assert second["cached"] is True
        assert llm.chat.await_count == 1

    async def test_non_json_reply_truncated(self, db, account_id, make_item, llm):
        llm.chat.return_value = _reply("plain text " * 40)
        item_id = make_item(account_id)
        result = await content.summarize_content(db, llm, account_id, item_id)
        assert len(result["summary"]) == 200
        assert result["key_points"] == []

    async def test_llm_failure_is_upstream(self, db, account_id, make_item, llm):
        llm.chat.side_effect = LLMError("boom", provider="openai")
        item_id = make_item(account_id)
        with pytest.raises(UpstreamFailure):
            await content.summarize_content(db, llm, account_id, item_id)


def test_html_to_text():
    assert content.html_to_text("<p>Hello <b>world</b></p>\n<p>again</p>") == "Hello world again"
    assert content.html_to_text(None) == ""
