"""Shared fixtures: an in-memory database and a provisioned account."""

from datetime import datetime, timedelta, timezone

import pytest

from radar.core.settings import Settings
from radar.core.storage import connect
from radar.core.timeutil import to_iso

NOW = datetime(2026, 10, 18, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Create an in-memory database for testing."""
    return connect(":memory:")


@pytest.fixture
def account_id(db):
    db.upsert_profile("user-1", "owner@example.com", "Owner")
    return db.provision_account(
        user_id="user-1",
        name="Owner",
        slug_candidates=["radar-user-1"],
        owner_email="owner@example.com",
    )


@pytest.fixture
def other_account_id(db):
    db.upsert_profile("user-2", "other@example.com", "Other")
    return db.provision_account(
        user_id="user-2",
        name="Other",
        slug_candidates=["radar-user-2"],
        owner_email="other@example.com",
    )


@pytest.fixture
def make_item(db):
    """Factory inserting a content item; returns its id."""
    counter = {"n": 0}

    def _make(account_id, *, hours_ago=1, **fields):
        counter["n"] += 1
        fields.setdefault("type", "article")
        fields.setdefault("title", f"Item {counter['n']}")
        fields.setdefault("url", f"https://example.com/{counter['n']}")
        fields.setdefault("published_at", to_iso(NOW - timedelta(hours=hours_ago)))
        return db.insert_content(account_id=account_id, **fields)

    return _make


@pytest.fixture
def settings():
    return Settings(
        app_env="test",
        db_path=":memory:",
        base_url="https://radar.test",
        auth_url="https://auth.test",
        auth_service_key="service-key",
        cron_secret="cron-secret",
        ingest_api_key="ingest-key",
        resend_api_key="re_test",
        email_from="Radar <digest@radar.test>",
        openai_api_key="sk-test",
        digest_model="gpt-4.1-mini",
        youtube_api_key="yt-key",
        x_bearer_token="",
        max_sources_per_account=50,
        source_warn_threshold=40,
        invite_expiry_days=7,
        invite_reminder_max=3,
        invite_reminder_interval_hours=24,
        full_article_timeout=5.0,
        lookup_timeout=5.0,
        job_log_enabled=True,
    )
