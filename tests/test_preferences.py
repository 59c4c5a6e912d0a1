"""Tests for digest preferences."""

import pytest

from radar.core.errors import ValidationError
from radar.core.models import DigestFrequency
from radar.core.preferences import get_preferences, normalize_time, save_preferences


def test_defaults_when_never_saved(db, account_id):
    prefs = get_preferences(db, account_id)
    assert prefs.digest_enabled is True
    assert prefs.digest_frequency == DigestFrequency.DAILY
    assert prefs.digest_time == "06:00:00"
    assert prefs.onboarding_complete is False
    assert db.get_preferences(account_id) is None


def test_save_and_merge(db, account_id):
    save_preferences(db, account_id, {"digest_frequency": "both", "digest_topics": ["ai"]})
    prefs = save_preferences(db, account_id, {"digest_time": "07:30"})

    assert prefs.digest_frequency == DigestFrequency.BOTH
    assert prefs.digest_topics == ("ai",)
    assert prefs.digest_time == "07:30:00"


def test_timezone_completes_onboarding(db, account_id):
    prefs = save_preferences(db, account_id, {"digest_timezone": "Europe/Berlin"})
    assert prefs.onboarding_complete is True
    assert prefs.to_dict()["onboarding_complete"] is True


@pytest.mark.parametrize(
    "payload",
    [
        {"digest_frequency": "hourly"},
        {"digest_time": "25:00"},
        {"digest_timezone": "Mars/Olympus"},
        {"digest_enabled": "yes"},
        {"digest_topics": "ai"},
        {"email_address": "not-an-email"},
        {"digest_timezone": 5},
        {"digest_time": 730},
        {"email_address": ["me@example.com"]},
        {"digest_frequency": ["daily"]},
    ],
)
def test_invalid_values_rejected(db, account_id, payload):
    with pytest.raises(ValidationError):
        save_preferences(db, account_id, payload)
    assert db.get_preferences(account_id) is None


def test_email_override_cleared(db, account_id):
    save_preferences(db, account_id, {"email_address": "me@example.com"})
    prefs = save_preferences(db, account_id, {"email_address": ""})
    assert prefs.email_address is None


def test_normalize_time():
    assert normalize_time("06:00") == "06:00:00"
    assert normalize_time("23:59:30") == "23:59:30"
