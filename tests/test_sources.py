"""Tests for the source registry and its per-account cap."""

import pytest

from radar.core.errors import NotFound, QuotaExceeded, ValidationError
from radar.core.models import SourceType
from radar.core.sources import QuotaStatus, SourceRegistry


@pytest.fixture
def registry(db):
    return SourceRegistry(db, limit=3, warn_threshold=2)


def _rss(n):
    return {"name": f"Feed {n}", "type": "rss", "url": f"https://example.com/{n}.xml"}


class TestQuotaStatus:
    def test_flags(self):
        assert QuotaStatus(count=1, limit=3, warn_threshold=2).to_dict() == {
            "count": 1,
            "limit": 3,
            "near_limit": False,
            "at_limit": False,
        }
        status = QuotaStatus(count=3, limit=3, warn_threshold=2)
        assert status.near_limit is True
        assert status.at_limit is True


class TestCreate:
    def test_create_and_list(self, registry, account_id):
        source = registry.create(account_id, {**_rss(1), "metadata": {"lang": "en"}})
        assert source.type == SourceType.RSS
        assert source.is_active is True
        assert source.metadata == {"lang": "en"}
        assert [s.id for s in registry.list(account_id)] == [source.id]

    def test_missing_fields_rejected(self, registry, account_id):
        with pytest.raises(ValidationError):
            registry.create(account_id, {"name": "No url", "type": "rss"})

    @pytest.mark.parametrize(
        "field, value",
        [("name", 123), ("url", ["https://example.com"]), ("type", 1), ("channel_id", {"id": "x"}), ("topic_id", 9)],
    )
    def test_non_string_fields_rejected(self, registry, account_id, field, value):
        with pytest.raises(ValidationError, match=f"{field} must be a string"):
            registry.create(account_id, {**_rss(1), field: value})
        assert registry.quota(account_id).count == 0

    def test_unknown_type_rejected(self, registry, account_id):
        with pytest.raises(ValidationError):
            registry.create(account_id, {**_rss(1), "type": "podcast"})

    def test_foreign_topic_rejected(self, db, registry, account_id, other_account_id):
        topic_id = db.insert_topic(
            account_id=other_account_id, name="Theirs", slug="theirs", color=None, icon=None
        )
        with pytest.raises(ValidationError):
            registry.create(account_id, {**_rss(1), "topic_id": topic_id})

    def test_cap_enforced(self, registry, account_id):
        for n in range(3):
            registry.create(account_id, _rss(n))
        with pytest.raises(QuotaExceeded) as exc:
            registry.create(account_id, _rss(99))
        assert exc.value.limit == 3
        assert exc.value.count == 3
        assert exc.value.to_dict()["limit"] == 3
        assert registry.quota(account_id).count == 3

    def test_cap_is_per_account(self, registry, account_id, other_account_id):
        for n in range(3):
            registry.create(account_id, _rss(n))
        registry.create(other_account_id, _rss(1))
        assert registry.quota(other_account_id).count == 1

    def test_deleting_frees_a_slot(self, registry, account_id):
        created = [registry.create(account_id, _rss(n)) for n in range(3)]
        registry.delete(account_id, created[0].id)
        registry.create(account_id, _rss(4))
        assert registry.quota(account_id).count == 3


class TestUpdateDelete:
    def test_update_fields(self, registry, account_id):
        source = registry.create(account_id, _rss(1))
        updated = registry.update(account_id, source.id, {"name": "Renamed", "type": "youtube"})
        assert updated.name == "Renamed"
        # type is not mutable
        assert updated.type == SourceType.RSS

    def test_update_other_account_not_found(self, registry, account_id, other_account_id):
        source = registry.create(account_id, _rss(1))
        with pytest.raises(NotFound):
            registry.update(other_account_id, source.id, {"name": "Hijack"})

    def test_empty_name_rejected(self, registry, account_id):
        source = registry.create(account_id, _rss(1))
        with pytest.raises(ValidationError):
            registry.update(account_id, source.id, {"name": "  "})

    def test_delete_other_account_not_found(self, registry, account_id, other_account_id):
        source = registry.create(account_id, _rss(1))
        with pytest.raises(NotFound):
            registry.delete(other_account_id, source.id)
        assert registry.quota(account_id).count == 1

    def test_non_string_update_rejected(self, registry, account_id):
        source = registry.create(account_id, _rss(1))
        with pytest.raises(ValidationError):
            registry.update(account_id, source.id, {"url": 42})
        with pytest.raises(ValidationError):
            registry.update(account_id, source.id, {"username": ["radar"]})
        assert registry.list(account_id)[0].url == "https://example.com/1.xml"
