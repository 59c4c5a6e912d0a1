"""Tests for tweet webhook ingestion."""

import pytest

from radar.core.errors import NotFound, ValidationError
from radar.core.ingest import ingest_tweets, tweet_external_id


def _tweet(tweet_id="1", **overrides):
    tweet = {
        "id": tweet_id,
        "text": f"Tweet {tweet_id}",
        "author_username": "radar",
        "author_name": "Radar HQ",
        "created_at": "Wed Oct 10 20:19:24 +0000 2018",
        "metrics": {"likes": 3},
    }
    tweet.update(overrides)
    return tweet


def test_inserts_and_skips_duplicates(db, account_id):
    first = ingest_tweets(db, account_id, [_tweet("1"), _tweet("2")])
    assert first.to_dict() == {"success": True, "inserted": 2, "skipped": 0, "errors": []}

    second = ingest_tweets(db, account_id, [_tweet("2"), _tweet("3")])
    assert second.inserted == 1
    assert second.skipped == 1


def test_tweet_fields_mapped(db, account_id):
    ingest_tweets(db, account_id, [_tweet("42")])
    entry = db.query_content(account_id)[0]
    item = entry.item
    assert item.external_id == tweet_external_id("42") == "twitter:42"
    assert item.title == "Radar HQ (@radar)"
    assert item.url == "https://x.com/radar/status/42"
    assert item.published_at.startswith("2018-10-10T20:19:24")
    assert item.metadata.username == "radar"
    assert item.metadata.metrics == {"likes": 3}


def test_bad_tweet_isolated(db, account_id):
    result = ingest_tweets(db, account_id, [_tweet("1", text=""), _tweet("2"), "junk"])
    assert result.inserted == 1
    assert len(result.errors) == 2


def test_unparseable_date_is_an_error(db, account_id):
    result = ingest_tweets(db, account_id, [_tweet("1", created_at="yesterday-ish")])
    assert result.inserted == 0
    assert result.errors


def test_same_tweet_in_two_accounts(db, account_id, other_account_id):
    ingest_tweets(db, account_id, [_tweet("7")])
    assert ingest_tweets(db, other_account_id, [_tweet("7")]).inserted == 1


def test_validation(db, account_id):
    with pytest.raises(ValidationError):
        ingest_tweets(db, None, [_tweet()])
    with pytest.raises(ValidationError):
        ingest_tweets(db, account_id, [])
    with pytest.raises(NotFound):
        ingest_tweets(db, "no-such-account", [_tweet()])
    with pytest.raises(ValidationError):
        ingest_tweets(db, account_id, [_tweet()], topic_id="no-such-topic")


def test_wrongly_typed_fields_isolated(db, account_id):
    tweets = [
        _tweet("1"),
        _tweet("2", author_username=12345),
        _tweet("3", created_at=1700000000),
        _tweet("4"),
    ]
    result = ingest_tweets(db, account_id, tweets)
    assert result.inserted == 2
    assert len(result.errors) == 2
    assert "author_username must be a string" in result.errors[0]
    assert "unparseable created_at" in result.errors[1]


@pytest.mark.parametrize("bad", [{"id": None}, {"id": ["x"]}, {"text": {"body": "hi"}}, {"url": 7}])
def test_malformed_tweet_recorded(db, account_id, bad):
    result = ingest_tweets(db, account_id, [_tweet("9", **bad)])
    assert result.inserted == 0
    assert len(result.errors) == 1
