"""Channel discovery: turn a pasted URL into a source suggestion.

YouTube URLs resolve through the Data API, X/Twitter URLs yield a username,
and anything else is treated as a web page or feed: either the URL parses as
a feed itself or the page advertises one via <link rel="alternate">.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

import feedparser
import httpx
from bs4 import BeautifulSoup

from radar.core.errors import NotFound, UpstreamFailure, ValidationError, expect_str
from radar.core.models import SourceType
from radar.providers.youtube import YouTubeClient, YouTubeError

logger = logging.getLogger(__name__)

YOUTUBE_PATTERNS = [
    (re.compile(r"youtube\.com/channel/([A-Za-z0-9_-]+)"), "id"),
    (re.compile(r"youtube\.com/@([A-Za-z0-9_.-]+)"), "handle"),
    (re.compile(r"youtube\.com/c/([A-Za-z0-9_-]+)"), "custom"),
    (re.compile(r"youtube\.com/user/([A-Za-z0-9_-]+)"), "user"),
]

TWITTER_PATTERN = re.compile(r"(?:twitter\.com|x\.com)/([A-Za-z0-9_]+)")

FEED_TYPES = ("application/rss+xml", "application/atom+xml")

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, text/html;q=0.8"


@dataclass
class SourceSuggestion:
    type: SourceType
    name: str
    url: str
    image_url: str | None = None
    description: str | None = None
    channel_id: str | None = None
    username: str | None = None
    feed_url: str | None = None
    subscriber_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


def _host(url: str) -> str:
    if "://" not in url:
        url = "https://" + url
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def classify_url(url: str) -> SourceType:
    host = _host(url.strip())
    if host in ("youtube.com", "m.youtube.com", "youtu.be"):
        return SourceType.YOUTUBE
    if host in ("twitter.com", "x.com", "mobile.twitter.com"):
        return SourceType.TWITTER
    return SourceType.RSS


def parse_youtube_url(url: str) -> tuple[str, str] | None:
    """(identifier, kind) for the channel URL forms we understand."""
    for pattern, kind in YOUTUBE_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1), kind
    return None


def lookup_twitter(url: str) -> SourceSuggestion:
    match = TWITTER_PATTERN.search(url)
    if not match:
        raise ValidationError("Could not extract username from Twitter/X URL")
    username = match.group(1)
    return SourceSuggestion(
        type=SourceType.TWITTER,
        name=f"@{username}",
        url=f"https://x.com/{username}",
        username=username,
        description="Twitter/X profile - name will be updated when content is fetched",
    )


async def lookup_youtube(url: str, youtube: YouTubeClient) -> SourceSuggestion:
    parsed = parse_youtube_url(url)
    if parsed is None:
        raise ValidationError("Could not extract channel from YouTube URL")
    if not youtube.configured:
        raise UpstreamFailure("YouTube API not configured", service="youtube")

    identifier, kind = parsed
    try:
        channel = await youtube.resolve_channel(identifier, kind)
    except YouTubeError as e:
        raise UpstreamFailure(str(e), service="youtube") from e
    if channel is None:
        raise NotFound("Could not find YouTube channel")

    return SourceSuggestion(
        type=SourceType.YOUTUBE,
        name=channel.name,
        url=f"https://www.youtube.com/channel/{channel.channel_id}",
        image_url=channel.image_url,
        description=channel.description,
        channel_id=channel.channel_id,
        subscriber_count=channel.subscriber_count,
    )


def discover_feed_links(page_html: str, base_url: str) -> list[dict[str, str | None]]:
    """Feeds advertised by a page's <link rel="alternate"> tags, absolute URLs."""
    soup = BeautifulSoup(page_html, "html.parser")
    feeds = []
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "alternate" not in [r.lower() for r in rel]:
            continue
        if (link.get("type") or "").lower() not in FEED_TYPES:
            continue
        feeds.append({"url": urljoin(base_url, link["href"]), "title": link.get("title")})
    return feeds


def _page_title(page_html: str) -> str | None:
    soup = BeautifulSoup(page_html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return None


def _parse_feed(text: str) -> Any | None:
    parsed = feedparser.parse(text)
    if parsed.get("version") or parsed.get("entries"):
        return parsed
    return None


async def lookup_rss(url: str, timeout: float) -> SourceSuggestion:
    headers = {"Accept": FEED_ACCEPT, "User-Agent": "RadarBot/1.0 (Feed Discovery)"}
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=headers) as client:
            response = await asyncio.wait_for(client.get(url), timeout=timeout)
            response.raise_for_status()
            body = response.text

            feed = _parse_feed(body)
            if feed is not None:
                title = feed.feed.get("title") or "RSS Feed"
                return SourceSuggestion(type=SourceType.RSS, name=title, url=url, feed_url=url)

            links = discover_feed_links(body, str(response.url))
            if not links:
                raise NotFound("No RSS feed found at this URL")

            candidate = links[0]
            feed_response = await asyncio.wait_for(client.get(candidate["url"]), timeout=timeout)
            feed_response.raise_for_status()
            feed = _parse_feed(feed_response.text)
    except (httpx.TimeoutException, asyncio.TimeoutError) as e:
        raise UpstreamFailure(f"Timed out fetching {url}", service="feed") from e
    except httpx.HTTPError as e:
        raise UpstreamFailure(f"Could not fetch {url}: {e}", service="feed") from e

    if feed is None:
        raise NotFound("No RSS feed found at this URL")

    name = candidate["title"] or feed.feed.get("title") or _page_title(body) or "RSS Feed"
    return SourceSuggestion(type=SourceType.RSS, name=name, url=url, feed_url=candidate["url"])


async def lookup_source(url: Any, youtube: YouTubeClient, timeout: float) -> SourceSuggestion:
    url = expect_str(url, "url")
    if not url:
        raise ValidationError("URL is required")
    kind = classify_url(url)
    logger.info(f"Looking up {kind.value} source for {url}")
    if kind == SourceType.YOUTUBE:
        return await lookup_youtube(url, youtube)
    if kind == SourceType.TWITTER:
        return lookup_twitter(url)
    return await lookup_rss(url, timeout)
