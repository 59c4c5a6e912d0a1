"""YouTube Data API v3 client for resolving channels."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"


class YouTubeError(Exception):
    pass


@dataclass(frozen=True)
class ChannelInfo:
    channel_id: str
    name: str
    image_url: str | None
    description: str
    subscriber_count: int | None


class YouTubeClient:
    def __init__(self, api_key: str, timeout: float = 8.0) -> None:
        self._api_key = api_key
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get(self, client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await client.get(
                f"{YOUTUBE_API_URL}/{path}", params={**params, "key": self._api_key}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise YouTubeError(f"YouTube API error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise YouTubeError(f"YouTube API unreachable: {type(e).__name__}") from e
        return response.json()

    async def resolve_channel(self, identifier: str, kind: str) -> ChannelInfo | None:
        """Resolve a channel id, @handle, custom name or legacy username.

        `kind` is one of "id", "handle", "custom", "user". Falls back to a
        channel search when the direct lookups find nothing.
        """
        if not self._api_key:
            raise YouTubeError("YOUTUBE_API_KEY is not set")

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            channel_id = identifier if kind == "id" else None

            if channel_id is None and kind == "handle":
                data = await self._get(client, "channels", {"forHandle": identifier, "part": "id"})
                channel_id = _first_id(data)

            if channel_id is None and kind in ("user", "custom"):
                data = await self._get(client, "channels", {"forUsername": identifier, "part": "id"})
                channel_id = _first_id(data)

            if channel_id is None:
                data = await self._get(
                    client,
                    "search",
                    {"q": identifier, "type": "channel", "part": "snippet", "maxResults": 1},
                )
                items = data.get("items") or []
                if items:
                    channel_id = (items[0].get("id") or {}).get("channelId")

            if channel_id is None:
                return None

            data = await self._get(client, "channels", {"id": channel_id, "part": "snippet,statistics"})

        items = data.get("items") or []
        if not items:
            return None
        snippet = items[0].get("snippet") or {}
        thumbs = snippet.get("thumbnails") or {}
        image = next(
            (thumbs[size]["url"] for size in ("high", "medium", "default") if size in thumbs),
            None,
        )
        subscribers = (items[0].get("statistics") or {}).get("subscriberCount")
        return ChannelInfo(
            channel_id=channel_id,
            name=html.unescape(snippet.get("title", "")),
            image_url=image,
            description=html.unescape(snippet.get("description", ""))[:300],
            subscriber_count=int(subscribers) if subscribers else None,
        )


def _first_id(data: dict[str, Any]) -> str | None:
    items = data.get("items") or []
    return items[0].get("id") if items else None
