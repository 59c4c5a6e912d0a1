"""Cross-posting highlights to X (Twitter API v2)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

X_TWEETS_URL = "https://api.x.com/2/tweets"

MAX_POST_LENGTH = 280
# t.co link plus the blank line before it
URL_SPACE = 25
SAFETY_MARGIN = 4


class SocialPostError(Exception):
    """The social network refused or never received the post."""


def compose_post_text(title: str, summary: str | None, url: str, hashtags: list[str] | None = None) -> str:
    """Title, optionally a trimmed summary, then link and hashtags, within 280 chars."""
    tags = [t.lstrip("#") for t in (hashtags or []) if t.strip("# ")]
    hashtag_text = ("\n\n" + " ".join(f"#{t}" for t in tags)) if tags else ""
    available = MAX_POST_LENGTH - URL_SPACE - len(hashtag_text) - SAFETY_MARGIN

    text = title
    if summary:
        summary_space = available - len(title) - 3
        if summary_space > 30:
            if len(summary) > summary_space:
                summary = summary[: summary_space - 3] + "..."
            text = f"{title}\n\n{summary}"

    if len(text) > available:
        text = text[: available - 3] + "..."

    return f"{text}\n\n{url}{hashtag_text}"


class SocialClient:
    def __init__(self, bearer_token: str, timeout: float = 15.0) -> None:
        self._token = bearer_token
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._token)

    async def post(self, text: str) -> str:
        """Publish `text` and return the new post id."""
        if not self._token:
            raise SocialPostError("X API credentials not configured")

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.post(
                    X_TWEETS_URL,
                    headers={"Authorization": f"Bearer {self._token}"},
                    json={"text": text},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise SocialPostError(f"X rejected post: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise SocialPostError(f"X unreachable: {type(e).__name__}") from e

        post_id = (response.json().get("data") or {}).get("id")
        if not post_id:
            raise SocialPostError("X response carried no post id")
        return post_id
