"""Full-article extraction for content backfill.

Fetches the source page with httpx and pulls the readable article body out
with trafilatura, as HTML so the reader view keeps paragraphs and links.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

import httpx
import trafilatura
from trafilatura.settings import use_config

logger = logging.getLogger(__name__)


class FetchErrorType(str, Enum):
    """Why a fetch produced no article."""

    TIMEOUT = "timeout"
    HTTP_4XX = "http_4xx"
    HTTP_5XX = "http_5xx"
    PAYWALL = "paywall"
    JS_REQUIRED = "js_required"
    EXTRACTION_FAILED = "extraction_failed"
    CONNECTION_ERROR = "connection_error"
    NO_CONTENT = "no_content"


@dataclass
class FetchResult:
    success: bool
    content: str | None = None
    title: str | None = None
    char_count: int = 0
    error_type: FetchErrorType | None = None
    error_message: str | None = None
    http_status: int | None = None


# Known paywall domains
PAYWALL_DOMAINS = {
    "medium.com",
    "nytimes.com",
    "wsj.com",
    "ft.com",
    "economist.com",
    "bloomberg.com",
    "washingtonpost.com",
    "theathletic.com",
    "businessinsider.com",
    "seekingalpha.com",
}

# Pages that only render with JavaScript
JS_REQUIRED_DOMAINS = {
    "twitter.com",
    "x.com",
    "instagram.com",
    "facebook.com",
    "linkedin.com",
}

MIN_CONTENT_LENGTH = 100

# 10MB
MAX_CONTENT_SIZE = 10 * 1024 * 1024

DEFAULT_TIMEOUT = 15.0

USER_AGENT = "Mozilla/5.0 (compatible; RadarBot/1.0)"


def get_domain(url: str) -> str:
    domain = urlparse(url).netloc.lower()
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def _matches(domain: str, candidates: set[str]) -> bool:
    return any(domain == d or domain.endswith("." + d) for d in candidates)


def _http_failure(status: int) -> FetchResult:
    server_side = status >= 500
    return FetchResult(
        success=False,
        error_type=FetchErrorType.HTTP_5XX if server_side else FetchErrorType.HTTP_4XX,
        error_message=f"{'Server' if server_side else 'Client'} error: {status}",
        http_status=status,
    )


class ContentFetcher:
    """Fetches a page and extracts its main article as HTML.

    Every request carries a hard deadline (`timeout`), applied to the whole
    request rather than per read, so a slow server cannot hold a request open.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout
        self._config = use_config()
        self._config.set("DEFAULT", "EXTRACTION_TIMEOUT", "0")
        self._config.set("DEFAULT", "MIN_OUTPUT_SIZE", str(MIN_CONTENT_LENGTH))
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                limits=httpx.Limits(max_connections=10),
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.9",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _check_domain_restrictions(self, url: str) -> FetchResult | None:
        domain = get_domain(url)
        if _matches(domain, PAYWALL_DOMAINS):
            return FetchResult(
                success=False,
                error_type=FetchErrorType.PAYWALL,
                error_message=f"Domain {domain} requires subscription",
            )
        if _matches(domain, JS_REQUIRED_DOMAINS):
            return FetchResult(
                success=False,
                error_type=FetchErrorType.JS_REQUIRED,
                error_message=f"Domain {domain} requires JavaScript rendering",
            )
        return None

    def _extract(self, html: str, url: str) -> tuple[str | None, str | None]:
        content = trafilatura.extract(
            html,
            url=url,
            config=self._config,
            output_format="html",
            include_comments=False,
            include_tables=True,
            include_links=True,
            favor_recall=True,
        )
        metadata = trafilatura.extract_metadata(html, default_url=url)
        title = metadata.title if metadata is not None else None
        return content, title

    async def fetch(self, url: str) -> FetchResult:
        """Fetch `url` and extract the article. Never raises for network problems."""
        restriction = self._check_domain_restrictions(url)
        if restriction:
            return restriction

        try:
            client = await self._get_client()
            response = await asyncio.wait_for(client.get(url), timeout=self.timeout)

            if response.status_code >= 400:
                return _http_failure(response.status_code)

            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_CONTENT_SIZE:
                return FetchResult(
                    success=False,
                    error_type=FetchErrorType.EXTRACTION_FAILED,
                    error_message=f"Content too large: {content_length} bytes",
                    http_status=response.status_code,
                )

            html = response.text
            # trafilatura is CPU-bound
            content, title = await asyncio.get_running_loop().run_in_executor(
                None, self._extract, html, url
            )

            if not content:
                return FetchResult(
                    success=False,
                    error_type=FetchErrorType.NO_CONTENT,
                    error_message="No content could be extracted",
                    http_status=response.status_code,
                )

            return FetchResult(
                success=True,
                content=content,
                title=title,
                char_count=len(content),
                http_status=response.status_code,
            )

        except (httpx.TimeoutException, asyncio.TimeoutError):
            return FetchResult(
                success=False,
                error_type=FetchErrorType.TIMEOUT,
                error_message=f"Request timed out after {self.timeout}s",
            )

        except httpx.ConnectError as e:
            return FetchResult(
                success=False,
                error_type=FetchErrorType.CONNECTION_ERROR,
                error_message=f"Connection error: {e}",
            )

        except Exception as e:
            logger.exception(f"Unexpected error fetching {url}")
            return FetchResult(
                success=False,
                error_type=FetchErrorType.EXTRACTION_FAILED,
                error_message=f"Unexpected error: {type(e).__name__}: {e}",
            )

