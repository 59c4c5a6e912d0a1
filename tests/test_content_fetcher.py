"""Tests for content_fetcher.py"""

import asyncio

import httpx
import pytest

from radar.core.content_fetcher import (
    JS_REQUIRED_DOMAINS,
    PAYWALL_DOMAINS,
    ContentFetcher,
    FetchErrorType,
    FetchResult,
    get_domain,
)

ARTICLE_HTML = """<html><head><title>Quiet Progress in Batteries</title></head>
<body>
<nav>Home | About</nav>
<article>
<h1>Quiet Progress in Batteries</h1>
<p>Solid-state batteries have moved from the lab bench to pilot lines over the past year,
with several manufacturers reporting energy densities well beyond current lithium-ion cells.</p>
<p>Analysts caution that scaling production remains the hard part, and that the first
vehicles using the new cells are unlikely to reach customers before the end of the decade.</p>
<p>Still, the steady stream of announcements suggests the industry now treats the
technology as a question of when rather than if, which changes how suppliers invest.</p>
</article>
<footer>Copyright</footer>
</body></html>
"""


def _fetcher_with(handler, timeout=5.0):
    fetcher = ContentFetcher(timeout=timeout)
    fetcher._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return fetcher


class TestFetchResult:
    """Tests for FetchResult dataclass."""

    def test_successful_result(self):
        result = FetchResult(success=True, content="<p>Test content here</p>", char_count=24)
        assert result.success is True
        assert result.error_type is None

    def test_failed_result(self):
        result = FetchResult(
            success=False,
            error_type=FetchErrorType.HTTP_4XX,
            http_status=404,
        )
        assert result.success is False
        assert result.content is None


class TestContentFetcherDomainChecks:
    """Tests for domain restriction checks."""

    @pytest.fixture
    def fetcher(self):
        return ContentFetcher()

    def test_paywall_domain_detected(self, fetcher):
        result = fetcher._check_domain_restrictions("https://medium.com/some-article")
        assert result is not None
        assert result.error_type == FetchErrorType.PAYWALL

    def test_js_required_domain_detected(self, fetcher):
        result = fetcher._check_domain_restrictions("https://twitter.com/user/status/123")
        assert result is not None
        assert result.error_type == FetchErrorType.JS_REQUIRED

    def test_normal_domain_allowed(self, fetcher):
        assert fetcher._check_domain_restrictions("https://example.com/article") is None

    def test_subdomain_paywall_detected(self, fetcher):
        result = fetcher._check_domain_restrictions("https://blog.medium.com/article")
        assert result is not None
        assert result.error_type == FetchErrorType.PAYWALL

    def test_lookalike_domain_allowed(self, fetcher):
        assert fetcher._check_domain_restrictions("https://notmedium.com/article") is None

    def test_domain_lists_disjoint(self):
        assert not PAYWALL_DOMAINS & JS_REQUIRED_DOMAINS

    def test_get_domain_strips_www(self):
        assert get_domain("https://www.Example.com/a") == "example.com"


@pytest.mark.asyncio
class TestContentFetcherMocked:
    """Fetches against an in-process transport."""

    async def test_extracts_article_html(self):
        fetcher = _fetcher_with(lambda request: httpx.Response(200, text=ARTICLE_HTML))
        result = await fetcher.fetch("https://example.com/batteries")
        await fetcher.close()

        assert result.success is True
        assert "Solid-state batteries" in result.content
        assert result.char_count == len(result.content)
        assert result.http_status == 200

    async def test_http_4xx(self):
        fetcher = _fetcher_with(lambda request: httpx.Response(404, text="nope"))
        result = await fetcher.fetch("https://example.com/missing")
        await fetcher.close()
        assert result.error_type == FetchErrorType.HTTP_4XX
        assert result.http_status == 404

    async def test_http_5xx(self):
        fetcher = _fetcher_with(lambda request: httpx.Response(503, text="busy"))
        result = await fetcher.fetch("https://example.com/busy")
        await fetcher.close()
        assert result.error_type == FetchErrorType.HTTP_5XX

    async def test_empty_page_has_no_content(self):
        fetcher = _fetcher_with(lambda request: httpx.Response(200, text="<html><body></body></html>"))
        result = await fetcher.fetch("https://example.com/empty")
        await fetcher.close()
        assert result.success is False
        assert result.error_type == FetchErrorType.NO_CONTENT

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        fetcher = _fetcher_with(handler)
        result = await fetcher.fetch("https://example.com/down")
        await fetcher.close()
        assert result.error_type == FetchErrorType.CONNECTION_ERROR

    async def test_hard_deadline(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, text=ARTICLE_HTML)

        fetcher = _fetcher_with(slow, timeout=0.05)
        result = await fetcher.fetch("https://example.com/slow")
        await fetcher.close()
        assert result.error_type == FetchErrorType.TIMEOUT

    async def test_paywall_rejected_without_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        fetcher = _fetcher_with(handler)
        result = await fetcher.fetch("https://www.nytimes.com/some-article")
        await fetcher.close()
        assert result.error_type == FetchErrorType.PAYWALL
        assert result.http_status is None
