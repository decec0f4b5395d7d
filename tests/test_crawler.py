"""Tests for the crawler: crawl service path, quota fallback and HTML parsing."""

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock, patch

from sitegenie.pipelines.crawler import (
    CrawlError,
    FirecrawlClient,
    FirecrawlError,
    Page,
    PageScraper,
    SiteCrawler,
    is_quota_error,
    normalize_pages,
    parse_html,
)

ARTICLE_TEXT = (
    "The university library opens at eight every morning and offers quiet study rooms, "
    "research help and a large collection of historical archives for students."
)

HTML_PAGE = f"""
<html>
  <head><title>Campus Library</title><style>body {{ color: red; }}</style></head>
  <body>
    <header>Site header banner</header>
    <nav><a href="/">Home</a> <a href="/menu">Navigation menu link</a></nav>
    <main><h1>Library</h1><p>{ARTICLE_TEXT}</p></main>
    <script>var tracking = "secret tracker";</script>
    <footer>Copyright footer text</footer>
  </body>
</html>
"""


def fallback_page(url="https://example.com"):
    return Page(source_url=url, title="Example", content=ARTICLE_TEXT)


@pytest.fixture
def fallback():
    scraper = Mock(spec=PageScraper)
    scraper.scrape = AsyncMock(return_value=fallback_page())
    return scraper


class TestQuotaClassification:

    @pytest.mark.parametrize("message", [
        "Payment Required: upgrade your plan",
        "Insufficient credits to perform this request",
        "Rate limit exceeded",
        "Too Many Requests",
        "Monthly quota reached",
    ])
    def test_quota_messages(self, message):
        assert is_quota_error(FirecrawlError(message))

    def test_quota_status_codes(self):
        assert is_quota_error(FirecrawlError("refused", status=402))
        assert is_quota_error(FirecrawlError("refused", status=429))

    def test_other_errors_are_not_quota(self):
        assert not is_quota_error(FirecrawlError("Crawl service returned 500: boom", status=500))
        assert not is_quota_error(FirecrawlError("Invalid URL"))

    @pytest.mark.parametrize("message,status", [
        ("Crawl service returned 400: Invalid URL https://example.com/movie-credits", 400),
        ("Crawl service returned 400: Invalid URL https://example.com/orders/40291", 400),
        ("Crawl service returned 404: job 4290-ab not found", 404),
    ])
    def test_urls_and_ids_in_error_text_are_not_quota(self, message, status):
        assert not is_quota_error(FirecrawlError(message, status=status))


class TestSiteCrawler:

    @pytest.mark.asyncio
    async def test_primary_pages_are_normalized(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(return_value=[
            {"markdown": "# Welcome\nHello from the home page", "metadata": {"sourceURL": "https://example.com/", "title": "Home"}},
            {"markdown": "About text for the site", "url": "https://example.com/about", "metadata": {}},
        ])
        crawler = SiteCrawler(primary, fallback, page_limit=10)

        pages = await crawler.crawl("https://example.com")

        primary.crawl.assert_awaited_once_with("https://example.com", limit=10)
        fallback.scrape.assert_not_called()
        assert [p.source_url for p in pages] == ["https://example.com/", "https://example.com/about"]
        assert [p.title for p in pages] == ["Home", "No Title"]

    @pytest.mark.asyncio
    async def test_quota_error_falls_back_to_single_page(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(side_effect=FirecrawlError("Payment required", status=402))
        crawler = SiteCrawler(primary, fallback)

        pages = await crawler.crawl("https://example.com")

        fallback.scrape.assert_awaited_once_with("https://example.com")
        assert len(pages) == 1
        assert pages[0].content == ARTICLE_TEXT

    @pytest.mark.asyncio
    async def test_non_quota_error_propagates_without_fallback(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(side_effect=FirecrawlError("Invalid URL", status=400))
        crawler = SiteCrawler(primary, fallback)

        with pytest.raises(FirecrawlError, match="Invalid URL"):
            await crawler.crawl("https://example.com")
        fallback.scrape.assert_not_called()

    @pytest.mark.asyncio
    async def test_url_mentioning_credits_is_not_a_quota_fallback(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        error = FirecrawlError("Crawl service returned 400: Invalid URL https://example.com/movie-credits", status=400)
        primary.crawl = AsyncMock(side_effect=error)
        crawler = SiteCrawler(primary, fallback)

        with pytest.raises(FirecrawlError, match="movie-credits"):
            await crawler.crawl("https://example.com/movie-credits")
        fallback.scrape.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_primary_uses_fallback(self, fallback):
        crawler = SiteCrawler(None, fallback)

        pages = await crawler.crawl("https://example.com")

        assert pages == [fallback_page()]

    @pytest.mark.asyncio
    async def test_all_empty_pages_is_a_failure(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(return_value=[
            {"markdown": "   ", "metadata": {"sourceURL": "https://example.com/"}},
            {"markdown": "", "metadata": {"sourceURL": "https://example.com/app"}},
        ])
        crawler = SiteCrawler(primary, fallback)

        with pytest.raises(CrawlError, match="all 2 pages were empty"):
            await crawler.crawl("https://example.com")

    @pytest.mark.asyncio
    async def test_zero_pages_is_a_failure(self, fallback):
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(return_value=[])
        crawler = SiteCrawler(primary, fallback)

        with pytest.raises(CrawlError):
            await crawler.crawl("https://example.com")

    @pytest.mark.asyncio
    async def test_fallback_failure_propagates(self, fallback):
        fallback.scrape = AsyncMock(side_effect=CrawlError("too little text"))
        primary = Mock(spec=FirecrawlClient)
        primary.crawl = AsyncMock(side_effect=FirecrawlError("Rate limit exceeded"))
        crawler = SiteCrawler(primary, fallback)

        with pytest.raises(CrawlError, match="too little text"):
            await crawler.crawl("https://example.com")


def test_normalize_pages_url_precedence():
    pages = normalize_pages([
        {"markdown": "first", "url": "https://example.com/a", "metadata": {"sourceURL": "https://example.com/source"}},
        {"markdown": "second", "url": "https://example.com/b"},
        {"markdown": "third", "metadata": {"title": "Third"}},
    ], "https://example.com")

    assert [p.source_url for p in pages] == [
        "https://example.com/source",
        "https://example.com/b",
        "https://example.com",
    ]
    assert pages[2].title == "Third"


class TestParseHtml:

    def test_strips_page_furniture(self):
        title, markdown = parse_html(HTML_PAGE)

        assert title == "Campus Library"
        assert "library opens at eight" in markdown
        assert "secret tracker" not in markdown
        assert "Navigation menu link" not in markdown
        assert "Copyright footer text" not in markdown
        assert "Site header banner" not in markdown

    def test_missing_title(self):
        title, markdown = parse_html(f"<html><body><p>{ARTICLE_TEXT}</p></body></html>")
        assert title is None
        assert "quiet study rooms" in markdown


class TestPageScraper:

    @pytest.mark.asyncio
    async def test_scrape_returns_markdown_page(self):
        scraper = PageScraper()
        with patch.object(scraper, "_fetch_html", AsyncMock(return_value=HTML_PAGE)):
            page = await scraper.scrape("https://example.com/library")

        assert page.source_url == "https://example.com/library"
        assert page.title == "Campus Library"
        assert "historical archives" in page.content

    @pytest.mark.asyncio
    async def test_too_little_text_is_a_failure(self):
        scraper = PageScraper(min_chars=50)
        html = "<html><body><div id='root'></div><script>render()</script></body></html>"
        with patch.object(scraper, "_fetch_html", AsyncMock(return_value=html)):
            with pytest.raises(CrawlError, match="JavaScript"):
                await scraper.scrape("https://example.com/spa")

    @pytest.mark.asyncio
    async def test_fetch_error_becomes_crawl_error(self):
        scraper = PageScraper()
        error = aiohttp.ClientConnectionError("connection refused")
        with patch.object(scraper, "_fetch_html", AsyncMock(side_effect=error)):
            with pytest.raises(CrawlError, match="Fallback scrape"):
                await scraper.scrape("https://example.com")

    @pytest.mark.asyncio
    async def test_undecodable_body_becomes_crawl_error(self):
        scraper = PageScraper()
        error = UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")
        with patch.object(scraper, "_fetch_html", AsyncMock(side_effect=error)):
            with pytest.raises(CrawlError, match="Fallback scrape"):
                await scraper.scrape("https://example.com")

    @pytest.mark.asyncio
    async def test_private_address_is_never_fetched(self):
        scraper = PageScraper()
        with pytest.raises(CrawlError):
            await scraper.scrape("http://127.0.0.1:8080/admin")


class TestFirecrawlClient:

    @pytest.mark.asyncio
    async def test_polls_until_completed(self):
        client = FirecrawlClient(api_key="fc-test", poll_interval=0)
        responses = [
            {"success": True, "id": "job-1"},
            {"status": "scraping", "completed": 1, "total": 3},
            {"status": "completed", "data": [{"markdown": "one"}], "next": "https://api.firecrawl.dev/v1/crawl/job-1?skip=1"},
            {"data": [{"markdown": "two"}, {"markdown": "three"}]},
        ]
        with patch.object(client, "_request", AsyncMock(side_effect=responses)) as request:
            pages = await client.crawl("https://example.com", limit=2)

        assert [p["markdown"] for p in pages] == ["one", "two"]
        method, url = request.await_args_list[0].args[1:3]
        assert (method, url) == ("POST", "https://api.firecrawl.dev/v1/crawl")
        payload = request.await_args_list[0].kwargs["json"]
        assert payload["limit"] == 2
        assert payload["scrapeOptions"] == {"formats": ["markdown"]}

    @pytest.mark.asyncio
    async def test_failed_job_raises(self):
        client = FirecrawlClient(api_key="fc-test", poll_interval=0)
        responses = [
            {"success": True, "id": "job-2"},
            {"status": "failed", "error": "blocked by robots.txt"},
        ]
        with patch.object(client, "_request", AsyncMock(side_effect=responses)):
            with pytest.raises(FirecrawlError, match="robots"):
                await client.crawl("https://example.com", limit=5)

    @pytest.mark.asyncio
    async def test_rejected_job_raises(self):
        client = FirecrawlClient(api_key="fc-test")
        with patch.object(client, "_request", AsyncMock(return_value={"success": False, "error": "Insufficient credits"})):
            with pytest.raises(FirecrawlError) as exc_info:
                await client.crawl("https://example.com", limit=5)
        assert is_quota_error(exc_info.value)
