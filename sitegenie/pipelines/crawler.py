"""Website crawling for SiteGenie.

The primary path asks the Firecrawl crawl service for a bounded number of
pages as markdown. When the service refuses for quota, payment or rate-limit
reasons the crawler falls back to fetching the submitted page itself and
converting its HTML to markdown. Both paths produce the same ``Page`` shape.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import trafilatura
from bs4 import BeautifulSoup

from .security import UnsafeURLError, check_url_safe
from ..observability.prometheus_metrics import crawl_requests

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Page furniture that never carries knowledge-base content
STRIPPED_TAGS = ["script", "style", "nav", "footer", "header", "iframe", "noscript"]

QUOTA_ERROR_MARKERS = (
    "payment required",
    "insufficient credits",
    "quota",
    "rate limit",
    "too many requests",
)


class CrawlError(Exception):
    """Crawling failed or produced no usable content."""
    pass


class FirecrawlError(CrawlError):
    """The crawl service rejected or failed a crawl."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def is_quota_error(error: Exception) -> bool:
    """Whether ``error`` means the crawl service is out of quota or rate limited."""
    status = getattr(error, "status", None)
    if status in (402, 429):
        return True
    message = str(error).lower()
    return any(marker in message for marker in QUOTA_ERROR_MARKERS)


@dataclass
class Page:
    """One crawled page. ``content`` is cleared once the page has been chunked."""
    source_url: str
    title: str
    content: Optional[str]


def normalize_pages(raw_pages: List[Dict[str, Any]], requested_url: str) -> List[Page]:
    """Convert crawl service results to pages, dropping empty ones."""
    pages = []
    for raw in raw_pages:
        metadata = raw.get("metadata") or {}
        content = raw.get("markdown") or ""
        source_url = metadata.get("sourceURL") or raw.get("url") or metadata.get("url") or requested_url
        if not content.strip():
            logger.info(f"Skipping page with no content: {source_url}")
            continue
        pages.append(Page(
            source_url=source_url,
            title=metadata.get("title") or "No Title",
            content=content,
        ))
    return pages


def parse_html(html: str, min_chars: int = 50) -> Tuple[Optional[str], str]:
    """Strip page furniture from ``html`` and convert the body to markdown.

    Returns:
        Tuple of (title, markdown)
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None

    for tag in soup(STRIPPED_TAGS):
        tag.decompose()

    body = soup.body or soup
    markdown = trafilatura.extract(
        str(body),
        output_format="markdown",
        include_tables=True,
        include_comments=False,
        favor_recall=True,
    )

    if not markdown or len(markdown.strip()) < min_chars:
        text = body.get_text("\n")
        lines = (line.strip() for line in text.splitlines())
        markdown = "\n".join(line for line in lines if line)

    return title or None, markdown.strip()


class FirecrawlClient:
    """Minimal async client for the Firecrawl crawl API."""

    def __init__(self,
                 api_key: str,
                 base_url: str = "https://api.firecrawl.dev",
                 poll_interval: float = 2.0,
                 timeout: float = 300.0,
                 request_timeout: float = 30.0):
        """Initialize client.

        Args:
            api_key: Firecrawl API key
            base_url: API root
            poll_interval: Seconds between crawl status polls
            timeout: Seconds to wait for a crawl job before giving up
            request_timeout: Timeout for each HTTP request
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.request_timeout = request_timeout

    async def crawl(self, url: str, limit: int) -> List[Dict[str, Any]]:
        """Crawl ``url`` and return the raw page objects, markdown format only."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "url": url,
            "limit": limit,
            "scrapeOptions": {"formats": ["markdown"]},
        }
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)

        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            job = await self._request(session, "POST", f"{self.base_url}/v1/crawl", json=payload)
            if not job.get("success", False) or not job.get("id"):
                raise FirecrawlError(f"Crawl failed: {job.get('error', 'unknown error')}")

            logger.info(f"Crawl job {job['id']} started for {url} (limit={limit})")
            return await self._wait_for_job(session, job["id"], limit)

    async def _wait_for_job(self, session: aiohttp.ClientSession, job_id: str, limit: int) -> List[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            status = await self._request(session, "GET", f"{self.base_url}/v1/crawl/{job_id}")
            state = status.get("status")

            if state == "completed":
                pages = list(status.get("data") or [])
                next_url = status.get("next")
                while next_url and len(pages) < limit:
                    more = await self._request(session, "GET", next_url)
                    pages.extend(more.get("data") or [])
                    next_url = more.get("next")
                logger.info(f"Crawl job {job_id} completed with {len(pages)} pages")
                return pages[:limit]

            if state in ("failed", "cancelled"):
                raise FirecrawlError(f"Crawl {state}: {status.get('error', 'no details')}")

            if loop.time() > deadline:
                raise FirecrawlError(f"Crawl job {job_id} timed out after {self.timeout:.0f}s")

            logger.debug(f"Crawl job {job_id} status={state} completed={status.get('completed')}/{status.get('total')}")
            await asyncio.sleep(self.poll_interval)

    async def _request(self, session: aiohttp.ClientSession, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            async with session.request(method, url, **kwargs) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = {"error": await response.text()}
                if not isinstance(body, dict):
                    body = {"data": body}

                if response.status >= 400:
                    detail = body.get("error") or response.reason
                    raise FirecrawlError(
                        f"Crawl service returned {response.status}: {detail}",
                        status=response.status,
                    )
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FirecrawlError(f"Crawl service request failed: {e!r}") from e


class PageScraper:
    """Single-page fallback scraper (plain HTTP, no JavaScript)."""

    def __init__(self, timeout: float = 15.0, min_chars: int = 50,
                 user_agent: str = BROWSER_USER_AGENT):
        self.timeout = timeout
        self.min_chars = min_chars
        self.user_agent = user_agent

    async def _fetch_html(self, url: str) -> str:
        await asyncio.to_thread(check_url_safe, url)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            async with session.get(url, allow_redirects=True) as response:
                response.raise_for_status()
                return await response.text()

    async def scrape(self, url: str) -> Page:
        """Fetch ``url`` and return it as a markdown page.

        Raises:
            CrawlError: On fetch failure or when too little text remains
        """
        try:
            html = await self._fetch_html(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError, UnsafeURLError) as e:
            raise CrawlError(f"Fallback scrape of {url} failed: {e!r}") from e

        title, markdown = parse_html(html, self.min_chars)
        del html

        if len(markdown) < self.min_chars:
            raise CrawlError(
                f"Fallback scrape of {url} produced only {len(markdown)} characters of text; "
                "the page may require JavaScript"
            )

        logger.info(f"Fallback scrape of {url} produced {len(markdown)} characters")
        return Page(source_url=url, title=title or "No Title", content=markdown)


class SiteCrawler:
    """Crawl a site through the crawl service, falling back to a single-page scrape."""

    def __init__(self, primary: Optional[FirecrawlClient], fallback: PageScraper, page_limit: int = 50):
        self.primary = primary
        self.fallback = fallback
        self.page_limit = page_limit

    async def crawl(self, url: str) -> List[Page]:
        """Return the usable pages of ``url``.

        Raises:
            CrawlError: When both paths fail or no page has content
        """
        if self.primary is None:
            logger.warning(f"No crawl service configured, scraping single page {url}")
            return [await self._scrape_fallback(url)]

        logger.info(f"Crawl service starting crawl for {url}")
        try:
            raw_pages = await self.primary.crawl(url, limit=self.page_limit)
        except FirecrawlError as e:
            if not is_quota_error(e):
                crawl_requests.labels(path="primary", status="error").inc()
                logger.error(f"Crawl service failed for {url}: {e}")
                raise
            crawl_requests.labels(path="primary", status="quota").inc()
            logger.warning(f"Crawl service unavailable ({e}); falling back to single-page scrape of {url}")
            return [await self._scrape_fallback(url)]

        if not raw_pages:
            crawl_requests.labels(path="primary", status="empty").inc()
            raise CrawlError(f"No content crawled from {url}")

        total = len(raw_pages)
        pages = normalize_pages(raw_pages, url)
        del raw_pages

        if not pages:
            crawl_requests.labels(path="primary", status="empty").inc()
            logger.warning(f"All {total} crawled pages of {url} were empty; the site may rely on JavaScript")
            raise CrawlError(f"No content crawled from {url} - all {total} pages were empty")

        crawl_requests.labels(path="primary", status="success").inc()
        logger.info(f"Using {len(pages)}/{total} crawled pages with content from {url}")
        return pages

    async def _scrape_fallback(self, url: str) -> Page:
        try:
            page = await self.fallback.scrape(url)
        except CrawlError:
            crawl_requests.labels(path="fallback", status="error").inc()
            raise
        crawl_requests.labels(path="fallback", status="success").inc()
        return page
