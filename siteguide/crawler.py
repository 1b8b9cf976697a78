"""Domain-bound recursive site crawler."""

from __future__ import annotations

from collections import deque
from typing import NamedTuple
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from .config import config
from .document_processing import DocumentLoader
from .models import CrawledPage, CrawlReport

logger = config.get_logger(__name__)

_SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")

# Statuses that mean the page was removed rather than temporarily unavailable.
GONE_STATUSES = frozenset({404, 410})


class _FetchedPage(NamedTuple):
    url: str
    text: str
    markup: str | None


def normalize_url(url: str) -> str:
    """Strip the fragment so ``/page#a`` and ``/page#b`` are one page.

    Returns:
        URL without fragment.
    """
    return urldefrag(url)[0]


def extract_links(markup: str, page_url: str) -> list[str]:
    """Collect absolute http(s) links from an HTML page, in document order.

    Returns:
        De-duplicated list of absolute URLs without fragments.
    """
    soup = BeautifulSoup(markup, "html.parser")
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith(_SKIPPED_SCHEMES):
            continue
        absolute = normalize_url(urljoin(page_url, href))
        if urlparse(absolute).scheme in {"http", "https"}:
            links.append(absolute)
    return list(dict.fromkeys(links))


class SiteCrawler:
    """Fetches pages reachable from a base URL without leaving its host.

    Depth counts pages, not hops: ``max_depth=1`` fetches only the base page,
    ``max_depth=2`` also fetches the pages it links to, and so on. Redirects
    are followed, and a page is kept under its final URL only when that URL is
    still on the starting host.
    """

    def __init__(
        self,
        timeout: float | None = None,
        max_pages: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Configure the crawler.

        Args:
            timeout: Per-request timeout in seconds.
            max_pages: Upper bound on pages fetched in one crawl.
            client: Optional shared HTTP client (tests inject a mock transport).
        """
        self.timeout = config.CRAWL_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_pages = config.CRAWL_MAX_PAGES if max_pages is None else max_pages
        self._client = client

    async def load(self, base_url: str, max_depth: int = 2) -> CrawlReport:
        """Crawl breadth-first from ``base_url``.

        Returns:
            Report with the pages that yielded text, in visit order, and the
            URLs that could not be fetched this time.
        """
        if self._client is not None:
            return await self._crawl(self._client, base_url, max_depth)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=config.get_api_headers(),
        ) as client:
            return await self._crawl(client, base_url, max_depth)

    async def _crawl(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        max_depth: int,
    ) -> CrawlReport:
        start_url = normalize_url(base_url)
        allowed_host = urlparse(start_url).netloc.lower()
        queue: deque[tuple[str, int]] = deque([(start_url, 1)])
        visited: set[str] = {start_url}
        report = CrawlReport()
        fetched = 0

        while queue and fetched < self.max_pages:
            url, depth = queue.popleft()
            fetched += 1
            try:
                page = await self._fetch(client, url, allowed_host)
            except httpx.HTTPError as exc:
                logger.warning("Failed to fetch %s: %s", url, exc)
                report.skipped_urls.add(url)
                continue
            if page is None:
                continue
            if page.url != url:
                if page.url in visited:
                    continue
                visited.add(page.url)
            if page.text:
                report.pages.append(CrawledPage(url=page.url, text=page.text))

            if page.markup is None or depth >= max_depth:
                continue
            for link in extract_links(page.markup, page.url):
                if link in visited or urlparse(link).netloc.lower() != allowed_host:
                    continue
                visited.add(link)
                queue.append((link, depth + 1))

        report.skipped_urls.update(url for url, _ in queue)
        logger.info(
            "Crawled %s: fetched %d URLs, kept %d pages, skipped %d",
            start_url,
            fetched,
            len(report.pages),
            len(report.skipped_urls),
        )
        return report

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        allowed_host: str,
    ) -> _FetchedPage | None:
        """Fetch one URL, following redirects.

        Returns:
            The page under its final URL, or None when the page is gone,
            redirects off the starting host, or has no extractable text.

        Raises:
            httpx.HTTPError: On a transient failure (network error, timeout,
                or an error status other than 404/410).
        """
        try:
            response = await client.get(
                url, timeout=self.timeout, follow_redirects=True
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code not in GONE_STATUSES:
                raise
            logger.info("Page %s is gone (%d)", url, exc.response.status_code)
            return None

        final_url = normalize_url(str(response.url))
        if urlparse(final_url).netloc.lower() != allowed_host:
            logger.info("Skipping %s: redirected off-site to %s", url, final_url)
            return None

        content_type = response.headers.get("content-type", "text/html")
        is_html = "html" in content_type.lower()
        # httpx decodes textual bodies using the declared or detected charset
        decoded = response.text if is_html or "text/" in content_type else None
        try:
            text = DocumentLoader.load_document(
                response.content, content_type, text=decoded
            )
        except ValueError:
            logger.debug("Skipping %s with content type %s", url, content_type)
            return None
        except Exception:  # noqa: BLE001
            logger.warning("Could not extract text from %s", url, exc_info=True)
            return None

        return _FetchedPage(final_url, text, decoded if is_html else None)
