"""Breadth-first same-host website crawler."""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, List, Optional, Set, Tuple

import httpx

from mica_checker.core.config import CrawlerSettings
from mica_checker.core.exceptions import UnsafeUrlError
from mica_checker.services.acquisition.html_content import (
    extract_same_host_links,
    html_to_markdown,
    normalize_url,
)
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class CrawledPage:
    """Readable content of one fetched web page."""
    url: str
    title: str
    content: str

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    def as_text(self) -> str:
        """Page rendered for chunking: title heading, source URL, then content."""
        return f"# {self.title}\nURL: {self.url}\n\n{self.content}"


@dataclass
class CrawlResult:
    pages: List[CrawledPage] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)

    @property
    def total_words(self) -> int:
        return sum(page.word_count for page in self.pages)


def is_html_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return not content_type or "html" in content_type.lower()


class WebCrawler:
    """Crawls a site breadth-first from a seed URL.

    Only links on the seed's hostname are followed; URLs are compared
    without query string and fragment. Pages whose readable content is
    shorter than ``min_content_chars`` count as visited but are neither
    kept nor expanded. A failed fetch is logged and skipped.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Optional[CrawlerSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = settings or CrawlerSettings()
        self._sleep = sleep

    async def crawl(
        self,
        seed_url: str,
        max_pages: Optional[int] = None,
        max_depth: Optional[int] = None,
    ) -> CrawlResult:
        """Crawl from ``seed_url`` until the page cap or the queue runs out.

        Args:
            seed_url: Starting URL
            max_pages: Maximum number of kept pages
            max_depth: Maximum link distance from the seed

        Returns:
            Kept pages in crawl order plus every visited URL
        """
        page_cap = max_pages if max_pages is not None else self.settings.max_pages
        depth_cap = max_depth if max_depth is not None else self.settings.max_depth

        seed = normalize_url(seed_url)
        queue: Deque[Tuple[str, int]] = deque([(seed, 0)])
        queued: Set[str] = {seed}
        visited: Set[str] = set()
        result = CrawlResult()

        LOGGER.info(
            f"Starting crawl of {seed}",
            extra={"max_pages": page_cap, "max_depth": depth_cap},
        )

        while queue and len(result.pages) < page_cap:
            url, depth = queue.popleft()
            if url in visited or depth > depth_cap:
                continue

            visited.add(url)
            result.visited.append(url)

            fetched = await self._fetch(url)
            if fetched is not None:
                page, html = fetched
                if len(page.content) < self.settings.min_content_chars:
                    LOGGER.info(
                        f"Skipping {url}: content too short ({len(page.content)} chars)"
                    )
                else:
                    result.pages.append(page)
                    if depth < depth_cap:
                        for link in extract_same_host_links(html, url):
                            if link not in visited and link not in queued:
                                queued.add(link)
                                queue.append((link, depth + 1))

            if queue and len(result.pages) < page_cap and self.settings.request_delay > 0:
                await self._sleep(self.settings.request_delay)

        LOGGER.info(
            f"Crawl completed: {len(result.pages)} pages kept, {len(result.visited)} visited",
            extra={"total_words": result.total_words, "queue_remaining": len(queue)},
        )
        return result

    async def _fetch(self, url: str) -> Optional[Tuple[CrawledPage, str]]:
        try:
            response = await self.client.get(url, timeout=self.settings.page_timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            LOGGER.warning(f"Error crawling {url}: {e}", extra={"url": url})
            return None
        except UnsafeUrlError as e:
            LOGGER.warning(f"Skipping {url}: {e}", extra={"url": url})
            return None

        if not is_html_response(response):
            LOGGER.info(f"Skipping {url}: not an HTML page")
            return None

        html = response.text
        converted = html_to_markdown(html)
        return CrawledPage(url=url, title=converted.title, content=converted.markdown), html
