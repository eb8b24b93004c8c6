"""Single-page scrape used when crawling yields nothing."""

from typing import Optional

import httpx

from mica_checker.core.config import CrawlerSettings
from mica_checker.core.exceptions import AcquisitionError
from mica_checker.services.acquisition.html_content import html_to_markdown
from mica_checker.services.acquisition.web_crawler import CrawledPage
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class WebPageScraper:
    """Fetches exactly one URL and returns its readable content."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[CrawlerSettings] = None):
        self.client = client
        self.settings = settings or CrawlerSettings()

    async def scrape(self, url: str) -> CrawledPage:
        """Scrape one page.

        Raises:
            AcquisitionError: On fetch failure or when the page has less than
                ``min_content_chars`` of readable content
        """
        try:
            response = await self.client.get(url, timeout=self.settings.scrape_timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            LOGGER.error(f"Failed to scrape {url}: {e}", extra={"url": url})
            raise AcquisitionError(f"Failed to fetch {url}: {e}", original_error=e) from e

        converted = html_to_markdown(response.text)
        if len(converted.markdown) < self.settings.min_content_chars:
            raise AcquisitionError(
                f"Insufficient content extracted from {url} ({len(converted.markdown)} chars)"
            )

        LOGGER.info(f"Scraped {url}", extra={"chars": len(converted.markdown)})
        return CrawledPage(url=url, title=converted.title, content=converted.markdown)
