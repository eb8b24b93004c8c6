"""Ordered acquisition strategies.

A source (an uploaded PDF, a stored PDF, a PDF URL or a website) is turned
into pages of text by trying each applicable strategy in order until one
yields text. Every attempt is recorded, so a total failure can report each
cause.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

import httpx

from mica_checker.core.exceptions import AcquisitionError, AppError
from mica_checker.schemas.documents import HTML_MIME_TYPE, PDF_MIME_TYPE
from mica_checker.services.acquisition.pdf_extractor import PdfTextExtractor
from mica_checker.services.acquisition.web_crawler import WebCrawler
from mica_checker.services.acquisition.web_scraper import WebPageScraper
from mica_checker.services.chunking.chunker import PageText
from mica_checker.services.storage_service import StorageService
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


def is_remote(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


@dataclass
class SourceRef:
    """What to acquire.

    ``location`` is a storage path for stored PDFs and a URL otherwise;
    ``payload`` carries freshly uploaded bytes.
    """
    location: str
    mime_type: str
    payload: Optional[bytes] = None
    max_pages: Optional[int] = None


@dataclass
class AcquisitionAttempt:
    strategy: str
    succeeded: bool
    error: Optional[str] = None


@dataclass
class AcquisitionResult:
    """Pages produced by the first strategy that succeeded."""
    strategy: str
    pages: List[PageText]
    attempts: List[AcquisitionAttempt] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(page.text for page in self.pages)


class AcquisitionStrategy(Protocol):
    name: str

    def applies_to(self, source: SourceRef) -> bool: ...

    async def acquire(self, source: SourceRef) -> List[PageText]: ...


class InlinePdfStrategy:
    """Extracts text from PDF bytes supplied with the request."""

    name = "inline_pdf"

    def __init__(self, extractor: PdfTextExtractor):
        self.extractor = extractor

    def applies_to(self, source: SourceRef) -> bool:
        return source.payload is not None and source.mime_type == PDF_MIME_TYPE

    async def acquire(self, source: SourceRef) -> List[PageText]:
        return await self.extractor.extract(source.payload)


class StoredPdfStrategy:
    """Downloads a previously uploaded PDF from document storage."""

    name = "stored_pdf"

    def __init__(self, storage: StorageService, extractor: PdfTextExtractor):
        self.storage = storage
        self.extractor = extractor

    def applies_to(self, source: SourceRef) -> bool:
        return source.mime_type == PDF_MIME_TYPE and not is_remote(source.location)

    async def acquire(self, source: SourceRef) -> List[PageText]:
        pdf_bytes = await self.storage.download_file(source.location)
        return await self.extractor.extract(pdf_bytes)


class RemotePdfStrategy:
    """Downloads a PDF directly from its URL."""

    name = "remote_pdf"

    def __init__(self, client: httpx.AsyncClient, extractor: PdfTextExtractor, timeout: float = 30.0):
        self.client = client
        self.extractor = extractor
        self.timeout = timeout

    def applies_to(self, source: SourceRef) -> bool:
        return source.mime_type == PDF_MIME_TYPE and is_remote(source.location)

    async def acquire(self, source: SourceRef) -> List[PageText]:
        try:
            response = await self.client.get(source.location, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AcquisitionError(f"Failed to download PDF: {e}", original_error=e) from e
        return await self.extractor.extract(response.content)


class CrawlStrategy:
    """Crawls the website; each kept web page becomes one page of text."""

    name = "crawl"

    def __init__(self, crawler: WebCrawler):
        self.crawler = crawler

    def applies_to(self, source: SourceRef) -> bool:
        return source.mime_type == HTML_MIME_TYPE and is_remote(source.location)

    async def acquire(self, source: SourceRef) -> List[PageText]:
        result = await self.crawler.crawl(source.location, max_pages=source.max_pages)
        if not result.pages:
            raise AcquisitionError(
                f"Crawl of {source.location} found no pages with content "
                f"({len(result.visited)} URLs visited)"
            )
        return [
            PageText(page_number=position, text=page.as_text())
            for position, page in enumerate(result.pages, start=1)
        ]


class SinglePageStrategy:
    """Scrapes only the seed URL."""

    name = "single_page"

    def __init__(self, scraper: WebPageScraper):
        self.scraper = scraper

    def applies_to(self, source: SourceRef) -> bool:
        return source.mime_type == HTML_MIME_TYPE and is_remote(source.location)

    async def acquire(self, source: SourceRef) -> List[PageText]:
        page = await self.scraper.scrape(source.location)
        return [PageText(page_number=1, text=page.as_text())]


class ContentAcquirer:
    """Runs strategies in order and returns the first non-empty result."""

    def __init__(self, strategies: Sequence[AcquisitionStrategy]):
        self.strategies = list(strategies)

    async def acquire(self, source: SourceRef) -> AcquisitionResult:
        """Acquire pages of text for a source.

        Raises:
            AcquisitionError: When no strategy applies or every applicable
                strategy failed or produced no text
        """
        attempts: List[AcquisitionAttempt] = []

        for strategy in self.strategies:
            if not strategy.applies_to(source):
                continue
            try:
                pages = await strategy.acquire(source)
            except AppError as e:
                LOGGER.warning(
                    f"Acquisition strategy {strategy.name} failed for {source.location}: {e}",
                    extra={"strategy": strategy.name},
                )
                attempts.append(AcquisitionAttempt(strategy.name, False, str(e)))
                continue

            if not pages:
                attempts.append(AcquisitionAttempt(strategy.name, False, "no text extracted"))
                continue

            attempts.append(AcquisitionAttempt(strategy.name, True))
            LOGGER.info(
                f"Acquired {len(pages)} pages from {source.location} via {strategy.name}",
                extra={"strategy": strategy.name, "attempts": len(attempts)},
            )
            return AcquisitionResult(strategy=strategy.name, pages=pages, attempts=attempts)

        if not attempts:
            raise AcquisitionError(f"No acquisition strategy for {source.mime_type} source {source.location}")

        causes = "; ".join(f"{attempt.strategy}: {attempt.error}" for attempt in attempts)
        raise AcquisitionError(f"Could not acquire content from {source.location} ({causes})")


def build_content_acquirer(
    client: httpx.AsyncClient,
    storage: StorageService,
    crawler: WebCrawler,
    scraper: WebPageScraper,
    extractor: Optional[PdfTextExtractor] = None,
) -> ContentAcquirer:
    """Default strategy order: inline bytes, storage, PDF URL, crawl, single page."""
    extractor = extractor or PdfTextExtractor()
    return ContentAcquirer([
        InlinePdfStrategy(extractor),
        StoredPdfStrategy(storage, extractor),
        RemotePdfStrategy(client, extractor),
        CrawlStrategy(crawler),
        SinglePageStrategy(scraper),
    ])
