"""PDF text extraction with pdfplumber."""

import asyncio
import re
from io import BytesIO
from typing import List

import pdfplumber

from mica_checker.core.exceptions import AcquisitionError
from mica_checker.services.chunking.chunker import PageText
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


class PdfTextExtractor:
    """Extracts per-page plain text from PDF bytes.

    Pages without any text (scans, blank separators) are skipped; page
    numbers keep their position in the original file.
    """

    def extract_pages(self, pdf_bytes: bytes) -> List[PageText]:
        """Extract normalized text for each page.

        Args:
            pdf_bytes: PDF file content

        Returns:
            Pages with text, in file order

        Raises:
            AcquisitionError: If the bytes cannot be parsed as a PDF
        """
        pages: List[PageText] = []
        try:
            with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                total_pages = len(pdf.pages)
                for page_num, page in enumerate(pdf.pages, start=1):
                    text = normalize_whitespace(page.extract_text() or "")
                    if text:
                        pages.append(PageText(page_number=page_num, text=text))
        except Exception as e:
            LOGGER.error(
                f"PDF extraction failed: {e}",
                extra={"error_type": type(e).__name__},
                exc_info=True,
            )
            raise AcquisitionError(f"Failed to extract text from PDF: {e}", original_error=e) from e

        LOGGER.info(
            f"Extracted text from {len(pages)} of {total_pages} PDF pages",
            extra={"total_pages": total_pages, "text_pages": len(pages)},
        )
        return pages

    async def extract(self, pdf_bytes: bytes) -> List[PageText]:
        """Async wrapper running the CPU-bound parse off the event loop."""
        return await asyncio.to_thread(self.extract_pages, pdf_bytes)
