"""Boundary-aware text chunking.

Splits per-page text into bounded chunks for LLM context windows. Pages
that fit are kept whole; longer pages are cut with a sliding window that
prefers sentence ends and line breaks over hard cuts.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from mica_checker.core.exceptions import ValidationError
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

BOUNDARY_CHARS = (".", "!", "?", "\n")


@dataclass(frozen=True)
class PageText:
    """Normalized text of one page (or one crawled web page)."""
    page_number: int
    text: str


@dataclass(frozen=True)
class TextChunk:
    """A chunk of one page.

    ``start``/``end`` are character offsets into the page text; ``content``
    is the trimmed slice between them.
    """
    index: int
    content: str
    page_number: Optional[int]
    start: int
    end: int

    @property
    def word_count(self) -> int:
        return len(self.content.split())


class TextChunker:
    """Splits pages into chunks of about ``chunk_size`` characters.

    A window may run one character past ``chunk_size`` when a sentence end
    sits exactly at the window edge.

    Attributes:
        chunk_size: Target chunk length in characters
        overlap: Subtracted from the window step; the next window still
            never starts before the previous cut
        boundary_ratio: A boundary is used only if it lies at least
            ``chunk_size * boundary_ratio`` characters past the window start
    """

    def __init__(self, chunk_size: int = 1600, overlap: int = 200, boundary_ratio: float = 0.7):
        if chunk_size <= 0:
            raise ValidationError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValidationError("overlap must be between 0 and chunk_size - 1")
        if not 0 < boundary_ratio <= 1:
            raise ValidationError("boundary_ratio must be in (0, 1]")

        self.chunk_size = chunk_size
        self.overlap = overlap
        self.boundary_ratio = boundary_ratio

    def chunk_pages(self, pages: Iterable[PageText]) -> List[TextChunk]:
        """Chunk pages in order, numbering chunks globally from 0.

        Args:
            pages: Pages in document order

        Returns:
            Non-empty chunks in document order
        """
        chunks: List[TextChunk] = []
        for page in pages:
            for start, end in self._windows(page.text):
                content = page.text[start:end].strip()
                if not content:
                    continue
                chunks.append(TextChunk(
                    index=len(chunks),
                    content=content,
                    page_number=page.page_number,
                    start=start,
                    end=end,
                ))

        LOGGER.debug(f"Chunked text into {len(chunks)} chunks")
        return chunks

    def _windows(self, text: str) -> Iterable[tuple[int, int]]:
        length = len(text)
        if length <= self.chunk_size:
            yield 0, length
            return

        min_boundary_gap = self.chunk_size * self.boundary_ratio
        start = 0
        while start < length:
            end = min(start + self.chunk_size, length)

            if end < length:
                boundary = self._last_boundary(text, start, end)
                if boundary is not None and boundary > start + min_boundary_gap:
                    end = boundary + 1

            yield start, end

            if end >= length:
                return
            # Advance by chunk_size - overlap, never back before the previous cut
            start = max(start + self.chunk_size - self.overlap, end)

    @staticmethod
    def _last_boundary(text: str, start: int, end: int) -> Optional[int]:
        """Index of the last boundary character within text[start:end + 1]."""
        stop = min(end + 1, len(text))
        best = max(text.rfind(char, start, stop) for char in BOUNDARY_CHARS)
        return best if best >= 0 else None
