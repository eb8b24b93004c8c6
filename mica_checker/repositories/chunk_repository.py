"""Repository for document chunks.

The only writer of chunk rows: a store replaces the whole chunk set of a
document in one transaction.
"""

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.database.models import DocumentChunk
from mica_checker.repositories.base_repository import BaseRepository
from mica_checker.services.chunking.chunker import TextChunk
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ChunkRepository(BaseRepository[DocumentChunk]):
    """Repository for reading and replacing document chunks."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentChunk)

    async def replace_chunks(self, document_id: UUID, chunks: Sequence[TextChunk]) -> int:
        """Delete every chunk of a document, then insert the new set in index order.

        Runs as a single transaction: on any failure nothing is changed.

        Args:
            document_id: Owning document
            chunks: New chunks; indexes are renumbered densely from 0

        Returns:
            Number of chunks stored

        Raises:
            SQLAlchemyError: If the delete or any insert fails
        """
        LOGGER.info(f"Storing {len(chunks)} chunks for document {document_id}")
        ordered = sorted(chunks, key=lambda chunk: chunk.index)
        try:
            await self.session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            for position, chunk in enumerate(ordered):
                self.session.add(DocumentChunk(
                    document_id=document_id,
                    chunk_index=position,
                    content=chunk.content,
                    word_count=chunk.word_count,
                    page_number=chunk.page_number,
                    start_offset=chunk.start,
                    end_offset=chunk.end,
                ))
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Failed to store chunks for document {document_id}: {e}",
                exc_info=True,
                extra={"document_id": str(document_id), "chunk_count": len(chunks)},
            )
            raise

        LOGGER.info(f"Successfully stored {len(ordered)} chunks for document {document_id}")
        return len(ordered)

    async def get_by_document(
        self, document_id: UUID, limit: Optional[int] = None
    ) -> List[DocumentChunk]:
        """Chunks of a document ordered by index ascending."""
        try:
            query = (
                select(DocumentChunk)
                .where(DocumentChunk.document_id == document_id)
                .order_by(DocumentChunk.chunk_index.asc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading chunks for document {document_id}: {e}", exc_info=True)
            raise
