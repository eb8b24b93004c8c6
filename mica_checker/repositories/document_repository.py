"""Repository for document records."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.database.models import Document
from mica_checker.repositories.base_repository import BaseRepository
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[Document]):
    """Repository for managing Document records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Document)

    async def find_by_source(
        self,
        file_path: str,
        mime_type: str,
        owner_id: Optional[str] = None,
    ) -> Optional[Document]:
        """Find the most recent document for a source path (used to reuse URL documents).

        Args:
            file_path: Storage path or source URL
            mime_type: MIME classifier of the source
            owner_id: Uploading actor; None matches documents without an owner

        Returns:
            The newest matching document, if any
        """
        try:
            query = select(Document).where(
                Document.file_path == file_path,
                Document.mime_type == mime_type,
            )
            if owner_id is None:
                query = query.where(Document.owner_id.is_(None))
            else:
                query = query.where(Document.owner_id == owner_id)
            query = query.order_by(Document.created_at.desc()).limit(1)

            result = await self.session.execute(query)
            return result.scalars().first()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error looking up document for {file_path}: {e}", exc_info=True)
            raise

    async def set_hash(self, document_id: UUID, doc_hash: str) -> bool:
        """Record the content hash of a document.

        Returns:
            True if the document exists
        """
        document = await self.update(document_id, doc_hash=doc_hash)
        return document is not None

    async def list_recent(
        self,
        owner_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[Document]:
        """Newest documents first, optionally narrowed to one owner and MIME type."""
        return await self.find_where(
            filters={"owner_id": owner_id, "mime_type": mime_type},
            order_by=(Document.created_at.desc(),),
            limit=limit,
        )
