"""Document ingestion: acquire, chunk and store."""

from typing import List, Optional, Tuple, Union
from urllib.parse import urlparse
from uuid import UUID, uuid4

from mica_checker.core.config import ChunkingSettings, settings
from mica_checker.core.exceptions import (
    AcquisitionError,
    ContentUnavailableError,
    DocumentNotFoundError,
    ValidationError,
)
from mica_checker.schemas.compliance import OrderedChunk
from mica_checker.schemas.documents import (
    HTML_MIME_TYPE,
    PDF_MIME_TYPE,
    IngestionOutcome,
    StoredDocument,
)
from mica_checker.services.acquisition.strategies import AcquisitionResult, ContentAcquirer, SourceRef
from mica_checker.services.acquisition.url_guard import validate_public_url
from mica_checker.services.chunking.chunker import TextChunk, TextChunker
from mica_checker.services.compliance_store import ComplianceStore
from mica_checker.services.persistence.analysis_persistence import compute_document_hash
from mica_checker.services.storage_service import StorageService
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


def display_name_for_url(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.netloc}{parsed.path}".rstrip("/") or url


class DocumentIngestionService:
    """Turns uploaded PDFs and websites into stored, ordered chunks.

    Content is acquired and chunked before any document record is written,
    so a failed acquisition never leaves a document without chunks.
    """

    def __init__(
        self,
        store: ComplianceStore,
        acquirer: ContentAcquirer,
        storage: StorageService,
        chunker: Optional[TextChunker] = None,
        chunking_settings: Optional[ChunkingSettings] = None,
    ):
        self.store = store
        self.acquirer = acquirer
        self.storage = storage
        self.settings = chunking_settings or settings.chunking
        self.chunker = chunker or TextChunker(
            chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
            boundary_ratio=self.settings.boundary_ratio,
        )

    async def ingest(
        self,
        source: Union[bytes, str],
        file_name: Optional[str] = None,
        owner_id: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> IngestionOutcome:
        """Ingest PDF bytes or a website URL."""
        if isinstance(source, bytes):
            return await self.ingest_pdf(source, file_name or "document.pdf", owner_id)
        return await self.ingest_url(source, owner_id, max_pages)

    async def ingest_pdf(
        self,
        pdf_bytes: bytes,
        file_name: str,
        owner_id: Optional[str] = None,
    ) -> IngestionOutcome:
        """Ingest an uploaded PDF.

        The file is stored in document storage so its content can be
        re-acquired later.

        Raises:
            ValidationError: If the upload is empty or not a PDF
            ContentUnavailableError: If no usable text can be extracted
            APIClientError: If document storage rejects the upload
        """
        if not pdf_bytes:
            raise ValidationError("Uploaded file is empty")
        if not pdf_bytes.lstrip()[:5].startswith(b"%PDF"):
            raise ValidationError(f"{file_name} is not a PDF file")

        source = SourceRef(location=file_name, mime_type=PDF_MIME_TYPE, payload=pdf_bytes)
        try:
            result, chunks = await self._acquire_and_chunk(source)
        except ContentUnavailableError:
            raise
        except AcquisitionError as e:
            raise ContentUnavailableError(
                f"Could not read text from {file_name}: {e.message}", original_error=e
            ) from e

        storage_path = f"{owner_id or 'anonymous'}/{uuid4()}.pdf"
        if self.storage.is_configured:
            await self.storage.upload_file(pdf_bytes, storage_path, PDF_MIME_TYPE)
        else:
            LOGGER.warning(
                f"Document storage is not configured; {file_name} cannot be re-acquired later"
            )

        document = await self.store.create_document(
            file_name=file_name,
            file_path=storage_path,
            mime_type=PDF_MIME_TYPE,
            owner_id=owner_id,
            page_count=len(result.pages),
        )
        return await self._store(document, result, chunks, reused=False)

    async def ingest_url(
        self,
        url: str,
        owner_id: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> IngestionOutcome:
        """Ingest a website, or a PDF served at a URL.

        A URL that was ingested before for the same owner reuses its
        document record; its chunks are replaced.

        Raises:
            UnsafeUrlError: If the URL is not a public http(s) URL
            AcquisitionError: If crawling and single-page scraping both fail
            ContentUnavailableError: If the acquired text is too short
        """
        safe_url = validate_public_url(url)
        mime_type = PDF_MIME_TYPE if urlparse(safe_url).path.lower().endswith(".pdf") else HTML_MIME_TYPE

        existing = await self.store.find_document(safe_url, mime_type, owner_id)

        source = SourceRef(location=safe_url, mime_type=mime_type, max_pages=max_pages)
        result, chunks = await self._acquire_and_chunk(source)

        if existing is not None:
            LOGGER.info(f"Re-ingesting existing document {existing.id} for {safe_url}")
            document = await self.store.update_document(existing.id, page_count=len(result.pages)) or existing
        else:
            document = await self.store.create_document(
                file_name=display_name_for_url(safe_url),
                file_path=safe_url,
                mime_type=mime_type,
                owner_id=owner_id,
                page_count=len(result.pages),
            )
        return await self._store(document, result, chunks, reused=existing is not None)

    async def reingest(self, document_id: UUID) -> IngestionOutcome:
        """Re-acquire a document from its original source and replace its chunks.

        Raises:
            DocumentNotFoundError: If the document does not exist
            AcquisitionError: If every acquisition strategy fails
        """
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        LOGGER.info(
            f"Re-ingesting document {document_id} from {document.file_path}",
            extra={"mime_type": document.mime_type},
        )
        source = SourceRef(location=document.file_path, mime_type=document.mime_type)
        result, chunks = await self._acquire_and_chunk(source)

        await self.store.update_document(document_id, page_count=len(result.pages))
        return await self._store(document, result, chunks, reused=True)

    async def get_chunks(self, document_id: UUID) -> List[OrderedChunk]:
        """Stored chunks of a document in index order.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return await self.store.get_chunks(document_id)

    async def list_documents(
        self,
        owner_id: Optional[str] = None,
        mime_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[StoredDocument]:
        """Ingested documents, newest first."""
        return await self.store.list_documents(owner_id=owner_id, mime_type=mime_type, limit=limit)

    async def _acquire_and_chunk(self, source: SourceRef) -> Tuple[AcquisitionResult, List[TextChunk]]:
        result = await self.acquirer.acquire(source)

        text_length = sum(len(page.text.strip()) for page in result.pages)
        if text_length < self.settings.min_document_chars:
            raise ContentUnavailableError(
                f"Extracted text from {source.location} is too short "
                f"({text_length} chars, minimum {self.settings.min_document_chars})"
            )

        chunks = self.chunker.chunk_pages(result.pages)
        if not chunks:
            raise ContentUnavailableError(f"No chunks produced for {source.location}")
        return result, chunks

    async def _store(
        self,
        document: StoredDocument,
        result: AcquisitionResult,
        chunks: List[TextChunk],
        reused: bool,
    ) -> IngestionOutcome:
        chunk_count = await self.store.store_chunks(document.id, chunks)

        LOGGER.info(
            f"Ingested {document.file_name}: {chunk_count} chunks from {len(result.pages)} pages",
            extra={"document_id": str(document.id), "strategy": result.strategy},
        )
        return IngestionOutcome(
            document_id=document.id,
            file_name=document.file_name,
            chunk_count=chunk_count,
            page_count=len(result.pages),
            total_words=sum(chunk.word_count for chunk in chunks),
            doc_hash=compute_document_hash(result.text),
            source=result.strategy,
            reused_document=reused,
        )
