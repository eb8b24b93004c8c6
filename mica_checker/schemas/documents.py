"""Document ingestion schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

PDF_MIME_TYPE = "application/pdf"
HTML_MIME_TYPE = "text/html"


class StoredDocument(BaseModel):
    """A document record as seen by services."""

    id: UUID
    file_name: str
    file_path: str
    mime_type: str
    doc_hash: Optional[str] = None
    owner_id: Optional[str] = None
    page_count: Optional[int] = None
    created_at: Optional[datetime] = None


class IngestionOutcome(BaseModel):
    """Summary of one ingestion."""

    document_id: UUID = Field(..., description="Identifier of the ingested document")
    file_name: str = Field(..., description="Display name of the document")
    chunk_count: int = Field(..., description="Number of stored chunks")
    page_count: int = Field(..., description="Pages (or crawled web pages) with text")
    total_words: int = Field(0, description="Words across all chunks")
    doc_hash: str = Field(..., description="sha256 of the acquired text")
    source: str = Field(..., description="Acquisition strategy that produced the text")
    reused_document: bool = Field(False, description="True when an existing URL document was re-crawled")


class UrlIngestionRequest(BaseModel):
    """Request body for website ingestion."""

    url: str = Field(..., description="Website to crawl", examples=["https://example.com/whitepaper"])
    max_pages: Optional[int] = Field(None, ge=1, le=200, description="Crawl page cap")
    owner_id: Optional[str] = Field(None, description="Uploading actor")
