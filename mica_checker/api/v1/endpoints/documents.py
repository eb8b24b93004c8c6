"""Document ingestion endpoints."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status

from mica_checker.api.dependencies import get_ingestion_service
from mica_checker.schemas.documents import UrlIngestionRequest
from mica_checker.schemas.responses import ApiResponse
from mica_checker.services.ingestion_service import DocumentIngestionService
from mica_checker.utils.logging import get_logger
from mica_checker.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/pdf",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload and ingest a PDF",
    operation_id="ingest_pdf_document",
)
async def ingest_pdf(
    request: Request,
    ingestion_service: Annotated[DocumentIngestionService, Depends(get_ingestion_service)],
    file: UploadFile = File(..., description="PDF whitepaper or legal opinion"),
    owner_id: Optional[str] = Form(None),
) -> ApiResponse:
    """Extract, chunk and store an uploaded PDF."""
    content = await file.read()
    outcome = await ingestion_service.ingest_pdf(
        content, file.filename or "document.pdf", owner_id=owner_id
    )

    return create_api_response(
        data=outcome,
        message=f"Ingested {outcome.file_name} into {outcome.chunk_count} chunks",
        request=request,
    )


@router.post(
    "/url",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crawl and ingest a website",
    operation_id="ingest_url_document",
)
async def ingest_url(
    request: Request,
    body: UrlIngestionRequest,
    ingestion_service: Annotated[DocumentIngestionService, Depends(get_ingestion_service)],
) -> ApiResponse:
    """Crawl a website (or download a PDF URL), then chunk and store it."""
    outcome = await ingestion_service.ingest_url(
        body.url, owner_id=body.owner_id, max_pages=body.max_pages
    )

    return create_api_response(
        data=outcome,
        message=(
            f"Ingested {outcome.page_count} pages into {outcome.chunk_count} chunks"
            + (" (existing document updated)" if outcome.reused_document else "")
        ),
        request=request,
    )


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List documents",
    operation_id="list_documents",
)
async def list_documents(
    request: Request,
    ingestion_service: Annotated[DocumentIngestionService, Depends(get_ingestion_service)],
    owner_id: Optional[str] = Query(None),
    mime_type: Optional[str] = Query(None, description="e.g. text/html for recently crawled sites"),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse:
    """Ingested documents, newest first."""
    documents = await ingestion_service.list_documents(owner_id=owner_id, mime_type=mime_type, limit=limit)

    return create_api_response(
        data=documents,
        message=f"Retrieved {len(documents)} documents",
        request=request,
    )

@router.get(
    "/{document_id}/chunks",
    response_model=ApiResponse,
    summary="Get document chunks",
    operation_id="get_document_chunks",
)
async def get_document_chunks(
    request: Request,
    document_id: UUID,
    ingestion_service: Annotated[DocumentIngestionService, Depends(get_ingestion_service)],
) -> ApiResponse:
    """Stored chunks of a document in index order."""
    chunks = await ingestion_service.get_chunks(document_id)

    return create_api_response(
        data={
            "document_id": str(document_id),
            "total": len(chunks),
            "chunks": [chunk.model_dump(mode="json") for chunk in chunks],
        },
        message=f"Retrieved {len(chunks)} chunks",
        request=request,
    )
