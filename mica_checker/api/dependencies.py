"""FastAPI dependency providers for the service layer."""

from typing import Annotated, AsyncGenerator

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.core.config import settings
from mica_checker.core.database import get_async_session as get_session
from mica_checker.core.llm_client import LLMClient, create_llm_client
from mica_checker.core.rate_limiter import RequestThrottle
from mica_checker.services.acquisition.strategies import build_content_acquirer
from mica_checker.services.acquisition.url_guard import reject_internal_requests
from mica_checker.services.acquisition.web_crawler import WebCrawler
from mica_checker.services.acquisition.web_scraper import WebPageScraper
from mica_checker.services.analysis.orchestrator import AnalysisOrchestrator
from mica_checker.services.catalog.catalog_service import RequirementCatalog
from mica_checker.services.compliance_store import ComplianceStore, SqlComplianceStore
from mica_checker.services.ingestion_service import DocumentIngestionService
from mica_checker.services.persistence.analysis_persistence import AnalysisPersistenceService
from mica_checker.services.report_service import ReportService
from mica_checker.services.storage_service import StorageService

# Shared by every request so the requests-per-minute ceiling holds process-wide
LLM_THROTTLE = RequestThrottle(settings.analysis.min_request_interval)


async def get_store(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ComplianceStore:
    return SqlComplianceStore(db_session)


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound HTTP client for crawling and PDF downloads."""
    async with httpx.AsyncClient(
        headers={"User-Agent": settings.crawler.user_agent},
        follow_redirects=True,
        timeout=settings.http_timeout,
        event_hooks={"request": [reject_internal_requests]},
    ) as client:
        yield client


def get_storage_service() -> StorageService:
    return StorageService()


def get_llm_client() -> LLMClient:
    return create_llm_client(settings.llm)


def get_llm_throttle() -> RequestThrottle:
    return LLM_THROTTLE


async def get_ingestion_service(
    store: Annotated[ComplianceStore, Depends(get_store)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> DocumentIngestionService:
    acquirer = build_content_acquirer(
        client=client,
        storage=storage,
        crawler=WebCrawler(client, settings.crawler),
        scraper=WebPageScraper(client, settings.crawler),
    )
    return DocumentIngestionService(store, acquirer, storage)


async def get_catalog(
    store: Annotated[ComplianceStore, Depends(get_store)]
) -> RequirementCatalog:
    return RequirementCatalog(store)


async def get_orchestrator(
    store: Annotated[ComplianceStore, Depends(get_store)],
    catalog: Annotated[RequirementCatalog, Depends(get_catalog)],
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
    ingestion: Annotated[DocumentIngestionService, Depends(get_ingestion_service)],
    throttle: Annotated[RequestThrottle, Depends(get_llm_throttle)],
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        store,
        llm_client,
        catalog=catalog,
        reingest=ingestion.reingest,
        throttle=throttle,
    )


async def get_persistence_service(
    store: Annotated[ComplianceStore, Depends(get_store)],
    catalog: Annotated[RequirementCatalog, Depends(get_catalog)],
) -> AnalysisPersistenceService:
    return AnalysisPersistenceService(store, catalog=catalog)


async def get_report_service(
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
) -> ReportService:
    return ReportService(persistence)
