"""Storage adapter used by the compliance services.

``ComplianceStore`` is the narrow interface the ingestion, analysis and
persistence services depend on. ``SqlComplianceStore`` implements it over
the SQLAlchemy repositories; tests substitute an in-memory double.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.database.models import (
    CheckerTemplate,
    ComplianceCheck,
    ComplianceResult,
    Document,
    DocumentChunk,
)
from mica_checker.repositories.chunk_repository import ChunkRepository
from mica_checker.repositories.compliance_repository import (
    ComplianceCheckRepository,
    ComplianceResultRepository,
)
from mica_checker.repositories.document_repository import DocumentRepository
from mica_checker.repositories.template_repository import TemplateRepository
from mica_checker.schemas.compliance import (
    AnalysisResult,
    AnalysisSummary,
    CheckSummary,
    OrderedChunk,
    ResultStatus,
    ScoringRegime,
)
from mica_checker.schemas.documents import StoredDocument
from mica_checker.services.chunking.chunker import TextChunk
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class CatalogItemRecord:
    """A requirement row exactly as stored (scoring logic still free text)."""
    id: UUID
    category: str
    item_name: str
    description: str = ""
    weight: int = 1
    scoring_logic: Optional[str] = None
    field_type: Optional[str] = None
    sort_order: int = 0


@dataclass
class TemplateRecord:
    """A template row with its items in declaration order."""
    id: UUID
    name: str
    type: str
    scoring_regime: Optional[str] = None
    description: Optional[str] = None
    items: List[CatalogItemRecord] = field(default_factory=list)


class ComplianceStore(Protocol):
    """Operations the compliance services need from persistent storage."""

    async def create_document(
        self,
        file_name: str,
        file_path: str,
        mime_type: str,
        owner_id: Optional[str] = None,
        page_count: Optional[int] = None,
    ) -> StoredDocument: ...

    async def get_document(self, document_id: UUID) -> Optional[StoredDocument]: ...

    async def find_document(
        self, file_path: str, mime_type: str, owner_id: Optional[str] = None
    ) -> Optional[StoredDocument]: ...

    async def update_document(self, document_id: UUID, **fields: Any) -> Optional[StoredDocument]: ...

    async def set_document_hash(self, document_id: UUID, doc_hash: str) -> bool: ...

    async def store_chunks(self, document_id: UUID, chunks: Sequence[TextChunk]) -> int: ...

    async def get_chunks(self, document_id: UUID, limit: Optional[int] = None) -> List[OrderedChunk]: ...

    async def list_documents(
        self, owner_id: Optional[str] = None, mime_type: Optional[str] = None, limit: int = 50
    ) -> List[StoredDocument]: ...

    async def get_template(self, template_id: UUID) -> Optional[TemplateRecord]: ...

    async def list_templates(self) -> List[TemplateRecord]: ...

    async def list_checks(self, document_id: UUID, template_id: UUID) -> List[CheckSummary]: ...

    async def get_check(self, check_id: UUID) -> Optional[CheckSummary]: ...

    async def create_check(
        self, document_id: UUID, template_id: UUID, version: int, summary: AnalysisSummary
    ) -> CheckSummary: ...

    async def update_check(self, check_id: UUID, summary: AnalysisSummary) -> Optional[CheckSummary]: ...

    async def replace_results(self, check_id: UUID, results: Sequence[AnalysisResult]) -> int: ...

    async def get_results(self, check_id: UUID) -> List[AnalysisResult]: ...

    async def get_result(self, result_id: UUID) -> Optional[AnalysisResult]: ...

    async def override_result_status(
        self, result_id: UUID, status: ResultStatus, coverage_score: int
    ) -> Optional[AnalysisResult]: ...

    async def delete_check(self, check_id: UUID) -> bool: ...


def summary_columns(summary: AnalysisSummary) -> Dict[str, Any]:
    """Column values of a check row for a summary."""
    return {
        "scoring_regime": summary.scoring_regime.value,
        "overall_score": summary.overall_score,
        "found_items": summary.found_items,
        "clarification_items": summary.clarification_items,
        "missing_items": summary.missing_items,
        "not_applicable_items": summary.not_applicable_items,
        "total_risk_score": summary.total_risk_score,
        "max_risk_score": summary.max_risk_score,
        "risk_percentage": summary.risk_percentage,
    }


def _to_document(row: Document) -> StoredDocument:
    return StoredDocument(
        id=row.id,
        file_name=row.file_name,
        file_path=row.file_path,
        mime_type=row.mime_type,
        doc_hash=row.doc_hash,
        owner_id=row.owner_id,
        page_count=row.page_count,
        created_at=row.created_at,
    )


def _to_template(row: CheckerTemplate) -> TemplateRecord:
    return TemplateRecord(
        id=row.id,
        name=row.name,
        type=row.type,
        scoring_regime=row.scoring_regime,
        description=row.description,
        items=[
            CatalogItemRecord(
                id=item.id,
                category=item.category,
                item_name=item.item_name,
                description=item.description,
                weight=item.weight,
                scoring_logic=item.scoring_logic,
                field_type=item.field_type,
                sort_order=item.sort_order,
            )
            for item in row.items
        ],
    )


def _to_chunk(row: DocumentChunk) -> OrderedChunk:
    return OrderedChunk(
        chunk_index=row.chunk_index,
        content=row.content,
        word_count=row.word_count,
        page_number=row.page_number,
        start_offset=row.start_offset,
        end_offset=row.end_offset,
    )


def _to_check(row: ComplianceCheck) -> CheckSummary:
    found = row.found_items or 0
    clarification = row.clarification_items or 0
    missing = row.missing_items or 0
    not_applicable = row.not_applicable_items or 0
    total = found + clarification + missing + not_applicable
    return CheckSummary(
        check_id=row.id,
        document_id=row.document_id,
        template_id=row.template_id,
        version=row.version,
        status=row.status,
        summary=AnalysisSummary(
            scoring_regime=ScoringRegime(row.scoring_regime),
            total_items=total,
            found_items=found,
            clarification_items=clarification,
            missing_items=missing,
            not_applicable_items=not_applicable,
            applicable_items=total - not_applicable,
            overall_score=row.overall_score or 0,
            total_risk_score=row.total_risk_score,
            max_risk_score=row.max_risk_score,
            risk_percentage=row.risk_percentage,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_result(row: ComplianceResult) -> AnalysisResult:
    return AnalysisResult(
        result_id=str(row.id),
        item_id=row.item_id,
        category=row.category,
        item_name=row.item_name,
        status=ResultStatus(row.status),
        coverage_score=row.coverage_score,
        reasoning=row.reasoning,
        evidence_snippets=list(row.evidence_snippets or []),
        selected_answer=row.selected_answer,
        manually_overridden=row.manually_overridden,
        check_id=row.check_id,
    )


class SqlComplianceStore:
    """``ComplianceStore`` backed by SQLAlchemy repositories sharing one session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.documents = DocumentRepository(session)
        self.chunks = ChunkRepository(session)
        self.templates = TemplateRepository(session)
        self.checks = ComplianceCheckRepository(session)
        self.results = ComplianceResultRepository(session)

    async def create_document(
        self,
        file_name: str,
        file_path: str,
        mime_type: str,
        owner_id: Optional[str] = None,
        page_count: Optional[int] = None,
    ) -> StoredDocument:
        row = await self.documents.create(
            file_name=file_name,
            file_path=file_path,
            mime_type=mime_type,
            owner_id=owner_id,
            page_count=page_count,
        )
        await self.session.refresh(row)
        return _to_document(row)

    async def get_document(self, document_id: UUID) -> Optional[StoredDocument]:
        row = await self.documents.get_by_id(document_id)
        return _to_document(row) if row else None

    async def find_document(
        self, file_path: str, mime_type: str, owner_id: Optional[str] = None
    ) -> Optional[StoredDocument]:
        row = await self.documents.find_by_source(file_path, mime_type, owner_id)
        return _to_document(row) if row else None

    async def update_document(self, document_id: UUID, **fields: Any) -> Optional[StoredDocument]:
        row = await self.documents.update(document_id, **fields)
        return _to_document(row) if row else None

    async def set_document_hash(self, document_id: UUID, doc_hash: str) -> bool:
        return await self.documents.set_hash(document_id, doc_hash)

    async def store_chunks(self, document_id: UUID, chunks: Sequence[TextChunk]) -> int:
        return await self.chunks.replace_chunks(document_id, chunks)

    async def get_chunks(self, document_id: UUID, limit: Optional[int] = None) -> List[OrderedChunk]:
        rows = await self.chunks.get_by_document(document_id, limit=limit)
        return [_to_chunk(row) for row in rows]

    async def list_documents(
        self, owner_id: Optional[str] = None, mime_type: Optional[str] = None, limit: int = 50
    ) -> List[StoredDocument]:
        rows = await self.documents.list_recent(owner_id, mime_type, limit)
        return [_to_document(row) for row in rows]

    async def get_template(self, template_id: UUID) -> Optional[TemplateRecord]:
        row = await self.templates.get_with_items(template_id)
        return _to_template(row) if row else None

    async def list_templates(self) -> List[TemplateRecord]:
        return [_to_template(row) for row in await self.templates.list_active()]

    async def list_checks(self, document_id: UUID, template_id: UUID) -> List[CheckSummary]:
        rows = await self.checks.list_versions(document_id, template_id)
        return [_to_check(row) for row in rows]

    async def get_check(self, check_id: UUID) -> Optional[CheckSummary]:
        row = await self.checks.get_by_id(check_id)
        return _to_check(row) if row else None

    async def create_check(
        self, document_id: UUID, template_id: UUID, version: int, summary: AnalysisSummary
    ) -> CheckSummary:
        row = await self.checks.create(
            document_id=document_id,
            template_id=template_id,
            version=version,
            status="completed",
            **summary_columns(summary),
        )
        await self.session.refresh(row)
        return _to_check(row)

    async def update_check(self, check_id: UUID, summary: AnalysisSummary) -> Optional[CheckSummary]:
        row = await self.checks.update(check_id, **summary_columns(summary))
        if row is None:
            return None
        await self.session.refresh(row)
        return _to_check(row)

    async def replace_results(self, check_id: UUID, results: Sequence[AnalysisResult]) -> int:
        rows = [
            {
                "item_id": result.item_id,
                "category": result.category,
                "item_name": result.item_name,
                "status": result.status.value,
                "coverage_score": result.coverage_score,
                "reasoning": result.reasoning,
                "evidence_snippets": list(result.evidence_snippets),
                "selected_answer": result.selected_answer,
                "manually_overridden": result.manually_overridden,
                "position": position,
            }
            for position, result in enumerate(results)
        ]
        return await self.results.replace_for_check(check_id, rows)

    async def get_results(self, check_id: UUID) -> List[AnalysisResult]:
        rows = await self.results.get_by_check(check_id)
        return [_to_result(row) for row in rows]

    async def get_result(self, result_id: UUID) -> Optional[AnalysisResult]:
        row = await self.results.get_by_id(result_id)
        return _to_result(row) if row else None

    async def override_result_status(
        self, result_id: UUID, status: ResultStatus, coverage_score: int
    ) -> Optional[AnalysisResult]:
        row = await self.results.override_status(result_id, status.value, coverage_score)
        return _to_result(row) if row else None

    async def delete_check(self, check_id: UUID) -> bool:
        return await self.checks.delete_with_results(check_id)
