"""Compliance analysis endpoints: run, save, version and export analyses."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from mica_checker.api.dependencies import (
    get_orchestrator,
    get_persistence_service,
    get_report_service,
)
from mica_checker.core.exceptions import CheckNotFoundError
from mica_checker.schemas.compliance import (
    AnalyzeRequest,
    SaveAnalysisRequest,
    StatusUpdateRequest,
)
from mica_checker.schemas.responses import ApiResponse
from mica_checker.services.analysis.orchestrator import AnalysisOrchestrator
from mica_checker.services.persistence.analysis_persistence import AnalysisPersistenceService
from mica_checker.services.report_service import ExportFormat, ReportService
from mica_checker.utils.logging import get_logger
from mica_checker.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse,
    summary="Analyze a document against a template",
    operation_id="analyze_document",
)
async def analyze_document(
    request: Request,
    body: AnalyzeRequest,
    orchestrator: Annotated[AnalysisOrchestrator, Depends(get_orchestrator)],
) -> ApiResponse:
    """Run an analysis and return unsaved results with their summary.

    Partial failures (a failed category, the time budget) still return a
    full result set; see ``failed_units`` and ``timed_out``.
    """
    outcome = await orchestrator.analyze(
        body.document_id,
        body.template_id,
        mode=body.mode,
        categories=body.categories,
        whitepaper_section=body.whitepaper_section,
    )

    message = f"Analyzed {len(outcome.results)} requirements"
    if outcome.timed_out:
        message += " (stopped early by the time budget)"
    elif outcome.failed_units:
        message += f" ({len(outcome.failed_units)} analysis units failed)"

    return create_api_response(data=outcome, message=message, request=request)


@router.post(
    "/save",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save an analysis as a new or overwritten version",
    operation_id="save_analysis",
)
async def save_analysis(
    request: Request,
    body: SaveAnalysisRequest,
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
) -> ApiResponse:
    """Save results; a failed results write is reported as a partial save."""
    outcome = await persistence.save_analysis(
        body.document_id,
        body.template_id,
        body.results,
        summary=body.summary,
        overwrite=body.overwrite,
        target_version=body.target_version,
        doc_hash=body.doc_hash,
    )

    if outcome.is_partial:
        message = f"Analysis version {outcome.version} saved without results: {outcome.results_error}"
    else:
        verb = "overwritten" if outcome.overwritten else "saved"
        message = f"Analysis version {outcome.version} {verb}"

    return create_api_response(
        data=outcome,
        message=message,
        status=not outcome.is_partial,
        request=request,
    )


@router.patch(
    "/results/{result_id}/status",
    response_model=ApiResponse,
    summary="Manually override a result's status",
    operation_id="update_result_status",
)
async def update_result_status(
    request: Request,
    result_id: str,
    body: StatusUpdateRequest,
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
) -> ApiResponse:
    """Override a result's status; temporary results are not persisted."""
    outcome = await persistence.update_result_status(result_id, body.status)

    return create_api_response(
        data=outcome,
        message=(
            "Unsaved result updated" if outcome.temporary else f"Result status set to {outcome.status.value}"
        ),
        request=request,
    )


@router.get(
    "/versions",
    response_model=ApiResponse,
    summary="List saved versions of an analysis",
    operation_id="list_analysis_versions",
)
async def list_versions(
    request: Request,
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
    document_id: UUID = Query(...),
    template_id: UUID = Query(...),
) -> ApiResponse:
    """Saved versions for a (document, template) pair, newest first."""
    versions = await persistence.list_versions(document_id, template_id)

    return create_api_response(
        data=versions,
        message=f"Found {len(versions)} versions",
        request=request,
    )


@router.get(
    "/{check_id}",
    response_model=ApiResponse,
    summary="Get a saved analysis",
    operation_id="get_analysis",
)
async def get_analysis(
    request: Request,
    check_id: UUID,
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
) -> ApiResponse:
    """Saved analysis with results, summary, template name and version."""
    analysis = await persistence.get_analysis(check_id)

    return create_api_response(
        data=analysis,
        message="Analysis retrieved successfully",
        request=request,
    )


@router.delete(
    "/{check_id}",
    response_model=ApiResponse,
    summary="Delete a saved analysis",
    operation_id="delete_analysis",
)
async def delete_analysis(
    request: Request,
    check_id: UUID,
    persistence: Annotated[AnalysisPersistenceService, Depends(get_persistence_service)],
) -> ApiResponse:
    """Delete one analysis version and its results."""
    deleted = await persistence.delete_analysis(check_id)
    if not deleted:
        raise CheckNotFoundError(f"Analysis {check_id} not found")

    return create_api_response(
        data={"check_id": str(check_id), "deleted": True},
        message="Analysis deleted successfully",
        request=request,
    )


@router.get(
    "/{check_id}/export",
    summary="Export a saved analysis",
    operation_id="export_analysis",
    response_class=Response,
)
async def export_analysis(
    check_id: UUID,
    report_service: Annotated[ReportService, Depends(get_report_service)],
    export_format: ExportFormat = Query(ExportFormat.JSON, alias="format"),
) -> Response:
    """Download a saved analysis as JSON or Markdown."""
    report = await report_service.export(check_id, export_format)

    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": f'attachment; filename="{report.file_name}"'},
    )


@router.post(
    "/{check_id}/regenerate",
    response_model=ApiResponse,
    summary="Re-analyze unresolved requirements of a saved analysis",
    operation_id="regenerate_analysis",
)
async def regenerate_analysis(
    request: Request,
    check_id: UUID,
    orchestrator: Annotated[AnalysisOrchestrator, Depends(get_orchestrator)],
) -> ApiResponse:
    """Return a merged draft; save it to keep the new assessments."""
    outcome = await orchestrator.regenerate(check_id)

    return create_api_response(
        data=outcome,
        message=f"Regenerated analysis {check_id}",
        request=request,
    )
