"""Requirement template endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from mica_checker.api.dependencies import get_catalog
from mica_checker.schemas.responses import ApiResponse
from mica_checker.services.catalog.catalog_service import RequirementCatalog
from mica_checker.utils.responses import create_api_response

router = APIRouter()


@router.get(
    "/",
    response_model=ApiResponse,
    summary="List requirement templates",
    operation_id="list_templates",
)
async def list_templates(
    request: Request,
    catalog: Annotated[RequirementCatalog, Depends(get_catalog)],
) -> ApiResponse:
    """Active templates ordered by name."""
    templates = await catalog.list_templates()

    return create_api_response(
        data=templates,
        message=f"Retrieved {len(templates)} templates",
        request=request,
    )


@router.get(
    "/{template_id}",
    response_model=ApiResponse,
    summary="Get a requirement template",
    operation_id="get_template",
)
async def get_template(
    request: Request,
    template_id: UUID,
    catalog: Annotated[RequirementCatalog, Depends(get_catalog)],
) -> ApiResponse:
    """Template with its requirements and parsed scoring rules."""
    template = await catalog.get_template(template_id)

    return create_api_response(
        data=template,
        message=f"Template '{template.name}' has {len(template.items)} requirements",
        request=request,
    )
