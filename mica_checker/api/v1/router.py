from fastapi import APIRouter

from mica_checker.api.v1.endpoints import analysis, documents, templates

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(templates.router, prefix="/templates", tags=["Templates"])
api_router.include_router(analysis.router, prefix="/analysis", tags=["Analysis"])

__all__ = ["api_router"]
