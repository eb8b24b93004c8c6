"""Conversion of domain errors into problem-detail responses."""

from typing import List, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from mica_checker.core.exceptions import (
    AcquisitionError,
    APIClientError,
    AppError,
    CheckNotFoundError,
    ConfigurationError,
    ContentUnavailableError,
    DatabaseError,
    DocumentNotFoundError,
    ResponseParseError,
    ResultNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from mica_checker.utils.logging import get_logger
from mica_checker.utils.responses import create_error_detail

LOGGER = get_logger(__name__)

# Most specific first
ERROR_STATUS_MAP: List[Tuple[Type[AppError], int, str]] = [
    (DocumentNotFoundError, status.HTTP_404_NOT_FOUND, "Document Not Found"),
    (TemplateNotFoundError, status.HTTP_404_NOT_FOUND, "Template Not Found"),
    (CheckNotFoundError, status.HTTP_404_NOT_FOUND, "Analysis Not Found"),
    (ResultNotFoundError, status.HTTP_404_NOT_FOUND, "Result Not Found"),
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid Request"),
    (ContentUnavailableError, status.HTTP_422_UNPROCESSABLE_ENTITY, "Content Unavailable"),
    (AcquisitionError, status.HTTP_502_BAD_GATEWAY, "Content Acquisition Failed"),
    (ResponseParseError, status.HTTP_502_BAD_GATEWAY, "Invalid Model Response"),
    (APIClientError, status.HTTP_502_BAD_GATEWAY, "Upstream Service Error"),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Persistence Failure"),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE, "Service Not Configured"),
]


def status_for_error(error: AppError) -> Tuple[int, str]:
    for error_type, status_code, title in ERROR_STATUS_MAP:
        if isinstance(error, error_type):
            return status_code, title
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status_code, title = status_for_error(exc)
    if status_code >= 500:
        LOGGER.error(
            f"{title}: {exc.message}",
            exc_info=exc,
            extra={"path": request.url.path, "status_code": status_code},
        )
    else:
        LOGGER.warning(f"{title}: {exc.message}", extra={"path": request.url.path})

    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=exc.message,
        request=request,
    )
    return JSONResponse(status_code=status_code, content=error_detail.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
