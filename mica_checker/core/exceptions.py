"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class PersistenceError(DatabaseError):
    """Raised when a compliance check record cannot be written."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class UnsafeUrlError(ValidationError):
    """Raised when a URL targets a disallowed scheme or host."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class AcquisitionError(AppError):
    """Raised when content cannot be fetched or extracted from a source."""
    pass


class ContentUnavailableError(AcquisitionError):
    """Raised when a document has no usable text content."""
    pass


class ResponseParseError(AppError):
    """Raised when a model response does not contain the expected JSON."""
    pass


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""
    pass


class TemplateNotFoundError(AppError):
    """Raised when a requirement template is not found."""
    pass


class CheckNotFoundError(AppError):
    """Raised when a compliance check (analysis version) is not found."""
    pass


class ResultNotFoundError(AppError):
    """Raised when a single analysis result is not found."""
    pass
