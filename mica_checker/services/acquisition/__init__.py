"""Content acquisition: PDF text extraction, website crawling and fallbacks."""

from mica_checker.services.acquisition.strategies import (
    AcquisitionResult,
    ContentAcquirer,
    SourceRef,
    build_content_acquirer,
)
from mica_checker.services.acquisition.url_guard import validate_public_url

__all__ = [
    "AcquisitionResult",
    "ContentAcquirer",
    "SourceRef",
    "build_content_acquirer",
    "validate_public_url",
]
