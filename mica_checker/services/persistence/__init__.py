"""Versioned persistence of analysis runs."""

from mica_checker.services.persistence.analysis_persistence import (
    AnalysisPersistenceService,
    compute_document_hash,
)

__all__ = ["AnalysisPersistenceService", "compute_document_hash"]
