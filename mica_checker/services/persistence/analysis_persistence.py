"""Versioned persistence of analysis runs.

Each (document, template) pair has an append-only history of checks
numbered from 1. A save either appends the next version or overwrites one
existing version in place. Writing the check record is all-or-nothing;
writing its results may fail separately, which is reported as a partial
save instead of an error.
"""

import hashlib
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from mica_checker.core.exceptions import (
    CheckNotFoundError,
    DocumentNotFoundError,
    PersistenceError,
    ResultNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from mica_checker.schemas.compliance import (
    TEMP_RESULT_PREFIX,
    AnalysisResult,
    AnalysisSummary,
    CheckSummary,
    ResultStatus,
    SaveOutcome,
    ScoringRegime,
    StatusUpdateOutcome,
    StoredAnalysis,
)
from mica_checker.services.catalog.catalog_service import RequirementCatalog
from mica_checker.services.compliance_store import ComplianceStore
from mica_checker.services.scoring.aggregator import ScoringAggregator
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)

UNKNOWN_TEMPLATE_NAME = "Unknown template"

PASS_RATE_BANDS: Dict[ResultStatus, Tuple[int, int]] = {
    ResultStatus.FOUND: (80, 100),
    ResultStatus.NEEDS_CLARIFICATION: (40, 79),
    ResultStatus.MISSING: (0, 39),
    ResultStatus.NOT_APPLICABLE: (0, 0),
}


def snap_to_band(status: ResultStatus, score: int) -> int:
    """Clamp a pass-rate coverage score into the band of ``status``."""
    low, high = PASS_RATE_BANDS[status]
    return min(max(score, low), high)


def compute_document_hash(content: str) -> str:
    """sha256 hex digest of acquired document text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class AnalysisPersistenceService:
    """Saves, lists, loads and deletes analysis versions."""

    def __init__(
        self,
        store: ComplianceStore,
        catalog: Optional[RequirementCatalog] = None,
        aggregator: Optional[ScoringAggregator] = None,
    ):
        self.store = store
        self.catalog = catalog or RequirementCatalog(store)
        self.aggregator = aggregator or ScoringAggregator()

    async def save_analysis(
        self,
        document_id: UUID,
        template_id: UUID,
        results: Sequence[AnalysisResult],
        summary: Optional[AnalysisSummary] = None,
        overwrite: bool = False,
        target_version: Optional[int] = None,
        doc_hash: Optional[str] = None,
    ) -> SaveOutcome:
        """Save an analysis run.

        Args:
            document_id: Analyzed document
            template_id: Template used
            results: Per-item results (temporary or previously saved ids)
            summary: Summary to store; recomputed from the results when omitted
            overwrite: Replace an existing version instead of appending one
            target_version: Version to overwrite; the latest when omitted
            doc_hash: Content hash to record on the document

        Returns:
            Check id and version, plus whether the results were written

        Raises:
            CheckNotFoundError: If ``target_version`` does not exist
            PersistenceError: If the check record itself cannot be written
        """
        if summary is None:
            template = await self.catalog.get_template(template_id)
            summary = self.aggregator.summarize(template, results)

        existing = await self.store.list_checks(document_id, template_id)

        if overwrite and (existing or target_version is not None):
            target = self._select_target(existing, target_version)
            check = await self._write_check_update(target, summary)
            overwritten = True
        else:
            next_version = max((check.version for check in existing), default=0) + 1
            check = await self._write_new_check(document_id, template_id, next_version, summary)
            overwritten = False

        outcome = SaveOutcome(check_id=check.check_id, version=check.version, overwritten=overwritten)

        try:
            await self.store.replace_results(check.check_id, results)
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Saved check {check.check_id} but failed to save its results: {e}",
                exc_info=True,
                extra={"check_id": str(check.check_id), "result_count": len(results)},
            )
            outcome.results_saved = False
            outcome.results_error = f"Results could not be saved: {e}"

        if doc_hash:
            try:
                outcome.hash_saved = await self.store.set_document_hash(document_id, doc_hash)
            except SQLAlchemyError as e:
                LOGGER.warning(f"Failed to record hash for document {document_id}: {e}")
                outcome.hash_saved = False

        LOGGER.info(
            f"Saved analysis version {outcome.version} for document {document_id}",
            extra={
                "check_id": str(outcome.check_id),
                "overwritten": overwritten,
                "results_saved": outcome.results_saved,
            },
        )
        return outcome

    @staticmethod
    def _select_target(existing: Sequence[CheckSummary], target_version: Optional[int]) -> CheckSummary:
        if target_version is None:
            return max(existing, key=lambda check: check.version)
        for check in existing:
            if check.version == target_version:
                return check
        raise CheckNotFoundError(f"Analysis version {target_version} not found")

    async def _write_new_check(
        self, document_id: UUID, template_id: UUID, version: int, summary: AnalysisSummary
    ) -> CheckSummary:
        try:
            return await self.store.create_check(document_id, template_id, version, summary)
        except SQLAlchemyError as e:
            LOGGER.error(f"Failed to create analysis version {version}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save analysis: {e}", original_error=e) from e

    async def _write_check_update(self, target: CheckSummary, summary: AnalysisSummary) -> CheckSummary:
        try:
            check = await self.store.update_check(target.check_id, summary)
        except SQLAlchemyError as e:
            LOGGER.error(f"Failed to overwrite analysis {target.check_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save analysis: {e}", original_error=e) from e
        if check is None:
            raise CheckNotFoundError(f"Analysis {target.check_id} not found")
        return check

    async def list_versions(self, document_id: UUID, template_id: UUID) -> List[CheckSummary]:
        """Saved versions of a (document, template) pair, newest first."""
        checks = await self.store.list_checks(document_id, template_id)
        return sorted(checks, key=lambda check: check.version, reverse=True)

    async def get_analysis(self, check_id: UUID) -> StoredAnalysis:
        """Load a saved analysis with its results.

        The summary is recomputed from the stored results when the template
        is still available, so risk breakdowns are included.

        Raises:
            CheckNotFoundError: If the check does not exist
        """
        check = await self.store.get_check(check_id)
        if check is None:
            raise CheckNotFoundError(f"Analysis {check_id} not found")

        results = await self.store.get_results(check_id)

        summary = check.summary
        template_name = UNKNOWN_TEMPLATE_NAME
        try:
            template = await self.catalog.get_template(check.template_id)
        except TemplateNotFoundError:
            LOGGER.warning(f"Template {check.template_id} of analysis {check_id} no longer exists")
        else:
            template_name = template.name
            if results:
                summary = self.aggregator.summarize(template, results)

        return StoredAnalysis(
            check=check,
            template_name=template_name,
            version=check.version,
            results=results,
            summary=summary,
        )

    async def delete_analysis(self, check_id: UUID) -> bool:
        """Delete a check and its results.

        Returns:
            False if the check did not exist
        """
        try:
            deleted = await self.store.delete_check(check_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete analysis {check_id}: {e}", original_error=e) from e

        if deleted:
            LOGGER.info(f"Deleted analysis {check_id}")
        return deleted

    async def update_result_status(self, result_id: str, status: ResultStatus) -> StatusUpdateOutcome:
        """Manually override one result's status.

        Temporary (unsaved) results are acknowledged without touching
        storage. Saved results get the new status, a coverage score inside
        the status band (pass-rate checks only) and the override flag; the
        owning check's summary is refreshed.

        Raises:
            ValidationError: If the id is neither temporary nor a UUID
            ResultNotFoundError: If no saved result has this id
        """
        if result_id.startswith(TEMP_RESULT_PREFIX):
            LOGGER.debug(f"Status of unsaved result {result_id} changed to {status.value}")
            return StatusUpdateOutcome(result_id=result_id, status=status, temporary=True)

        try:
            persistent_id = UUID(result_id)
        except ValueError as e:
            raise ValidationError(f"Invalid result id: {result_id}") from e

        current = await self.store.get_result(persistent_id)
        if current is None:
            raise ResultNotFoundError(f"Result {result_id} not found")

        check = await self.store.get_check(current.check_id) if current.check_id else None

        score = current.coverage_score
        if check is None or check.summary.scoring_regime == ScoringRegime.PASS_RATE:
            score = snap_to_band(status, current.coverage_score)

        try:
            updated = await self.store.override_result_status(persistent_id, status, score)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update result {result_id}: {e}", original_error=e) from e
        if updated is None:
            raise ResultNotFoundError(f"Result {result_id} not found")

        if check is not None:
            await self._refresh_check_summary(check)

        LOGGER.info(
            f"Result {result_id} manually set to {status.value}",
            extra={"check_id": str(current.check_id), "coverage_score": score},
        )
        return StatusUpdateOutcome(
            result_id=result_id,
            status=updated.status,
            coverage_score=updated.coverage_score,
            manually_overridden=updated.manually_overridden,
        )

    async def _refresh_check_summary(self, check: CheckSummary) -> None:
        try:
            template = await self.catalog.get_template(check.template_id)
        except TemplateNotFoundError:
            LOGGER.warning(f"Cannot refresh summary of analysis {check.check_id}: template is gone")
            return

        results = await self.store.get_results(check.check_id)
        summary = self.aggregator.summarize(template, results)
        try:
            await self.store.update_check(check.check_id, summary)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to refresh summary of analysis {check.check_id}: {e}", original_error=e
            ) from e

    async def has_changed(self, document_id: UUID, new_hash: str) -> bool:
        """Whether ``new_hash`` differs from the hash recorded for the document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document.doc_hash != new_hash
