"""Repositories for versioned compliance checks and their results."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.database.models import ComplianceCheck, ComplianceResult
from mica_checker.repositories.base_repository import BaseRepository
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ComplianceCheckRepository(BaseRepository[ComplianceCheck]):
    """Repository for compliance check (analysis version) records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ComplianceCheck)

    async def list_versions(self, document_id: UUID, template_id: UUID) -> List[ComplianceCheck]:
        """All checks of a (document, template) pair, newest version first."""
        try:
            query = (
                select(ComplianceCheck)
                .where(
                    ComplianceCheck.document_id == document_id,
                    ComplianceCheck.template_id == template_id,
                )
                .order_by(ComplianceCheck.version.desc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Error listing versions for document {document_id}: {e}",
                exc_info=True,
                extra={"template_id": str(template_id)},
            )
            raise

    async def delete_with_results(self, check_id: UUID) -> bool:
        """Delete a check and its results in one transaction.

        Returns:
            True if the check existed
        """
        try:
            check = await self.get_by_id(check_id)
            if check is None:
                return False
            await self.session.execute(
                delete(ComplianceResult).where(ComplianceResult.check_id == check_id)
            )
            await self.session.execute(
                delete(ComplianceCheck).where(ComplianceCheck.id == check_id)
            )
            await self.session.commit()
            return True
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Error deleting check {check_id}: {e}", exc_info=True)
            raise


class ComplianceResultRepository(BaseRepository[ComplianceResult]):
    """Repository for per-item analysis results."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ComplianceResult)

    async def get_by_check(self, check_id: UUID) -> List[ComplianceResult]:
        """Results of a check in insertion order."""
        try:
            query = (
                select(ComplianceResult)
                .where(ComplianceResult.check_id == check_id)
                .order_by(ComplianceResult.position.asc())
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading results for check {check_id}: {e}", exc_info=True)
            raise

    async def replace_for_check(self, check_id: UUID, rows: Sequence[Dict[str, Any]]) -> int:
        """Atomically replace every result of a check.

        The delete and the inserts share one transaction, so a failed insert
        leaves the previous results in place.

        Args:
            check_id: Owning check
            rows: Column values for each new result

        Returns:
            Number of results inserted
        """
        try:
            await self.session.execute(
                delete(ComplianceResult).where(ComplianceResult.check_id == check_id)
            )
            for row in rows:
                self.session.add(ComplianceResult(check_id=check_id, **row))
            await self.session.flush()
            await self.session.commit()
            return len(rows)
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Error replacing results for check {check_id}: {e}",
                exc_info=True,
                extra={"check_id": str(check_id), "result_count": len(rows)},
            )
            raise

    async def override_status(
        self,
        result_id: UUID,
        status: str,
        coverage_score: int,
    ) -> Optional[ComplianceResult]:
        """Set status and score together and flag the result as manually overridden."""
        return await self.update(
            result_id,
            status=status,
            coverage_score=coverage_score,
            manually_overridden=True,
            updated_at=datetime.now(timezone.utc),
        )
