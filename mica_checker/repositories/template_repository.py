"""Repository for requirement templates and their items."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mica_checker.database.models import CheckerTemplate
from mica_checker.repositories.base_repository import BaseRepository
from mica_checker.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemplateRepository(BaseRepository[CheckerTemplate]):
    """Read access to checker templates."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CheckerTemplate)

    async def get_with_items(self, template_id: UUID) -> Optional[CheckerTemplate]:
        """Load a template with its items eagerly, items in declaration order."""
        try:
            query = (
                select(CheckerTemplate)
                .options(selectinload(CheckerTemplate.items))
                .where(CheckerTemplate.id == template_id)
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading template {template_id}: {e}", exc_info=True)
            raise

    async def list_active(self) -> List[CheckerTemplate]:
        """Active templates ordered by name, items loaded."""
        return await self.find_where(
            filters={"is_active": True},
            order_by=(CheckerTemplate.name.asc(),),
            options=(selectinload(CheckerTemplate.items),),
        )
