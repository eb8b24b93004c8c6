from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mica_checker.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Lookups and single-row writes shared by the table repositories.

    Writes commit immediately. A failed write rolls the session back, is
    logged and re-raised as the original ``SQLAlchemyError``.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: Mapped class whose rows this repository reads and writes
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Row with this primary key, or None."""
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading {self.model.__name__} {id}: {e}", exc_info=True)
            raise

    async def find_where(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        options: Sequence[Any] = (),
    ) -> List[ModelType]:
        """Rows matching every equality filter.

        Args:
            filters: Column name to required value; None values are skipped
            order_by: Column expressions passed to ``ORDER BY``
            limit: Maximum number of rows
            options: Loader options such as ``selectinload``

        Returns:
            Matching rows in the requested order
        """
        try:
            query = select(self.model)
            for column, value in (filters or {}).items():
                if value is not None:
                    query = query.where(getattr(self.model, column) == value)
            if options:
                query = query.options(*options)
            if order_by:
                query = query.order_by(*order_by)
            if limit is not None:
                query = query.limit(limit)

            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error listing {self.model.__name__}: {e}",
                exc_info=True,
                extra={"filters": {k: str(v) for k, v in (filters or {}).items()}},
            )
            raise

    async def create(self, **values) -> ModelType:
        """Insert one row and commit.

        Returns:
            The new row with its generated id
        """
        instance = self.model(**values)
        try:
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self._rollback(f"creating {self.model.__name__}", e)
            raise

    async def update(self, id: UUID, **values) -> Optional[ModelType]:
        """Set columns on one row and commit; None when the row does not exist.

        ``updated_at`` is refreshed on models that carry it.
        """
        try:
            instance = await self.get_by_id(id)
            if instance is None:
                return None

            for column, value in values.items():
                setattr(instance, column, value)
            if hasattr(instance, "updated_at"):
                instance.updated_at = datetime.now(timezone.utc)

            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self._rollback(f"updating {self.model.__name__} {id}", e)
            raise

    async def _rollback(self, action: str, error: SQLAlchemyError) -> None:
        await self.session.rollback()
        self.logger.error(f"Error {action}: {error}", exc_info=True)
