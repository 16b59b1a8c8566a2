from datetime import datetime, timezone
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_intake.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Keyed insert, lookup and update for one case store table.

    Case store rows are never deleted, so there is no delete here. Each write
    commits immediately: a case step is one unit of work.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _fail(self, action: str, key: Any, error: SQLAlchemyError) -> None:
        self.logger.error(
            f"{self.model.__name__} {action} failed for {key!r}: {error}",
            exc_info=True,
        )

    async def get_by_id(self, key: Any) -> Optional[ModelType]:
        try:
            return await self.session.get(self.model, key)
        except SQLAlchemyError as e:
            self._fail("lookup", key, e)
            raise

    async def create(self, **values) -> ModelType:
        """Insert a row and commit."""
        row = self.model(**values)
        try:
            self.session.add(row)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self._fail("insert", values, e)
            raise
        return row

    async def update(self, key: Any, **values) -> Optional[ModelType]:
        """Set known columns on the row with primary key ``key``.

        Unknown names are ignored. ``updated_at`` is stamped when the model
        has one. Returns None when no row exists.
        """
        row = await self.get_by_id(key)
        if row is None:
            return None

        for column, value in values.items():
            if hasattr(row, column):
                setattr(row, column, value)
        if hasattr(row, "updated_at"):
            row.updated_at = datetime.now(timezone.utc)

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self._fail("update", key, e)
            raise
        return row
