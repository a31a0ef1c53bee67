"""
Base Repository for Billflow

Generic async repository over a caller-owned session. Repositories never
commit: the service that owns the unit of work decides when to commit.
"""

from typing import TypeVar, Generic, Optional, Type, Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variable for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)


def to_uuid(value: Any) -> Optional[UUID]:
    """Coerce a path/body identifier to UUID; None when malformed."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository with common read/write helpers.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: Any, fresh: bool = False) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: UUID primary key (strings are coerced)
            fresh: Re-read the row even if it is already in the identity map

        Returns:
            Model instance or None if not found
        """
        key = to_uuid(id)
        if key is None:
            return None
        if not fresh:
            return await self._session.get(self._model, key)

        stmt = (
            select(self._model)
            .where(self._model.id == key)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock(self, id: Any) -> Optional[ModelType]:
        """Read a row FOR UPDATE inside the current transaction."""
        key = to_uuid(id)
        if key is None:
            return None
        stmt = (
            select(self._model)
            .where(self._model.id == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, db_obj: ModelType) -> ModelType:
        """
        Stage a new record and flush it so defaults and ids are populated.

        Args:
            db_obj: Model instance to insert

        Returns:
            The same instance, now persistent in the session
        """
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def merge_metadata(self, id: Any, patch: dict) -> Optional[ModelType]:
        """
        Merge keys into the row's JSON metadata under a row lock.

        A new dict is always assigned so the JSON column is marked dirty.
        """
        db_obj = await self.lock(id)
        if db_obj is None:
            return None
        db_obj.meta = {**(db_obj.meta or {}), **patch}
        self._session.add(db_obj)
        await self._session.flush()
        return db_obj
