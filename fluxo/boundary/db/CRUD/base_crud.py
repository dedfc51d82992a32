"""
Shared CRUD helpers for the ORM models.

Model-specific CRUD classes subclass BaseCRUD and add their own keyed
queries. Nothing here commits: services decide where a transaction ends.

Dependencies: sqlalchemy
System role: Common persistence operations
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """Insert, fetch and delete rows of one model by primary key."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    async def create(self, session: AsyncSession, **kwargs) -> ModelT:
        """
        Insert a row and load server/default-generated columns.

        Args:
            session: Async database session
            **kwargs: Column values

        Returns:
            The flushed instance with id and timestamps populated
        """
        instance = self.model(**kwargs)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def get_by_id(self, session: AsyncSession, id: UUID) -> ModelT | None:
        """Fetch a row by primary key, None when absent."""
        result = await session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def delete_by_id(self, session: AsyncSession, id: UUID) -> bool:
        """
        Delete a row by primary key.

        Returns:
            True when a row was removed
        """
        result = await session.execute(delete(self.model).where(self.model.id == id))
        return result.rowcount > 0
