"""
Source and source chunk CRUD operations.

Dependencies: sqlalchemy, fluxo.boundary.db.models
System role: RAG source persistence operations
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.CRUD.base_crud import BaseCRUD
from fluxo.boundary.db.models.source_model import SourceChunkModel, SourceModel


class SourceCRUD(BaseCRUD[SourceModel]):
    """CRUD operations for SourceModel."""

    def __init__(self) -> None:
        """Initialize SourceCRUD with SourceModel."""
        super().__init__(SourceModel)

    async def list_sources(
        self,
        session: AsyncSession,
        limit: int | None = None,
        offset: int = 0,
        active_only: bool = False,
    ) -> Sequence[SourceModel]:
        """
        Retrieve sources, newest first.

        Args:
            session: Async database session
            limit: Maximum number of sources to return (None for all)
            offset: Number of sources to skip
            active_only: Skip sources with is_active=False

        Returns:
            Sequence of SourceModels
        """
        stmt = select(SourceModel).order_by(SourceModel.created_at.desc())
        if active_only:
            stmt = stmt.where(SourceModel.is_active.is_(True))
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()


class SourceChunkCRUD(BaseCRUD[SourceChunkModel]):
    """
    CRUD operations for SourceChunkModel.

    Chunks are always replaced as a whole per source, never edited.
    """

    def __init__(self) -> None:
        """Initialize SourceChunkCRUD with SourceChunkModel."""
        super().__init__(SourceChunkModel)

    async def get_by_source(
        self,
        session: AsyncSession,
        source_id: UUID,
    ) -> Sequence[SourceChunkModel]:
        """
        Retrieve a source's chunks in chunk order.

        Args:
            session: Async database session
            source_id: Parent source UUID

        Returns:
            Sequence of SourceChunkModels ordered by chunk_index
        """
        stmt = (
            select(SourceChunkModel)
            .where(SourceChunkModel.source_id == source_id)
            .order_by(SourceChunkModel.chunk_index)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def delete_by_source(self, session: AsyncSession, source_id: UUID) -> int:
        """
        Delete every chunk of a source.

        Args:
            session: Async database session
            source_id: Parent source UUID

        Returns:
            Number of chunks deleted
        """
        stmt = delete(SourceChunkModel).where(SourceChunkModel.source_id == source_id)
        result = await session.execute(stmt)
        return result.rowcount

    async def create_many(
        self,
        session: AsyncSession,
        source_id: UUID,
        texts: Sequence[str],
        embeddings: Sequence[list[float]] | None = None,
    ) -> list[SourceChunkModel]:
        """
        Persist chunks for a source with chunk_index following list order.

        Args:
            session: Async database session
            source_id: Parent source UUID
            texts: Chunk texts in order
            embeddings: One vector per text, or None to store no vectors

        Returns:
            Created SourceChunkModels
        """
        if embeddings is not None and len(embeddings) != len(texts):
            raise ValueError("embeddings must match texts one to one")

        chunks = [
            SourceChunkModel(
                source_id=source_id,
                chunk_index=index,
                text=text,
                embedding=embeddings[index] if embeddings is not None else None,
            )
            for index, text in enumerate(texts)
        ]
        session.add_all(chunks)
        await session.flush()
        return chunks

    async def count_by_sources(
        self,
        session: AsyncSession,
        source_ids: Sequence[UUID],
    ) -> dict[UUID, int]:
        """
        Count chunks for several sources in one query.

        Args:
            session: Async database session
            source_ids: Source UUIDs to count

        Returns:
            Mapping of source ID to chunk count (0 for sources without chunks)
        """
        counts = {source_id: 0 for source_id in source_ids}
        if not source_ids:
            return counts

        stmt = (
            select(SourceChunkModel.source_id, func.count())
            .where(SourceChunkModel.source_id.in_(source_ids))
            .group_by(SourceChunkModel.source_id)
        )
        result = await session.execute(stmt)
        counts.update({source_id: count for source_id, count in result.all()})
        return counts


source_crud = SourceCRUD()
source_chunk_crud = SourceChunkCRUD()
