"""
Knowledge-base source service.

Manages admin-curated sources and turns their text into ordered,
sentence-aligned chunks (optionally embedded) for retrieval.

Dependencies: fluxo.boundary.db.CRUD, fluxo.core.chunking, langchain_core
System role: RAG source ingestion orchestration
"""

import logging
from typing import Any
from uuid import UUID

from langchain_core.embeddings import Embeddings
from sqlalchemy.ext.asyncio import AsyncSession

from fluxo.boundary.db.CRUD.source_crud import source_chunk_crud, source_crud
from fluxo.boundary.db.models.source_model import SourceModel
from fluxo.core.chunking import SentenceChunker
from fluxo.core.exceptions import EmbeddingError, NotFoundError

logger = logging.getLogger(__name__)


class SourceService:
    """Source service orchestrator."""

    def __init__(
        self,
        db: AsyncSession,
        chunker: SentenceChunker,
        embeddings: Embeddings | None = None,
    ) -> None:
        """
        Initialize source service.

        Args:
            db: Async SQLAlchemy session
            chunker: Sentence chunker with the ingestion size/overlap
            embeddings: Embeddings client, None to store chunks without vectors
        """
        self.db = db
        self.chunker = chunker
        self.embeddings = embeddings

    async def create_source(
        self,
        title: str,
        raw_text: str,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a source and ingest its text.

        Args:
            title: Source title
            raw_text: Full document text
            tags: Free-form tags (optional)

        Returns:
            dict: Source data including raw_text and chunk_count

        Raises:
            EmbeddingError: If embedding the chunks fails (nothing is stored)
        """
        try:
            source = await source_crud.create(
                self.db, title=title, raw_text=raw_text, tags=tags or []
            )
            chunk_count = await self._process(source)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Source created",
            extra={"source_id": str(source.id), "title": title, "chunk_count": chunk_count},
        )
        return _source_to_dict(source, chunk_count, include_text=True)

    async def get_source(self, source_id: UUID) -> dict[str, Any]:
        """
        Get a source with its text and chunk count.

        Args:
            source_id: Source UUID

        Returns:
            dict: Source data including raw_text

        Raises:
            NotFoundError: If the source does not exist
        """
        source = await self._get_or_raise(source_id)
        counts = await source_chunk_crud.count_by_sources(self.db, [source.id])
        return _source_to_dict(source, counts[source.id], include_text=True)

    async def list_sources(
        self,
        limit: int | None = None,
        offset: int = 0,
        active_only: bool = False,
    ) -> list[dict[str, Any]]:
        """
        List sources, newest first.

        Args:
            limit: Maximum number of sources to return
            offset: Number of sources to skip
            active_only: Only return active sources

        Returns:
            list[dict]: Source data without raw_text
        """
        sources = await source_crud.list_sources(
            self.db, limit=limit, offset=offset, active_only=active_only
        )
        counts = await source_chunk_crud.count_by_sources(
            self.db, [source.id for source in sources]
        )
        return [_source_to_dict(source, counts[source.id]) for source in sources]

    async def update_source(
        self,
        source_id: UUID,
        title: str | None = None,
        raw_text: str | None = None,
        tags: list[str] | None = None,
        is_active: bool | None = None,
    ) -> dict[str, Any]:
        """
        Partially update a source; re-ingest when its text changes.

        Args:
            source_id: Source UUID
            title: New title (optional)
            raw_text: New text (optional)
            tags: New tags (optional)
            is_active: New active flag (optional)

        Returns:
            dict: Updated source data including raw_text

        Raises:
            NotFoundError: If the source does not exist
        """
        source = await self._get_or_raise(source_id)
        text_changed = raw_text is not None and raw_text != source.raw_text

        if title is not None:
            source.title = title
        if raw_text is not None:
            source.raw_text = raw_text
        if tags is not None:
            source.tags = tags
        if is_active is not None:
            source.is_active = is_active

        try:
            await self.db.flush()
            if text_changed:
                await self._process(source)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(source)
        counts = await source_chunk_crud.count_by_sources(self.db, [source.id])
        logger.info(
            "Source updated",
            extra={"source_id": str(source_id), "reprocessed": text_changed},
        )
        return _source_to_dict(source, counts[source.id], include_text=True)

    async def delete_source(self, source_id: UUID) -> None:
        """
        Delete a source and its chunks.

        Args:
            source_id: Source UUID

        Raises:
            NotFoundError: If the source does not exist
        """
        await self._get_or_raise(source_id)
        try:
            await source_chunk_crud.delete_by_source(self.db, source_id)
            await source_crud.delete_by_id(self.db, source_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("Source deleted", extra={"source_id": str(source_id)})

    async def process_source(self, source_id: UUID) -> int:
        """
        Rebuild the chunks of one source.

        Args:
            source_id: Source UUID

        Returns:
            int: Number of chunks stored

        Raises:
            NotFoundError: If the source does not exist
            EmbeddingError: If embedding fails (previous chunks are kept)
        """
        source = await self._get_or_raise(source_id)
        try:
            chunk_count = await self._process(source)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return chunk_count

    async def reprocess_all_sources(self) -> dict[str, int]:
        """
        Rebuild the chunks of every active source, one commit per source.

        Returns:
            dict: {"sources_processed", "chunks_created"}
        """
        sources = await source_crud.list_sources(self.db, active_only=True)
        chunks_created = 0
        for source in sources:
            chunks_created += await self.process_source(source.id)

        logger.info(
            "All sources reprocessed",
            extra={"sources_processed": len(sources), "chunks_created": chunks_created},
        )
        return {"sources_processed": len(sources), "chunks_created": chunks_created}

    async def _process(self, source: SourceModel) -> int:
        """Replace the source's chunks within the current transaction."""
        texts = self.chunker.chunk(source.raw_text)
        vectors = await self._embed(source.id, texts) if texts else None

        deleted = await source_chunk_crud.delete_by_source(self.db, source.id)
        await source_chunk_crud.create_many(self.db, source.id, texts, vectors)

        logger.info(
            "Source processed",
            extra={
                "source_id": str(source.id),
                "chunks_deleted": deleted,
                "chunks_created": len(texts),
                "embedded": vectors is not None,
            },
        )
        return len(texts)

    async def _embed(self, source_id: UUID, texts: list[str]) -> list[list[float]] | None:
        if self.embeddings is None:
            return None
        try:
            return await self.embeddings.aembed_documents(texts)
        except Exception as e:
            logger.error(
                "Failed to embed source chunks",
                extra={"source_id": str(source_id), "error": str(e)},
            )
            raise EmbeddingError(
                "Failed to embed source chunks",
                details={"source_id": str(source_id), "error": str(e)},
            ) from e

    async def _get_or_raise(self, source_id: UUID) -> SourceModel:
        source = await source_crud.get_by_id(self.db, source_id)
        if source is None:
            raise NotFoundError("Source not found", resource="source", resource_id=source_id)
        return source


def _source_to_dict(
    source: SourceModel,
    chunk_count: int,
    include_text: bool = False,
) -> dict[str, Any]:
    data = {
        "id": source.id,
        "title": source.title,
        "tags": list(source.tags or []),
        "is_active": source.is_active,
        "chunk_count": chunk_count,
        "created_at": source.created_at,
        "updated_at": source.updated_at,
    }
    if include_text:
        data["raw_text"] = source.raw_text
    return data
