"""
Knowledge-base source ORM models.

SourceModel holds an admin-managed document; SourceChunkModel holds the
sentence-aligned chunks derived from it for retrieval.

Dependencies: sqlalchemy, fluxo.boundary.db.base
System role: RAG source and chunk persistence
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fluxo.boundary.db.base import Base, UUIDMixin, TimestampMixin


class SourceModel(Base, UUIDMixin, TimestampMixin):
    """
    Source ORM model.

    Attributes:
        title: Display title
        raw_text: Full document text, the chunker input
        tags: List of free-form tags
        is_active: Inactive sources are skipped by bulk reprocessing
        chunks: Ordered SourceChunkModel rows (cascade delete)
    """

    __tablename__ = "sources"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    chunks = relationship(
        "SourceChunkModel",
        back_populates="source",
        cascade="all, delete-orphan",
        order_by="SourceChunkModel.chunk_index",
    )


class SourceChunkModel(Base, UUIDMixin, TimestampMixin):
    """
    Source chunk ORM model.

    Attributes:
        source_id: Parent source
        chunk_index: Position of the chunk within the source (0-based)
        text: Chunk text
        embedding: Embedding vector, None when embeddings are disabled
    """

    __tablename__ = "source_chunks"
    __table_args__ = (UniqueConstraint("source_id", "chunk_index"),)

    source_id: Mapped[UUID] = mapped_column(
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list | None] = mapped_column(JSON, nullable=True)

    source = relationship("SourceModel", back_populates="chunks")
