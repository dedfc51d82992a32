"""
Knowledge-base source models and schemas.

Request/response schemas for admin source management.

Dependencies: pydantic
System role: Source ingestion API contracts
"""

from pydantic import BaseModel, Field
import uuid
from datetime import datetime


class CreateSourceRequest(BaseModel):
    """Request schema for creating a knowledge-base source."""

    title: str = Field(..., min_length=1, max_length=200, description="Source title")
    raw_text: str = Field(..., min_length=1, description="Full document text")
    tags: list[str] = Field(default_factory=list, description="Free-form tags")


class UpdateSourceRequest(BaseModel):
    """Request schema for partially updating a source."""

    title: str | None = Field(None, min_length=1, max_length=200)
    raw_text: str | None = Field(None, min_length=1)
    tags: list[str] | None = None
    is_active: bool | None = None


class SourceResponse(BaseModel):
    """Response schema for source operations."""

    id: uuid.UUID
    title: str
    tags: list[str]
    is_active: bool
    chunk_count: int
    created_at: datetime
    updated_at: datetime


class SourceDetailResponse(SourceResponse):
    """Source with its full text."""

    raw_text: str


class ReprocessResponse(BaseModel):
    """Response schema for bulk reprocessing."""

    sources_processed: int
    chunks_created: int
