"""
RAG ingestion configuration settings.

Chunking defaults for knowledge-base sources and the optional embedding
model used when storing chunks.

Dependencies: pydantic, pydantic_settings
System role: Knowledge-base ingestion configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from fluxo.configs.base import BaseSettings


class RagSettings(BaseSettings):
    """Source chunking and embedding configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RAG_",
        case_sensitive=False,
        extra="ignore",
    )

    max_chunk_size: int = Field(
        default=800, ge=1, description="Maximum characters per chunk"
    )
    overlap_sentences: int = Field(
        default=2, ge=0, description="Sentences repeated between consecutive chunks"
    )

    embeddings_enabled: bool = Field(
        default=False, description="Embed chunks while ingesting sources"
    )
    embedding_model: str = Field(
        default="models/gemini-embedding-001",
        description="Google Gemini embedding model ID",
    )
