"""
Embedding model factory.

Builds the LangChain embeddings client used while ingesting sources.
Embedding is optional: with RAG_EMBEDDINGS_ENABLED unset, no client is
created and chunks are stored without vectors.

Dependencies: langchain_core, langchain_google_genai, fluxo.configs
System role: Embedding client construction for source ingestion
"""

import logging

from langchain_core.embeddings import Embeddings
from langchain_google_genai import GoogleGenerativeAIEmbeddings

from fluxo.configs.rag import RagSettings

logger = logging.getLogger(__name__)


def build_embeddings(settings: RagSettings) -> Embeddings | None:
    """
    Create the embeddings client for source chunks.

    Args:
        settings: RAG settings (embeddings_enabled, embedding_model)

    Returns:
        Embeddings | None: Gemini embeddings client, or None when disabled
    """
    if not settings.embeddings_enabled:
        logger.info(f"{__name__}:build_embeddings - Embeddings disabled")
        return None

    logger.info(
        f"{__name__}:build_embeddings - Creating GoogleGenerativeAIEmbeddings "
        f"with model={settings.embedding_model}"
    )
    return GoogleGenerativeAIEmbeddings(model=settings.embedding_model)
