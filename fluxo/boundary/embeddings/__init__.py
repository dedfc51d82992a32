"""
Embedding model boundary.

Exports:
  - build_embeddings: Factory returning the configured embedder or None
"""

from fluxo.boundary.embeddings.factory import build_embeddings

__all__ = ["build_embeddings"]
