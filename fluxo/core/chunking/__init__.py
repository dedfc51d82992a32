"""
Text chunking for RAG source ingestion.

Exports:
  - split_into_sentences: Sentence boundary detection
  - chunk_text_by_sentences: Greedy sentence packing with overlap
  - chunk_text: Legacy character-overlap entry point
  - SentenceChunker: Chunker bound to configured size and overlap
"""

from fluxo.core.chunking.sentence_chunker import (
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_OVERLAP_SENTENCES,
    SentenceChunker,
    chunk_text,
    chunk_text_by_sentences,
    split_into_sentences,
)

__all__ = [
    "DEFAULT_MAX_CHUNK_SIZE",
    "DEFAULT_OVERLAP_SENTENCES",
    "SentenceChunker",
    "chunk_text",
    "chunk_text_by_sentences",
    "split_into_sentences",
]
