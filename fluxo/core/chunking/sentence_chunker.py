"""
Sentence-based text chunker.

Splits knowledge-base documents into bounded, sentence-aligned chunks
with a sentence-level overlap between neighbours so that retrieval keeps
the context around chunk boundaries.

Dependencies: re (stdlib)
System role: Chunking step of RAG source ingestion
"""

import re

DEFAULT_MAX_CHUNK_SIZE = 1000
DEFAULT_OVERLAP_SENTENCES = 2
DEFAULT_LEGACY_OVERLAP = 100
DEFAULT_CHARS_PER_SENTENCE = 100

# Non-terminator run, one terminator, optional closing quote.
_SENTENCE_PATTERN = re.compile(r"""[^.!?]+(?:[.!?](?:["']|(?=\s))?)""")


def split_into_sentences(text: str) -> list[str]:
    """
    Split text into trimmed sentences.

    A sentence is a run of characters ending in '.', '!' or '?', optionally
    followed by a closing quote. Trailing text without a terminator is
    dropped.

    Args:
        text: Raw document text (may be empty)

    Returns:
        list[str]: Non-empty sentences in document order
    """
    if not text:
        return []

    sentences = []
    for match in _SENTENCE_PATTERN.finditer(text):
        sentence = match.group().strip()
        if sentence:
            sentences.append(sentence)
    return sentences


def chunk_text_by_sentences(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    overlap_sentences: int = DEFAULT_OVERLAP_SENTENCES,
) -> list[str]:
    """
    Group sentences into chunks of at most max_chunk_size characters.

    Sentences are added greedily. When the next sentence would overflow a
    non-empty chunk, the chunk is emitted and the next one starts with its
    last overlap_sentences sentences. A single sentence longer than
    max_chunk_size is kept whole as its own chunk.

    Args:
        text: Raw document text
        max_chunk_size: Maximum characters per chunk (joined with single spaces)
        overlap_sentences: Sentences carried over between consecutive chunks

    Returns:
        list[str]: Non-empty chunks in document order

    Raises:
        ValueError: If max_chunk_size < 1 or overlap_sentences < 0
    """
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if overlap_sentences < 0:
        raise ValueError(f"overlap_sentences must be >= 0, got {overlap_sentences}")

    sentences = split_into_sentences(text)
    if not sentences:
        return []

    chunks: list[str] = []
    current: list[str] = []
    current_length = 0

    for sentence in sentences:
        added = len(sentence) + (1 if current else 0)
        if current and current_length + added > max_chunk_size:
            chunks.append(" ".join(current))
            # Slicing clamps the overlap to the closed chunk's length
            current = current[-overlap_sentences:] if overlap_sentences else []
            current_length = _joined_length(current)
            added = len(sentence) + (1 if current else 0)

        current.append(sentence)
        current_length += added

    if current:
        chunks.append(" ".join(current))

    return [chunk for chunk in chunks if chunk]


def chunk_text(
    text: str,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    overlap: int = DEFAULT_LEGACY_OVERLAP,
    chars_per_sentence: int = DEFAULT_CHARS_PER_SENTENCE,
) -> list[str]:
    """
    Legacy character-overlap entry point.

    Best-effort compatibility: the character overlap is converted to a
    sentence count (max(1, overlap // chars_per_sentence)) and the work is
    delegated to chunk_text_by_sentences. The result is not a precise
    character overlap.

    Args:
        text: Raw document text
        max_chunk_size: Maximum characters per chunk
        overlap: Overlap budget in characters
        chars_per_sentence: Characters counted as one sentence

    Returns:
        list[str]: Non-empty chunks in document order
    """
    if chars_per_sentence < 1:
        raise ValueError(f"chars_per_sentence must be positive, got {chars_per_sentence}")
    overlap_sentences = max(1, overlap // chars_per_sentence)
    return chunk_text_by_sentences(text, max_chunk_size, overlap_sentences)


def _joined_length(sentences: list[str]) -> int:
    if not sentences:
        return 0
    return sum(len(s) for s in sentences) + len(sentences) - 1


class SentenceChunker:
    """Sentence chunker bound to a chunk size and overlap."""

    def __init__(
        self,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        overlap_sentences: int = DEFAULT_OVERLAP_SENTENCES,
    ) -> None:
        """
        Initialize chunker.

        Args:
            max_chunk_size: Maximum characters per chunk
            overlap_sentences: Sentences carried over between chunks
        """
        if max_chunk_size < 1:
            raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
        if overlap_sentences < 0:
            raise ValueError(f"overlap_sentences must be >= 0, got {overlap_sentences}")
        self.max_chunk_size = max_chunk_size
        self.overlap_sentences = overlap_sentences

    def chunk(self, text: str) -> list[str]:
        """Chunk text with the configured size and overlap."""
        return chunk_text_by_sentences(text, self.max_chunk_size, self.overlap_sentences)
