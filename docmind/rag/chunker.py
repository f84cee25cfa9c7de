"""Text chunking with overlap for RAG pipeline.

Implements fixed-size character windows to stay provider-agnostic and
avoid tokenizer dependencies. Recall lost at window edges is recovered by
the overlap between neighbouring windows.
"""
from typing import List
import structlog

from docmind import config
from docmind.errors import ChunkingError
from docmind.rag.models import Chunk

logger = structlog.get_logger()


def _validate(size: int, overlap: int) -> None:
    if size < 1:
        raise ChunkingError(f"Chunk size must be at least 1, got {size}")
    if overlap < 0:
        raise ChunkingError(f"Overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ChunkingError(
            f"Overlap ({overlap}) must be less than chunk size ({size})"
        )


def chunk_text(text: str, size: int, overlap: int) -> List[str]:
    """Split text into overlapping fixed-size windows.

    Each window starts ``size - overlap`` characters after the previous one.
    The window that reaches the end of the text is the last; it may be
    shorter than ``size``.

    Args:
        text: Text to chunk
        size: Window length in characters
        overlap: Characters shared by adjacent windows

    Returns:
        List of chunk strings (empty for empty text)

    Raises:
        ChunkingError: If size < 1, overlap < 0 or overlap >= size
    """
    _validate(size, overlap)

    if not text:
        return []

    step = size - overlap
    text_length = len(text)
    chunks = []

    for start in range(0, text_length, step):
        chunks.append(text[start : start + size])
        if start + size >= text_length:
            break

    return chunks


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)

        Raises:
            ChunkingError: If the parameters are invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )

        _validate(self.chunk_size, self.chunk_overlap)

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[str]:
        """Split text using this chunker's settings."""
        return chunk_text(text, self.chunk_size, self.chunk_overlap)

    def chunk_document(
        self, document_id: str, document_name: str, content: str
    ) -> List[Chunk]:
        """Split a document into Chunk objects ready for embedding.

        Args:
            document_id: ID of the owning document
            document_name: Display name, copied onto every chunk
            content: Full document text

        Returns:
            List of Chunk objects in document order
        """
        pieces = self.chunk_text(content)

        if pieces:
            logger.info(
                "text_chunked",
                document_id=document_id,
                text_length=len(content),
                chunk_count=len(pieces),
                avg_chunk_size=sum(len(p) for p in pieces) // len(pieces),
            )

        return [
            Chunk(document_id=document_id, document_name=document_name, text=piece)
            for piece in pieces
        ]
