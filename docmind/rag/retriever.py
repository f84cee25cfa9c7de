"""Retriever for semantic search over indexed documents.

Handles:
- Query validation and embedding
- Ranking against the vector index
- Source deduplication and context formatting for prompts
"""
from typing import List, Optional, Sequence

import structlog

from docmind import config
from docmind.rag.models import IndexedVector
from docmind.rag.vector_index import VectorIndex

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n---\n\n"


def unique_sources(chunks: Sequence[IndexedVector]) -> List[str]:
    """Document names of the chunks, deduplicated in first-seen order."""
    return list(dict.fromkeys(chunk.document_name for chunk in chunks))


def format_context(chunks: Sequence[IndexedVector]) -> str:
    """Render retrieved chunks as one context block for the prompt.

    Each chunk is tagged with its document name; chunks are separated by
    a horizontal rule.
    """
    return CONTEXT_SEPARATOR.join(
        f"[Document: {chunk.document_name}]\n{chunk.text}" for chunk in chunks
    )


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        index: VectorIndex,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            index: Vector index to search
            top_k: Number of results to retrieve (default from config.SEARCH_TOP_K)
        """
        self.index = index
        self.top_k = top_k or config.SEARCH_TOP_K

    async def embed_query(self, query: str) -> Optional[List[float]]:
        """Embed a query, or return None if there is nothing to search.

        Blank queries and an empty index both yield None without calling
        the embedding provider.

        Raises:
            EmbeddingFailure: If the query cannot be embedded
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return None
        return await self.index.embed_query(query)

    def rank(
        self,
        query_vector: Optional[Sequence[float]],
        top_k: Optional[int] = None,
    ) -> List[IndexedVector]:
        """Return the chunks most similar to an embedded query.

        Args:
            query_vector: Result of embed_query (None yields no results)
            top_k: Number of results to return (overrides default)

        Returns:
            List of IndexedVector objects, most similar first

        Raises:
            ValueError: If the query dimension differs from the index dimension
        """
        if query_vector is None:
            return []
        return self.index.search_vector(query_vector, top_k or self.top_k)

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
    ) -> List[IndexedVector]:
        """Retrieve relevant chunks for a query.

        Args:
            query: User query text
            top_k: Number of results to return (overrides default)

        Returns:
            List of IndexedVector objects, most similar first

        Raises:
            EmbeddingFailure: If the query cannot be embedded
        """
        top_k = top_k or self.top_k

        logger.info("retrieval_started", query_length=len(query or ""), top_k=top_k)

        results = self.rank(await self.embed_query(query), top_k)

        logger.info(
            "retrieval_completed",
            query_length=len(query or ""),
            results_returned=len(results),
        )

        return results
