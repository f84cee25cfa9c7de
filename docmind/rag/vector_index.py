"""In-memory vector index for semantic search.

Handles:
- Batched, bounded-concurrency embedding of new chunks
- Dimension consistency across stored vectors
- Removal by document
- Exact cosine-similarity kNN search with stable tie-breaking
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import numpy as np
import structlog

from docmind import config
from docmind.errors import IngestionFailure
from docmind.rag.embedder import EmbeddingClient
from docmind.rag.models import Chunk, IndexedVector, ScoredVector, new_id

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], None]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm or the result is not a
    finite number.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0

    with np.errstate(all="ignore"):
        similarity = float(np.dot(va, vb) / norm)

    return similarity if np.isfinite(similarity) else 0.0


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of a query against every row of a matrix.

    Rows (or a query) with zero norm score 0.0, as do non-finite results.
    """
    q = np.asarray(query, dtype=np.float64)

    with np.errstate(all="ignore"):
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
        scores = (matrix @ q) / norms

    scores[~np.isfinite(scores)] = 0.0
    return scores


class VectorIndex:
    """Mutable in-memory collection of embedded chunks."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        batch_size: int = None,
        batch_pause: float = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the vector index.

        Args:
            embedder: Client used to embed chunks and queries
            batch_size: Concurrent embedding calls per group (default from config)
            batch_pause: Seconds to wait between groups (default from config)
            sleep: Coroutine used for the pause between groups
        """
        self.embedder = embedder
        self.batch_size = config.EMBED_BATCH_SIZE if batch_size is None else batch_size
        self.batch_pause = (
            config.EMBED_BATCH_PAUSE if batch_pause is None else batch_pause
        )
        self._sleep = sleep

        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

        self._vectors: List[IndexedVector] = []
        self.dimension: Optional[int] = None

    async def _embed_chunk(self, chunk: Chunk) -> List[float]:
        return await self.embedder.embed(chunk.text)

    def _accept(self, chunk: Chunk, result: Any) -> Optional[IndexedVector]:
        """Turn one gather() result into an IndexedVector, or None to drop it."""
        if isinstance(result, BaseException):
            logger.warning(
                "chunk_embedding_dropped",
                document_name=chunk.document_name,
                error=str(result),
                error_type=type(result).__name__,
            )
            return None

        if self.dimension is not None and len(result) != self.dimension:
            logger.warning(
                "chunk_embedding_dimension_mismatch",
                document_name=chunk.document_name,
                expected=self.dimension,
                got=len(result),
            )
            return None

        if self.dimension is None:
            self.dimension = len(result)
            logger.info("embedding_dimension_detected", dimension=self.dimension)

        return IndexedVector(
            id=new_id(),
            document_id=chunk.document_id,
            document_name=chunk.document_name,
            text=chunk.text,
            embedding=tuple(result),
        )

    async def add_chunks(
        self,
        chunks: Sequence[Chunk],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> int:
        """Embed chunks and add them to the index.

        Chunks are embedded in groups of ``batch_size`` concurrent calls.
        Each group's survivors are appended in input order once the whole
        group has finished. Chunks that fail to embed are dropped. If the call
        is cancelled or interrupted, the vectors it already added are removed
        before the exception propagates.

        Args:
            chunks: Chunks to embed and store
            progress_callback: Optional callback(processed, total), called
                after each group

        Returns:
            Number of vectors added

        Raises:
            IngestionFailure: If the input is non-empty and no chunk could
                be embedded (the index is left unchanged)
        """
        total = len(chunks)
        if total == 0:
            return 0

        added: List[str] = []

        logger.info("add_chunks_started", total=total, batch_size=self.batch_size)

        try:
            for offset in range(0, total, self.batch_size):
                if offset > 0 and self.batch_pause > 0:
                    await self._sleep(self.batch_pause)

                group = chunks[offset : offset + self.batch_size]
                results = await asyncio.gather(
                    *(self._embed_chunk(chunk) for chunk in group),
                    return_exceptions=True,
                )

                for chunk, result in zip(group, results):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    vector = self._accept(chunk, result)
                    if vector is not None:
                        self._vectors.append(vector)
                        added.append(vector.id)

                processed = min(offset + self.batch_size, total)
                logger.debug(
                    "embeddings_batch_generated",
                    processed=processed,
                    total=total,
                    added_so_far=len(added),
                )

                if progress_callback:
                    progress_callback(processed, total)
        except BaseException:
            # Interrupted: vectors from this call must not outlive it
            self._discard(added)
            logger.warning("add_chunks_rolled_back", removed=len(added), total=total)
            raise

        if not added:
            logger.error("add_chunks_failed", total=total)
            raise IngestionFailure(
                f"Failed to generate embeddings for all {total} chunks"
            )

        logger.info(
            "vectors_added",
            count=len(added),
            dropped=total - len(added),
            total_vectors=len(self._vectors),
        )

        return len(added)

    def _discard(self, vector_ids: Sequence[str]) -> None:
        if not vector_ids:
            return
        doomed = set(vector_ids)
        self._vectors = [v for v in self._vectors if v.id not in doomed]
        if not self._vectors:
            self.dimension = None

    def remove_document(self, document_id: str) -> int:
        """Remove every vector belonging to a document.

        Args:
            document_id: ID of the document to remove

        Returns:
            Number of vectors removed (0 if the document is unknown)
        """
        before = len(self._vectors)
        self._vectors = [v for v in self._vectors if v.document_id != document_id]
        removed = before - len(self._vectors)

        if not self._vectors:
            self.dimension = None

        logger.info(
            "document_vectors_removed",
            document_id=document_id,
            removed=removed,
            total_vectors=len(self._vectors),
        )

        return removed

    def search_scored(
        self, query_vector: Sequence[float], k: int = None
    ) -> List[ScoredVector]:
        """Rank stored vectors against a query vector.

        Args:
            query_vector: Embedded query
            k: Maximum number of results (default from config.SEARCH_TOP_K)

        Returns:
            Up to k ScoredVector objects, best first; ties keep insertion order

        Raises:
            ValueError: If the query dimension differs from the index dimension
        """
        if k is None:
            k = config.SEARCH_TOP_K

        vectors = list(self._vectors)
        if not vectors or k <= 0:
            return []

        if len(query_vector) != vectors[0].dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {vectors[0].dimension}, "
                f"got {len(query_vector)}"
            )

        matrix = np.array([v.embedding for v in vectors], dtype=np.float64)
        scores = cosine_similarities(query_vector, matrix)

        order = np.argsort(-scores, kind="stable")[:k]
        results = [ScoredVector(vector=vectors[i], score=float(scores[i])) for i in order]

        logger.info(
            "vector_search_completed",
            top_k=k,
            results_found=len(results),
            top_score=results[0].score if results else None,
        )

        return results

    def search_vector(
        self, query_vector: Sequence[float], k: int = None
    ) -> List[IndexedVector]:
        """Like search_scored, but returns the vectors only."""
        return [hit.vector for hit in self.search_scored(query_vector, k)]

    async def embed_query(self, query: str) -> Optional[List[float]]:
        """Embed a query for searching this index.

        Returns:
            The query vector, or None when the index is empty (the query is
            not embedded in that case)

        Raises:
            EmbeddingFailure: If the query cannot be embedded
        """
        if not self._vectors:
            logger.info("empty_index_no_results")
            return None
        return await self.embedder.embed(query)

    async def search(self, query: str, k: int = None) -> List[IndexedVector]:
        """Embed a query and return the k most similar vectors.

        Args:
            query: Query text
            k: Maximum number of results (default from config.SEARCH_TOP_K)

        Returns:
            Up to k IndexedVector objects, most similar first. Empty when the
            index is empty, in which case the query is not embedded.

        Raises:
            EmbeddingFailure: If the query cannot be embedded
        """
        query_vector = await self.embed_query(query)
        if query_vector is None:
            return []
        return self.search_vector(query_vector, k)

    def count(self) -> int:
        return len(self._vectors)

    def document_ids(self) -> List[str]:
        """IDs of documents with at least one stored vector, first-seen order."""
        return list(dict.fromkeys(v.document_id for v in self._vectors))

    def clear(self) -> None:
        self._vectors = []
        self.dimension = None
        logger.info("vector_index_cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        return {
            "vector_count": len(self._vectors),
            "document_count": len(self.document_ids()),
            "dimension": self.dimension,
        }
