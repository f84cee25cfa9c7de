"""Grounded question answering over the vector index.

A query moves through a fixed lifecycle:

    IDLE -> EMBEDDING -> SEARCHING -> GENERATING -> COMPLETED | FAILED

Retrieved chunks become a context block that is handed to the generation
provider. The provider's fragments are forwarded through an AnswerStream, a
queue-backed channel: a producer task pushes fragments, the consumer pulls
until the stream closes or fails. Generation failures are never retried.
"""
import asyncio
from enum import Enum
from typing import AsyncIterator, List, Optional, Protocol

import structlog

from docmind import config
from docmind.errors import EmbeddingFailure, GenerationFailure, RetrievalError
from docmind.rag.models import IndexedVector, SamplingConfig
from docmind.rag.retriever import Retriever, format_context, unique_sources

logger = structlog.get_logger()

SYSTEM_INSTRUCTIONS = """You are an expert Research Assistant. Your task is to provide high-quality, concise, and grounded answers based strictly on the provided context.

Guidelines:
1. Use the provided context to answer the user's question accurately.
2. If the context doesn't contain the answer, say "I'm sorry, I don't have enough information in my current knowledge base to answer that."
3. For summarization requests: Provide a cohesive narrative summary that connects key ideas. Avoid just listing facts unless explicitly asked for a list.
4. Tone: Professional, academic, and objective.
5. Conciseness: Be direct. Do not use filler phrases like "Based on the document provided" or "The context states".
6. Formatting: Use Markdown (bolding, lists) to improve readability of complex information."""

STREAM_QUEUE_SIZE = 64


class GenerationProvider(Protocol):
    """Anything that can stream a grounded completion."""

    def stream_generate(
        self,
        prompt: str,
        context: str,
        system_instructions: str,
        sampling: SamplingConfig = None,
    ) -> AsyncIterator[str]: ...


class QueryState(str, Enum):
    IDLE = "idle"
    EMBEDDING = "embedding"
    SEARCHING = "searching"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    QueryState.IDLE: {QueryState.EMBEDDING},
    QueryState.EMBEDDING: {QueryState.SEARCHING, QueryState.FAILED},
    QueryState.SEARCHING: {QueryState.GENERATING, QueryState.FAILED},
    QueryState.GENERATING: {QueryState.COMPLETED, QueryState.FAILED},
    QueryState.COMPLETED: set(),
    QueryState.FAILED: set(),
}


class QueryLifecycle:
    """Tracks the state of a single query and rejects illegal transitions."""

    def __init__(self):
        self.state = QueryState.IDLE
        self.history: List[QueryState] = [QueryState.IDLE]

    @property
    def finished(self) -> bool:
        return self.state in (QueryState.COMPLETED, QueryState.FAILED)

    def transition(self, new_state: QueryState) -> None:
        """Move to new_state.

        Raises:
            RuntimeError: If the transition is not allowed from the current state
        """
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid query state transition: {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "query_state_changed",
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)


class _Closed:
    pass


class _Failed:
    def __init__(self, error: Exception):
        self.error = error


_CLOSED = _Closed()


class AnswerStream:
    """Async iterator over the fragments of a generated answer.

    Attributes:
        query: The user query
        chunks: Retrieved chunks, most similar first
        sources: Document names of the chunks, first-seen order
        context: Context block given to the provider
    """

    def __init__(
        self,
        query: str,
        chunks: List[IndexedVector],
        context: str,
        fragments: AsyncIterator[str],
        lifecycle: QueryLifecycle,
    ):
        self.query = query
        self.chunks = chunks
        self.sources = unique_sources(chunks)
        self.context = context
        self._fragments = fragments
        self._lifecycle = lifecycle
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)
        self._producer: Optional[asyncio.Task] = None
        self._done = False

    @property
    def state(self) -> QueryState:
        return self._lifecycle.state

    @property
    def finished(self) -> bool:
        return self._lifecycle.finished

    def start(self) -> None:
        """Start pulling fragments from the provider in a background task."""
        if self._producer is None:
            self._producer = asyncio.ensure_future(self._produce())

    async def _produce(self) -> None:
        try:
            async for fragment in self._fragments:
                await self._queue.put(fragment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(_Failed(e))
        else:
            await self._queue.put(_CLOSED)

    def __aiter__(self) -> "AnswerStream":
        return self

    async def __anext__(self) -> str:
        if self._done:
            raise StopAsyncIteration

        self.start()
        item = await self._queue.get()

        if item is _CLOSED:
            self._done = True
            self._lifecycle.transition(QueryState.COMPLETED)
            logger.info("answer_stream_completed", sources=len(self.sources))
            raise StopAsyncIteration

        if isinstance(item, _Failed):
            self._done = True
            self._lifecycle.transition(QueryState.FAILED)
            logger.error(
                "generation_failed",
                error=str(item.error),
                error_type=type(item.error).__name__,
            )
            raise GenerationFailure(f"Generation failed: {item.error}") from item.error

        return item

    async def collect(self) -> str:
        """Consume the whole stream and return the concatenated answer."""
        return "".join([fragment async for fragment in self])

    async def aclose(self) -> None:
        """Stop generation early. The query ends in the FAILED state."""
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            try:
                await self._producer
            except asyncio.CancelledError:
                pass

        if not self._done:
            self._done = True
            self._lifecycle.transition(QueryState.FAILED)
            logger.info("answer_stream_cancelled")


class RagChat:
    """Answers questions from the indexed documents."""

    def __init__(
        self,
        retriever: Retriever,
        provider: GenerationProvider,
        top_k: int = None,
        sampling: Optional[SamplingConfig] = None,
        system_instructions: str = None,
    ):
        """Initialize the chat orchestrator.

        Args:
            retriever: Retriever over the shared vector index
            provider: Generation provider with ``stream_generate``
            top_k: Chunks retrieved per question (default from config.CHAT_TOP_K)
            sampling: Sampling settings for generation (default from config)
            system_instructions: System prompt (default SYSTEM_INSTRUCTIONS)
        """
        self.retriever = retriever
        self.provider = provider
        self.top_k = top_k or config.CHAT_TOP_K
        self.sampling = sampling or SamplingConfig(
            temperature=config.GENERATION_TEMPERATURE,
            top_p=config.GENERATION_TOP_P,
            top_k=config.GENERATION_TOP_K,
        )
        self.system_instructions = system_instructions or SYSTEM_INSTRUCTIONS

    async def ask(self, query: str) -> AnswerStream:
        """Retrieve context for a question and start streaming the answer.

        Args:
            query: User question

        Returns:
            AnswerStream; iterate it to receive the answer fragments

        Raises:
            ValueError: If the query is blank
            EmbeddingFailure: If the query cannot be embedded
            RetrievalError: If searching the index fails
            GenerationFailure: If the provider refuses to start a stream
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        lifecycle = QueryLifecycle()
        logger.info("query_started", query_length=len(query), top_k=self.top_k)

        lifecycle.transition(QueryState.EMBEDDING)
        try:
            query_vector = await self.retriever.embed_query(query)
        except EmbeddingFailure as e:
            lifecycle.transition(QueryState.FAILED)
            logger.error("query_embedding_failed", error=str(e))
            raise

        lifecycle.transition(QueryState.SEARCHING)
        try:
            chunks = self.retriever.rank(query_vector, self.top_k)
        except ValueError as e:
            lifecycle.transition(QueryState.FAILED)
            logger.error("query_search_failed", error=str(e))
            raise RetrievalError(f"Search failed: {e}") from e

        context = format_context(chunks)

        logger.info(
            "rag_retrieval_completed",
            num_chunks=len(chunks),
            context_length=len(context),
        )

        lifecycle.transition(QueryState.GENERATING)
        try:
            fragments = self.provider.stream_generate(
                query, context, self.system_instructions, self.sampling
            )
        except Exception as e:
            lifecycle.transition(QueryState.FAILED)
            logger.error("generation_failed", error=str(e))
            raise GenerationFailure(f"Generation failed: {e}") from e

        stream = AnswerStream(query, chunks, context, fragments, lifecycle)
        stream.start()
        return stream

    async def answer(self, query: str) -> str:
        """Ask a question and wait for the complete answer."""
        stream = await self.ask(query)
        return await stream.collect()
