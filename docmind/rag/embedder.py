"""Embedding client with rate-limit recovery.

Wraps a provider's ``embed_content`` coroutine:
- Retries rate-limited attempts after a fixed delay, up to a fixed budget
- Fails fast on every other provider error
- Rejects empty or malformed vectors
"""
import asyncio
import math
from numbers import Real
from typing import Awaitable, Callable, List, Protocol

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from docmind import config
from docmind.errors import EmbeddingFailure, EmbeddingTransientError, ProviderError

logger = structlog.get_logger()


class EmbeddingProvider(Protocol):
    """Anything that can turn a text into a vector."""

    async def embed_content(self, text: str) -> List[float]: ...


def _validate_vector(vector) -> List[float]:
    """Return the vector as a list of floats, or raise EmbeddingFailure."""
    if not vector:
        raise EmbeddingFailure("No embedding values returned from provider")

    values = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, Real):
            raise EmbeddingFailure(
                f"Embedding contains a non-numeric value: {value!r}"
            )
        value = float(value)
        if not math.isfinite(value):
            raise EmbeddingFailure("Embedding contains a non-finite value")
        values.append(value)

    return values


class EmbeddingClient:
    """Turns text into embedding vectors, retrying on rate limits."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_retries: int = None,
        retry_delay: float = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the embedding client.

        Args:
            provider: Object exposing ``async embed_content(text)``
            max_retries: Extra attempts after a rate-limited one (default from config)
            retry_delay: Seconds to wait before each retry (default from config)
            sleep: Coroutine used for the retry delay
        """
        self.provider = provider
        self.max_retries = (
            config.EMBED_MAX_RETRIES if max_retries is None else max_retries
        )
        self.retry_delay = (
            config.EMBED_RETRY_DELAY if retry_delay is None else retry_delay
        )
        self._sleep = sleep

    async def _attempt(self, text: str) -> List[float]:
        try:
            vector = await self.provider.embed_content(text)
        except ProviderError as e:
            if e.is_rate_limited:
                raise EmbeddingTransientError(str(e)) from e
            raise EmbeddingFailure(f"Embedding request failed: {e}") from e
        except Exception as e:
            raise EmbeddingFailure(f"Embedding request failed: {e}") from e

        return _validate_vector(vector)

    def _log_rate_limited(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "embedding_rate_limited",
            attempt=retry_state.attempt_number,
            retry_in=self.retry_delay,
        )

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (never empty)

        Raises:
            EmbeddingFailure: On a permanent provider error, an unusable
                vector, or when every retry was rate limited
        """
        attempts = self.max_retries + 1
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(EmbeddingTransientError),
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.retry_delay),
            sleep=self._sleep,
            before_sleep=self._log_rate_limited,
            reraise=False,
        )

        try:
            return await retrying(self._attempt, text)
        except RetryError as e:
            logger.error(
                "embedding_retries_exhausted",
                attempts=attempts,
                text_preview=text[:100],
            )
            raise EmbeddingFailure(
                f"Embedding still rate limited after {attempts} attempts"
            ) from e.last_attempt.exception()
        except EmbeddingFailure as e:
            logger.error(
                "embedding_generation_failed",
                error=str(e),
                text_preview=text[:100],
            )
            raise
