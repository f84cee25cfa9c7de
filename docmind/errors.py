"""Exception hierarchy for the retrieval core.

Provider failures are classified once, at the provider boundary, into a
ProviderErrorKind. Everything above the boundary branches on that kind
instead of inspecting error messages.
"""
from enum import Enum
from typing import Optional


class DocMindError(Exception):
    """Base class for all DocMind errors."""


class ChunkingError(DocMindError, ValueError):
    """Invalid chunk size/overlap parameters."""


class ProviderErrorKind(str, Enum):
    """Classification of a provider failure."""

    RATE_LIMITED = "rate_limited"
    PERMANENT = "permanent"


class ProviderError(DocMindError):
    """A call to the embedding/generation provider failed.

    Attributes:
        kind: Whether the failure is a transient rate limit or permanent
        status_code: HTTP status code, if the failure came from a response
    """

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.PERMANENT,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is ProviderErrorKind.RATE_LIMITED


class EmbeddingTransientError(DocMindError):
    """A single embedding attempt was rate limited."""


class EmbeddingFailure(DocMindError):
    """Embedding failed permanently or ran out of retries."""


class IngestionFailure(DocMindError):
    """A document could not be made searchable."""


class RetrievalError(DocMindError):
    """Searching the index failed."""


class GenerationFailure(DocMindError):
    """Streaming generation failed. Never retried."""
