"""Data types shared by the retrieval pipeline."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Tuple
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return str(uuid.uuid4())


@dataclass
class DocumentRecord:
    """An ingested document.

    Owned by the ingestion layer. Never modified after it is registered;
    it can only be removed.
    """

    id: str
    name: str
    mime_type: str
    byte_size: int
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    chunk_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Summary for API responses (the raw content is left out)."""
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "byte_size": self.byte_size,
            "created_at": self.created_at.isoformat(),
            "chunk_count": self.chunk_count,
        }


@dataclass(frozen=True)
class Chunk:
    """A bounded substring of a document, waiting to be embedded."""

    document_id: str
    document_name: str
    text: str


@dataclass(frozen=True)
class IndexedVector:
    """A chunk together with its embedding, as stored in the index."""

    id: str
    document_id: str
    document_name: str
    text: str
    embedding: Tuple[float, ...]

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class ScoredVector:
    """A search hit and its cosine similarity to the query."""

    vector: IndexedVector
    score: float


@dataclass(frozen=True)
class SamplingConfig:
    """Sampling settings forwarded to the generation provider as-is."""

    temperature: float = 0.3
    top_p: float = 0.8
    top_k: int = 40

    def to_options(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
        }
