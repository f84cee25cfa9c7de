"""Shared fixtures: in-memory provider fakes and a recording sleep."""
import asyncio
from typing import Dict, List, Optional

import pytest

from docmind.errors import ProviderError, ProviderErrorKind
from docmind.rag.embedder import EmbeddingClient
from docmind.rag.models import Chunk
from docmind.rag.vector_index import VectorIndex


def rate_limited() -> ProviderError:
    return ProviderError(
        "Provider returned HTTP 429",
        kind=ProviderErrorKind.RATE_LIMITED,
        status_code=429,
    )


def permanent() -> ProviderError:
    return ProviderError("Provider returned HTTP 500", status_code=500)


class FakeProvider:
    """Embedding/generation provider backed by dictionaries.

    ``vectors`` maps text to the vector returned for it; unknown texts get
    ``default``. ``failures`` maps text to a list of exceptions raised, one
    per call, before falling back to the vector.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        fragments: Optional[List[str]] = None,
    ):
        self.vectors = vectors or {}
        self.default = default if default is not None else [1.0, 0.0]
        self.failures: Dict[str, List[Exception]] = {}
        self.fragments = fragments if fragments is not None else ["Hello", ", ", "world"]
        self.stream_error: Optional[Exception] = None
        self.embed_calls: List[str] = []
        self.generate_calls: List[dict] = []
        self.chat_model = "test-chat"
        self.models = ["test-chat", "test-embed"]

    def fail(self, text: str, *errors: Exception) -> None:
        self.failures.setdefault(text, []).extend(errors)

    async def embed_content(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        pending = self.failures.get(text)
        if pending:
            raise pending.pop(0)
        return self.vectors.get(text, self.default)

    async def stream_generate(self, prompt, context, system_instructions, sampling=None):
        self.generate_calls.append(
            {
                "prompt": prompt,
                "context": context,
                "system_instructions": system_instructions,
                "sampling": sampling,
            }
        )
        for fragment in self.fragments:
            await asyncio.sleep(0)
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error

    async def list_models(self) -> List[str]:
        return self.models


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _make_chunks(texts, document_id="doc-1", document_name="a.txt") -> List[Chunk]:
    return [
        Chunk(document_id=document_id, document_name=document_name, text=t)
        for t in texts
    ]


@pytest.fixture
def make_chunks():
    return _make_chunks


@pytest.fixture
def rate_limit_error():
    return rate_limited


@pytest.fixture
def permanent_error():
    return permanent


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def embedder(provider, sleeper) -> EmbeddingClient:
    return EmbeddingClient(provider, max_retries=2, retry_delay=1.0, sleep=sleeper)


@pytest.fixture
def index(embedder, sleeper) -> VectorIndex:
    return VectorIndex(embedder, batch_size=5, batch_pause=0.15, sleep=sleeper)
