"""Tests for the embedding client's retry policy."""
import pytest

from docmind.errors import EmbeddingFailure, EmbeddingTransientError
from docmind.rag.embedder import EmbeddingClient


async def test_embed_returns_float_vector(provider, embedder, sleeper):
    provider.vectors["hello"] = [1, 2, 3]

    vector = await embedder.embed("hello")

    assert vector == [1.0, 2.0, 3.0]
    assert all(isinstance(v, float) for v in vector)
    assert sleeper.delays == []


async def test_rate_limit_then_success_waits_once(
    provider, embedder, sleeper, rate_limit_error
):
    provider.fail("hello", rate_limit_error())

    vector = await embedder.embed("hello")

    assert vector == [1.0, 0.0]
    assert provider.embed_calls == ["hello", "hello"]
    assert sleeper.delays == [1.0]


async def test_rate_limit_exhaustion_raises_after_three_attempts(
    provider, embedder, sleeper, rate_limit_error
):
    provider.fail("hello", rate_limit_error(), rate_limit_error(), rate_limit_error())

    with pytest.raises(EmbeddingFailure):
        await embedder.embed("hello")

    assert len(provider.embed_calls) == 3
    assert sleeper.delays == [1.0, 1.0]


async def test_permanent_error_is_not_retried(
    provider, embedder, sleeper, permanent_error
):
    provider.fail("hello", permanent_error())

    with pytest.raises(EmbeddingFailure):
        await embedder.embed("hello")

    assert provider.embed_calls == ["hello"]
    assert sleeper.delays == []


async def test_unexpected_exception_becomes_embedding_failure(provider, embedder):
    provider.fail("hello", RuntimeError("socket closed"))

    with pytest.raises(EmbeddingFailure) as exc_info:
        await embedder.embed("hello")

    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.parametrize("bad", [[], None, ["a", "b"], [1.0, float("nan")], [True]])
async def test_unusable_vectors_fail_without_retry(provider, embedder, sleeper, bad):
    provider.vectors["hello"] = bad

    with pytest.raises(EmbeddingFailure):
        await embedder.embed("hello")

    assert provider.embed_calls == ["hello"]
    assert sleeper.delays == []


async def test_custom_retry_budget(provider, sleeper, rate_limit_error):
    client = EmbeddingClient(provider, max_retries=0, retry_delay=5.0, sleep=sleeper)
    provider.fail("hello", rate_limit_error())

    with pytest.raises(EmbeddingFailure):
        await client.embed("hello")

    assert sleeper.delays == []


def test_defaults_come_from_config(provider):
    client = EmbeddingClient(provider)

    assert client.max_retries == 2
    assert client.retry_delay == 1.0


async def test_exhaustion_keeps_last_rate_limit_as_cause(
    provider, sleeper, rate_limit_error
):
    client = EmbeddingClient(provider, max_retries=1, retry_delay=0.5, sleep=sleeper)
    provider.fail("hello", rate_limit_error(), rate_limit_error())

    with pytest.raises(EmbeddingFailure) as exc_info:
        await client.embed("hello")

    assert isinstance(exc_info.value.__cause__, EmbeddingTransientError)
    assert provider.embed_calls == ["hello", "hello"]
    assert sleeper.delays == [0.5]
