"""Unit tests for EmbeddingClient batching, retries and timeouts."""

from __future__ import annotations

import asyncio

import pytest

from tests.conftest import EMBEDDING_DIM, FakeEmbeddingProvider, hash_to_vector
from thinkfolio.services.embedding_client import EmbeddingClient
from thinkfolio.utils.errors import EmbeddingError


def _client(provider: FakeEmbeddingProvider, **overrides) -> EmbeddingClient:
    options = {"batch_size": 2, "max_retries": 3, "retry_backoff": 0.0, "timeout": 1.0}
    options.update(overrides)
    return EmbeddingClient(provider, **options)


class _SlowProvider(FakeEmbeddingProvider):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        await asyncio.sleep(5)
        return []


class _ShortProvider(FakeEmbeddingProvider):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [hash_to_vector(texts[0])]


class TestEmbeddingClient:
    @pytest.mark.asyncio
    async def test_embed_single_text(self) -> None:
        vector = await _client(FakeEmbeddingProvider()).embed("attention")

        assert vector == hash_to_vector("attention")
        assert len(vector) == EMBEDDING_DIM

    @pytest.mark.asyncio
    async def test_embed_many_batches_and_keeps_order(self) -> None:
        provider = FakeEmbeddingProvider()
        texts = [f"chunk {i}" for i in range(5)]

        vectors = await _client(provider).embed_many(texts)

        assert vectors == [hash_to_vector(t) for t in texts]
        assert [len(call) for call in provider.calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_embed_many_empty(self) -> None:
        provider = FakeEmbeddingProvider()

        assert await _client(provider).embed_many([]) == []
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_retryable_error_is_retried(self) -> None:
        provider = FakeEmbeddingProvider(fail_on_call=1, fail_times=2, retryable=True)

        vector = await _client(provider).embed("x")

        assert vector == hash_to_vector("x")
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self) -> None:
        provider = FakeEmbeddingProvider(fail_on_call=1, retryable=True)

        with pytest.raises(EmbeddingError) as exc_info:
            await _client(provider).embed("x")

        assert len(provider.calls) == 3
        assert "after 3 attempts" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self) -> None:
        provider = FakeEmbeddingProvider(fail_on_call=1, retryable=False)

        with pytest.raises(EmbeddingError) as exc_info:
            await _client(provider).embed("x")

        assert len(provider.calls) == 1
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_failure_mid_batch_returns_nothing(self) -> None:
        provider = FakeEmbeddingProvider(fail_on_call=2, retryable=False)

        with pytest.raises(EmbeddingError):
            await _client(provider).embed_many(["a", "b", "c", "d"])

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self) -> None:
        provider = _SlowProvider()

        with pytest.raises(EmbeddingError) as exc_info:
            await _client(provider, timeout=0.01, max_retries=2).embed("slow")

        assert len(provider.calls) == 2
        assert exc_info.value.retryable is True
        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_vector_count_mismatch_is_permanent(self) -> None:
        provider = _ShortProvider()

        with pytest.raises(EmbeddingError) as exc_info:
            await _client(provider).embed_many(["a", "b"])

        assert exc_info.value.retryable is False
        assert len(provider.calls) == 1

    def test_provider_name(self) -> None:
        assert _client(FakeEmbeddingProvider()).provider_name == "fake_embedding"
