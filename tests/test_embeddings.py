"""Similarity math, simulated embeddings and batched embedding."""
from unittest.mock import AsyncMock, patch

import pytest

from deflection.core.errors import DimensionMismatch, EmbeddingError
from deflection.rag.embeddings import SimulatedEmbeddingProvider, clean_text, embed_in_batches
from deflection.rag.similarity import cosine_similarity, find_similar


class TestCosineSimilarity:
    def test_identity(self):
        assert cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]) == pytest.approx(1.0)

    def test_symmetric(self):
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 1.0]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_norm_returns_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_mismatched_lengths_raise(self):
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


class TestFindSimilar:
    def test_filters_sorts_and_caps(self):
        target = [1.0, 0.0]
        candidates = [
            ("far", [0.0, 1.0]),
            ("close", [0.9, 0.1]),
            ("exact", [2.0, 0.0]),
            ("near", [0.8, 0.3]),
        ]
        results = find_similar(target, candidates, threshold=0.8, max_results=2)
        assert [name for name, _ in results] == ["exact", "close"]

    def test_skips_mismatched_candidate_and_keeps_the_rest(self):
        results = find_similar([1.0, 0.0], [("bad", [1.0, 0.0, 0.0]), ("good", [1.0, 0.0])], threshold=0.5)
        assert [name for name, _ in results] == ["good"]


class TestSimulatedProvider:
    @pytest.mark.asyncio
    async def test_deterministic_and_tagged(self):
        provider = SimulatedEmbeddingProvider()
        a = await provider.embed("Where is my invoice?")
        b = await provider.embed("Where   is my invoice?  ")
        assert provider.simulated is True
        assert provider.source == "simulated"
        assert a == b
        assert len(a) == 1536
        assert all(-1.0 <= x < 1.0 for x in a)

    @pytest.mark.asyncio
    async def test_different_texts_differ(self):
        provider = SimulatedEmbeddingProvider(dimensions=8)
        assert await provider.embed("one") != await provider.embed("two")


def test_clean_text_collapses_whitespace_and_truncates():
    assert clean_text("  a \n\n b\t c ") == "a b c"
    assert len(clean_text("x" * 9000)) == 8000


class FlakyProvider:
    """Fails on the batch that starts with a given text."""

    source = "openai"
    simulated = False

    def __init__(self, fail_on: str):
        self.fail_on = fail_on
        self.batch_sizes: list[int] = []

    async def embed(self, text):
        return (await self.embed_many([text]))[0]

    async def embed_many(self, texts):
        self.batch_sizes.append(len(texts))
        if texts[0] == self.fail_on:
            raise EmbeddingError("rate limited")
        return [[float(len(t)), 1.0] for t in texts]


class TestEmbedInBatches:
    @pytest.mark.asyncio
    async def test_chunks_at_most_100_and_sleeps_between_batches(self):
        provider = FlakyProvider(fail_on="never")
        texts = [f"text {i}" for i in range(250)]
        with patch("deflection.rag.embeddings.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await embed_in_batches(provider, texts)

        assert provider.batch_sizes == [100, 100, 50]
        assert sleep.await_count == 2
        assert result.succeeded == 250
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_successful_ones(self):
        texts = [f"text {i}" for i in range(250)]
        provider = FlakyProvider(fail_on="text 100")
        with patch("deflection.rag.embeddings.asyncio.sleep", new=AsyncMock()):
            result = await embed_in_batches(provider, texts)

        assert result.partial is True
        assert result.succeeded == 150
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert (failure.start, failure.end) == (100, 200)
        assert "rate limited" in failure.error
        assert result.vectors[99] is not None
        assert all(v is None for v in result.vectors[100:200])
        assert result.vectors[200] is not None
