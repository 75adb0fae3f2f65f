"""Integration tests for retrieval strategies over real FAISS stores."""

import pytest


@pytest.fixture
async def mixed_registry(registry, make_chunks):
    """Registry with a store of near-duplicate and diverse chunks."""
    chunks = (
        make_chunks(
            "a.txt",
            [
                "Solar panel efficiency improves with cooling.",
                "Solar panel efficiency improves with cooling systems.",
                "Solar panel efficiency improves with active cooling.",
            ],
        )
        + make_chunks("b.txt", ["Panel efficiency also depends on the roof angle."])
        + make_chunks("c.txt", ["Solar farms need land and grid connections."])
    )
    await registry.add_chunks("mixed", chunks)
    return registry


QUERY = "solar panel efficiency improves with cooling"


@pytest.mark.integration
class TestSimilarityRetrieval:
    """Test plain similarity retrieval."""

    async def test_nearest_first(self, mixed_registry):
        from docchat.retriever import RetrieverFactory

        response = await RetrieverFactory(mixed_registry).similarity("mixed", k=3).retrieve(QUERY)

        assert {c.source for c in response.chunks} == {"a.txt"}
        assert response.results[0].chunk.chunk_idx == 0
        assert response.top_score == pytest.approx(1.0)
        scores = [r.score for r in response.results]
        assert scores == sorted(scores, reverse=True)

    async def test_k_larger_than_store(self, mixed_registry):
        from docchat.retriever import RetrieverFactory

        response = await RetrieverFactory(mixed_registry).similarity("mixed", k=20).retrieve(QUERY)

        assert response.total_found == 5


@pytest.mark.integration
class TestMMRRetrieval:
    """Test diversity retrieval."""

    async def test_mmr_diversifies_sources(self, mixed_registry):
        """Test MMR trades near-duplicates for other sources."""
        from docchat.retriever import RetrieverFactory

        factory = RetrieverFactory(mixed_registry)
        similar = await factory.similarity("mixed", k=3).retrieve(QUERY)
        diverse = await factory.mmr("mixed", k=3).retrieve(QUERY)

        similar_sources = [c.source for c in similar.chunks]
        diverse_sources = [c.source for c in diverse.chunks]
        assert similar_sources.count("a.txt") == 3
        assert diverse_sources.count("a.txt") < 3
        assert len(diverse.results) == 3
        assert len({c.chunk_id for c in diverse.chunks}) == 3

    async def test_mmr_on_placeholder_store(self, registry):
        """Test MMR with a pool larger than a one-chunk store."""
        from docchat.retriever import RetrieverFactory

        await registry.initialize()
        response = await RetrieverFactory(registry).mmr("combined", k=10).retrieve("hello")

        assert len(response.results) == 1
        assert response.has_content is False


@pytest.mark.integration
class TestThresholdRetrieval:
    """Test advanced retrieval with score threshold."""

    async def test_results_above_threshold(self, mixed_registry):
        from docchat.retriever import RetrieverFactory

        response = await RetrieverFactory(mixed_registry).advanced("mixed", k=5).retrieve(QUERY)

        assert response.degraded is False
        assert 0 < len(response.results) <= 5
        assert all(r.score >= 0.6 for r in response.results)
        assert {c.source for c in response.chunks} == {"a.txt"}

    async def test_fallback_when_scored_search_fails(self, mixed_registry, monkeypatch):
        """Test unscored similarity is used when scored search raises."""
        from docchat.retriever import RetrieverFactory

        store = await mixed_registry.load_or_create("mixed")

        async def broken(query, k):
            raise RuntimeError("index busy")

        monkeypatch.setattr(store, "similarity_search_with_score", broken)

        response = await RetrieverFactory(mixed_registry).advanced("mixed", k=2).retrieve(QUERY)

        assert response.degraded is True
        assert len(response.results) == 2
        assert all(r.score is None for r in response.results)

    async def test_missing_store(self, registry):
        from docchat.errors import StoreNotFoundError
        from docchat.retriever import RetrieverFactory

        with pytest.raises(StoreNotFoundError):
            await RetrieverFactory(registry).advanced("missing").retrieve(QUERY)
