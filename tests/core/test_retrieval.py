"""
Test suite for RetrievalService.search_documents and its result cache.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from newsbot.src.core.embeddings import EmbeddingService
from newsbot.src.core.exceptions import DownstreamUnavailable, InvalidInput, InvalidQuery
from newsbot.src.core.models import SearchFilters, SearchOptions
from newsbot.src.core.retrieval import RetrievalService, cache_key


@pytest.fixture
def embedder():
    """Synchronous LangChain-style embedder returning 3-dimensional vectors."""
    mock = MagicMock()
    mock.embed_query.return_value = [0.1, 0.2, 0.3]
    return mock


@pytest.fixture
def store(make_hit):
    """Vector index returning two distinct headlines."""
    mock = MagicMock()
    mock.search.return_value = [make_hit("a", "Fed raises rates", 0.9, text="The Fed raised rates by 25 basis points."), make_hit("b", "Rupee weakens against dollar", 0.7, text="The rupee slipped to a record low.")]
    mock.get_stats.return_value = {"table": "news_chunks", "rows": 2}
    return mock


@pytest.fixture
def cache():
    mock = AsyncMock()
    mock.get.return_value = None
    return mock


@pytest.fixture
def service(embedder, store, cache) -> RetrievalService:
    return RetrievalService(EmbeddingService(embedder, dimension=3, batch_size=10), store, cache=cache, max_top_k=20)


class TestCacheKey:
    def test_stable_for_identical_inputs(self) -> None:
        assert cache_key("fed rates", SearchOptions()) == cache_key("fed rates", SearchOptions())

    def test_differs_when_any_input_differs(self) -> None:
        base = cache_key("fed rates", SearchOptions())

        assert cache_key("fed rate", SearchOptions()) != base
        assert cache_key("fed rates", SearchOptions(top_k=6)) != base
        assert cache_key("fed rates", SearchOptions(min_score=0.4)) != base
        assert cache_key("fed rates", SearchOptions(filters=SearchFilters(sources=["Reuters"]))) != base
        assert cache_key("fed rates", SearchOptions(diversity_threshold=0.5)) != base
        assert cache_key("fed rates", SearchOptions(include_metadata=False)) != base

    def test_use_cache_does_not_change_the_key(self) -> None:
        assert cache_key("fed rates", SearchOptions(use_cache=False)) == cache_key("fed rates", SearchOptions())

    def test_format(self) -> None:
        assert cache_key("q", SearchOptions()).startswith("search:")


class TestSearchDocuments:
    @pytest.mark.asyncio
    async def test_returns_ranked_results(self, service: RetrievalService, store, embedder) -> None:
        # Act
        response = await service.search_documents("Fed rates", SearchOptions(top_k=2))

        # Assert
        assert [r.id for r in response.results] == ["a", "b"]
        assert response.total_found == 2
        assert response.cached is False
        assert response.query == "Fed rates"
        embedder.embed_query.assert_called_once()
        vector, limit, where, min_score = store.search.call_args.args
        assert vector == [0.1, 0.2, 0.3]
        assert limit == 4
        assert where is None
        assert min_score == 0.3

    @pytest.mark.asyncio
    async def test_overfetch_is_capped_by_max_top_k(self, service: RetrievalService, store) -> None:
        await service.search_documents("Fed rates", SearchOptions(top_k=15))

        assert store.search.call_args.args[1] == 20

    @pytest.mark.asyncio
    async def test_filters_reach_the_store(self, service: RetrievalService, store) -> None:
        options = SearchOptions(filters=SearchFilters(sources=["Reuters"]))

        await service.search_documents("Fed rates", options)

        assert "Reuters" in store.search.call_args.args[2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_empty_query_is_rejected(self, service: RetrievalService, query: str) -> None:
        with pytest.raises(InvalidQuery):
            await service.search_documents(query)

    @pytest.mark.asyncio
    async def test_top_k_above_max_is_rejected(self, service: RetrievalService, store) -> None:
        with pytest.raises(InvalidInput):
            await service.search_documents("Fed rates", SearchOptions(top_k=21))

        store.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_surfaces_as_downstream_error(self, service: RetrievalService, store, monkeypatch) -> None:
        store.search.side_effect = ConnectionError("lancedb offline")
        monkeypatch.setattr("newsbot.src.core.retrieval.settings.DOWNSTREAM_MAX_ATTEMPTS", 1)

        with pytest.raises(DownstreamUnavailable) as exc_info:
            await service.search_documents("Fed rates")

        assert exc_info.value.stage == "vector_search"


class TestSearchCache:
    @pytest.mark.asyncio
    async def test_results_are_cached(self, service: RetrievalService, cache) -> None:
        await service.search_documents("Fed rates")

        cache.set.assert_awaited_once()
        key, value, ttl = cache.set.await_args.args
        assert key == cache_key("Fed rates", SearchOptions())
        assert len(value["results"]) == 2
        assert ttl == 300

    @pytest.mark.asyncio
    async def test_empty_results_are_not_cached(self, service: RetrievalService, store, cache) -> None:
        store.search.return_value = []

        response = await service.search_documents("Fed rates")

        assert response.results == []
        cache.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_hit_skips_embedding_and_search(self, service: RetrievalService, embedder, store, cache) -> None:
        # Arrange
        first = await service.search_documents("Fed rates")
        cache.get.return_value = first.model_dump(mode="json")
        embedder.embed_query.reset_mock()
        store.search.reset_mock()

        # Act
        second = await service.search_documents("Fed rates")

        # Assert
        assert second.cached is True
        assert [r.id for r in second.results] == [r.id for r in first.results]
        embedder.embed_query.assert_not_called()
        store.search.assert_not_called()
        assert service.get_stats()["cache_hits"] == 1

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_cache(self, service: RetrievalService, cache) -> None:
        await service.search_documents("Fed rates", SearchOptions(use_cache=False))

        cache.get.assert_not_awaited()
        cache.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_failures_never_fail_a_search(self, service: RetrievalService, cache) -> None:
        cache.get.side_effect = RuntimeError("mongo down")
        cache.set.side_effect = RuntimeError("mongo down")

        response = await service.search_documents("Fed rates")

        assert len(response.results) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, service: RetrievalService, cache) -> None:
        cache.clear.return_value = 4

        assert await service.clear_cache() == 4


    @pytest.mark.asyncio
    async def test_looser_cached_result_is_not_served_to_stricter_request(self, embedder, store, make_hit) -> None:
        # Arrange
        entries: dict = {}
        cache = AsyncMock()
        cache.get.side_effect = lambda key: entries.get(key)
        cache.set.side_effect = lambda key, value, ttl=None: entries.__setitem__(key, value)
        store.search.return_value = [make_hit("a", "Fed raises rates", 0.9, text="The Fed raised rates."), make_hit("b", "Fed raises interest rates", 0.85, text="Rates went up again.")]
        service = RetrievalService(EmbeddingService(embedder, dimension=3, batch_size=10), store, cache=cache, max_top_k=20)

        # Act
        loose = await service.search_documents("Fed rates", SearchOptions(diversity_threshold=1.0))
        strict = await service.search_documents("Fed rates", SearchOptions(diversity_threshold=0.8, include_metadata=False))

        # Assert
        assert [r.id for r in loose.results] == ["a", "b"]
        assert strict.cached is False
        assert [r.id for r in strict.results] == ["a"]
        assert strict.results[0].metadata == {}
        assert len(entries) == 2
