"""Retrieval strategies over registry-managed FAISS stores."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from pydantic import TypeAdapter

from docchat.errors import RetrievalDegraded
from docchat.models import (
    Chunk,
    RetrievalResponse,
    RetrievalResult,
    RetrievalStrategy,
    StrategyKind,
)
from docchat.registry import StoreRegistry
from docchat.stores.base import ScoredSearch

logger = structlog.get_logger()

_strategy_adapter: TypeAdapter[RetrievalStrategy] = TypeAdapter(RetrievalStrategy)


def build_strategy(kind: StrategyKind = "mmr", k: int | None = None, **params) -> RetrievalStrategy:
    """Build a strategy variant from its kind and parameters.

    Args:
        kind: "similarity", "mmr" or "advanced".
        k: Number of results. Defaults to settings.DEFAULT_TOP_K, clamped to settings.MAX_TOP_K.
        **params: Strategy-specific parameters (fetch_k, lambda_mult, score_threshold).

    Raises:
        pydantic.ValidationError: Unknown kind or invalid parameters.
    """
    data = {"kind": kind, **{key: v for key, v in params.items() if v is not None}}
    if k is not None:
        data["k"] = k
    return _strategy_adapter.validate_python(data)


def _build_retrieval_response(
    query: str,
    store_name: str,
    strategy: RetrievalStrategy,
    results: list[tuple[Chunk, float | None]],
    degraded: bool = False,
) -> RetrievalResponse:
    """Build RetrievalResponse from (chunk, score) pairs, truncated to k."""
    results = results[: strategy.k]
    scores = [score for _, score in results if score is not None]

    return RetrievalResponse(
        results=[RetrievalResult(chunk=chunk, score=score) for chunk, score in results],
        query=query,
        store_name=store_name,
        strategy=strategy.kind,
        total_found=len(results),
        top_score=max(scores) if scores else None,
        degraded=degraded,
    )


class Retriever:
    """Retrieves ranked chunks from one store using one strategy."""

    def __init__(
        self,
        registry: StoreRegistry,
        store_name: str,
        strategy: RetrievalStrategy,
    ):
        self._registry = registry
        self._store_name = store_name
        self._strategy = strategy
        self._handlers: dict[
            str, Callable[[ScoredSearch, str], Awaitable[RetrievalResponse]]
        ] = {
            "similarity": self._retrieve_similarity,
            "mmr": self._retrieve_mmr,
            "advanced": self._retrieve_threshold,
        }

    @property
    def store_name(self) -> str:
        return self._store_name

    @property
    def strategy(self) -> RetrievalStrategy:
        return self._strategy

    async def retrieve(self, query: str, timeout: float | None = None) -> RetrievalResponse:
        """Retrieve chunks for a query.

        The store is loaded through the registry on first use.

        Args:
            query: Query string.
            timeout: Seconds before giving up, covering both the load and the
                search. Defaults to the registry timeout.

        Returns:
            RetrievalResponse with at most k results.

        Raises:
            StoreNotFoundError: Store does not exist.
            StoreLoadError: Store artifacts are unreadable.
            TimeoutError: Retrieval exceeded the timeout.
        """
        limit = timeout if timeout is not None else self._registry.operation_timeout
        if limit is None:
            return await self._retrieve(query, timeout)
        return await asyncio.wait_for(self._retrieve(query, timeout), timeout=limit)

    async def _retrieve(self, query: str, timeout: float | None) -> RetrievalResponse:
        store = await self._registry.load_or_create(self._store_name, timeout=timeout)
        handler = self._handlers[self._strategy.kind]

        logger.debug(
            "retrieving",
            store=self._store_name,
            strategy=self._strategy.kind,
            query=query[:50],
        )

        return await handler(store, query)

    async def _retrieve_similarity(self, store: ScoredSearch, query: str) -> RetrievalResponse:
        strategy = self._strategy
        results = await store.similarity_search_with_score(query, k=strategy.k)
        return _build_retrieval_response(query, self._store_name, strategy, results)

    async def _retrieve_mmr(self, store: ScoredSearch, query: str) -> RetrievalResponse:
        strategy = self._strategy
        results = await store.max_marginal_relevance_search(
            query,
            k=strategy.k,
            fetch_k=strategy.pool_size,
            lambda_mult=strategy.lambda_mult,
        )
        return _build_retrieval_response(query, self._store_name, strategy, results)

    async def _retrieve_threshold(self, store: ScoredSearch, query: str) -> RetrievalResponse:
        strategy = self._strategy
        try:
            scored = await store.similarity_search_with_score(query, k=strategy.pool_size)
        except Exception as e:
            degraded = RetrievalDegraded(self._store_name, e)
            logger.warning("retrieval_degraded", store=self._store_name, error=str(degraded))
            # Fallback to basic similarity search
            chunks = await store.similarity_search(query, k=strategy.k)
            return _build_retrieval_response(
                query,
                self._store_name,
                strategy,
                [(chunk, None) for chunk in chunks],
                degraded=True,
            )

        filtered = sorted(
            ((chunk, score) for chunk, score in scored if score >= strategy.score_threshold),
            key=lambda x: x[1],
            reverse=True,
        )

        logger.info(
            "threshold_retrieval",
            store=self._store_name,
            candidates=len(scored),
            relevant=len(filtered),
            threshold=strategy.score_threshold,
        )
        return _build_retrieval_response(query, self._store_name, strategy, filtered)


class RetrieverFactory:
    """Creates retrievers bound to registry stores."""

    def __init__(self, registry: StoreRegistry):
        self._registry = registry

    def get_retriever(
        self,
        store_name: str,
        k: int | None = None,
        strategy: StrategyKind | RetrievalStrategy = "mmr",
        **params,
    ) -> Retriever:
        """Get a retriever for a store.

        Args:
            store_name: Store to search.
            k: Number of results. Defaults to settings.DEFAULT_TOP_K, clamped to settings.MAX_TOP_K.
            strategy: Strategy kind or a ready-made strategy variant.
            **params: Strategy-specific parameters when strategy is a kind.

        Returns:
            Retriever whose retrieve() runs the strategy.
        """
        if isinstance(strategy, str):
            strategy = build_strategy(strategy, k=k, **params)
        return Retriever(self._registry, store_name, strategy)

    def similarity(self, store_name: str, k: int | None = None) -> Retriever:
        """Plain nearest-neighbour retriever."""
        return self.get_retriever(store_name, k=k, strategy="similarity")

    def mmr(
        self,
        store_name: str,
        k: int | None = None,
        lambda_mult: float | None = None,
        fetch_k: int | None = None,
    ) -> Retriever:
        """Diversity retriever using maximal marginal relevance."""
        return self.get_retriever(
            store_name, k=k, strategy="mmr", lambda_mult=lambda_mult, fetch_k=fetch_k
        )

    def advanced(
        self,
        store_name: str,
        k: int | None = None,
        score_threshold: float | None = None,
    ) -> Retriever:
        """Score-threshold retriever with graceful fallback."""
        return self.get_retriever(
            store_name, k=k, strategy="advanced", score_threshold=score_threshold
        )
