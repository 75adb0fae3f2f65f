"""DocumentIndex - main interface composing registry, writes and retrieval."""

from collections.abc import Awaitable, Callable
from pathlib import Path

import structlog
from langchain_core.embeddings import Embeddings

from docchat.coordinator import DualWriteCoordinator
from docchat.models import Chunk, RetrievalResponse, StrategyKind, WriteOutcome
from docchat.registry import StoreRegistry
from docchat.retriever import Retriever, RetrieverFactory
from docchat.stores.base import Chunker

logger = structlog.get_logger()


class DocumentIndex:
    """Main interface for multi-store document retrieval.

    Owns one registry for a storage directory. Create one per process and
    pass it to whatever needs retrieval.
    """

    def __init__(
        self,
        registry: StoreRegistry,
        clean_chunks: bool = False,
    ):
        """Initialize index around a registry.

        Args:
            registry: Registry owning the stores.
            clean_chunks: Validate and normalize chunks before writing. Off by default.
        """
        self._registry = registry
        self._coordinator = DualWriteCoordinator(registry, clean=clean_chunks)
        self._retrievers = RetrieverFactory(registry)

    @classmethod
    def open(
        cls,
        base_path: Path | None = None,
        embeddings: Embeddings | None = None,
        clean_chunks: bool = False,
        **registry_kwargs,
    ) -> "DocumentIndex":
        """Open an index over a storage directory.

        Args:
            base_path: Storage directory. Defaults to settings.VECTORSTORE_PATH.
            embeddings: Embedding provider. Defaults to the configured OpenAI profile.
            clean_chunks: Validate and normalize chunks before writing. Off by default.
            **registry_kwargs: Extra StoreRegistry parameters.

        Returns:
            DocumentIndex instance. Call initialize() before first use.
        """
        registry = StoreRegistry(base_path=base_path, embeddings=embeddings, **registry_kwargs)
        return cls(registry, clean_chunks=clean_chunks)

    @property
    def registry(self) -> StoreRegistry:
        return self._registry

    @property
    def coordinator(self) -> DualWriteCoordinator:
        return self._coordinator

    @property
    def retrievers(self) -> RetrieverFactory:
        return self._retrievers

    async def initialize(self) -> None:
        """Make sure the combined store exists."""
        await self._registry.initialize()
        logger.info(
            "document_index_ready",
            path=str(self._registry.base_path),
            stores=len(self._registry.list_stores()),
        )

    async def add_document(
        self,
        document_id: str,
        chunks: list[Chunk],
        owner: str | None = None,
        clean: bool | None = None,
    ) -> WriteOutcome:
        """Add a chunked document to its own store and the combined store."""
        return await self._coordinator.add_document(
            document_id, chunks, owner=owner, clean=clean
        )

    async def add_text(
        self,
        document_id: str,
        text: str,
        chunker: Chunker,
        owner: str | None = None,
    ) -> WriteOutcome:
        """Chunk raw document text and add it.

        Args:
            document_id: Document identifier, usually its filename.
            text: Full document text.
            chunker: Splits the text into chunks.
            owner: Optional namespace for the individual store.
        """
        chunks = chunker.split(text, source=document_id)
        logger.info("document_chunked", document_id=document_id, num_chunks=len(chunks))
        return await self.add_document(document_id, chunks, owner=owner)

    def get_retriever(
        self,
        store_name: str | None = None,
        k: int | None = None,
        strategy: StrategyKind = "mmr",
        **params,
    ) -> Retriever:
        """Get a retriever, defaulting to the combined store."""
        name = store_name or self._registry.combined_name
        return self._retrievers.get_retriever(name, k=k, strategy=strategy, **params)

    async def query(
        self,
        query: str,
        store_name: str | None = None,
        k: int | None = None,
        strategy: StrategyKind = "mmr",
    ) -> RetrievalResponse:
        """Query a store.

        Args:
            query: Query string.
            store_name: Store to search. Defaults to the combined store.
            k: Number of results. Defaults to settings.DEFAULT_TOP_K.
            strategy: "similarity", "mmr" or "advanced".

        Returns:
            RetrievalResponse with results.
        """
        return await self.get_retriever(store_name, k=k, strategy=strategy).retrieve(query)

    def as_retriever(
        self,
        store_name: str | None = None,
        k: int | None = None,
        strategy: StrategyKind = "mmr",
    ) -> Callable[[str], Awaitable[RetrievalResponse]]:
        """Return a callable retriever for chat orchestration.

        Returns:
            Async callable that takes a query and returns RetrievalResponse.
        """
        return self.get_retriever(store_name, k=k, strategy=strategy).retrieve

    def store_exists(self, name: str) -> bool:
        return self._registry.store_exists(name)

    def list_stores(self, prefix: str | None = None) -> set[str]:
        return self._registry.list_stores(prefix=prefix)

    def list_documents(self, owner: str | None = None) -> list[str]:
        """List per-document store names, without the owner prefix.

        Args:
            owner: Only list documents stored under this owner.

        Returns:
            Sorted document store names.
        """
        prefix = f"{owner}_" if owner else None
        names = self._registry.list_stores(prefix=prefix)
        names.discard(self._registry.combined_name)
        if prefix:
            names = {name[len(prefix):] for name in names}
        return sorted(names)
