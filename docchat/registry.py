"""Store registry - tracks named FAISS stores and caches loaded handles."""

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

import structlog
from langchain_core.embeddings import Embeddings

from docchat.config import settings
from docchat.embeddings import create_embeddings
from docchat.errors import StoreLoadError, StoreNotFoundError
from docchat.models import Chunk, LoadState, StoreInfo
from docchat.stores.faiss_store import FAISSStore, artifacts_present

logger = structlog.get_logger()

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StoreRegistry:
    """Single source of truth for which stores exist and which are loaded.

    Every load, create, append and save for a store name runs under that
    name's lock. The handle cache is only mutated here.
    """

    def __init__(
        self,
        base_path: Path | None = None,
        embeddings: Embeddings | None = None,
        combined_name: str | None = None,
        operation_timeout: float | None = None,
        max_loaded: int | None = None,
    ):
        """Initialize registry.

        Args:
            base_path: Directory holding one subdirectory per store.
                Defaults to settings.VECTORSTORE_PATH.
            embeddings: Embedding provider. Defaults to create_embeddings().
            combined_name: Name of the store holding all documents.
                Defaults to settings.COMBINED_STORE_NAME.
            operation_timeout: Seconds per operation. Defaults to settings.OPERATION_TIMEOUT.
            max_loaded: Keep at most this many handles in memory, evicting the
                least recently used. Defaults to settings.MAX_LOADED_STORES (no limit).
        """
        self._base_path = Path(base_path or settings.VECTORSTORE_PATH).expanduser()
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._embeddings = embeddings
        self._combined_name = combined_name or settings.COMBINED_STORE_NAME
        self._timeout = (
            operation_timeout if operation_timeout is not None else settings.OPERATION_TIMEOUT
        )
        self._max_loaded = max_loaded if max_loaded is not None else settings.MAX_LOADED_STORES

        self._handles: OrderedDict[str, FAISSStore] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._info: dict[str, StoreInfo] = {}

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def combined_name(self) -> str:
        return self._combined_name

    @property
    def operation_timeout(self) -> float | None:
        return self._timeout

    @property
    def embeddings(self) -> Embeddings:
        """Embedding provider, created on first use if none was injected."""
        if self._embeddings is None:
            self._embeddings = create_embeddings()
        return self._embeddings

    def store_path(self, name: str) -> Path:
        """Get the backing directory of a store.

        Raises:
            ValueError: If name is empty, hidden, or contains a path separator.
        """
        if not name or name.startswith(".") or "/" in name or "\\" in name:
            raise ValueError(f"Invalid store name: {name!r}")
        return self._base_path / name

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_loaded(self, name: str) -> bool:
        """Check if a store handle is cached in memory."""
        return name in self._handles

    def store_exists(self, name: str) -> bool:
        """Check if a store is loaded or has both artifacts on disk."""
        if self.is_loaded(name):
            return True
        try:
            return artifacts_present(self.store_path(name))
        except ValueError:
            return False

    def list_stores(self, prefix: str | None = None) -> set[str]:
        """List persisted stores from the directory listing.

        Args:
            prefix: Only return names starting with this prefix.

        Returns:
            Set of store names.
        """
        if not self._base_path.exists():
            return set()

        stores = set()
        for item in self._base_path.iterdir():
            if item.name.startswith("."):
                continue
            if prefix and not item.name.startswith(prefix):
                continue
            if item.is_dir() and artifacts_present(item):
                stores.add(item.name)

        return stores

    def loaded_stores(self) -> list[str]:
        """Names of cached stores, least recently used first."""
        return list(self._handles)

    def get_store_info(self, name: str) -> StoreInfo:
        """Get bookkeeping for a store, refreshed from the cached handle."""
        info = self._info.get(name) or StoreInfo(name=name, path=self.store_path(name))
        handle = self._handles.get(name)
        if handle is not None:
            info.chunk_count = handle.chunk_count
        return info.model_copy()

    def get_cached(self, name: str) -> FAISSStore | None:
        """Return the cached handle without any I/O, marking it recently used."""
        handle = self._handles.get(name)
        if handle is not None:
            self._handles.move_to_end(name)
        return handle

    # ------------------------------------------------------------------
    # Load / create / append
    # ------------------------------------------------------------------

    async def initialize(self) -> FAISSStore:
        """Make sure the combined store exists, seeding it if needed."""
        return await self.load_or_create(self._combined_name)

    async def load_or_create(
        self,
        name: str,
        chunks: list[Chunk] | None = None,
        timeout: float | None = None,
    ) -> FAISSStore:
        """Load a store, creating it from chunks if it does not exist.

        The combined store is seeded with a placeholder chunk when no chunks
        are given.

        Args:
            name: Store name.
            chunks: Chunks to build the store from if it does not exist.
            timeout: Seconds before giving up. Defaults to the registry timeout.

        Returns:
            The cached store handle.

        Raises:
            StoreNotFoundError: Store absent and nothing to create it from.
            StoreLoadError: Artifacts present but unreadable.
            TimeoutError: Operation exceeded the timeout.
        """
        cached = self.get_cached(name)
        if cached is not None:
            return cached

        async def guarded() -> FAISSStore:
            async with self._lock(name):
                return await self._load_or_create_locked(name, chunks)

        return await self._run_with_timeout(name, "load_or_create", guarded(), timeout)

    async def add_chunks(
        self,
        name: str,
        chunks: list[Chunk],
        timeout: float | None = None,
    ) -> bool:
        """Append chunks to a store and persist it, creating the store if needed.

        Args:
            name: Store name.
            chunks: Chunks to add.
            timeout: Seconds before giving up. Defaults to the registry timeout.

        Returns:
            True if the store already existed, False if it was created.

        Raises:
            StoreNotFoundError: Store absent and chunks is empty.
            StoreLoadError: Artifacts present but unreadable.
            TimeoutError: Operation exceeded the timeout.
        """

        async def guarded() -> bool:
            async with self._lock(name):
                existed = self.store_exists(name)
                if not existed and chunks and name != self._combined_name:
                    await self._load_or_create_locked(name, chunks)
                    return False

                store = await self._load_or_create_locked(name, None)
                await self._append_locked(name, store, chunks)
                return existed

        return await self._run_with_timeout(name, "add_chunks", guarded(), timeout)

    def unload(self, name: str) -> bool:
        """Drop a cached handle. Persisted artifacts are untouched.

        Returns:
            True if a handle was dropped. Stores with an operation in flight are kept.
        """
        lock = self._locks.get(name)
        if name not in self._handles or (lock is not None and lock.locked()):
            return False
        self._drop(name)
        logger.info("store_unloaded", name=name)
        return True

    # ------------------------------------------------------------------
    # Internals (caller holds the store lock)
    # ------------------------------------------------------------------

    def _lock(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    async def _run_with_timeout(
        self,
        name: str,
        operation: str,
        coro: Awaitable[T],
        timeout: float | None,
    ) -> T:
        limit = timeout if timeout is not None else self._timeout
        if limit is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=limit)
        except TimeoutError:
            logger.error("store_operation_timeout", name=name, operation=operation, timeout=limit)
            raise

    async def _load_or_create_locked(
        self,
        name: str,
        chunks: list[Chunk] | None,
    ) -> FAISSStore:
        cached = self.get_cached(name)
        if cached is not None:
            return cached

        path = self.store_path(name)
        self._set_state(name, "loading")
        try:
            try:
                logger.info("loading_store", name=name, path=str(path))
                store = await FAISSStore.load(path, self.embeddings)
                self._cache(name, store)
                return store
            except FileNotFoundError:
                pass
            except Exception as e:
                self._set_state(name, "failed")
                logger.error("store_load_failed", name=name, path=str(path), error=str(e))
                raise StoreLoadError(name, cause=e) from e

            if chunks:
                seed = chunks
            elif name == self._combined_name:
                logger.info("creating_placeholder_store", name=name)
                seed = [Chunk.placeholder()]
            else:
                raise StoreNotFoundError(name)

            logger.info("creating_store", name=name, num_chunks=len(seed))
            store = await FAISSStore.from_chunks(seed, self.embeddings)
            await self._run_shielded(self._persist_new(name, store, path))
            return store
        finally:
            # Timed out, cancelled or failed before caching
            if name not in self._handles and self._info[name].load_state == "loading":
                self._set_state(name, "unloaded")

    async def _append_locked(
        self,
        name: str,
        store: FAISSStore,
        chunks: list[Chunk],
    ) -> None:
        if not chunks:
            return

        # Embedding is the slow part and leaves the handle untouched
        vectors = await store.embed_chunks(chunks)

        await self._run_shielded(self._commit(name, store, chunks, vectors))

    async def _run_shielded(self, coro: Awaitable[T]) -> T:
        """Run a disk write to completion even if the caller is cancelled."""
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Hold the lock until the write lands so the next writer sees it
            await asyncio.gather(task, return_exceptions=True)
            raise

    async def _persist_new(self, name: str, store: FAISSStore, path: Path) -> None:
        await store.save(path)
        self._cache(name, store, created=True)

    async def _commit(
        self,
        name: str,
        store: FAISSStore,
        chunks: list[Chunk],
        vectors: list[list[float]],
    ) -> None:
        try:
            await store.add_embedded(chunks, vectors)
            await store.save(self.store_path(name))
        except Exception as e:
            # In-memory index is ahead of disk; reload from disk next time
            self._drop(name)
            logger.error("store_append_failed", name=name, error=str(e))
            raise

        info = self._info[name]
        info.chunk_count = store.chunk_count
        info.last_updated = _now()
        logger.info("store_chunks_added", name=name, num_chunks=len(chunks), total=store.chunk_count)

    def _cache(self, name: str, store: FAISSStore, created: bool = False) -> None:
        self._handles[name] = store
        self._handles.move_to_end(name)

        now = _now()
        info = self._info[name]
        info.load_state = "loaded"
        info.chunk_count = store.chunk_count
        if created:
            info.created_at = now
            info.last_updated = now

        self._evict_over_limit(keep=name)

    def _drop(self, name: str) -> None:
        self._handles.pop(name, None)
        if name in self._info:
            self._info[name].load_state = "unloaded"

    def _evict_over_limit(self, keep: str) -> None:
        if self._max_loaded is None:
            return
        for candidate in list(self._handles):
            if len(self._handles) <= self._max_loaded:
                break
            lock = self._locks.get(candidate)
            if candidate == keep or (lock is not None and lock.locked()):
                continue
            self._drop(candidate)
            logger.info("store_evicted", name=candidate, loaded=len(self._handles))

    def _set_state(self, name: str, state: LoadState) -> None:
        if name not in self._info:
            self._info[name] = StoreInfo(name=name, path=self.store_path(name))
        self._info[name].load_state = state
