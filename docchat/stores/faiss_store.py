"""FAISS vector store for semantic search using LangChain."""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path

import structlog
from langchain_community.vectorstores import FAISS
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from docchat.config import settings
from docchat.models import Chunk

logger = structlog.get_logger()

# LangChain FAISS save_local writes <index_name>.faiss and <index_name>.pkl
INDEX_NAME = "index"
INDEX_ARTIFACT = f"{INDEX_NAME}.faiss"
DOCSTORE_ARTIFACT = f"{INDEX_NAME}.pkl"

_RESERVED_KEYS = ("source", "chunk_idx", "is_placeholder")


def artifact_paths(directory: Path) -> tuple[Path, Path]:
    """Return (index artifact, docstore artifact) paths for a store directory."""
    directory = Path(directory)
    return directory / INDEX_ARTIFACT, directory / DOCSTORE_ARTIFACT


def artifacts_present(directory: Path) -> bool:
    """Check that both persisted artifacts exist and are non-empty."""
    for path in artifact_paths(directory):
        if not path.is_file() or path.stat().st_size == 0:
            return False
    return True


def chunk_to_document(chunk: Chunk) -> Document:
    """Convert a Chunk to a LangChain Document."""
    return Document(
        page_content=chunk.content,
        metadata={
            **chunk.metadata,
            "source": chunk.source,
            "chunk_idx": chunk.chunk_idx,
            "is_placeholder": chunk.is_placeholder,
        },
    )


def document_to_chunk(doc: Document) -> Chunk:
    """Convert a LangChain Document back to a Chunk."""
    metadata = dict(doc.metadata)
    extra = {k: v for k, v in metadata.items() if k not in _RESERVED_KEYS}
    return Chunk(
        content=doc.page_content,
        source=metadata.get("source", ""),
        chunk_idx=metadata.get("chunk_idx", 0),
        metadata=extra,
        is_placeholder=bool(metadata.get("is_placeholder", False)),
    )


def distance_to_score(distance: float) -> float:
    """Convert L2 distance to a similarity score in the 0-1 range.

    0 distance = identical = score 1.0, larger distance = lower score.
    """
    score = 1.0 / (1.0 + max(float(distance), 0.0))
    return min(max(score, 0.0), 1.0)


async def embed_texts(
    embeddings: Embeddings,
    texts: list[str],
    batch_size: int | None = None,
    batch_delay: float | None = None,
) -> list[list[float]]:
    """Embed texts in batches with a small delay between batches.

    Args:
        embeddings: Embedding provider.
        texts: Texts to embed.
        batch_size: Texts per request. Defaults to settings.INDEX_BATCH_SIZE.
        batch_delay: Seconds to wait between batches. Defaults to settings.INDEX_BATCH_DELAY.

    Returns:
        One vector per input text, in order.
    """
    size = batch_size or settings.INDEX_BATCH_SIZE
    delay = settings.INDEX_BATCH_DELAY if batch_delay is None else batch_delay
    num_batches = (len(texts) + size - 1) // size

    vectors: list[list[float]] = []
    for batch_idx, start in enumerate(range(0, len(texts), size)):
        batch = texts[start : start + size]
        logger.debug(
            "embedding_batch",
            batch=batch_idx + 1,
            num_batches=num_batches,
            batch_size=len(batch),
        )
        vectors.extend(await embeddings.aembed_documents(batch))

        # Rate limiting between batches
        if delay and start + size < len(texts):
            await asyncio.sleep(delay)

    return vectors


class FAISSStore:
    """Async wrapper around a LangChain FAISS index holding Chunks.

    Creation, appends and searches embed through the injected provider;
    disk I/O runs in a worker thread.
    """

    def __init__(self, embeddings: Embeddings, vectorstore: FAISS):
        self._embeddings = embeddings
        self._vectorstore = vectorstore
        # Searches run in executor threads; appends must not interleave with them
        self._index_lock = asyncio.Lock()

    @classmethod
    async def from_chunks(
        cls,
        chunks: list[Chunk],
        embeddings: Embeddings,
        batch_size: int | None = None,
    ) -> "FAISSStore":
        """Build a new FAISS index from chunks.

        Args:
            chunks: Chunks to index. Must not be empty.
            embeddings: Embedding provider.
            batch_size: Chunks embedded per request.

        Raises:
            ValueError: If chunks is empty (FAISS cannot hold an empty index here).
        """
        if not chunks:
            raise ValueError("Cannot build a FAISS index without chunks")

        texts = [c.content for c in chunks]
        vectors = await embed_texts(embeddings, texts, batch_size=batch_size)
        vectorstore = FAISS.from_embeddings(
            text_embeddings=list(zip(texts, vectors)),
            embedding=embeddings,
            metadatas=[chunk_to_document(c).metadata for c in chunks],
        )

        logger.info("faiss_index_built", num_chunks=len(chunks))
        return cls(embeddings, vectorstore)

    @classmethod
    async def load(cls, directory: Path, embeddings: Embeddings) -> "FAISSStore":
        """Load a FAISS index from disk.

        Args:
            directory: Directory containing the index artifacts.
            embeddings: Embedding provider for future queries.

        Raises:
            FileNotFoundError: If either artifact is missing or empty.
        """
        directory = Path(directory)

        if not artifacts_present(directory):
            raise FileNotFoundError(f"FAISS index not found: {directory}")

        vectorstore = await asyncio.to_thread(
            FAISS.load_local,
            str(directory),
            embeddings,
            index_name=INDEX_NAME,
            allow_dangerous_deserialization=True,  # Required for loading pickle
        )

        store = cls(embeddings, vectorstore)
        logger.info(
            "faiss_index_loaded",
            directory=str(directory),
            num_chunks=store.chunk_count,
        )
        return store

    async def embed_chunks(self, chunks: list[Chunk]) -> list[list[float]]:
        """Embed chunks without touching the index."""
        return await embed_texts(self._embeddings, [c.content for c in chunks])

    async def add_embedded(self, chunks: list[Chunk], vectors: list[list[float]]) -> None:
        """Append pre-embedded chunks to the in-memory index.

        Waits for in-flight searches so none sees the index and the docstore
        mapping out of step.
        """
        if len(chunks) != len(vectors):
            raise ValueError(
                f"Got {len(vectors)} vectors for {len(chunks)} chunks"
            )
        async with self._index_lock:
            self._vectorstore.add_embeddings(
                text_embeddings=list(zip([c.content for c in chunks], vectors)),
                metadatas=[chunk_to_document(c).metadata for c in chunks],
            )
        logger.debug("faiss_chunks_added", num_chunks=len(chunks))

    async def add_chunks(self, chunks: list[Chunk]) -> None:
        """Embed and append chunks to the in-memory index."""
        if not chunks:
            return
        vectors = await self.embed_chunks(chunks)
        await self.add_embedded(chunks, vectors)

    async def save(self, directory: Path) -> None:
        """Save the FAISS index to disk.

        Each artifact is written to a temporary directory first and moved
        into place with an atomic rename.
        """
        await asyncio.to_thread(self._save_sync, Path(directory))
        logger.info("faiss_index_saved", directory=str(directory))

    def _save_sync(self, directory: Path) -> None:
        directory.parent.mkdir(parents=True, exist_ok=True)
        tmp_dir = Path(tempfile.mkdtemp(prefix=f".{directory.name}.", dir=directory.parent))
        try:
            self._vectorstore.save_local(str(tmp_dir), index_name=INDEX_NAME)
            directory.mkdir(parents=True, exist_ok=True)
            # Docstore first: a newer docstore with an older index is still readable
            for artifact in (DOCSTORE_ARTIFACT, INDEX_ARTIFACT):
                os.replace(tmp_dir / artifact, directory / artifact)
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)

    async def similarity_search(self, query: str, k: int) -> list[Chunk]:
        """Return the k nearest chunks without scores."""
        embedding = await self._embeddings.aembed_query(query)
        async with self._index_lock:
            docs = await self._vectorstore.asimilarity_search_by_vector(embedding, k=k)
        return [document_to_chunk(doc) for doc in docs]

    async def similarity_search_with_score(
        self,
        query: str,
        k: int,
    ) -> list[tuple[Chunk, float]]:
        """Return the k nearest chunks with similarity scores, best first."""
        # Score is L2 distance (lower = more similar)
        embedding = await self._embeddings.aembed_query(query)
        async with self._index_lock:
            results = await self._vectorstore.asimilarity_search_with_score_by_vector(
                embedding, k=k
            )
        return [(document_to_chunk(doc), distance_to_score(d)) for doc, d in results]

    async def max_marginal_relevance_search(
        self,
        query: str,
        k: int,
        fetch_k: int,
        lambda_mult: float,
    ) -> list[tuple[Chunk, float]]:
        """Select k diverse chunks from the fetch_k nearest candidates.

        Args:
            query: Query string.
            k: Number of chunks to select.
            fetch_k: Candidate pool size.
            lambda_mult: 0 = maximum diversity, 1 = pure relevance.
        """
        embedding = await self._embeddings.aembed_query(query)
        async with self._index_lock:
            total = self.chunk_count
            if total == 0:
                return []

            # FAISS pads short result lists with -1 ids, keep the pool within the index
            results = await self._vectorstore.amax_marginal_relevance_search_with_score_by_vector(
                embedding,
                k=min(k, total),
                fetch_k=min(max(fetch_k, k), total),
                lambda_mult=lambda_mult,
            )
        return [(document_to_chunk(doc), distance_to_score(d)) for doc, d in results]

    @property
    def chunk_count(self) -> int:
        return self._vectorstore.index.ntotal

    @property
    def is_empty(self) -> bool:
        """Check if the index is empty."""
        return self.chunk_count == 0
