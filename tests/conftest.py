"""Pytest configuration and fixtures."""

import asyncio
import math
import os
import re
import zlib

# Fix OpenMP conflict on macOS (FAISS + other libs linking to libomp)
# This must be set before any FAISS imports
os.environ["KMP_DUPLICATE_LIB_OK"] = "TRUE"

import pytest
from langchain_core.embeddings import Embeddings

from docchat.models import Chunk

_WORD = re.compile(r"[a-z0-9]+")


class BagOfWordsEmbeddings(Embeddings):
    """Deterministic offline embeddings: hashed word counts, L2-normalized.

    Texts sharing words get similar vectors, so FAISS ranking behaves like a
    (very small) real embedding model. ``delay`` and ``fail_with`` simulate a
    slow or broken provider on the async path.
    """

    def __init__(self, dim: int = 256):
        self.dim = dim
        self.delay = 0.0
        self.fail_with: Exception | None = None
        self.document_calls = 0

    def _embed(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for word in _WORD.findall(text.lower()):
            vec[zlib.crc32(word.encode()) % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls += 1
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        return self.embed_documents(texts)

    async def aembed_query(self, text: str) -> list[float]:
        if self.fail_with is not None:
            raise self.fail_with
        return self.embed_query(text)


@pytest.fixture
def embeddings():
    """Offline embedding provider."""
    return BagOfWordsEmbeddings()


@pytest.fixture
def registry(tmp_path, embeddings):
    """Registry over a temporary directory with offline embeddings."""
    from docchat.registry import StoreRegistry

    return StoreRegistry(base_path=tmp_path / "vectorstores", embeddings=embeddings)


@pytest.fixture
def document_index(tmp_path, embeddings):
    """DocumentIndex over a temporary directory with offline embeddings."""
    from docchat.index import DocumentIndex

    return DocumentIndex.open(base_path=tmp_path / "vectorstores", embeddings=embeddings)


@pytest.fixture
def make_chunks():
    """Build chunks for a source from a list of contents."""

    def _make(source: str, contents: list[str]) -> list[Chunk]:
        return [
            Chunk(content=content, source=source, chunk_idx=i)
            for i, content in enumerate(contents)
        ]

    return _make


@pytest.fixture
def sample_chunks(make_chunks):
    """Chunks of a short document about solar energy."""
    return make_chunks(
        "solar.txt",
        [
            "Solar panels convert sunlight into electricity using photovoltaic cells.",
            "Battery storage keeps solar electricity available after sunset.",
            "Inverters turn direct current from the panels into alternating current.",
            "Panel efficiency drops as the cell temperature rises on hot days.",
            "Net metering credits households for electricity sent back to the grid.",
        ],
    )


def pytest_sessionfinish(session, exitstatus):
    """Print message after all tests complete."""
    print("Running teardown with pytest sessionfinish...")
