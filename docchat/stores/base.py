"""Protocols for collaborators consumed by the retrieval core."""

from typing import Protocol

from docchat.models import Chunk


class Chunker(Protocol):
    """Splits a document into ordered chunks. Chunk boundaries are opaque here."""

    def split(self, document: str, source: str) -> list[Chunk]:
        """Split document text into chunks attributed to source."""
        ...


class ScoredSearch(Protocol):
    """Search interface the retrieval strategies run against."""

    async def similarity_search(self, query: str, k: int) -> list[Chunk]:
        """Return the k nearest chunks without scores."""
        ...

    async def similarity_search_with_score(
        self,
        query: str,
        k: int,
    ) -> list[tuple[Chunk, float]]:
        """Return (chunk, score) tuples, best first."""
        ...

    async def max_marginal_relevance_search(
        self,
        query: str,
        k: int,
        fetch_k: int,
        lambda_mult: float,
    ) -> list[tuple[Chunk, float]]:
        """Return k diverse (chunk, score) tuples."""
        ...
