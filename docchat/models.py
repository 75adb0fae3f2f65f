"""Pydantic models for the docchat retrieval library."""

from datetime import datetime
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import AfterValidator, BaseModel, Field, computed_field

from docchat.config import settings

LoadState = Literal["unloaded", "loading", "loaded", "failed"]
WriteSide = Literal["individual", "combined"]

PLACEHOLDER_CONTENT = "This is a placeholder document. Upload documents to start chatting."
PLACEHOLDER_SOURCE = "system"


class Chunk(BaseModel):
    """A chunk of text from a document, with provenance."""

    content: str
    source: str
    chunk_idx: int = 0
    metadata: dict = Field(default_factory=dict)
    is_placeholder: bool = False

    @computed_field
    @property
    def chunk_id(self) -> str:
        """Stable identifier built from source and position."""
        return f"{self.source}_c{self.chunk_idx}"

    @classmethod
    def placeholder(cls) -> "Chunk":
        """Seed chunk for a store that has no real documents yet."""
        return cls(
            content=PLACEHOLDER_CONTENT,
            source=PLACEHOLDER_SOURCE,
            chunk_idx=0,
            metadata={"type": "placeholder"},
            is_placeholder=True,
        )


class RetrievalResult(BaseModel):
    """A single retrieved chunk.

    ``score`` is None when the result came from the unscored fallback search.
    """

    chunk: Chunk
    score: float | None = Field(default=None, ge=0.0, le=1.0)

    @property
    def is_placeholder(self) -> bool:
        return self.chunk.is_placeholder


class RetrievalResponse(BaseModel):
    """Ordered retrieval results for one query."""

    results: list[RetrievalResult]
    query: str
    store_name: str
    strategy: str
    total_found: int
    top_score: float | None = None
    degraded: bool = False

    @property
    def chunks(self) -> list[Chunk]:
        return [r.chunk for r in self.results]

    @property
    def has_content(self) -> bool:
        """True if at least one result is a real (non-placeholder) chunk."""
        return any(not r.is_placeholder for r in self.results)


class WriteOutcome(BaseModel):
    """Result of writing one document to its individual and the combined store."""

    document_id: str
    individual_store: str
    combined_store: str
    individual_written: bool = False
    combined_written: bool = False
    individual_created: bool = False
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.individual_written or self.combined_written

    @property
    def written_sides(self) -> list[WriteSide]:
        sides: list[WriteSide] = []
        if self.individual_written:
            sides.append("individual")
        if self.combined_written:
            sides.append("combined")
        return sides


class StoreInfo(BaseModel):
    """In-memory bookkeeping for a store known to the registry."""

    name: str
    path: Path
    load_state: LoadState = "unloaded"
    chunk_count: int = 0
    created_at: datetime | None = None
    last_updated: datetime | None = None


def _clamp_k(v: int) -> int:
    if v < 1:
        raise ValueError("k must be at least 1")
    return min(v, settings.MAX_TOP_K)


TopK = Annotated[int, AfterValidator(_clamp_k)]


class SimilarityStrategy(BaseModel):
    """Plain k-nearest-neighbour search."""

    kind: Literal["similarity"] = "similarity"
    k: TopK = Field(default_factory=lambda: settings.DEFAULT_TOP_K)


class MMRStrategy(BaseModel):
    """Maximal marginal relevance over a larger candidate pool.

    Lower ``lambda_mult`` favours diversity over relevance.
    """

    kind: Literal["mmr"] = "mmr"
    k: TopK = Field(default_factory=lambda: settings.DEFAULT_TOP_K)
    fetch_k: int | None = None
    lambda_mult: float = Field(default_factory=lambda: settings.MMR_LAMBDA, ge=0.0, le=1.0)

    @property
    def pool_size(self) -> int:
        """Candidate pool size, never smaller than k."""
        return max(self.fetch_k or self.k * settings.MMR_FETCH_MULTIPLIER, self.k)


class ThresholdStrategy(BaseModel):
    """Scored search filtered by a minimum relevance score."""

    kind: Literal["advanced"] = "advanced"
    k: TopK = Field(default_factory=lambda: settings.DEFAULT_TOP_K)
    score_threshold: float = Field(
        default_factory=lambda: settings.SCORE_THRESHOLD, ge=0.0, le=1.0
    )

    @property
    def pool_size(self) -> int:
        return self.k * settings.THRESHOLD_FETCH_MULTIPLIER


RetrievalStrategy = Annotated[
    Union[SimilarityStrategy, MMRStrategy, ThresholdStrategy],
    Field(discriminator="kind"),
]
StrategyKind = Literal["similarity", "mmr", "advanced"]
