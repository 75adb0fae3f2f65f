"""docchat - Multi-index vector retrieval for document chat."""

from docchat.config import settings
from docchat.coordinator import DualWriteCoordinator, individual_store_name
from docchat.embeddings import create_embeddings
from docchat.errors import (
    AggregateWriteFailure,
    DocChatError,
    PartialWriteFailure,
    RetrievalDegraded,
    StoreLoadError,
    StoreNotFoundError,
)
from docchat.index import DocumentIndex
from docchat.models import (
    Chunk,
    MMRStrategy,
    RetrievalResponse,
    RetrievalResult,
    SimilarityStrategy,
    StoreInfo,
    ThresholdStrategy,
    WriteOutcome,
)
from docchat.registry import StoreRegistry
from docchat.retriever import Retriever, RetrieverFactory
from docchat.utils.logging import configure_logging

__version__ = "0.1.0"
__all__ = [
    # Settings
    "settings",
    "configure_logging",
    "create_embeddings",
    # Models
    "Chunk",
    "RetrievalResult",
    "RetrievalResponse",
    "WriteOutcome",
    "StoreInfo",
    "SimilarityStrategy",
    "MMRStrategy",
    "ThresholdStrategy",
    # Errors
    "DocChatError",
    "StoreNotFoundError",
    "StoreLoadError",
    "PartialWriteFailure",
    "AggregateWriteFailure",
    "RetrievalDegraded",
    # Core
    "StoreRegistry",
    "DualWriteCoordinator",
    "individual_store_name",
    "Retriever",
    "RetrieverFactory",
    "DocumentIndex",
]
