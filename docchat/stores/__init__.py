"""Store submodule for vector indexes."""

from docchat.stores.base import Chunker, ScoredSearch
from docchat.stores.faiss_store import FAISSStore, artifacts_present

__all__ = [
    "Chunker",
    "ScoredSearch",
    "FAISSStore",
    "artifacts_present",
]
