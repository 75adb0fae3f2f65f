"""Dual-write coordinator - keeps per-document and combined stores in sync."""

import asyncio
import re
from pathlib import PurePosixPath

import structlog

from docchat.errors import AggregateWriteFailure, PartialWriteFailure
from docchat.models import Chunk, WriteOutcome, WriteSide
from docchat.registry import StoreRegistry
from docchat.utils.cleaning import clean_chunks

logger = structlog.get_logger()

_EXTENSION = re.compile(r"\.[^.]+$")


def individual_store_name(document_id: str, owner: str | None = None) -> str:
    """Derive the per-document store name from a document identifier.

    The extension is stripped ("intro.txt" -> "intro"). With an owner the
    name is prefixed ("alice", "intro.txt" -> "alice_intro").

    Raises:
        ValueError: If nothing is left to name the store with.
    """
    filename = PurePosixPath(document_id.replace("\\", "/")).name
    stem = _EXTENSION.sub("", filename) if not filename.startswith(".") else ""
    if not stem:
        raise ValueError(f"Cannot derive a store name from document id: {document_id!r}")
    return f"{owner}_{stem}" if owner else stem


class DualWriteCoordinator:
    """Writes a document's chunks to its own store and to the combined store.

    The two writes run concurrently and fail independently. A document write
    succeeds when at least one side lands.
    """

    def __init__(self, registry: StoreRegistry, clean: bool = False):
        """Initialize coordinator.

        Args:
            registry: Registry owning the stores.
            clean: Validate and normalize chunks before writing. Off by default,
                chunks are indexed exactly as given.
        """
        self._registry = registry
        self._clean = clean

    async def add_document(
        self,
        document_id: str,
        chunks: list[Chunk],
        owner: str | None = None,
        timeout: float | None = None,
        clean: bool | None = None,
    ) -> WriteOutcome:
        """Add a document's chunks to its individual store and the combined store.

        Args:
            document_id: Document identifier, usually its filename.
            chunks: Chunks produced for the document.
            owner: Optional namespace prefixed to the individual store name.
            timeout: Per-store timeout in seconds. Defaults to the registry timeout.
            clean: Override the coordinator's cleaning setting for this document.

        Returns:
            WriteOutcome describing which sides were written.

        Raises:
            ValueError: If the store name is invalid, no chunks were given, or none
                survives validation.
            AggregateWriteFailure: If both writes failed.
        """
        store_name = individual_store_name(document_id, owner)
        combined_name = self._registry.combined_name
        if store_name == combined_name:
            raise ValueError(f"Document id {document_id!r} collides with the combined store")

        if not chunks:
            raise ValueError(f"No chunks provided for document {document_id}")

        should_clean = self._clean if clean is None else clean
        if should_clean:
            valid_chunks = clean_chunks(chunks)
            if not valid_chunks:
                raise ValueError(f"No valid chunks found for document {document_id}")
        else:
            valid_chunks = list(chunks)

        logger.info(
            "adding_document",
            document_id=document_id,
            store=store_name,
            num_chunks=len(valid_chunks),
            dropped=len(chunks) - len(valid_chunks),
        )

        individual, combined = await asyncio.gather(
            self._write_side("individual", store_name, valid_chunks, timeout),
            self._write_side("combined", combined_name, valid_chunks, timeout),
        )

        outcome = WriteOutcome(
            document_id=document_id,
            individual_store=store_name,
            combined_store=combined_name,
        )
        for side, result in (("individual", individual), ("combined", combined)):
            if isinstance(result, PartialWriteFailure):
                outcome.failures[side] = str(result.cause)
            elif side == "individual":
                outcome.individual_written = True
                outcome.individual_created = not result
            else:
                outcome.combined_written = True

        if isinstance(individual, PartialWriteFailure) and isinstance(combined, PartialWriteFailure):
            error = AggregateWriteFailure(document_id, individual, combined)
            logger.error("document_write_failed", document_id=document_id, error=str(error))
            raise error

        logger.info(
            "document_added",
            document_id=document_id,
            sides=outcome.written_sides,
            failures=outcome.failures or None,
        )
        return outcome

    async def _write_side(
        self,
        side: WriteSide,
        store_name: str,
        chunks: list[Chunk],
        timeout: float | None,
    ) -> bool | PartialWriteFailure:
        """Write one side, returning whether the store existed or the failure."""
        try:
            return await self._registry.add_chunks(store_name, chunks, timeout=timeout)
        except Exception as e:
            failure = PartialWriteFailure(side, store_name, e)
            logger.warning(
                "document_side_write_failed",
                side=side,
                store=store_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return failure
