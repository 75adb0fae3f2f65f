#!/usr/bin/env python3
"""Basic usage example for the docchat retrieval library.

Requires: OPENAI_API_KEY configured.
"""

import asyncio
import shutil
from pathlib import Path

from docchat import Chunk, DocumentIndex, configure_logging

INTRO = """Welcome to the Acme analytics platform.

Installation takes five minutes with the desktop installer. Run the installer
and sign in with your work email.

Dashboards refresh every hour and can be shared with teammates by link."""

PRICING = """The starter plan costs ten dollars per month per seat.

Enterprise pricing includes single sign-on, audit logs and a dedicated
support engineer."""


class ParagraphChunker:
    """Minimal chunker splitting on blank lines."""

    def split(self, document: str, source: str) -> list[Chunk]:
        paragraphs = [p.strip() for p in document.split("\n\n") if p.strip()]
        return [Chunk(content=p, source=source, chunk_idx=i) for i, p in enumerate(paragraphs)]


async def main():
    """Demonstrate basic docchat usage."""
    configure_logging(log_level="WARNING")

    storage_path = Path("/tmp/docchat_example")
    index = DocumentIndex.open(base_path=storage_path)

    # The combined store is seeded with a placeholder until documents arrive
    await index.initialize()
    response = await index.query("How do I install it?")
    print(f"Empty index has content: {response.has_content}")

    # Add documents
    chunker = ParagraphChunker()
    for document_id, text in (("intro.txt", INTRO), ("pricing.txt", PRICING)):
        outcome = await index.add_text(document_id, text, chunker)
        print(f"Added {document_id} -> {outcome.written_sides}")

    print(f"Documents: {index.list_documents()}")

    # Query the combined store with each strategy
    print("\n--- Retrieval Strategies ---")
    query = "How long does installation take?"
    print(f"\nQuery: {query}")

    for strategy in ("similarity", "mmr", "advanced"):
        response = await index.query(query, k=3, strategy=strategy)
        top = f"{response.top_score:.2f}" if response.top_score is not None else "n/a"
        print(f"{strategy}: {response.total_found} results, top score {top}")

        for i, result in enumerate(response.results[:2], 1):
            print(f"  Result {i}: [{result.chunk.source}] {result.chunk.content[:80]}")

    # Query a single document
    print("\n--- Single Document ---")
    response = await index.query("price per seat", store_name="pricing", strategy="similarity")
    print(f"pricing store returned {response.total_found} results")

    # Reopen from disk
    reopened = DocumentIndex.open(base_path=storage_path)
    response = await reopened.query("dashboards", k=1, strategy="similarity")
    print(f"\nReopened index, top source: {response.results[0].chunk.source}")

    # Clean up
    print("\nCleaning up...")
    shutil.rmtree(storage_path, ignore_errors=True)
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
