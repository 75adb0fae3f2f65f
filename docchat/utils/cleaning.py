"""Chunk validation and cleanup before indexing."""

import re
from datetime import datetime, timezone

from docchat.config import settings
from docchat.models import Chunk

_WHITESPACE = re.compile(r"\s+")
# Anything outside printable ASCII and U+00A0..U+FFFF
_CONTROL_CHARS = re.compile(r"[^\x20-\x7E\u00A0-\uFFFF]")


def clean_text(text: str) -> str:
    """Collapse whitespace and strip control characters."""
    text = _WHITESPACE.sub(" ", text)
    return _CONTROL_CHARS.sub("", text).strip()


def clean_chunks(
    chunks: list[Chunk],
    min_chars: int | None = None,
    max_chars: int | None = None,
) -> list[Chunk]:
    """Drop chunks outside the length bounds and normalize the rest.

    Length is checked on the stripped original content. Kept chunks get
    ``content_length``, ``word_count``, ``validated`` and ``cleaned_at``
    metadata.

    Args:
        chunks: Chunks to validate.
        min_chars: Minimum content length. Defaults to settings.MIN_CHUNK_CHARS.
        max_chars: Maximum content length. Defaults to settings.MAX_CHUNK_CHARS.

    Returns:
        Cleaned chunks, in input order.
    """
    low = settings.MIN_CHUNK_CHARS if min_chars is None else min_chars
    high = settings.MAX_CHUNK_CHARS if max_chars is None else max_chars
    cleaned_at = datetime.now(timezone.utc).isoformat()

    result = []
    for chunk in chunks:
        stripped = chunk.content.strip() if chunk.content else ""
        if not stripped or not low <= len(stripped) <= high:
            continue

        content = clean_text(stripped)
        result.append(
            chunk.model_copy(
                update={
                    "content": content,
                    "metadata": {
                        **chunk.metadata,
                        "content_length": len(content),
                        "word_count": len(content.split()),
                        "validated": True,
                        "cleaned_at": cleaned_at,
                    },
                }
            )
        )

    return result
