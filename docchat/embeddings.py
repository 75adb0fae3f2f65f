"""Embedding provider factory built on LangChain OpenAI embeddings."""

from typing import TypedDict

import structlog
from langchain_openai import OpenAIEmbeddings

from docchat.config import EmbeddingProfile, settings

logger = structlog.get_logger()


class _ProfileConfig(TypedDict):
    model: str
    dimensions: int | None
    batch_size: int
    max_retries: int


EMBEDDING_PROFILES: dict[str, _ProfileConfig] = {
    # Full dimensions for maximum quality
    "quality": {
        "model": "text-embedding-3-large",
        "dimensions": 3072,
        "batch_size": 100,
        "max_retries": 3,
    },
    "balanced": {
        "model": "text-embedding-3-small",
        "dimensions": 1536,
        "batch_size": 200,
        "max_retries": 3,
    },
    "fast": {
        "model": "text-embedding-ada-002",
        "dimensions": None,  # ada-002 does not accept a dimensions parameter
        "batch_size": 512,
        "max_retries": 2,
    },
}


def create_embeddings(
    profile: EmbeddingProfile | None = None,
    model: str | None = None,
) -> OpenAIEmbeddings:
    """Create an OpenAI embedding provider for a named profile.

    Args:
        profile: "quality", "balanced" or "fast". Defaults to settings.EMBEDDING_PROFILE.
        model: Model override. Defaults to settings.EMBEDDING_MODEL, then the profile's model.

    Returns:
        Configured OpenAIEmbeddings instance.

    Raises:
        ValueError: If the profile is unknown.
    """
    profile_name = profile or settings.EMBEDDING_PROFILE
    if profile_name not in EMBEDDING_PROFILES:
        raise ValueError(f"Unknown embedding profile: {profile_name}")

    config = EMBEDDING_PROFILES[profile_name]
    model_name = model or settings.EMBEDDING_MODEL or config["model"]

    kwargs: dict = {
        "model": model_name,
        "chunk_size": config["batch_size"],
        "max_retries": config["max_retries"],
    }
    if config["dimensions"] is not None and model_name == config["model"]:
        kwargs["dimensions"] = config["dimensions"]
    if settings.OPENAI_API_KEY:
        kwargs["api_key"] = settings.OPENAI_API_KEY

    logger.info("embeddings_created", profile=profile_name, model=model_name)
    return OpenAIEmbeddings(**kwargs)
