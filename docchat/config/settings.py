"""Settings module - Single Source of Truth for configuration."""

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

EmbeddingProfile = Literal["quality", "balanced", "fast"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys
    OPENAI_API_KEY: str | None = None

    # Storage
    VECTORSTORE_PATH: Path = Path("./vectorstores")
    COMBINED_STORE_NAME: str = "combined"

    # Embeddings
    EMBEDDING_PROFILE: EmbeddingProfile = "balanced"
    EMBEDDING_MODEL: str | None = None  # Overrides the profile's model

    # Index building
    INDEX_BATCH_SIZE: int = 50  # chunks embedded per request
    INDEX_BATCH_DELAY: float = 0.1  # seconds between batches (rate limiting)

    # Chunk validation
    MIN_CHUNK_CHARS: int = 20
    MAX_CHUNK_CHARS: int = 8000

    # Retrieval
    DEFAULT_TOP_K: int = 10
    MAX_TOP_K: int = 20
    MMR_FETCH_MULTIPLIER: int = 3
    MMR_LAMBDA: float = 0.25
    SCORE_THRESHOLD: float = 0.6
    THRESHOLD_FETCH_MULTIPLIER: int = 2

    # Concurrency
    OPERATION_TIMEOUT: float | None = 120.0  # seconds, None disables
    MAX_LOADED_STORES: int | None = None  # None keeps every store resident

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("VECTORSTORE_PATH", mode="before")
    @classmethod
    def expand_vectorstore_path(cls, v: str | Path) -> Path:
        """Expand ~ in vector store path."""
        return Path(v).expanduser()

    @field_validator("MAX_LOADED_STORES")
    @classmethod
    def positive_store_limit(cls, v: int | None) -> int | None:
        """Reject non-positive store limits."""
        if v is not None and v < 1:
            raise ValueError("MAX_LOADED_STORES must be at least 1")
        return v


settings = Settings()
