"""Configuration package."""

from docchat.config.settings import EmbeddingProfile, Settings, settings

__all__ = ["EmbeddingProfile", "Settings", "settings"]
