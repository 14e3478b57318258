"""
Runtime configuration. Override via ANUVAD_* environment variables or a .env file.
"""
from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from anuvad.constants import (
    CHUNK_SECONDS,
    INFERENCE_INTERVAL_SECONDS,
    MAX_NEW_TOKENS,
    MAX_TRANSCRIBE_TOKENS,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ANUVAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Engines
    device: str = "cpu"
    max_new_tokens: int = MAX_NEW_TOKENS
    max_transcribe_tokens: int = MAX_TRANSCRIBE_TOKENS

    # Streaming buffer
    chunk_seconds: int = CHUNK_SECONDS
    inference_interval_seconds: int = INFERENCE_INTERVAL_SECONDS

    # Model cache
    cache_dir: Path = Path.home() / ".cache" / "anuvad-models-v1"
    download_timeout: float = 60.0


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
