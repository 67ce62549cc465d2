"""Application configuration."""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # API Keys
    ncbi_api_key: str = ""
    openfda_api_key: str = ""

    # Embeddings
    embedding_model: str = "FremyCompany/BioLORD-2023"
    semantic_threshold: float = 0.5

    # Matching thresholds
    eligible_threshold: float = 0.7
    potential_threshold: float = 0.4

    # Delay between sequential upstream calls within a run (seconds)
    inter_call_delay: float = 0.2

    # App Settings
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging from settings (or an explicit level)."""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
