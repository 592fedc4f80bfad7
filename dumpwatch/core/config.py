"""
DumpWatch - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dumpwatch.core.constants import (
    DEFAULT_CLUSTER_RADIUS_M,
    DEFAULT_REPUTATION_POINTS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Database (no URL means the in-memory store)
    database_url: Optional[str] = None
    db_pool_size: int = 5
    db_echo: bool = False

    # Consensus
    geo_cluster_radius_m: float = Field(
        default=DEFAULT_CLUSTER_RADIUS_M,
        gt=0,
        validation_alias=AliasChoices("geo_cluster_radius", "geo_cluster_radius_m"),
    )
    reputation_per_verified_dump: int = Field(
        default=DEFAULT_REPUTATION_POINTS,
        ge=0,
        validation_alias=AliasChoices(
            "reputation_per_verified_dump", "reputation_per_verified"
        ),
    )
    max_submit_attempts: int = Field(default=3, ge=1)

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
