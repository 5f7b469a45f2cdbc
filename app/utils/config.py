"""
Configuration management for the source index service.

Uses pydantic-settings to load configuration from environment variables
(prefixed with ``SOURCE_``) and .env files.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # API Configuration
    api_port: int = 8000
    log_level: str = "INFO"
    api_title: str = "Source Index API"
    api_version: str = "1.0.0"

    # Hashing / content
    hash_chunk_size: int = 64 * 1024  # bytes per read
    max_content_bytes: int = 50 * 1024 * 1024

    # Watch Configuration
    watch_debounce_ms: int = 50  # 0 disables coalescing
    watch_use_polling: bool = False
    watch_polling_interval: float = 1.0  # seconds
    watch_join_timeout: float = 5.0  # seconds

    model_config = SettingsConfigDict(
        env_prefix="SOURCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def watch_debounce_seconds(self) -> float:
        """Coalescing window in seconds."""
        return max(self.watch_debounce_ms, 0) / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
