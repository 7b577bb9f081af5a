"""Application configuration."""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage backend: "embedded" (device-local SQLite) or "networked" (REST + object storage)
    storage_backend: str = "embedded"

    # Embedded store
    database_url: str = "sqlite+aiosqlite:///./localchat.db"

    @property
    def async_database_url(self) -> str:
        """Convert DATABASE_URL to async format for SQLAlchemy."""
        url = self.database_url
        if url.startswith("sqlite:///"):
            url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return url

    # Preferences live on the device even when the chat data is remote
    preferences_url: str = "sqlite+aiosqlite:///./localchat-prefs.db"

    # Networked store
    remote_url: str = ""
    remote_api_key: str = ""
    remote_bucket: str = "chat-files"
    remote_timeout: float = 10.0

    # Sync bus - empty redis_url keeps the broadcast channel in-process
    redis_url: str = ""
    sync_channel: str = "localchat-sync"
    sync_poll_interval: float = 1.0

    # Attachment quota
    max_file_bytes: int = 10 * MIB
    max_total_bytes: int = 100 * MIB

    # Credentials
    password_iterations: int = 120_000

    # App settings
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        """Validate backend selection and quota limits."""
        backend = self.storage_backend.lower()
        if backend not in ("embedded", "networked"):
            raise ValueError(
                f"STORAGE_BACKEND must be 'embedded' or 'networked', got {self.storage_backend!r}"
            )
        self.storage_backend = backend

        if backend == "networked" and not self.remote_url:
            raise ValueError(
                "REMOTE_URL must be set when STORAGE_BACKEND=networked. "
                "Point it at the REST endpoint of the chat database."
            )
        if backend == "networked" and not self.remote_api_key:
            logger.warning(
                "REMOTE_API_KEY not set - requests to the networked store will be anonymous."
            )

        if self.max_file_bytes <= 0 or self.max_total_bytes <= 0:
            raise ValueError("MAX_FILE_BYTES and MAX_TOTAL_BYTES must be positive")
        if self.max_file_bytes > self.max_total_bytes:
            logger.warning(
                "MAX_FILE_BYTES exceeds MAX_TOTAL_BYTES - the total quota will be the effective limit."
            )

        return self

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
