"""Application settings using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the local data core, loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="offline-learning", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )

    # Embedded database
    database_path: str = Field(
        default="app.db", description="SQLite database file (':memory:' for RAM)"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")
    database_busy_timeout_seconds: float = Field(
        default=5.0, description="Wait this long for the SQLite write lock"
    )

    # Offline packages
    offline_session_ttl_days: int = Field(
        default=7, ge=1, description="Default validity of a downloaded package"
    )

    # Sync
    sync_batch_size: int = Field(
        default=100, ge=1, description="Default outbox dequeue batch size"
    )
    progress_batch_size: int = Field(
        default=50, ge=1, description="Default unsynced progress batch page size"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_to_file: bool = Field(default=False, description="Also write JSON log files")
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_include_caller_info: bool = Field(
        default=False, description="Include caller info"
    )

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def is_memory_database(self) -> bool:
        """Check if the database lives only in RAM."""
        return self.database_path == ":memory:"

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured database file."""
        if self.is_memory_database:
            return "sqlite://"
        return f"sqlite:///{Path(self.database_path).expanduser()}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
