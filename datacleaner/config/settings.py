"""
Settings Configuration
======================

Environment variable management using pydantic-settings.
Follows the 12-factor app methodology.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    api_host: str = Field(default="127.0.0.1", description="Server host")
    api_port: int = Field(default=8010, ge=1, le=65535, description="Server port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # -------------------------------------------------------------------------
    # Remote LLM Configuration (OpenRouter-compatible chat completions)
    # -------------------------------------------------------------------------
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1", description="Chat completions API base URL"
    )
    openrouter_api_key: str | None = Field(
        default=None,
        description="Fallback API key; a key saved through the API takes precedence",
    )
    llm_model: str = Field(
        default="google/gemini-2.0-flash-001", description="Model identifier"
    )
    llm_max_tokens: int = Field(default=64000, ge=1, description="Max output tokens")
    llm_timeout_seconds: float = Field(
        default=120.0, gt=0, description="HTTP timeout for a single LLM request"
    )
    app_title: str = Field(default="Data Cleaner Tool", description="X-Title header")
    app_referer: str = Field(
        default="http://localhost", description="HTTP-Referer header"
    )

    # -------------------------------------------------------------------------
    # Extraction / Relevance Configuration
    # -------------------------------------------------------------------------
    chunk_size_lines: int = Field(default=500, ge=1, description="Lines per extraction chunk")
    chunk_overlap_lines: int = Field(
        default=10, ge=0, description="Lines shared by consecutive chunks"
    )
    relevance_batch_size: int | None = Field(
        default=None,
        ge=1,
        description="Rows per relevance request (None = whole unverified set at once)",
    )
    natural_key_column: str = Field(
        default="抖音号", description="Column used for duplicate detection"
    )
    significant_columns: list[str] = Field(
        default_factory=lambda: ["用户名", "简介"],
        description="Edits to these columns reset a row to unverified",
    )
    relevance_payload_columns: list[str] = Field(
        default_factory=lambda: ["用户名", "简介"],
        description="Columns sent to the model for relevance classification",
    )
    show_status_column: bool = Field(
        default=True, description="Prepend the derived status column to views/exports"
    )

    # -------------------------------------------------------------------------
    # Storage Configuration
    # -------------------------------------------------------------------------
    store_backend: Literal["file", "redis"] = Field(
        default="file", description="Persistent key-value backend"
    )
    store_path: str = Field(
        default=str(Path.home() / ".datacleaner" / "store.json"),
        description="JSON file used by the file backend",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis URL for the redis backend"
    )
    store_namespace: str = Field(default="datacleaner:", description="Key prefix")

    # -------------------------------------------------------------------------
    # File Import Configuration
    # -------------------------------------------------------------------------
    max_file_size_mb: int = Field(default=50, ge=1, le=500, description="Max file size in MB")
    allowed_import_dir: str | None = Field(
        default=None, description="If set, imports must resolve inside this directory"
    )

    @model_validator(mode="after")
    def check_chunk_overlap(self) -> "Settings":
        """Overlap must leave the chunker room to advance."""
        if self.chunk_overlap_lines >= self.chunk_size_lines:
            raise ValueError(
                "chunk_overlap_lines must be smaller than chunk_size_lines "
                f"({self.chunk_overlap_lines} >= {self.chunk_size_lines})"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.
    """
    return Settings()
