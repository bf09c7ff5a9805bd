"""Configuration management for Bill Scanner.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the BILL_SCANNER_ prefix (e.g., BILL_SCANNER_OLLAMA_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="BILL_SCANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ollama Configuration
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Ollama model used for invoice classification and extraction",
    )
    ollama_timeout: float = Field(
        default=15.0,
        description="Hard deadline for a single completion call in seconds",
    )
    llm_enabled: bool = Field(
        default=True,
        description="Use the completion provider; when False, catalog mode uses regex only",
    )
    llm_min_body_chars: int = Field(
        default=50,
        description="Bodies at or below this length are not sent to the completion provider",
    )
    llm_max_body_chars: int = Field(
        default=6000,
        description="Maximum number of body characters included in a prompt",
    )

    # Gmail Configuration
    gmail_access_token: str | None = Field(
        default=None,
        description="Bearer access token for the Gmail API (acquired by the caller)",
    )
    gmail_batch_size: int = Field(
        default=5,
        description="Number of messages fetched concurrently per batch",
    )
    gmail_batch_delay_seconds: float = Field(
        default=0.15,
        description="Pause between consecutive fetch batches",
    )
    gmail_query_delay_seconds: float = Field(
        default=0.2,
        description="Pause between consecutive search queries",
    )
    gmail_query_max_results: int = Field(
        default=20,
        description="Maximum number of messages listed per catalog section query",
    )
    html_max_chars: int = Field(
        default=4000,
        description="Character budget of the structure-preserving HTML body",
    )

    # Scan configuration
    default_newer_than: str = Field(
        default="3m",
        description="Default Gmail lookback window (e.g. 7d, 3m, 1y)",
    )
    max_candidates_per_service: int = Field(
        default=5,
        description="Most recent emails per provider considered for classification",
    )
    discovery_enabled: bool = Field(
        default=True,
        description="Run the discovery pass for senders missing from the catalog",
    )
    discovery_max_messages: int = Field(
        default=100,
        description="Upper bound of messages listed by the discovery search",
    )
    discovery_page_size: int = Field(
        default=50,
        description="Page size of the discovery search",
    )
    discovery_max_senders: int = Field(
        default=20,
        description="Number of most frequent senders sampled in discovery",
    )

    # Ledger configuration
    ledger_db_path: Path = Field(
        default=Path("processed_messages.sqlite3"),
        description="Path to the SQLite database recording processed message ids",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    max_retries: int = Field(
        default=3,
        description="Maximum number of retries for rate-limited Gmail calls",
    )
    retry_base_delay: float = Field(
        default=1.0,
        description="Initial backoff delay in seconds, doubled on each retry",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
