"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Loads the ingestion queue settings from environment variables (prefix
BLOCKCHAIN_INGESTION_) with validation and defaults. Supports .env files
for local development. Settings are frozen: the processor and delivery
client read them once at construction time.
"""

import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BIS_ENDPOINT = "http://localhost:4000/ingest"


class Settings(BaseSettings):
    """Ingestion queue settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BLOCKCHAIN_INGESTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Module switch
    enabled: bool = Field(default=False, description="Enable the ingestion background service")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    documents_table_name: str = Field(
        default="documents",
        description="Name of the DynamoDB documents (source records) table"
    )
    queue_table_name: str = Field(
        default="mod-blockchain-queue",
        description="Name of the DynamoDB ingestion queue table"
    )

    # Delivery settings
    bis_endpoint: str = Field(
        default=DEFAULT_BIS_ENDPOINT,
        description="Blockchain Ingestion Service endpoint URL"
    )
    bis_timeout: int = Field(
        default=10,
        ge=1,
        le=120,
        description="HTTP timeout in seconds for each delivery attempt"
    )
    client_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Per-request attempts made by the delivery client"
    )
    client_backoff_unit: float = Field(
        default=1.0,
        ge=0,
        description="Seconds multiplied by 2^(attempt-1) between client attempts"
    )

    # Queue settings
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Queue-level attempts before a document is marked failed"
    )
    batch_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum documents discovered and dispatched per run"
    )
    retry_base_delay: int = Field(
        default=60,
        ge=0,
        description="Seconds multiplied by 2^(attempts-1) before a queued retry"
    )
    poll_interval: int = Field(
        default=60,
        ge=1,
        description="Seconds between runs when the worker loops on its own"
    )

    # Metrics
    metrics_enabled: bool = Field(default=False, description="Publish CloudWatch metrics")
    metrics_namespace: str = Field(default="BlockchainIngestion", description="CloudWatch namespace")

    @field_validator("bis_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate the BIS endpoint is an HTTP(S) URL, falling back to the default when blank."""
        v = (v or "").strip()
        if not v:
            return DEFAULT_BIS_ENDPOINT
        if not v.startswith(("http://", "https://")):
            raise ValueError("bis_endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("documents_table_name", "queue_table_name")
    @classmethod
    def validate_table_names(cls, v: str) -> str:
        """Validate DynamoDB table names."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")
        if not re.match(r"^[a-zA-Z0-9_.-]+$", v):
            raise ValueError(
                "Table name must contain only letters, numbers, dots, hyphens, and underscores"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded on first use."""
    return Settings()
