"""Configuration management for Hookline."""

import logging
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Hookline configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKLINE_ prefix. For example:
        HOOKLINE_QDRANT_URL=http://localhost:6333
        HOOKLINE_SWEEP_INTERVAL_SECONDS=2.5

    Security Notes:
        - In production (HOOKLINE_ENV=production), HOOKLINE_INTERNAL_API_KEY is required
        - Without an internal key the machine-to-machine endpoints reject every request
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_prefix: str = Field(
        default="hookline",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=1000,
        ge=10,
        le=100000,
        description="Page size used when scanning deliveries for statistics and purges",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Outbound delivery
    user_agent: str = Field(
        default="Hookline-Webhook/1.0",
        min_length=1,
        description="User-Agent header sent with every delivery",
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=500,
        description="Maximum HTTP attempts in flight at once per process",
    )
    response_body_max_chars: int = Field(
        default=10000,
        ge=0,
        description="Response bodies longer than this are truncated before storage",
    )
    secret_bytes: int = Field(
        default=32,
        ge=16,
        le=128,
        description="Random bytes used for generated subscription secrets (hex-encoded)",
    )
    probe_event: str = Field(
        default="ticket.created",
        min_length=1,
        description="Event type carried by the connectivity probe payload",
    )

    # Retry sweeper
    sweep_enabled: bool = Field(
        default=True,
        description="Run the retry sweeper loop inside the API process",
    )
    sweep_interval_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between retry sweeper passes",
    )
    sweep_batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum due deliveries processed per sweeper pass",
    )
    delivery_retention_days: int = Field(
        default=30,
        ge=1,
        description="Terminal deliveries older than this many days are purged",
    )
    purge_interval_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Minimum seconds between retention purges",
    )

    # Statistics
    stats_window_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Default trailing window for delivery statistics",
    )

    # Machine-to-machine endpoints (retry queue, event trigger)
    internal_api_key: str | None = Field(
        default=None,
        description=(
            "Bearer key for internal endpoints. REQUIRED in production. "
            "When unset, internal endpoints reject every request."
        ),
    )

    model_config = {
        "env_prefix": "HOOKLINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Validate security settings based on environment.

        - In production, an internal API key MUST be explicitly provided
        - In dev/test, a missing key only disables the internal endpoints
        """
        if self.env == "production":
            if not self.internal_api_key:
                raise ValueError(
                    "HOOKLINE_INTERNAL_API_KEY must be set in production. "
                    'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
                )
            if len(self.internal_api_key) < 16:
                warnings.warn(
                    "HOOKLINE_INTERNAL_API_KEY is shorter than 16 characters.",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning("Internal API key is shorter than 16 characters")
        elif not self.internal_api_key:
            logger.debug("No internal API key configured; internal endpoints are disabled")
        return self


# Global settings instance
settings = Settings()
