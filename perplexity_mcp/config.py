"""Configuration settings for the Perplexity MCP server using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_KEY = "changeme-secure-key-123"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(
        default=3002,
        validation_alias=AliasChoices("MCP_PORT", "PORT", "port"),
        description="Port to bind to",
    )

    # Authentication
    api_key: str = Field(
        default=DEFAULT_API_KEY,
        description="Shared secret clients present via x-api-key or api_key",
    )
    require_auth_for_messages: bool = Field(
        default=True,
        description="Also require the API key on POST /messages",
    )

    # Routing
    allow_untargeted_messages: bool = Field(
        default=True,
        description="Route messages without sessionId to the newest session",
    )

    # Rate limiting
    rate_limit_requests: int = Field(
        default=100,
        ge=0,
        description="Requests allowed per client per window (0 disables)",
    )
    rate_limit_window_seconds: float = Field(
        default=15 * 60,
        ge=0,
        description="Rate limit window length in seconds",
    )

    # Streams
    stream_ping_interval_seconds: float | None = Field(
        default=15.0,
        description="Idle interval before a keep-alive comment is sent",
    )

    # Upstream
    perplexity_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "PERPLEXITY_API_KEY", "MCP_PERPLEXITY_API_KEY", "perplexity_api_key"
        ),
        description="Perplexity API credential",
    )
    perplexity_base_url: str = Field(
        default="https://api.perplexity.ai",
        description="Base URL of the OpenAI-compatible Perplexity API",
    )
    upstream_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound for one tool call including the upstream request",
    )

    # Protocol identity
    server_name: str = Field(default="perplexity-api")
    server_version: str = Field(default="1.0.0")
    protocol_version: str = Field(default="2024-11-05")

    # HTTP
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
