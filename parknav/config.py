"""
Configuration management for the parknav MCP Server.

Provides type-safe settings using Pydantic BaseSettings with
environment variable support and .env file loading.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """MCP Server settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (required - the server refuses to start without it)
    database_url: str = Field(
        ...,
        description="PostgreSQL connection string",
    )
    db_pool_min_size: int = Field(default=1, ge=1)
    db_pool_max_size: int = Field(default=10, ge=1)
    db_connect_timeout: int = Field(
        default=10,
        description="Database connection timeout in seconds",
    )

    # External API credentials
    openai_api_key: str | None = Field(
        default=None,
        description="API key for the OpenAI speech endpoints",
    )
    serpapi_api_key: str | None = Field(
        default=None,
        description="API key for SerpApi Google Maps search",
    )

    # External API endpoints
    openai_api_base: str = Field(default="https://api.openai.com/v1")
    search_location: str | None = Field(
        default=None,
        description="Optional SerpApi location that biases searches, e.g. Seattle, Washington",
    )
    overpass_url: str = Field(
        default="https://overpass-api.de/api/interpreter",
        description="Overpass API interpreter endpoint",
    )

    # HTTP client configuration
    http_timeout: float = Field(
        default=30.0,
        description="HTTP request timeout in seconds",
    )

    # Ingestion
    feature_source: str = Field(
        default="overpass",
        description="Source identifier stamped on ingested features",
    )
    feature_confidence: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Confidence score stamped on ingested features",
    )

    # MCP Server configuration
    server_name: str = Field(default="parknav")
    server_version: str = Field(default="1.0.0")

    # Environment
    environment: str = Field(
        default="development",
        description="Environment (development/production)",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
