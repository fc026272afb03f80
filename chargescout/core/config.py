"""
Core configuration and settings for ChargeScout.

Settings are resolved here, at the application edge. The station pipeline
itself only receives explicit constructor/call arguments.
"""

import json
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ChargeScout"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])

    # Backend proxy (holds the upstream API keys)
    backend_proxy_url: str = "http://localhost:8000"
    availability_prefix: str = "tt"
    request_timeout: float = 10.0

    # Search
    default_radius_meters: int = Field(default=5000, gt=0)
    max_radius_meters: int = Field(default=50000, gt=0)
    enrichment_concurrency: int = Field(default=6, ge=1, le=32)
    max_enriched: int = Field(default=10, ge=0)
    search_timeout: float = 20.0  # overall deadline per search, seconds

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string if needed."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, treat as comma-separated
                return [s.strip() for s in v.split(',')]
        return v

    @field_validator('backend_proxy_url')
    @classmethod
    def validate_backend_proxy_url(cls, v: str) -> str:
        """Validate and normalize the proxy base URL."""
        if not v:
            raise ValueError("backend_proxy_url cannot be empty")
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
