"""
Configuration management for Quote Aggregator Service.
Uses pydantic-settings for environment variable management.
"""

from typing import Optional
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

    # Application metadata
    app_name: str = Field(default="Quote Aggregator")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8001)

    # Cache backend
    cache_backend: str = Field(default="memory")
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)
    quotes_cache_ttl: int = Field(default=30, gt=0)  # seconds

    # Circuit breaker configuration
    circuit_breaker_threshold: int = Field(default=5, ge=1)
    circuit_breaker_cooldown: float = Field(default=60.0, gt=0)

    # Bulk fetch throttling
    bulk_batch_size: int = Field(default=10, ge=1)
    bulk_batch_delay: float = Field(default=1.0, ge=0)
    max_bulk_symbols: int = Field(default=100, ge=1)

    # Validation
    cross_validation_limit: int = Field(default=2, ge=0)
    stale_after_seconds: float = Field(default=300.0, gt=0)

    # Provider behaviour
    provider_cancel_on_timeout: bool = Field(default=True)
    provider_retry_count: int = Field(default=2, ge=0)

    # API keys (optional; a provider without its key reports itself unavailable)
    finnhub_api_key: Optional[str] = Field(default=None)
    alpha_vantage_api_key: Optional[str] = Field(default=None)

    # Provider priority (lower is tried first) and timeouts in seconds
    yahoo_priority: int = Field(default=1)
    yahoo_timeout: float = Field(default=8.0, gt=0)
    finnhub_priority: int = Field(default=2)
    finnhub_timeout: float = Field(default=10.0, gt=0)
    alpha_vantage_priority: int = Field(default=3)
    alpha_vantage_timeout: float = Field(default=12.0, gt=0)

    # Logging configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = {'json', 'text'}
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {', '.join(sorted(valid_formats))}")
        return v.lower()

    @field_validator('cache_backend')
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        """Validate cache backend name."""
        valid_backends = {'memory', 'redis'}
        if v.lower() not in valid_backends:
            raise ValueError(f"cache_backend must be one of: {', '.join(sorted(valid_backends))}")
        return v.lower()

    def get_redis_url(self) -> str:
        """Get Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


# Global settings instance
settings = Settings()


# Cache keys
CACHE_KEYS = {
    'quotes': 'quotes:{symbol}',
}
