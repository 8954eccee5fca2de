"""
Environment-driven settings for the fulfillment engine.

Every field maps to an upper-case env var (CHANNEL_PAGE_SIZE, DATA_BACKEND, ...).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Settings read once from .env or the process environment."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # DATA BACKEND
    # ===================
    data_backend: str = Field(
        default="supabase",
        pattern="^(supabase|memory)$",
        description="Storage backend for the fulfillment repository"
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # SALES CHANNEL
    # ===================
    channel_api_url: str = Field(
        default="https://api-seller.ozon.ru",
        description="Sales channel seller API base URL"
    )
    channel_client_id: Optional[str] = Field(
        None,
        description="Sales channel client id"
    )
    channel_api_key: Optional[str] = Field(
        None,
        description="Sales channel API key"
    )
    channel_page_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Orders requested per page"
    )
    channel_page_delay_ms: int = Field(
        default=200,
        ge=0,
        le=10000,
        description="Fixed delay between page requests (rate limit)"
    )
    channel_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries per page request before giving up"
    )
    channel_backoff_base_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Base delay for exponential backoff between retries"
    )
    channel_max_offset: int = Field(
        default=10000,
        ge=1,
        description="Stop paginating past this many orders"
    )
    channel_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for channel requests"
    )

    # ===================
    # BUSINESS SETTINGS
    # ===================
    production_due_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days from task creation to production due date"
    )
    production_high_priority_threshold: int = Field(
        default=5,
        ge=0,
        description="Aggregated units above which production need is high priority"
    )
    replenishment_high_priority_threshold: int = Field(
        default=10,
        ge=0,
        description="Material deficit above which replenishment is high priority"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def channel_configured(self) -> bool:
        """Check if sales channel credentials are present."""
        return bool(self.channel_client_id and self.channel_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings; get_settings.cache_clear() forces a reload."""
    return Settings()


settings = get_settings()
