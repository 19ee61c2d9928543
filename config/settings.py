"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SYNC BACKEND
    # ===================
    sync_backend: str = Field(
        default="relay",
        pattern="^(relay|cloud|local)$",
        description="Session store used by counting devices"
    )

    # ===================
    # RELAY (Backend A)
    # ===================
    relay_url: str = Field(
        default="ws://localhost:8000/ws/relay",
        description="WebSocket URL of the relay process"
    )
    relay_connect_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Connection attempts before giving up"
    )
    relay_connect_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=30,
        description="Delay between connection attempts"
    )
    relay_request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="How long to wait for a create/join acknowledgement"
    )

    # ===================
    # SUPABASE (Backend B)
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    sessions_table: str = Field(
        default="count_sessions",
        description="Table holding one document per counting session"
    )
    cloud_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="How often a subscription re-reads the session document"
    )

    # ===================
    # LOCAL STORAGE (Backend C)
    # ===================
    local_storage_dir: str = Field(
        default="instance/sessions",
        description="Directory for single-device session files"
    )
    session_max_age_hours: int = Field(
        default=24,
        ge=1,
        le=720,
        description="Local sessions older than this are removed by cleanup"
    )

    # ===================
    # SESSIONS
    # ===================
    session_id_length: int = Field(
        default=6,
        ge=4,
        le=12,
        description="Digits in a generated session identifier"
    )
    session_id_collision_check: bool = Field(
        default=False,
        description="Refuse to overwrite a live session with a freshly minted id"
    )
    share_base_url: str = Field(
        default="http://localhost:5173/",
        description="Base URL encoded into the join link / QR payload"
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
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        description="Origins allowed to call the API"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def cloud_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
