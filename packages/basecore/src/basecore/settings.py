"""
Process settings.

All configuration is read from environment variables (and an optional .env
file). Use get_settings() instead of instantiating Settings directly so the
values are parsed once per process.
"""

import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Storage
    DATABASE_URL: str = "sqlite:///./gateway.db"
    REDIS_URL: str | None = None
    SESSION_EVENTS_STREAM: str = "gw:session:events"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # HTTP
    HOST: str = "0.0.0.0"
    PORT: int = 781
    CORS_ORIGINS: list[str] = ["*"]

    # Transport
    TRANSPORT_PROVIDER: str = "stub"  # stub, evolution
    EVOLUTION_API_URL: str = ""
    EVOLUTION_API_KEY: str = ""
    EVOLUTION_INSTANCE_PREFIX: str = ""
    EVOLUTION_WEBHOOK_URL: str = ""
    EVOLUTION_WEBHOOK_API_KEY: str | None = None
    CONNECT_TIMEOUT_SECONDS: float = 120.0
    QR_MAX_RETRIES: int = 1
    QR_WAIT_TIMEOUT_SECONDS: float = 150.0
    STUB_AUTO_PAIR: bool = False

    # Credentials
    SESSIONS_DIR: str = "sessions"
    CREDENTIAL_CLEANUP_ATTEMPTS: int = 5
    CREDENTIAL_CLEANUP_BACKOFF_SECONDS: float = 1.0


@functools.lru_cache()
def get_settings() -> Settings:
    """Get process settings (cached)."""
    return Settings()
