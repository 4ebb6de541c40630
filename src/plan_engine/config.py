"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    database_url: str = "sqlite:///./plan_engine.db"
    remote_compute_url: str | None = None
    plan_cache_ttl_seconds: int = 3600
    recompute_max_attempts: int = 3
    recompute_backoff_base_seconds: float = 1.0
    recompute_backoff_cap_seconds: float = 10.0
    recompute_wait_timeout_seconds: float | None = None
    queue_max_retries: int = 5
    queue_backoff_base_seconds: float = 1.0
    queue_backoff_cap_seconds: float = 300.0
    queue_poll_interval_seconds: float | None = None
    environment: str = _ENVIRONMENT
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_remote_compute_url(raw: str | None) -> str | None:
    """Return the remote compute base URL, or None for local computation."""
    if raw is None:
        return None
    cleaned = raw.strip().rstrip("/")
    if cleaned in {"", "local"}:
        return None
    return cleaned
