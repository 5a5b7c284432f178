"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    api_token: str
    identity_batch_size: int = 20
    max_open_sessions: int = 64
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_recipient_keys(raw: str | None) -> list[str]:
    """Parse a comma-separated list of hex-encoded recipient public keys."""
    if raw is None:
        return []
    keys: list[str] = []
    for chunk in raw.split(","):
        value = chunk.strip().lower()
        if value and value not in keys:
            keys.append(value)
    return keys
