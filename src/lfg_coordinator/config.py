"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    discord_bot_token: str
    discord_application_id: str
    discord_api_base_url: str = "https://discord.com/api/v10"
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    relay_token: str
    session_ttl_minutes: int = 20
    empty_resource_idle_seconds: int = 60
    sweep_interval_seconds: float = 60.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
