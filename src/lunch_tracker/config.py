"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    store_backend: str = "supabase"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_documents_table: str = "documents"
    store_poll_interval_seconds: float = 2.0
    store_max_poll_failures: int = 5
    openai_api_key: str | None = None
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str | None = "low"
    openai_store: bool = False
    default_group_name: str = "My First Group"
    default_group_location: str = "Irvine, CA"
    recent_window_hours: int = 4
    preference_ttl_days: int = 365
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
