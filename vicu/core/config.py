"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Vicu Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://vicu@localhost:5432/vicu"

    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1-mini"
    openai_temperature: float = 0.7

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "vicu"

    notifications_enabled: bool = False
    notifications_provider: str = "noop"
    kapso_api_key: str | None = None
    kapso_phone_number_id: str = "12083619224"
    kapso_api_base: str = "https://api.kapso.ai/meta/whatsapp/v24.0"
    kapso_webhook_secret: str | None = None
    kapso_webhook_verify_token: str = "vicu-kapso-webhook"
    kapso_timeout_seconds: float = 10.0
    default_phone_country_code: str = "51"
    pending_action_ttl_hours: int = 24
    public_app_url: str = "https://vicu.vercel.app"
    assignment_token_ttl_days: int = 7
    # Bearer token expected from the scheduler on batch reminder endpoints; unset disables the check.
    cron_secret: str | None = None

    # Older databases lack the rhythm columns on experiments; leave them untouched when off.
    goal_rhythm_columns_enabled: bool = True
    initial_goal_stage: str = "testing"
    stats_fetch_timeout_seconds: float = 5.0
    default_timezone: str = "America/Lima"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
