"""Настройки клиента (env + `.env`)."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic-настройки (всё, что обычно лежит в `.env`).

    Время везде в секундах; retry_* только подсказка вызывающему коду,
    сам клиент повторы не делает.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_env: str = Field(default="local", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    default_provider: str = Field(default="mock", validation_alias="DEFAULT_PROVIDER")

    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        validation_alias="OPENAI_BASE_URL",
    )
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_organization: str | None = Field(default=None, validation_alias="OPENAI_ORGANIZATION")

    default_model: str = Field(default="gpt-4o", validation_alias="DEFAULT_MODEL")
    max_tokens: int = Field(default=4000, gt=0, validation_alias="MAX_TOKENS")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, validation_alias="TEMPERATURE")

    max_requests_per_minute: int = Field(
        default=20,
        gt=0,
        validation_alias="MAX_REQUESTS_PER_MINUTE",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="REQUEST_TIMEOUT_SECONDS",
    )
    cache_ttl_seconds: float = Field(default=300.0, ge=0, validation_alias="CACHE_TTL_SECONDS")
    metrics_window_size: int = Field(default=100, ge=1, validation_alias="METRICS_WINDOW_SIZE")

    retry_attempts: int = Field(default=3, ge=0, validation_alias="RETRY_ATTEMPTS")
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias="RETRY_BACKOFF_SECONDS",
    )

    dedupe_inflight: bool = Field(default=False, validation_alias="DEDUPE_INFLIGHT")


_settings: Settings | None = None


def get_settings() -> Settings:
    """Ленивая загрузка настроек (один раз на процесс, нужно только CLI)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
