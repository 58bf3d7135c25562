from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )

    app_name: str = "viewtrack-sync"
    environment: str = Field(default="local", validation_alias=AliasChoices("ENVIRONMENT", "VIEWTRACK_ENVIRONMENT"))
    database_url: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/viewtrack",
        validation_alias=AliasChoices("DATABASE_URL", "VIEWTRACK_DATABASE_URL"),
    )
    cron_secret: str | None = Field(default=None, validation_alias=AliasChoices("CRON_SECRET", "VIEWTRACK_CRON_SECRET"))
    apify_token: str | None = Field(default=None, validation_alias=AliasChoices("APIFY_TOKEN", "VIEWTRACK_APIFY_TOKEN"))
    apify_timeout_sec: int = Field(default=300, validation_alias=AliasChoices("APIFY_TIMEOUT_SEC", "VIEWTRACK_APIFY_TIMEOUT_SEC"))
    youtube_api_key: str | None = Field(default=None, validation_alias=AliasChoices("YOUTUBE_API_KEY", "VIEWTRACK_YOUTUBE_API_KEY"))
    http_timeout_sec: float = Field(default=30.0, validation_alias=AliasChoices("HTTP_TIMEOUT_SEC", "VIEWTRACK_HTTP_TIMEOUT_SEC"))

    storage_endpoint_url: str | None = Field(default=None, validation_alias=AliasChoices("STORAGE_ENDPOINT_URL", "VIEWTRACK_STORAGE_ENDPOINT_URL"))
    storage_bucket: str | None = Field(default=None, validation_alias=AliasChoices("STORAGE_BUCKET", "VIEWTRACK_STORAGE_BUCKET"))
    storage_access_key_id: str | None = Field(default=None, validation_alias=AliasChoices("STORAGE_ACCESS_KEY_ID", "VIEWTRACK_STORAGE_ACCESS_KEY_ID"))
    storage_secret_access_key: str | None = Field(default=None, validation_alias=AliasChoices("STORAGE_SECRET_ACCESS_KEY", "VIEWTRACK_STORAGE_SECRET_ACCESS_KEY"))
    storage_region: str = Field(default="auto", validation_alias=AliasChoices("STORAGE_REGION", "VIEWTRACK_STORAGE_REGION"))
    storage_public_url: str | None = Field(default=None, validation_alias=AliasChoices("STORAGE_PUBLIC_URL", "VIEWTRACK_STORAGE_PUBLIC_URL"))

    resend_api_key: str | None = Field(default=None, validation_alias=AliasChoices("RESEND_API_KEY", "VIEWTRACK_RESEND_API_KEY"))
    notification_from_email: str = Field(
        default="ViewTrack <team@viewtrack.app>",
        validation_alias=AliasChoices("NOTIFICATION_FROM_EMAIL", "VIEWTRACK_NOTIFICATION_FROM_EMAIL"),
    )
    dashboard_url: str = Field(default="https://www.viewtrack.app", validation_alias=AliasChoices("DASHBOARD_URL", "VIEWTRACK_DASHBOARD_URL"))
    telegram_bot_token: str | None = Field(default=None, validation_alias=AliasChoices("TELEGRAM_BOT_TOKEN", "VIEWTRACK_TELEGRAM_BOT_TOKEN"))
    telegram_chat_id: str | None = Field(default=None, validation_alias=AliasChoices("TELEGRAM_CHAT_ID", "VIEWTRACK_TELEGRAM_CHAT_ID"))

    redis_url: str = Field(default="redis://redis:6379/0", validation_alias=AliasChoices("REDIS_URL", "VIEWTRACK_REDIS_URL"))
    account_lease_enabled: bool = Field(default=False, validation_alias=AliasChoices("ACCOUNT_LEASE_ENABLED", "VIEWTRACK_ACCOUNT_LEASE_ENABLED"))
    account_lease_ttl_sec: int = Field(default=1800, validation_alias=AliasChoices("ACCOUNT_LEASE_TTL_SEC", "VIEWTRACK_ACCOUNT_LEASE_TTL_SEC"))

    scheduler_enabled: bool = Field(default=True, validation_alias=AliasChoices("SCHEDULER_ENABLED", "VIEWTRACK_SCHEDULER_ENABLED"))
    refresh_interval_hours: int = Field(default=12, validation_alias=AliasChoices("REFRESH_INTERVAL_HOURS", "VIEWTRACK_REFRESH_INTERVAL_HOURS"))
    account_batch_size: int = Field(default=50, validation_alias=AliasChoices("ACCOUNT_BATCH_SIZE", "VIEWTRACK_ACCOUNT_BATCH_SIZE"))
    default_video_limit: int = Field(default=100, validation_alias=AliasChoices("DEFAULT_VIDEO_LIMIT", "VIEWTRACK_DEFAULT_VIDEO_LIMIT"))

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("postgresql+"):
            return self.database_url
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url

    @property
    def is_postgres(self) -> bool:
        return self.async_database_url.startswith("postgresql")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
