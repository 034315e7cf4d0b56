from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


# ---------- APP ----------
class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    env: str = Field("dev", alias="ENV")
    url: str = Field("http://localhost", alias="PUBLIC_ORIGIN")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @property
    def debug(self) -> bool:
        return self.env == "dev"

# ---------- DB ----------
class DBSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    user: str = Field("postgres", alias="POSTGRES_USER")
    password: str = Field("postgres", alias="POSTGRES_PASSWORD")
    name: str = Field("marketplace", alias="POSTGRES_DB")
    host: str = Field("db", alias="POSTGRES_HOST")
    override_url: str | None = Field(None, alias="DATABASE_URL")

    @property
    def url(self):
        if self.override_url:
            return self.override_url
        return f"asyncpg://{self.user}:{self.password}@{self.host}:5432/{self.name}"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    url: str = Field("redis://redis:6379/0", alias="REDIS_URL")
    cache_prefix: str = Field("analytics:report", alias="ANALYTICS_CACHE_PREFIX")
    enabled: bool = Field(True, alias="REDIS_ENABLED")

# ---------- FEED ----------
class FeedSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    # organic items between two promoted slots
    cadence: int = Field(4, alias="FEED_PROMOTED_CADENCE", ge=1)
    promoted_limit: int = Field(12, alias="FEED_PROMOTED_LIMIT", ge=0)
    page_size: int = Field(24, alias="FEED_PAGE_SIZE", ge=1)

# ---------- ATTRIBUTION ----------
class AttributionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    workers: int = Field(4, alias="ATTRIBUTION_WORKERS", ge=1)
    queue_size: int = Field(1000, alias="ATTRIBUTION_QUEUE_SIZE", ge=1)
    timeout_sec: float = Field(2.0, alias="ATTRIBUTION_TIMEOUT_SEC", gt=0)
    max_attempts: int = Field(3, alias="ATTRIBUTION_MAX_ATTEMPTS", ge=1)
    backoff_sec: float = Field(0.2, alias="ATTRIBUTION_BACKOFF_SEC", ge=0)

# ---------- ANALYTICS ----------
class AnalyticsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    default_days: int = Field(30, alias="ANALYTICS_DEFAULT_DAYS", ge=1)
    max_days: int = Field(365, alias="ANALYTICS_MAX_DAYS", ge=1)
    timeout_sec: float = Field(10.0, alias="ANALYTICS_TIMEOUT_SEC", gt=0)
    cache_ttl_sec: int = Field(60, alias="ANALYTICS_CACHE_TTL_SEC", ge=0)
    event_store: str = Field("tortoise", alias="EVENT_STORE")


class WorkerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    interval_min: int = Field(5, alias="WORKER_INTERVAL_MIN", ge=1)


class Settings:
    app = AppSettings()
    db = DBSettings()
    redis = RedisSettings()
    feed = FeedSettings()
    attribution = AttributionSettings()
    analytics = AnalyticsSettings()
    worker = WorkerSettings()


settings = Settings()
