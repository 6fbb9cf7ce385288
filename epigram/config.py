from functools import lru_cache

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", extra="ignore", populate_by_name=True
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    http_timeout: float = Field(10.0, gt=0, alias="HTTP_TIMEOUT")
    http_connect_timeout: float = Field(5.0, gt=0, alias="HTTP_CONNECT_TIMEOUT")
    http_max_connections: int = Field(20, ge=1, alias="HTTP_MAX_CONNECTIONS")
    http_max_keepalive: int = Field(10, ge=1, alias="HTTP_MAX_KEEPALIVE")
    http_user_agent: str = Field(
        "Epigram/0.1 (+https://epigram.news)",
        alias="HTTP_USER_AGENT",
    )

    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    ratelimit_storage_uri: str | None = Field(
        default=None, alias="RATELIMIT_STORAGE_URI"
    )
    ratelimit_amount: int = Field(5, ge=1, alias="RATELIMIT_AMOUNT")
    ratelimit_window_seconds: int = Field(60, ge=1, alias="RATELIMIT_WINDOW_SECONDS")

    mediastack_base_url: HttpUrl = Field(
        "http://api.mediastack.com/v1", alias="MEDIASTACK_BASE_URL"
    )
    mediastack_api_key: str | None = Field(default=None, alias="MEDIASTACK_API_KEY")
    exa_base_url: HttpUrl = Field("https://api.exa.ai", alias="EXA_BASE_URL")
    exa_api_key: str | None = Field(default=None, alias="EXA_API_KEY")
    exa_search_results: int = Field(5, ge=1, le=25, alias="EXA_SEARCH_RESULTS")
    # extraction fetches whole articles server side and is far slower than a listing
    exa_timeout: float = Field(30.0, gt=0, alias="EXA_TIMEOUT")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model_name: str = Field("gpt-4o-mini", alias="OPENAI_MODEL_NAME")

    cron_secret_header: str = Field(
        "x-epigram-cron-secret", alias="EPIGRAM_SECRET_HEADER_NAME"
    )
    cron_secret: str | None = Field(default=None, alias="EPIGRAM_CRON_SECRET")
    per_topic_news_limit: int = Field(25, ge=1, le=100, alias="PER_TOPIC_NEWS_LIMIT")
    populate_concurrency: int = Field(3, ge=1, alias="POPULATE_CONCURRENCY")

    feed_max_articles: int = Field(100, ge=1, alias="FEED_MAX_ARTICLES")
    insight_cache_ttl: int = Field(60 * 60 * 24, ge=1, alias="INSIGHT_CACHE_TTL")
    insight_max_duration: float = Field(30.0, gt=0, alias="INSIGHT_MAX_DURATION")
    insight_max_source_chars: int = Field(
        8000, ge=100, alias="INSIGHT_MAX_SOURCE_CHARS"
    )

    app_env: str | None = Field(default=None, alias="APP_ENV")
    base_url: str | None = Field(default=None, alias="BASE_URL")
    vercel_env: str | None = Field(default=None, alias="VERCEL_ENV")
    vercel_url: str | None = Field(default=None, alias="VERCEL_URL")
    vercel_project_production_url: str | None = Field(
        default=None, alias="VERCEL_PROJECT_PRODUCTION_URL"
    )

    @property
    def ratelimit_storage(self) -> str:
        # limits expects the async+ scheme for its asyncio storages
        return self.ratelimit_storage_uri or f"async+{self.redis_url}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
