"""Settings for LawKita.

Everything comes from environment variables or a `.env` file found by
walking up from the working directory. Pipeline bounds live here so the
orchestrator, extractor and adapters never read the environment
themselves.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Nearest `.env` at or above the working directory, else beside the project."""
    cwd = Path.cwd()
    for directory in [cwd, *cwd.parents][:6]:
        if (directory / ".env").exists():
            return directory / ".env"

    # src/lawkita/config.py -> project root
    project_env = Path(__file__).resolve().parents[2] / ".env"
    return project_env if project_env.exists() else None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = "development"
    api_debug: bool = False
    cors_origins: str = "http://localhost:3000"

    # =========================
    # PostgreSQL
    # =========================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "lawkita"
    postgres_user: str = "lawkita"
    postgres_password: str = Field(default="", repr=False)

    @computed_field
    @property
    def database_url(self) -> str:
        """asyncpg URL used by every store."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================
    # Celery
    # =========================
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"
    enable_daily_news_crawl: bool = True

    # =========================
    # Case extraction model
    # =========================
    llm_provider: Literal["openai", "anthropic"] = "openai"
    openai_api_key: str = Field(default="", repr=False)
    openai_model: str = "gpt-4o-mini"
    anthropic_api_key: str = Field(default="", repr=False)
    anthropic_model: str = "claude-3-5-haiku-latest"
    llm_max_tokens: int = 2000
    llm_timeout_seconds: float = 60.0

    # =========================
    # Crawling
    # =========================
    firecrawl_api_key: str = Field(default="", repr=False)
    firecrawl_base_url: str = "https://api.firecrawl.dev/v1"
    crawler_user_agent: str = "LawKita Legal Directory Bot/1.0 (+https://lawkita.my/bot)"
    crawler_timeout_seconds: float = 30.0
    crawler_request_delay_seconds: float = 0.5
    articles_per_source: int = Field(default=10, ge=1)

    # =========================
    # Pipeline bounds
    # =========================
    pipeline_max_workers: int = Field(default=4, ge=1)
    extraction_concurrency: int = Field(default=2, ge=1)
    extraction_max_attempts: int = Field(default=3, ge=1)
    extraction_retry_base_delay: float = 1.0
    extraction_retry_max_delay: float = 20.0
    extraction_char_budget: int = Field(default=8000, ge=500)
    relevance_min_keywords: int = Field(default=3, ge=1)
    match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    publish_threshold: int = Field(default=90, ge=0, le=100)
    review_threshold: int = Field(default=70, ge=0, le=100)
    persistence_max_attempts: int = Field(default=3, ge=1)
    max_error_entries: int = Field(default=50, ge=1)
    response_error_limit: int = Field(default=20, ge=1)

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @model_validator(mode="after")
    def _gate_thresholds_ordered(self) -> "Settings":
        if self.review_threshold > self.publish_threshold:
            raise ValueError("review_threshold must not exceed publish_threshold")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
