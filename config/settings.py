"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Provider catalog: "builtin", a JSON file path, or an http(s) URL
    catalog_source: Optional[str] = None
    catalog_reload_seconds: int = 300

    # Shared store for cross-instance deduplication (in-memory when unset)
    redis_url: Optional[str] = None

    # Deduplication gate
    dedup_ttl_seconds: int = 300
    dedup_poll_interval: float = 0.05
    dedup_poll_timeout: float = 2.0
    dedup_fail_closed: bool = False

    # Stale-while-revalidate
    swr_max_workers: int = 4
    swr_max_age_seconds: Optional[int] = None

    # Durable revalidation task queue
    task_database_url: str = "sqlite:///./domainlens.db"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
