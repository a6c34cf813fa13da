"""Application settings loaded from environment variables and .env file."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_API_URL = "https://api.opensubtitles.com/api/v1"
DEFAULT_CACHE_DIR = Path.home() / ".cache/opensubtitles-fetcher"


class Settings(BaseSettings):
    """Settings for the OpenSubtitles client.

    Every field can be set with an ``OPENSUBTITLES_`` prefixed environment
    variable, e.g. ``OPENSUBTITLES_API_KEY``.
    """

    model_config = SettingsConfigDict(
        env_prefix="OPENSUBTITLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: str | None = None
    username: str | None = None
    password: str | None = None

    base_url: str = BASE_API_URL
    timeout: float = 30.0

    # Total attempts, first request included
    rate_limit_max_attempts: int = 5
    bad_gateway_max_attempts: int = 4
    client_error_delay: float = 1.0

    # Highest status code still treated as success; 399 restores the old "< 400" rule
    ok_status_ceiling: int = 299
    keep_partial_search_results: bool = False

    cache_dir: Path = DEFAULT_CACHE_DIR
    skip_cache: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
