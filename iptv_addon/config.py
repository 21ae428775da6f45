"""
Configuration management for the IPTV catalog addon.
Uses pydantic-settings for environment variable loading.
"""
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from iptv_addon.models.channel import FilterPolicy


CsvList = Annotated[list[str], NoDecode]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "IPTV Catalog"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 3000

    # CORS Configuration
    # Stremio clients load addons from arbitrary origins
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_per_minute: int = 120

    # Data Sources (iptv-org API)
    channels_url: str = "https://iptv-org.github.io/api/channels.json"
    streams_url: str = "https://iptv-org.github.io/api/streams.json"

    # Filtering (comma-separated in the environment, e.g. IPTV_INCLUDE_COUNTRIES=GR,CY)
    include_countries: CsvList = []
    exclude_countries: CsvList = []
    include_languages: CsvList = []
    exclude_languages: CsvList = []
    exclude_categories: CsvList = []
    custom_category_exclusion: bool = False

    # Custom overlay
    enable_custom_channels: bool = True
    custom_channels_file: str = "./custom-channels.json"
    custom_channels_url: str = ""
    custom_default_country: str = "PT"

    # Fetching and caching
    fetch_timeout_seconds: float = 10.0
    refresh_interval_seconds: int = 86400  # 24 hours (0 = disabled)
    streams_ttl_seconds: int = 21600  # 6 hours
    verify_ttl_seconds: int = 3600  # 1 hour
    min_channels: int = 1

    # Stream verification: off | lazy (at read time) | eager (during refresh)
    verify_mode: Literal["off", "lazy", "eager"] = "lazy"
    verify_concurrency: int = 10
    proxy_url: str = ""

    # Custom file watch
    watch_interval_seconds: float = 5.0
    watch_debounce_seconds: float = 2.0

    # Last published snapshot (empty = do not persist)
    snapshot_path: str = "data/catalog_snapshot.db"

    # Admin API key for protected endpoints
    admin_api_key: str = "dev-admin-key"

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_prefix="IPTV_", env_file=".env")

    @field_validator(
        "include_countries",
        "exclude_countries",
        "include_languages",
        "exclude_languages",
        "exclude_categories",
        mode="before",
    )
    @classmethod
    def split_csv(cls, v):
        """Accept either a list or a comma-separated string."""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    def filter_policy(self) -> FilterPolicy:
        """Build the immutable filter policy from the current settings."""
        return FilterPolicy(
            include_countries=frozenset(self.include_countries),
            exclude_countries=frozenset(self.exclude_countries),
            include_languages=frozenset(self.include_languages),
            exclude_languages=frozenset(self.exclude_languages),
            exclude_categories=frozenset(self.exclude_categories),
            custom_category_exclusion=self.custom_category_exclusion,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
