"""Configuration system using pydantic-settings with environment variable loading."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class PriceHistorySettings(BaseSettings):
    """Birdeye historical price API settings.

    The provider allows roughly 100 requests per minute per key, shared by
    every batch issued with that key.
    """

    model_config = SettingsConfigDict(env_prefix="BIRDEYE_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://public-api.birdeye.so"
    chain: str = "solana"
    min_request_interval: float = 0.6  # seconds between requests: 100 per minute
    rate_limit_cooldown: float = 60.0  # seconds to wait after a 429
    request_timeout: float = 10.0
    cache_empty_results: bool = True  # store "no data" so the minute is not re-requested


class CacheSettings(BaseSettings):
    """Local persistence of resolved historical prices."""

    model_config = SettingsConfigDict(env_prefix="PRICE_CACHE_")

    enabled: bool = True
    db_path: str = "data/prices.db"


class DisplaySettings(BaseSettings):
    """Precision used when valuing amounts in USD."""

    model_config = SettingsConfigDict(env_prefix="DISPLAY_")

    usd_precision: int = 6
    min_rate_precision: int = 6  # fallback for adjusted amounts without metadata


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # LOG_FORMAT=json for machine-readable logs
    price_history: PriceHistorySettings = PriceHistorySettings()
    cache: CacheSettings = CacheSettings()
    display: DisplaySettings = DisplaySettings()
