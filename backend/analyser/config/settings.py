"""
Application configuration using pydantic-settings with nested structure
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


# ============================================================================
# NESTED CONFIGURATION MODELS
# ============================================================================

# Get absolute path to .env file (backend directory)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BASE_DIR / ".env"


class APIConfig(BaseSettings):
    """HTTP API server configuration."""
    host: str = "127.0.0.1"
    port: int = 3000
    model_config = SettingsConfigDict(env_prefix="API__", extra="ignore")


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""
    url: str = "sqlite+aiosqlite:///./data/stock_analyser.db"
    model_config = SettingsConfigDict(env_prefix="DATABASE__", extra="ignore")


class LoggerConfig(BaseSettings):
    """Logger configuration settings."""
    default_level: str = "INFO"
    console_level: str = "ERROR"
    file_path: str = "./data/logs/analyser.log"
    rotation: str = "10 MB"
    retention: str = "30 days"
    filter_enabled: bool = True
    filter_max_history: int = 5
    filter_time_threshold_seconds: float = 1.0
    model_config = SettingsConfigDict(env_prefix="LOGGER__", extra="ignore")


class YahooConfig(BaseSettings):
    """Yahoo Finance endpoints, session token and retry budget."""
    session_url: str = "https://fc.yahoo.com"
    crumb_url: str = "https://query1.finance.yahoo.com/v1/test/getcrumb"
    chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    crumb_ttl_seconds: float = 900.0
    request_timeout_seconds: float = 30.0
    network_retries: int = 2
    backoff_base_seconds: float = 2.0
    backoff_cap_seconds: float = 60.0
    model_config = SettingsConfigDict(env_prefix="YAHOO__", extra="ignore")


class NasdaqConfig(BaseSettings):
    """NASDAQ screener used to list the symbol universe."""
    screener_url: str = "https://api.nasdaq.com/api/screener/stocks?tableonly=true&limit=0"
    request_timeout_seconds: float = 30.0
    model_config = SettingsConfigDict(env_prefix="NASDAQ__", extra="ignore")


class FetcherConfig(BaseSettings):
    """Concurrency governor limits."""
    concurrency: int = 5
    delay_ms: int = 500
    lookback_days: int = 90
    channel_capacity: int = 100
    max_rate_limit_retries: int = 0
    model_config = SettingsConfigDict(env_prefix="FETCHER__", extra="ignore")


class AnalysisConfig(BaseSettings):
    """Refresh cycle configuration."""
    interval_seconds: int = 3600
    refresh_interval_seconds: int = 3600
    auto_start: bool = True
    model_config = SettingsConfigDict(env_prefix="ANALYSIS__", extra="ignore")


class CacheConfig(BaseSettings):
    """Result cache sizing. List entries live for half the stock TTL."""
    ttl_seconds: int = 300
    stock_max_entries: int = 10_000
    list_max_entries: int = 100
    model_config = SettingsConfigDict(env_prefix="CACHE__", extra="ignore")


# ============================================================================
# MAIN SETTINGS CLASS
# ============================================================================

class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Configuration is organized into nested sections.
    Use double underscore (__) in env vars to access nested configs.

    Example:
        LOGGER__DEFAULT_LEVEL=DEBUG
        FETCHER__CONCURRENCY=3
        ANALYSIS__REFRESH_INTERVAL_SECONDS=7200
    """

    # Application metadata
    APP_NAME: str = "Auto Stock Analyser"
    APP_VERSION: str = "2.0.0"
    DEBUG: bool = False

    # Nested configuration sections, each read from its own env prefix when
    # Settings is constructed (after the .env file is loaded below)
    API: APIConfig = Field(default_factory=APIConfig)
    DATABASE: DatabaseConfig = Field(default_factory=DatabaseConfig)
    LOGGER: LoggerConfig = Field(default_factory=LoggerConfig)
    YAHOO: YahooConfig = Field(default_factory=YahooConfig)
    NASDAQ: NasdaqConfig = Field(default_factory=NasdaqConfig)
    FETCHER: FetcherConfig = Field(default_factory=FetcherConfig)
    ANALYSIS: AnalysisConfig = Field(default_factory=AnalysisConfig)
    CACHE: CacheConfig = Field(default_factory=CacheConfig)

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix=""
    )


# Global settings instance
from dotenv import load_dotenv

# Load .env file into environment variables
if _ENV_FILE.exists():
    load_dotenv(str(_ENV_FILE), override=True)

settings = Settings()
