"""Unit tests for the nested settings sections."""
from analyser.config.settings import (
    AnalysisConfig,
    APIConfig,
    CacheConfig,
    DatabaseConfig,
    FetcherConfig,
    LoggerConfig,
    NasdaqConfig,
    Settings,
    YahooConfig,
    settings,
)


class TestSettings:
    """Every section is built from its own env prefix."""

    def test_defaults_build_every_section(self):
        built = Settings()

        assert isinstance(built.API, APIConfig)
        assert isinstance(built.DATABASE, DatabaseConfig)
        assert isinstance(built.LOGGER, LoggerConfig)
        assert isinstance(built.YAHOO, YahooConfig)
        assert isinstance(built.NASDAQ, NasdaqConfig)
        assert isinstance(built.FETCHER, FetcherConfig)
        assert isinstance(built.ANALYSIS, AnalysisConfig)
        assert isinstance(built.CACHE, CacheConfig)

    def test_module_instance_is_populated(self):
        assert settings.FETCHER.lookback_days >= 1
        assert settings.YAHOO.chart_url.startswith("https://")

    def test_section_reads_prefixed_env(self, monkeypatch):
        monkeypatch.setenv("FETCHER__CONCURRENCY", "3")
        monkeypatch.setenv("YAHOO__BACKOFF_BASE_SECONDS", "0.5")

        built = Settings()

        assert built.FETCHER.concurrency == 3
        assert built.YAHOO.backoff_base_seconds == 0.5

    def test_sections_are_independent_instances(self):
        first = Settings()
        second = Settings()

        assert first.CACHE is not second.CACHE
