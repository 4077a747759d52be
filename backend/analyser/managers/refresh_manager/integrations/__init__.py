"""
RefreshManager Integrations
Upstream data sources (Yahoo Finance chart API, NASDAQ screener)
"""
from analyser.managers.refresh_manager.integrations.nasdaq_listing import (
    FALLBACK_SYMBOLS,
    NasdaqSymbolLister,
    fallback_listing,
    parse_market_cap,
)
from analyser.managers.refresh_manager.integrations.yahoo_data import (
    YahooFetchWorker,
    parse_chart_response,
)
from analyser.managers.refresh_manager.integrations.yahoo_session import (
    YahooSessionManager,
    build_http_client,
)

__all__ = [
    'FALLBACK_SYMBOLS',
    'NasdaqSymbolLister',
    'fallback_listing',
    'parse_market_cap',
    'YahooFetchWorker',
    'parse_chart_response',
    'YahooSessionManager',
    'build_http_client',
]
