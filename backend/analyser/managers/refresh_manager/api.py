"""
RefreshManager - wiring and public API of the refresh pipeline

Builds the pipeline from settings (or injected collaborators) and exposes
what the HTTP routes and the CLI need:

    session manager -> fetch worker -> governor
    repository -> staleness gate
    lister + governor + gate + cache + repository -> orchestrator

Usage:
    manager = get_refresh_manager()
    await manager.startup()          # warm cache, start the cycle loop
    manager.get_progress()
    await manager.get_history("AAPL", days=30)
    await manager.get_stock("AAPL")
    await manager.shutdown()
"""
from typing import List, Optional

import httpx

from analyser.config import settings
from analyser.logger import logger
from analyser.managers.refresh_manager.governor import ConcurrencyGovernor, GovernorConfig
from analyser.managers.refresh_manager.integrations.nasdaq_listing import NasdaqSymbolLister
from analyser.managers.refresh_manager.integrations.yahoo_data import YahooFetchWorker
from analyser.managers.refresh_manager.integrations.yahoo_session import (
    YahooSessionManager,
    build_http_client,
)
from analyser.managers.refresh_manager.orchestrator import BatchOrchestrator, CycleSummary
from analyser.managers.refresh_manager.outcomes import FetchOutcome
from analyser.managers.refresh_manager.result_cache import ResultCache
from analyser.managers.refresh_manager.staleness import StalenessGate
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider
from analyser.models.market import ProgressSnapshot, StockAnalysis, normalize_symbol
from analyser.repositories.analysis_repository import AnalysisRepository


class RefreshManager:
    """Owns one refresh pipeline and the caches in front of its store."""

    def __init__(
        self,
        repository: Optional[AnalysisRepository] = None,
        cache: Optional[ResultCache] = None,
        session: Optional[YahooSessionManager] = None,
        lister: Optional[NasdaqSymbolLister] = None,
        governor_config: Optional[GovernorConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        yahoo_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.time_provider = time_provider or get_time_provider()
        self.repository = repository or AnalysisRepository()
        self.cache = cache or ResultCache()

        self._owns_session = session is None
        if session is None:
            client = build_http_client(transport=yahoo_transport) if yahoo_transport else None
            session = YahooSessionManager(client=client, time_provider=self.time_provider)
        self.session = session

        self._owns_lister = lister is None
        self.lister = lister or NasdaqSymbolLister()

        self.fetcher = YahooFetchWorker(self.session, time_provider=self.time_provider)
        self.governor = ConcurrencyGovernor(
            self.fetcher,
            governor_config or GovernorConfig.from_settings(),
            time_provider=self.time_provider,
        )
        self.gate = StalenessGate(self.repository)
        self.orchestrator = BatchOrchestrator(
            repository=self.repository,
            cache=self.cache,
            governor=self.governor,
            gate=self.gate,
            lister=self.lister,
            time_provider=self.time_provider,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def startup(self, auto_start: Optional[bool] = None) -> int:
        """Warm the cache and optionally start the cycle loop.

        Returns:
            Number of analyses loaded into the cache
        """
        loaded = await self.orchestrator.load_existing_data()
        if auto_start is None:
            auto_start = settings.ANALYSIS.auto_start
        if auto_start:
            self.orchestrator.start()
            logger.info("Refresh loop started")
        return loaded

    async def run_once(self) -> CycleSummary:
        return await self.orchestrator.run_cycle()

    async def shutdown(self) -> None:
        await self.orchestrator.stop()
        if self._owns_session:
            await self.session.client.aclose()
        if self._owns_lister:
            await self.lister.aclose()
        logger.info("Refresh manager shut down")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_progress(self) -> ProgressSnapshot:
        return self.orchestrator.progress()

    async def get_stock(self, symbol: str) -> Optional[StockAnalysis]:
        """Analysis for one symbol: cache first, then the store."""
        symbol = normalize_symbol(symbol)
        cached = self.cache.get_stock(symbol)
        if cached is not None:
            return cached

        analysis = await self.repository.get_analysis(symbol)
        if analysis is not None:
            self.cache.set_stock(analysis)
        return analysis

    async def list_stocks(self, limit: Optional[int] = None) -> List[StockAnalysis]:
        """Stored analyses by market cap, through the list cache."""
        key = f"stocks:limit={limit or 'all'}"
        cached = self.cache.get_list(key)
        if cached is not None:
            return cached

        analyses = await self.repository.list_analyses(limit=limit)
        self.cache.set_list(key, analyses)
        return analyses

    async def get_history(self, symbol: str, days: Optional[int] = None) -> FetchOutcome:
        """Daily series straight from Yahoo Finance, through the shared crumb.

        Not cached and not stored. Runs outside the governor, so it does not
        wait behind a refresh pass.

        Raises:
            InvalidSymbolError: If the symbol is blank
        """
        symbol = normalize_symbol(symbol)
        return await self.fetcher.fetch(symbol, days or self.governor.config.lookback_days)


# Global singleton instance
_refresh_manager_instance: Optional[RefreshManager] = None


def get_refresh_manager() -> RefreshManager:
    """
    Get RefreshManager singleton.

    Returns:
        RefreshManager instance (creates if doesn't exist)
    """
    global _refresh_manager_instance
    if _refresh_manager_instance is None:
        _refresh_manager_instance = RefreshManager()
    return _refresh_manager_instance


def set_refresh_manager(manager: Optional[RefreshManager]) -> None:
    """Install a pre-built manager (tests, alternative wiring)."""
    global _refresh_manager_instance
    _refresh_manager_instance = manager


def reset_refresh_manager() -> None:
    """
    Reset RefreshManager singleton (for testing).

    WARNING: Only use in tests. Does not stop a running loop.
    """
    global _refresh_manager_instance
    _refresh_manager_instance = None
