"""Batch Orchestrator

Drives refresh passes over the symbol universe:

    IDLE -> LISTING_SYMBOLS -> GATING_STALENESS -> FETCHING -> PERSISTING
         -> CYCLING -> LISTING_SYMBOLS -> ...  (STOPPED on shutdown)

Every successful fetch is turned into a StockAnalysis, written to the
store and then to the symbol cache. Failures are counted and the pass
goes on. Progress is published as an immutable ProgressSnapshot that is
replaced, never mutated, so readers never block the pipeline.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from analyser.config import settings
from analyser.core.enums import CacheKind, RefreshState
from analyser.core.exceptions import RepositoryError, UpstreamListingError
from analyser.logger import logger
from analyser.managers.refresh_manager.governor import ConcurrencyGovernor
from analyser.managers.refresh_manager.integrations.nasdaq_listing import (
    NasdaqSymbolLister,
    fallback_listing,
)
from analyser.managers.refresh_manager.outcomes import BatchReport, FetchSuccess
from analyser.managers.refresh_manager.result_cache import ResultCache
from analyser.managers.refresh_manager.staleness import StalenessGate
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider
from analyser.models.market import ListedSymbol, ProgressSnapshot
from analyser.repositories.analysis_repository import AnalysisRepository
from analyser.services.indicators.technical_indicators import build_stock_analysis


@dataclass(frozen=True)
class CycleSummary:
    """Counts for one finished refresh pass."""
    total: int
    skipped: int
    persisted: int
    errors: int
    rate_limited: int
    listing_source: str
    report: BatchReport

    @property
    def fetched(self) -> int:
        return self.report.total


class BatchOrchestrator:
    """Runs refresh cycles and publishes their progress."""

    def __init__(
        self,
        repository: AnalysisRepository,
        cache: ResultCache,
        governor: ConcurrencyGovernor,
        gate: StalenessGate,
        lister: NasdaqSymbolLister,
        time_provider: Optional[TimeProvider] = None,
        cycle_interval_seconds: Optional[float] = None,
    ):
        self._repository = repository
        self._cache = cache
        self._governor = governor
        self._gate = gate
        self._lister = lister
        self._time = time_provider or get_time_provider()
        self._cycle_interval = (
            cycle_interval_seconds
            if cycle_interval_seconds is not None
            else settings.ANALYSIS.interval_seconds
        )

        self._progress = ProgressSnapshot()
        self._last_listing: List[ListedSymbol] = []
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # Progress
    # =========================================================================

    def progress(self) -> ProgressSnapshot:
        """Current progress. Safe to call from any task at any time."""
        return self._progress

    @property
    def state(self) -> RefreshState:
        return self._progress.state

    def _publish(self, **changes) -> None:
        self._progress = self._progress.model_copy(update=changes)

    # =========================================================================
    # Startup
    # =========================================================================

    async def load_existing_data(self) -> int:
        """Warm the symbol cache from stored analyses. Returns the count loaded."""
        logger.info("Loading existing analyses from database...")
        try:
            analyses = await self._repository.get_all_analyses()
        except RepositoryError as e:
            logger.warning(f"Failed to load existing data: {e}. Starting fresh.")
            return 0

        for analysis in analyses:
            self._cache.set_stock(analysis)
        if analyses:
            logger.info(f"Loaded {len(analyses)} analyses into cache")
        else:
            logger.info("No existing analyses found in database")
        return len(analyses)

    # =========================================================================
    # One cycle
    # =========================================================================

    async def list_universe(self) -> Tuple[List[ListedSymbol], str]:
        """Current symbol universe and where it came from.

        Falls back to the last good listing, then to the static list.

        Returns:
            (listed symbols, source) with source "upstream", "cached" or "fallback"
        """
        try:
            listed = await self._lister.list_symbols()
            if not listed:
                raise UpstreamListingError("Listing returned no symbols")
            self._last_listing = listed
            return listed, "upstream"
        except UpstreamListingError as e:
            if self._last_listing:
                logger.warning(f"Symbol listing failed: {e}. Using {len(self._last_listing)} cached symbols")
                return self._last_listing, "cached"
            logger.warning(f"Symbol listing failed: {e}. Using fallback list")
            return fallback_listing(), "fallback"

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleSummary:
        """Run one full refresh pass."""
        cycle_start = now or self._time.now()
        self._publish(
            state=RefreshState.LISTING_SYMBOLS,
            total=0,
            completed=0,
            errors=0,
            skipped=0,
            current_symbol=None,
            cycle_start=cycle_start,
        )

        listed, source = await self.list_universe()
        market_caps: Dict[str, Optional[float]] = {}
        for item in listed:
            market_caps.setdefault(item.symbol, item.market_cap)
        symbols = list(market_caps)

        self._publish(state=RefreshState.GATING_STALENESS, total=len(symbols))
        proceed, skipped = await self._gate.partition(symbols, cycle_start)
        logger.info(
            f"Analyzing {len(symbols)} stocks ({len(proceed)} due, {len(skipped)} recently analyzed)"
        )

        self._publish(state=RefreshState.FETCHING, skipped=len(skipped), completed=len(skipped))
        completed = len(skipped)
        errors = 0
        persisted = 0

        async with self._governor.fetch_batch_streaming(proceed) as batch:
            async for outcome in batch:
                self._publish(current_symbol=outcome.symbol)
                if isinstance(outcome, FetchSuccess):
                    if await self._persist(outcome, market_caps.get(outcome.symbol)):
                        persisted += 1
                    else:
                        errors += 1
                else:
                    errors += 1
                completed += 1
                self._publish(completed=completed, errors=errors)

                if self._stop.is_set():
                    logger.info("Stop requested, abandoning the rest of this pass")
                    break
        report = await batch.wait()

        self._publish(state=RefreshState.PERSISTING, current_symbol=None)
        self._cache.invalidate_all_of_kind(CacheKind.LIST)

        logger.info(
            f"Cycle complete. Processed {len(symbols)} stocks "
            f"({persisted} analyzed, {len(skipped)} skipped, {errors} errors, "
            f"{report.rate_limit_errors} rate limited / {report.rate_limit_rate():.1f}%)"
        )
        return CycleSummary(
            total=len(symbols),
            skipped=len(skipped),
            persisted=persisted,
            errors=errors,
            rate_limited=report.rate_limit_errors,
            listing_source=source,
            report=report,
        )

    async def _persist(self, outcome: FetchSuccess, market_cap: Optional[float]) -> bool:
        try:
            analysis = build_stock_analysis(
                outcome.symbol, outcome.prices, self._time.now(), market_cap=market_cap
            )
        except ValueError as e:
            logger.warning(f"Failed to analyze {outcome.symbol}: {e}")
            return False

        try:
            await self._repository.upsert_analysis(analysis)
        except RepositoryError as e:
            logger.error(f"Failed to save analysis for {outcome.symbol}: {e}")
            return False

        self._cache.set_stock(analysis)
        return True

    # =========================================================================
    # Background loop
    # =========================================================================

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Cycle until ``stop_event`` is set. Cycle errors are logged, never raised."""
        if stop_event is not None:
            self._stop = stop_event
        logger.info(f"Starting continuous analysis (interval {self._cycle_interval}s)")

        while not self._stop.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"Analysis cycle error: {e}")

            if self._stop.is_set():
                break
            self._publish(state=RefreshState.CYCLING, current_symbol=None)
            logger.info(f"Waiting {self._cycle_interval} seconds before next cycle")
            await self._sleep_unless_stopped(self._cycle_interval)

        self._publish(state=RefreshState.STOPPED, current_symbol=None)
        logger.info("Continuous analysis stopped")

    async def _sleep_unless_stopped(self, seconds: float) -> None:
        sleeper = asyncio.ensure_future(self._time.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Run the cycle loop as a background task."""
        if self.is_running:
            return self._task
        self._stop = asyncio.Event()
        self._task = asyncio.ensure_future(self.run_forever(self._stop))
        return self._task

    async def stop(self) -> None:
        """Signal the loop and wait for it. In-flight fetches drain first."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
