"""Staleness Gate

Decides per symbol whether a refresh is due, from the last analysis time
in the durable store. Skipped symbols never reach the governor.
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Tuple

from analyser.config import settings
from analyser.logger import logger
from analyser.managers.refresh_manager.outcomes import RefreshDecision


class LastAnalyzedLookup(Protocol):
    async def get_last_analyzed(self, symbol: str) -> Optional[datetime]:
        ...


class StalenessGate:
    """Skip symbols analyzed less than ``refresh_interval_seconds`` ago."""

    def __init__(self, repository: LastAnalyzedLookup, refresh_interval_seconds: Optional[float] = None):
        self._repository = repository
        seconds = (
            refresh_interval_seconds
            if refresh_interval_seconds is not None
            else settings.ANALYSIS.refresh_interval_seconds
        )
        self._interval = timedelta(seconds=seconds)

    @property
    def refresh_interval(self) -> timedelta:
        return self._interval

    async def should_refresh(self, symbol: str, now: datetime) -> RefreshDecision:
        """
        Decide whether ``symbol`` needs fetching at ``now``

        - never analyzed: proceed
        - analyzed less than the interval ago: skip
        - otherwise: proceed
        - lookup failed: proceed, so a broken store never hides a symbol forever
        """
        try:
            last = await self._repository.get_last_analyzed(symbol)
        except Exception as e:
            logger.warning(f"Staleness lookup failed for {symbol}, refreshing anyway: {e}")
            return RefreshDecision.proceed("lookup failed")

        if last is None:
            return RefreshDecision.proceed("never analyzed")

        elapsed = now - last
        if elapsed < self._interval:
            logger.debug(f"Skipping {symbol} - analyzed {elapsed.total_seconds() / 60:.1f} minutes ago")
            return RefreshDecision.skip("recently analyzed", last)
        return RefreshDecision.proceed("stale")

    async def partition(self, symbols: Iterable[str], now: datetime) -> Tuple[List[str], List[str]]:
        """Split symbols into (proceed, skipped), keeping input order."""
        proceed: List[str] = []
        skipped: List[str] = []
        for symbol in symbols:
            decision = await self.should_refresh(symbol, now)
            (proceed if decision.should_proceed else skipped).append(symbol)
        return proceed, skipped
