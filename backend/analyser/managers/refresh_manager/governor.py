"""Concurrency Governor

Runs a fetcher over many symbols with at most ``concurrency`` fetches in
flight, staggering launches to smooth bursts against the upstream.

Two ways to consume a batch:

- fetch_batch(): await a BatchReport once every symbol is done.
- fetch_batch_streaming(): iterate outcomes in completion order through a
  bounded queue. Workers block on a full queue (backpressure); the
  returned handle's wait() yields the BatchReport.

Slot rules:
- The launcher acquires a slot before spawning worker i.
- Worker i (i > 0) sleeps ``delay_ms * (i % 3)`` before its request.
- The slot is released as soon as fetch returns, before the outcome is
  queued, so a slow consumer never holds a slot.
- The launcher sleeps ``delay_ms`` between launches.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, List, Optional, Protocol

from analyser.config import settings
from analyser.core.enums import FailureKind
from analyser.core.exceptions import ConfigurationError
from analyser.logger import logger
from analyser.managers.refresh_manager.backoff import backoff_delay
from analyser.managers.refresh_manager.outcomes import BatchReport, FetchFailure, FetchOutcome
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider


class SymbolFetcher(Protocol):
    async def fetch(self, symbol: str, lookback_days: int) -> FetchOutcome:
        ...


@dataclass(frozen=True)
class GovernorConfig:
    """Limits for one governor."""
    concurrency: int = 5
    delay_ms: int = 500
    lookback_days: int = 90
    channel_capacity: int = 100
    max_rate_limit_retries: int = 0
    backoff_base_seconds: float = 2.0
    backoff_cap_seconds: float = 60.0

    def __post_init__(self):
        if self.concurrency < 1:
            raise ConfigurationError("concurrency must be >= 1")
        if self.delay_ms < 0:
            raise ConfigurationError("delay_ms must be >= 0")
        if self.lookback_days < 1:
            raise ConfigurationError("lookback_days must be >= 1")
        if self.channel_capacity < 1:
            raise ConfigurationError("channel_capacity must be >= 1")
        if self.max_rate_limit_retries < 0:
            raise ConfigurationError("max_rate_limit_retries must be >= 0")

    @classmethod
    def from_settings(cls, **overrides) -> "GovernorConfig":
        """Limits from FETCHER__* and YAHOO__BACKOFF_*, with keyword overrides."""
        values = dict(
            concurrency=settings.FETCHER.concurrency,
            delay_ms=settings.FETCHER.delay_ms,
            lookback_days=settings.FETCHER.lookback_days,
            channel_capacity=settings.FETCHER.channel_capacity,
            max_rate_limit_retries=settings.FETCHER.max_rate_limit_retries,
            backoff_base_seconds=settings.YAHOO.backoff_base_seconds,
            backoff_cap_seconds=settings.YAHOO.backoff_cap_seconds,
        )
        values.update(overrides)
        return cls(**values)


_DONE = object()


class StreamingBatch:
    """Handle for a streaming batch.

    Async-iterate it to receive outcomes as they complete. Call wait() for
    the BatchReport once iteration ends, or aclose() first to abandon the
    channel: in-flight workers then finish normally and their outcomes are
    discarded instead of queued.

    Usage:
        async with governor.fetch_batch_streaming(symbols) as batch:
            async for outcome in batch:
                ...
        report = await batch.wait()
    """

    def __init__(self, capacity: int):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self._exhausted = False
        self._task: Optional[asyncio.Task] = None

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def _emit(self, item) -> None:
        """Queue an item, blocking while full, unless the consumer left."""
        if self.closed:
            return
        try:
            self._queue.put_nowait(item)
            return
        except asyncio.QueueFull:
            pass

        put = asyncio.ensure_future(self._queue.put(item))
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (put, closed):
                if not pending.done():
                    pending.cancel()

    def __aiter__(self) -> AsyncIterator[FetchOutcome]:
        return self

    async def __anext__(self) -> FetchOutcome:
        if self._exhausted or self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _DONE:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop consuming. Queued and future outcomes are dropped.

        Workers already launched run to completion; symbols not yet
        launched are not fetched and do not appear in the report.
        """
        self._closed.set()
        while not self._queue.empty():
            self._queue.get_nowait()

    async def wait(self) -> BatchReport:
        """Wait for every launched worker and return the batch report."""
        return await self._task

    async def __aenter__(self) -> "StreamingBatch":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
        await self.wait()


class ConcurrencyGovernor:
    """Bounds concurrent fetches and staggers their start times."""

    def __init__(
        self,
        fetcher: SymbolFetcher,
        config: Optional[GovernorConfig] = None,
        time_provider: Optional[TimeProvider] = None,
        rng: Optional[random.Random] = None,
    ):
        self._fetcher = fetcher
        self._config = config or GovernorConfig.from_settings()
        self._time = time_provider or get_time_provider()
        self._rng = rng
        # One pool of slots per governor, shared by overlapping batches
        self._slots = asyncio.Semaphore(self._config.concurrency)

        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def config(self) -> GovernorConfig:
        return self._config

    async def fetch_batch(self, symbols: Iterable[str]) -> BatchReport:
        """Fetch every symbol and return the report when all are done."""
        return await self._run(list(symbols), None, progress_every=10)

    def fetch_batch_streaming(self, symbols: Iterable[str]) -> StreamingBatch:
        """Start fetching and return a handle that streams outcomes.

        Must be called from a running event loop.
        """
        batch = StreamingBatch(self._config.channel_capacity)
        batch._attach(asyncio.ensure_future(self._run(list(symbols), batch, progress_every=50)))
        return batch

    async def _run(
        self,
        symbols: List[str],
        batch: Optional[StreamingBatch],
        progress_every: int,
    ) -> BatchReport:
        report = BatchReport()
        total = len(symbols)
        started = self._time.monotonic()
        delay_seconds = self._config.delay_ms / 1000.0
        counter = {"completed": 0}
        workers: List[asyncio.Task] = []

        logger.info(
            f"Fetching {total} symbols "
            f"(concurrency={self._config.concurrency}, delay={self._config.delay_ms}ms)"
        )
        try:
            for index, symbol in enumerate(symbols):
                await self._slots.acquire()
                if batch is not None and batch.closed:
                    # Consumer left: let launched workers drain, launch no more
                    self._slots.release()
                    logger.info(f"Stream abandoned, {total - index} symbols not launched")
                    break
                workers.append(asyncio.ensure_future(
                    self._worker(index, symbol, report, batch, counter, total, progress_every)
                ))
                if delay_seconds > 0 and index < total - 1:
                    await self._time.sleep(delay_seconds)

            if workers:
                await asyncio.gather(*workers)
        finally:
            if batch is not None:
                await batch._emit(_DONE)

        report.total_time = self._time.monotonic() - started
        logger.info(f"Batch complete: {report.summary()}")
        return report

    async def _worker(
        self,
        index: int,
        symbol: str,
        report: BatchReport,
        batch: Optional[StreamingBatch],
        counter: dict,
        total: int,
        progress_every: int,
    ) -> None:
        # The launcher already holds a slot for this worker
        holding = True
        try:
            if index > 0 and self._config.delay_ms > 0:
                await self._time.sleep(self._config.delay_ms * (index % 3) / 1000.0)

            outcome = await self._call_fetcher(symbol)
            attempt = 0
            while (
                not outcome.ok
                and outcome.is_rate_limited
                and attempt < self._config.max_rate_limit_retries
            ):
                delay = backoff_delay(
                    attempt,
                    self._config.backoff_base_seconds,
                    self._config.backoff_cap_seconds,
                    self._rng,
                )
                attempt += 1
                logger.info(f"Retrying rate-limited {symbol} in {delay:.1f}s (retry {attempt})")
                self._slots.release()
                holding = False
                await self._time.sleep(delay)
                await self._slots.acquire()
                holding = True
                outcome = await self._call_fetcher(symbol)
        finally:
            if holding:
                self._slots.release()

        report.add(outcome)
        counter["completed"] += 1
        done = counter["completed"]
        if done % progress_every == 0 or done == total:
            logger.info(f"Fetch progress: {done}/{total} completed")

        if batch is not None:
            await batch._emit(outcome)

    async def _call_fetcher(self, symbol: str) -> FetchOutcome:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            return await self._fetcher.fetch(symbol, self._config.lookback_days)
        except Exception as e:
            logger.error(f"Unexpected error fetching {symbol}: {e}")
            return FetchFailure(symbol, FailureKind.UNEXPECTED, str(e))
        finally:
            self.in_flight -= 1
