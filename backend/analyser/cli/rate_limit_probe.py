"""
Rate limit probe

Sweeps governor settings against the live Yahoo endpoint to find the
fastest concurrency/delay pair that stays clear of 429 responses.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from analyser.managers.refresh_manager.governor import ConcurrencyGovernor, GovernorConfig, SymbolFetcher
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider

PROBE_SYMBOLS = [
    "AAPL", "MSFT", "GOOGL", "AMZN", "META",
    "NVDA", "TSLA", "JPM", "V", "JNJ",
    "WMT", "PG", "MA", "HD", "DIS",
    "PYPL", "NFLX", "ADBE", "CRM", "INTC",
]

# (concurrency, delay_ms, symbols) per phase
CONCURRENCY_SWEEP = [(c, 100, 10) for c in (10, 5, 3, 2, 1)]
DELAY_SWEEP = [(1, d, 5) for d in (50, 100, 250, 500, 1000, 2000, 3000)]
COMBINED_SWEEP = [(2, 500, 10), (2, 1000, 10), (3, 500, 10), (3, 1000, 10), (5, 1000, 10), (5, 2000, 10)]

PHASES = [
    ("Concurrency tests (100ms delay)", CONCURRENCY_SWEEP, 5.0),
    ("Delay sweep (concurrency=1)", DELAY_SWEEP, 3.0),
    ("Combined tests", COMBINED_SWEEP, 5.0),
]

PROBE_LOOKBACK_DAYS = 7


@dataclass(frozen=True)
class ProbeResult:
    concurrency: int
    delay_ms: int
    total_requests: int
    successful: int
    rate_limited: int
    success_rate: float
    rate_limit_rate: float
    avg_time_ms: float

    @property
    def verdict(self) -> str:
        if self.rate_limit_rate < 1.0:
            return "safe"
        if self.rate_limit_rate < 20.0:
            return "aggressive"
        return "unsafe"

    @property
    def throughput(self) -> float:
        return self.concurrency / (self.delay_ms + 1.0)


async def run_probe(
    fetcher: SymbolFetcher,
    concurrency: int,
    delay_ms: int,
    symbol_count: int,
    time_provider: Optional[TimeProvider] = None,
) -> ProbeResult:
    """Run one governor batch and summarize it."""
    governor = ConcurrencyGovernor(
        fetcher,
        GovernorConfig(concurrency=concurrency, delay_ms=delay_ms, lookback_days=PROBE_LOOKBACK_DAYS),
        time_provider=time_provider,
    )
    report = await governor.fetch_batch(PROBE_SYMBOLS[:symbol_count])
    return ProbeResult(
        concurrency=concurrency,
        delay_ms=delay_ms,
        total_requests=report.total,
        successful=len(report.successful),
        rate_limited=report.rate_limit_errors,
        success_rate=report.success_rate(),
        rate_limit_rate=report.rate_limit_rate(),
        avg_time_ms=report.avg_time_per_request * 1000.0,
    )


async def run_sweep(
    fetcher: SymbolFetcher,
    phases: Sequence[Tuple[str, Sequence[Tuple[int, int, int]], float]] = PHASES,
    on_phase: Optional[Callable[[str], None]] = None,
    on_result: Optional[Callable[[ProbeResult], None]] = None,
    time_provider: Optional[TimeProvider] = None,
) -> List[ProbeResult]:
    """Run every phase, cooling down between probes."""
    clock = time_provider or get_time_provider()
    results: List[ProbeResult] = []
    for title, runs, cooldown in phases:
        if on_phase:
            on_phase(title)
        for concurrency, delay_ms, count in runs:
            result = await run_probe(fetcher, concurrency, delay_ms, count, time_provider=clock)
            results.append(result)
            if on_result:
                on_result(result)
            await clock.sleep(cooldown)
    return results


def recommend(results: Sequence[ProbeResult], top: int = 3) -> List[ProbeResult]:
    """Highest-throughput safe settings, or aggressive ones if none are safe."""
    usable = [r for r in results if r.successful > 0]
    safe = [r for r in usable if r.verdict == "safe"]
    candidates = safe or [r for r in usable if r.verdict == "aggressive"]
    return sorted(candidates, key=lambda r: r.throughput, reverse=True)[:top]

