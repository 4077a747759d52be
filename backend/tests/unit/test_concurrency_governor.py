"""Unit tests for the concurrency governor."""
import asyncio
import random
from typing import Dict

import pytest

from analyser.core.enums import FailureKind
from analyser.core.exceptions import ConfigurationError
from analyser.managers.refresh_manager.governor import ConcurrencyGovernor, GovernorConfig
from analyser.managers.refresh_manager.outcomes import FetchSuccess
from tests.fixtures.upstream import ScriptedFetcher, make_prices


def symbols(count: int):
    return [f"S{i:03d}" for i in range(count)]


async def settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualFetcher:
    """Each symbol's fetch finishes only when the test releases it."""

    def __init__(self, names):
        self.release: Dict[str, asyncio.Event] = {name: asyncio.Event() for name in names}
        self.started = []

    async def fetch(self, symbol, lookback_days):
        self.started.append(symbol)
        await self.release[symbol].wait()
        return FetchSuccess(symbol=symbol, prices=make_prices([1.0, 2.0]))


def governor_for(fetcher, clock, **config):
    config.setdefault("delay_ms", 0)
    return ConcurrencyGovernor(
        fetcher, GovernorConfig(**config), time_provider=clock, rng=random.Random(1)
    )


class TestConcurrencyBound:
    """At most N fetches in flight, every symbol gets one outcome."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency,count", [(1, 5), (2, 7), (5, 40), (10, 3)])
    async def test_peak_never_exceeds_limit(self, fake_clock, concurrency, count):
        fetcher = ScriptedFetcher()
        governor = governor_for(fetcher, fake_clock, concurrency=concurrency)

        report = await governor.fetch_batch(symbols(count))

        assert report.total == count
        assert fetcher.peak <= concurrency
        assert governor.peak_in_flight <= concurrency
        assert governor.in_flight == 0

    @pytest.mark.asyncio
    async def test_limit_is_reached_when_fetches_block(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.gate = asyncio.Event()
        governor = governor_for(fetcher, fake_clock, concurrency=3)

        task = asyncio.ensure_future(governor.fetch_batch(symbols(10)))
        await settle()

        assert fetcher.active == 3
        assert len(fetcher.calls) == 3

        fetcher.gate.set()
        report = await task

        assert report.total == 10
        assert fetcher.peak == 3

    @pytest.mark.asyncio
    async def test_overlapping_batches_share_slots(self, fake_clock):
        fetcher = ScriptedFetcher()
        governor = governor_for(fetcher, fake_clock, concurrency=2)

        first, second = await asyncio.gather(
            governor.fetch_batch(symbols(6)),
            governor.fetch_batch([f"T{i}" for i in range(6)]),
        )

        assert first.total == 6
        assert second.total == 6
        assert fetcher.peak <= 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, fake_clock):
        governor = governor_for(ScriptedFetcher(), fake_clock)

        report = await governor.fetch_batch([])

        assert report.total == 0
        assert report.rate_limit_rate() == 0.0


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_mixed_results_counted(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.rate_limit("B")
        governor = governor_for(fetcher, fake_clock, concurrency=2)

        report = await governor.fetch_batch(["A", "B", "C"])

        assert sorted(s.symbol for s in report.successful) == ["A", "C"]
        assert [f.symbol for f in report.failed] == ["B"]
        assert report.rate_limit_errors == 1
        assert report.rate_limit_rate() == pytest.approx(33.333, abs=0.01)

    @pytest.mark.asyncio
    async def test_fetcher_exception_becomes_failure(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.raising["B"] = RuntimeError("boom")
        governor = governor_for(fetcher, fake_clock, concurrency=2)

        report = await governor.fetch_batch(["A", "B", "C"])

        assert report.total == 3
        failure = report.failed[0]
        assert failure.symbol == "B"
        assert failure.kind == FailureKind.UNEXPECTED
        assert "boom" in failure.error
        assert governor.in_flight == 0

    @pytest.mark.asyncio
    async def test_every_symbol_has_one_outcome(self, fake_clock):
        fetcher = ScriptedFetcher()
        for name in ("S003", "S010"):
            fetcher.failing[name] = FailureKind.NETWORK
        fetcher.rate_limit("S007")
        governor = governor_for(fetcher, fake_clock, concurrency=4)

        report = await governor.fetch_batch(symbols(25))

        seen = [o.symbol for o in report.successful + report.failed]
        assert sorted(seen) == symbols(25)
        assert len(report.failed) == 3


class TestStagger:
    @pytest.mark.asyncio
    async def test_launch_and_worker_delays(self, fake_clock):
        governor = governor_for(ScriptedFetcher(), fake_clock, concurrency=4, delay_ms=100)

        await governor.fetch_batch(["A", "B", "C", "D"])

        # Three launch gaps plus worker 1's stagger; worker 2 waits twice as long
        assert fake_clock.sleeps.count(0.1) == 4
        assert 0.2 in fake_clock.sleeps

    @pytest.mark.asyncio
    async def test_no_sleeps_without_delay(self, fake_clock):
        governor = governor_for(ScriptedFetcher(), fake_clock, concurrency=2, delay_ms=0)

        await governor.fetch_batch(symbols(5))

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_total_time_from_clock(self, fake_clock):
        governor = governor_for(ScriptedFetcher(), fake_clock, concurrency=4, delay_ms=100)

        report = await governor.fetch_batch(["A", "B", "C"])

        assert report.total_time >= 0.2


class TestRateLimitRetries:
    @pytest.mark.asyncio
    async def test_rate_limited_symbol_retried(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.rate_limit("B", times=1)
        governor = governor_for(
            fetcher, fake_clock, concurrency=2,
            max_rate_limit_retries=2, backoff_base_seconds=2.0,
        )

        report = await governor.fetch_batch(["A", "B", "C"])

        assert report.total == 3
        assert report.rate_limit_errors == 0
        assert fetcher.calls.count("B") == 2
        assert any(2.0 <= s <= 3.0 for s in fake_clock.sleeps)

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.rate_limit("B")
        governor = governor_for(fetcher, fake_clock, concurrency=2, max_rate_limit_retries=2)

        report = await governor.fetch_batch(["A", "B"])

        assert fetcher.calls.count("B") == 3
        assert report.rate_limit_errors == 1

    @pytest.mark.asyncio
    async def test_no_retries_by_default(self, fake_clock):
        fetcher = ScriptedFetcher()
        fetcher.rate_limit("B")
        governor = governor_for(fetcher, fake_clock, concurrency=2)

        await governor.fetch_batch(["A", "B"])

        assert fetcher.calls.count("B") == 1


class TestStreaming:
    @pytest.mark.asyncio
    async def test_outcomes_arrive_in_completion_order(self, fake_clock):
        fetcher = ManualFetcher(["A", "B", "C"])
        governor = governor_for(fetcher, fake_clock, concurrency=3)
        received = []

        async with governor.fetch_batch_streaming(["A", "B", "C"]) as batch:
            await settle()
            fetcher.release["C"].set()
            received.append((await batch.__anext__()).symbol)
            fetcher.release["A"].set()
            received.append((await batch.__anext__()).symbol)
            fetcher.release["B"].set()
            async for outcome in batch:
                received.append(outcome.symbol)
        report = await batch.wait()

        assert received == ["C", "A", "B"]
        assert report.total == 3

    @pytest.mark.asyncio
    async def test_full_channel_blocks_producers_not_slots(self, fake_clock):
        fetcher = ScriptedFetcher()
        governor = governor_for(fetcher, fake_clock, concurrency=5, channel_capacity=1)

        batch = governor.fetch_batch_streaming(symbols(5))
        await settle()

        # Every fetch finished and gave its slot back, but only one outcome fits
        assert len(fetcher.completed) == 5
        assert governor.in_flight == 0
        assert batch._queue.qsize() == 1

        received = [outcome.symbol async for outcome in batch]
        report = await batch.wait()

        assert sorted(received) == symbols(5)
        assert report.total == 5

    @pytest.mark.asyncio
    async def test_closing_stream_stops_launching(self, fake_clock):
        fetcher = ScriptedFetcher()
        governor = governor_for(fetcher, fake_clock, concurrency=1, channel_capacity=1)

        async with governor.fetch_batch_streaming(symbols(20)) as batch:
            async for _ in batch:
                break
        report = await batch.wait()

        assert 1 <= len(fetcher.calls) < 20
        assert report.total == len(fetcher.calls)
        assert [o async for o in batch] == []

    @pytest.mark.asyncio
    async def test_empty_stream(self, fake_clock):
        governor = governor_for(ScriptedFetcher(), fake_clock)

        batch = governor.fetch_batch_streaming([])
        received = [o async for o in batch]
        report = await batch.wait()

        assert received == []
        assert report.total == 0


class TestGovernorConfig:
    @pytest.mark.parametrize("field,value", [
        ("concurrency", 0),
        ("delay_ms", -1),
        ("lookback_days", 0),
        ("channel_capacity", 0),
        ("max_rate_limit_retries", -1),
    ])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ConfigurationError):
            GovernorConfig(**{field: value})

    def test_from_settings(self):
        config = GovernorConfig.from_settings()

        assert config.concurrency >= 1
        assert config.lookback_days >= 1

    def test_overrides_keep_backoff_settings(self, monkeypatch):
        from analyser.config import settings

        monkeypatch.setattr(settings.YAHOO, "backoff_base_seconds", 7.0)
        monkeypatch.setattr(settings.YAHOO, "backoff_cap_seconds", 45.0)
        monkeypatch.setattr(settings.FETCHER, "max_rate_limit_retries", 2)

        config = GovernorConfig.from_settings(concurrency=2, delay_ms=250)

        assert (config.concurrency, config.delay_ms) == (2, 250)
        assert config.backoff_base_seconds == 7.0
        assert config.backoff_cap_seconds == 45.0
        assert config.max_rate_limit_retries == 2

    def test_invalid_override_rejected(self):
        with pytest.raises(ConfigurationError):
            GovernorConfig.from_settings(concurrency=0)
