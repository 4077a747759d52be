"""Test Fixtures Package

Provides reusable test fixtures for all test modules.

Fixtures:
- clock: FakeTimeProvider / FakeTimer for TTL, staleness and backoff tests
- upstream: Yahoo MockTransport stub, scripted fetcher and lister
- database: Per-test SQLite database and AnalysisRepository
"""

from tests.fixtures.clock import FakeTimeProvider, FakeTimer, START
from tests.fixtures.upstream import (
    FakeLister,
    ScriptedFetcher,
    YahooStub,
    chart_payload,
    make_prices,
)

__all__ = [
    # Clock
    "FakeTimeProvider",
    "FakeTimer",
    "START",
    # Upstreams
    "FakeLister",
    "ScriptedFetcher",
    "YahooStub",
    "chart_payload",
    "make_prices",
]
