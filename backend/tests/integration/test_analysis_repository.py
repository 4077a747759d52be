"""Integration tests for AnalysisRepository against SQLite."""
from datetime import timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from analyser.core.exceptions import RepositoryError
from analyser.models.database import create_engine_for
from analyser.models.market import MACDIndicator, StockAnalysis
from analyser.repositories.analysis_repository import AnalysisRepository
from tests.fixtures.clock import START


def analysis(symbol, price=100.0, market_cap=None, analyzed_at=START, **fields):
    return StockAnalysis(
        symbol=symbol,
        price=price,
        market_cap=market_cap,
        analyzed_at=analyzed_at,
        **fields,
    )


class TestUpsert:
    @pytest.mark.asyncio
    async def test_round_trip(self, repository):
        stored = analysis(
            "AAPL",
            rsi=25.0,
            sma_20=99.0,
            macd=MACDIndicator(macd_line=1.0, signal_line=0.5, histogram=0.5),
            is_oversold=True,
            market_cap=3e12,
        )

        await repository.upsert_analysis(stored)
        loaded = await repository.get_analysis("aapl")

        assert loaded == stored
        assert loaded.analyzed_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_upsert_replaces_row(self, repository):
        await repository.upsert_analysis(analysis("AAPL", price=100.0))
        later = START + timedelta(hours=2)
        await repository.upsert_analysis(analysis("AAPL", price=120.0, analyzed_at=later))

        loaded = await repository.get_analysis("AAPL")
        everything = await repository.get_all_analyses()

        assert loaded.price == 120.0
        assert loaded.macd is None
        assert len(everything) == 1
        assert await repository.get_last_analyzed("AAPL") == later

    @pytest.mark.asyncio
    async def test_symbol_normalized_on_write(self, repository):
        await repository.upsert_analysis(analysis(" msft "))

        assert await repository.get_analysis("MSFT") is not None


class TestQueries:
    @pytest.mark.asyncio
    async def test_never_analyzed(self, repository):
        assert await repository.get_last_analyzed("NOPE") is None
        assert await repository.get_analysis("NOPE") is None

    @pytest.mark.asyncio
    async def test_last_analyzed_is_utc(self, repository):
        await repository.upsert_analysis(analysis("AAPL"))

        last = await repository.get_last_analyzed("AAPL")

        assert last == START
        assert last.tzinfo == timezone.utc

    @pytest.mark.asyncio
    async def test_list_ordered_by_market_cap(self, repository):
        await repository.upsert_analysis(analysis("SMALL", market_cap=1e9))
        await repository.upsert_analysis(analysis("NOCAP"))
        await repository.upsert_analysis(analysis("BIG", market_cap=1e12))

        listed = await repository.list_analyses()
        limited = await repository.list_analyses(limit=2)

        assert [a.symbol for a in listed] == ["BIG", "SMALL", "NOCAP"]
        assert [a.symbol for a in limited] == ["BIG", "SMALL"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_schema_raises_repository_error(self, tmp_path):
        engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        repository = AnalysisRepository(async_sessionmaker(bind=engine, expire_on_commit=False))
        try:
            with pytest.raises(RepositoryError):
                await repository.get_last_analyzed("AAPL")
            with pytest.raises(RepositoryError):
                await repository.upsert_analysis(analysis("AAPL"))
            with pytest.raises(RepositoryError):
                await repository.list_analyses()
        finally:
            await engine.dispose()
