"""
Analysis Repository
Database operations for per-symbol stock analyses
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from analyser.core.exceptions import RepositoryError
from analyser.logger import logger
from analyser.models.database import SessionLocal, get_db
from analyser.models.market import MACDIndicator, StockAnalysis, normalize_symbol
from analyser.models.schemas import StockAnalysisRecord


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_model(record: StockAnalysisRecord) -> StockAnalysis:
    macd = None
    if record.macd_line is not None:
        macd = MACDIndicator(
            macd_line=record.macd_line,
            signal_line=record.macd_signal,
            histogram=record.macd_histogram,
        )
    return StockAnalysis(
        symbol=record.symbol,
        price=record.price,
        price_change=record.price_change,
        price_change_percent=record.price_change_percent,
        rsi=record.rsi,
        sma_20=record.sma_20,
        sma_50=record.sma_50,
        macd=macd,
        volume=record.volume,
        market_cap=record.market_cap,
        is_oversold=bool(record.is_oversold),
        is_overbought=bool(record.is_overbought),
        analyzed_at=_as_utc(record.analyzed_at),
    )


def _to_row(analysis: StockAnalysis) -> dict:
    return {
        "symbol": normalize_symbol(analysis.symbol),
        "price": analysis.price,
        "price_change": analysis.price_change,
        "price_change_percent": analysis.price_change_percent,
        "rsi": analysis.rsi,
        "sma_20": analysis.sma_20,
        "sma_50": analysis.sma_50,
        "macd_line": analysis.macd.macd_line if analysis.macd else None,
        "macd_signal": analysis.macd.signal_line if analysis.macd else None,
        "macd_histogram": analysis.macd.histogram if analysis.macd else None,
        "volume": analysis.volume,
        "market_cap": analysis.market_cap,
        "is_oversold": analysis.is_oversold,
        "is_overbought": analysis.is_overbought,
        "analyzed_at": _as_utc(analysis.analyzed_at),
    }


class AnalysisRepository:
    """Repository for stock analysis operations

    Every method opens its own short transaction so it can be called from
    concurrent tasks without sharing a session.
    """

    def __init__(self, session_factory: async_sessionmaker = None):
        self._session_factory = session_factory or SessionLocal

    async def get_last_analyzed(self, symbol: str) -> Optional[datetime]:
        """
        Most recent analysis time for a symbol

        Args:
            symbol: Stock symbol

        Returns:
            UTC datetime, or None when the symbol has never been analyzed

        Raises:
            RepositoryError: If the lookup fails
        """
        query = select(StockAnalysisRecord.analyzed_at).where(
            StockAnalysisRecord.symbol == normalize_symbol(symbol)
        )
        try:
            async with get_db(self._session_factory) as session:
                result = await session.execute(query)
                return _as_utc(result.scalar_one_or_none())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to read last analysis time for {symbol}: {e}") from e

    async def upsert_analysis(self, analysis: StockAnalysis) -> None:
        """
        Insert or replace the analysis row for analysis.symbol

        Raises:
            RepositoryError: If the write fails
        """
        row = _to_row(analysis)
        stmt = insert(StockAnalysisRecord).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["symbol"],
            set_={key: stmt.excluded[key] for key in row if key != "symbol"},
        )
        try:
            async with get_db(self._session_factory) as session:
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to save analysis for {analysis.symbol}: {e}") from e

    async def get_analysis(self, symbol: str) -> Optional[StockAnalysis]:
        """Get the stored analysis for one symbol"""
        query = select(StockAnalysisRecord).where(
            StockAnalysisRecord.symbol == normalize_symbol(symbol)
        )
        try:
            async with get_db(self._session_factory) as session:
                result = await session.execute(query)
                record = result.scalar_one_or_none()
                return _to_model(record) if record else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to read analysis for {symbol}: {e}") from e

    async def list_analyses(self, limit: Optional[int] = None) -> List[StockAnalysis]:
        """
        Stored analyses ordered by market cap (largest first, unknown last)

        Args:
            limit: Maximum number of rows to return
        """
        query = select(StockAnalysisRecord).order_by(
            StockAnalysisRecord.market_cap.is_(None),
            StockAnalysisRecord.market_cap.desc(),
            StockAnalysisRecord.symbol.asc(),
        )
        if limit:
            query = query.limit(limit)
        try:
            async with get_db(self._session_factory) as session:
                result = await session.execute(query)
                return [_to_model(record) for record in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to list analyses: {e}") from e

    async def get_all_analyses(self) -> List[StockAnalysis]:
        """All stored analyses (used to warm the cache at startup)"""
        analyses = await self.list_analyses()
        logger.debug(f"Loaded {len(analyses)} analyses from database")
        return analyses
