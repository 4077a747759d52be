"""
Market data models for the refresh pipeline and the query API
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from analyser.core.enums import RefreshState
from analyser.core.exceptions import InvalidSymbolError


def normalize_symbol(symbol: str) -> str:
    """Strip and upper-case a ticker. Blank symbols are rejected."""
    if symbol is None or not str(symbol).strip():
        raise InvalidSymbolError("Symbol must be a non-empty string")
    return str(symbol).strip().upper()


class PricePoint(BaseModel):
    """One trading-day OHLCV observation. Immutable once fetched."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(default=0.0, ge=0)


class MACDIndicator(BaseModel):
    """MACD line, signal line and histogram"""
    macd_line: float
    signal_line: float
    histogram: float


class ListedSymbol(BaseModel):
    """A symbol from the universe listing, with market cap when known."""
    symbol: str
    market_cap: Optional[float] = None


class StockAnalysis(BaseModel):
    """Derived analysis for one symbol, as persisted and served"""
    symbol: str
    price: float
    price_change: Optional[float] = None
    price_change_percent: Optional[float] = None
    rsi: Optional[float] = None
    sma_20: Optional[float] = None
    sma_50: Optional[float] = None
    macd: Optional[MACDIndicator] = None
    volume: Optional[float] = None
    market_cap: Optional[float] = None
    is_oversold: bool = False
    is_overbought: bool = False
    analyzed_at: datetime


class ProgressSnapshot(BaseModel):
    """Read-only view of the current refresh pass."""
    model_config = ConfigDict(frozen=True)

    state: RefreshState = RefreshState.IDLE
    total: int = 0
    completed: int = 0
    current_symbol: Optional[str] = None
    errors: int = 0
    skipped: int = 0
    cycle_start: Optional[datetime] = None


class PriceHistory(BaseModel):
    """Daily series for one symbol, oldest first"""
    symbol: str
    prices: List[PricePoint]
