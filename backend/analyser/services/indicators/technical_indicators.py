"""
Technical Indicators Calculator
Calculates RSI, moving averages and MACD from a daily price series
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd

from analyser.logger import logger
from analyser.models.market import MACDIndicator, PricePoint, StockAnalysis

RSI_PERIOD = 14
OVERSOLD_THRESHOLD = 30.0
OVERBOUGHT_THRESHOLD = 70.0


@dataclass(frozen=True)
class IndicatorSet:
    """Indicators for the latest bar of a series"""
    rsi: Optional[float] = None
    sma_20: Optional[float] = None
    sma_50: Optional[float] = None
    macd: Optional[MACDIndicator] = None


def _closes(prices: Sequence[PricePoint]) -> pd.Series:
    return pd.Series([p.close for p in prices], dtype="float64")


def calculate_sma(prices: Sequence[PricePoint], period: int) -> Optional[float]:
    """Simple moving average of the last `period` closes"""
    if len(prices) < period:
        return None
    return float(_closes(prices).rolling(window=period).mean().iloc[-1])


def calculate_ema(prices: Sequence[PricePoint], period: int) -> Optional[float]:
    """Exponential moving average of closes"""
    if len(prices) < period:
        return None
    return float(_closes(prices).ewm(span=period, adjust=False).mean().iloc[-1])


def calculate_rsi(prices: Sequence[PricePoint], period: int = RSI_PERIOD) -> Optional[float]:
    """
    RSI with Wilder's smoothing

    The first average gain/loss is the simple mean over the first `period`
    changes; every later change is folded in as
    (previous_avg * (period - 1) + current) / period.
    """
    if len(prices) < period + 1:
        return None

    changes = _closes(prices).diff().dropna().tolist()
    gains = [max(change, 0.0) for change in changes]
    losses = [max(-change, 0.0) for change in changes]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0.0:
        return 50.0 if avg_gain == 0.0 else 100.0
    if avg_gain == 0.0:
        return 0.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def calculate_macd(
    prices: Sequence[PricePoint],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Optional[MACDIndicator]:
    """MACD line, EMA signal line and histogram"""
    if len(prices) < slow:
        return None

    closes = _closes(prices)
    macd_series = (
        closes.ewm(span=fast, adjust=False).mean()
        - closes.ewm(span=slow, adjust=False).mean()
    )
    signal_series = macd_series.ewm(span=signal, adjust=False).mean()

    macd_line = float(macd_series.iloc[-1])
    signal_line = float(signal_series.iloc[-1])
    return MACDIndicator(
        macd_line=macd_line,
        signal_line=signal_line,
        histogram=macd_line - signal_line,
    )


def is_oversold(rsi: Optional[float]) -> bool:
    return rsi is not None and rsi < OVERSOLD_THRESHOLD


def is_overbought(rsi: Optional[float]) -> bool:
    return rsi is not None and rsi > OVERBOUGHT_THRESHOLD


def compute_indicators(prices: Sequence[PricePoint]) -> IndicatorSet:
    """Pure indicator computation for one symbol's series"""
    return IndicatorSet(
        rsi=calculate_rsi(prices, RSI_PERIOD),
        sma_20=calculate_sma(prices, 20),
        sma_50=calculate_sma(prices, 50),
        macd=calculate_macd(prices),
    )


def build_stock_analysis(
    symbol: str,
    prices: List[PricePoint],
    analyzed_at: datetime,
    market_cap: Optional[float] = None,
) -> StockAnalysis:
    """
    Build the persisted analysis record from a fetched series

    Args:
        symbol: Stock symbol
        prices: Non-empty series ordered oldest first
        analyzed_at: Time stamped on the record
        market_cap: Market cap from the symbol listing, when known

    Raises:
        ValueError: If prices is empty
    """
    if not prices:
        raise ValueError(f"No prices to analyze for {symbol}")

    indicators = compute_indicators(prices)
    latest = prices[-1]

    price_change = None
    price_change_percent = None
    if len(prices) >= 2:
        previous = prices[-2]
        # A previous day without volume is stale data
        if previous.close > 0 and previous.volume > 0:
            price_change = latest.close - previous.close
            price_change_percent = price_change / previous.close * 100.0
        else:
            logger.debug(f"Skipping price change for {symbol}: previous day had no volume")

    return StockAnalysis(
        symbol=symbol,
        price=latest.close,
        price_change=price_change,
        price_change_percent=price_change_percent,
        rsi=indicators.rsi,
        sma_20=indicators.sma_20,
        sma_50=indicators.sma_50,
        macd=indicators.macd,
        volume=latest.volume,
        market_cap=market_cap,
        is_oversold=is_oversold(indicators.rsi),
        is_overbought=is_overbought(indicators.rsi),
        analyzed_at=analyzed_at,
    )
