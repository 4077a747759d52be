"""
Technical indicator calculations
"""
from analyser.services.indicators.technical_indicators import (
    IndicatorSet,
    build_stock_analysis,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    compute_indicators,
    is_overbought,
    is_oversold,
)

__all__ = [
    "IndicatorSet",
    "build_stock_analysis",
    "calculate_ema",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "compute_indicators",
    "is_overbought",
    "is_oversold",
]
