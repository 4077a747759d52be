"""
Database models and schemas
"""
from analyser.models.database import Base, engine, SessionLocal, get_db, init_db, close_db, create_engine_for
from analyser.models.schemas import StockAnalysisRecord
from analyser.models.market import (
    PricePoint,
    MACDIndicator,
    ListedSymbol,
    StockAnalysis,
    ProgressSnapshot,
    PriceHistory,
    normalize_symbol,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "close_db",
    "create_engine_for",
    "StockAnalysisRecord",
    "PricePoint",
    "MACDIndicator",
    "ListedSymbol",
    "StockAnalysis",
    "ProgressSnapshot",
    "PriceHistory",
    "normalize_symbol",
]
