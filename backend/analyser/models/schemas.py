"""
SQLAlchemy database models
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean
from sqlalchemy.sql import func

from analyser.models.database import Base


class StockAnalysisRecord(Base):
    """Latest technical analysis per symbol (one row per symbol, upserted)"""
    __tablename__ = "stock_analysis"

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(16), unique=True, index=True, nullable=False)
    price = Column(Float, nullable=False)
    price_change = Column(Float)
    price_change_percent = Column(Float)
    rsi = Column(Float)
    sma_20 = Column(Float)
    sma_50 = Column(Float)
    macd_line = Column(Float)
    macd_signal = Column(Float)
    macd_histogram = Column(Float)
    volume = Column(Float)
    market_cap = Column(Float, index=True)
    is_oversold = Column(Boolean, default=False)
    is_overbought = Column(Boolean, default=False)
    analyzed_at = Column(DateTime(timezone=True), index=True, nullable=False)  # stored as UTC
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
