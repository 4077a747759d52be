"""
Stock Analysis API Routes
Cached lookups of stored analyses and live price history
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from analyser.core.enums import FailureKind
from analyser.core.exceptions import InvalidSymbolError, RepositoryError
from analyser.logger import logger
from analyser.managers import RefreshManager, get_refresh_manager
from analyser.managers.refresh_manager.outcomes import FetchSuccess
from analyser.models.market import PriceHistory, StockAnalysis

router = APIRouter(prefix="/api/stocks", tags=["Stocks"])

# Upstream failure -> HTTP status for live history lookups
_HISTORY_FAILURE_STATUS = {
    FailureKind.MALFORMED: status.HTTP_404_NOT_FOUND,
    FailureKind.EMPTY_DATA: status.HTTP_404_NOT_FOUND,
    FailureKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}


@router.get("", response_model=List[StockAnalysis])
async def list_stocks(
    limit: Optional[int] = Query(default=None, ge=1, le=10_000, description="Maximum rows"),
    manager: RefreshManager = Depends(get_refresh_manager),
):
    """
    Stored analyses, largest market cap first

    Served from the list cache, which is cleared after every refresh pass.
    """
    try:
        return await manager.list_stocks(limit=limit)
    except RepositoryError as e:
        logger.error(f"Failed to list stocks: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stock store unavailable",
        )


@router.get("/{symbol}", response_model=StockAnalysis)
async def get_stock(symbol: str, manager: RefreshManager = Depends(get_refresh_manager)):
    """Latest analysis for one symbol (cache, then store)"""
    try:
        analysis = await manager.get_stock(symbol)
    except InvalidSymbolError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RepositoryError as e:
        logger.error(f"Failed to read {symbol}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stock store unavailable",
        )

    if analysis is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No analysis for {symbol.upper()}",
        )
    return analysis


@router.get("/{symbol}/history", response_model=PriceHistory)
async def get_stock_history(
    symbol: str,
    days: Optional[int] = Query(default=None, ge=1, le=3650, description="Days of history (default FETCHER__LOOKBACK_DAYS)"),
    manager: RefreshManager = Depends(get_refresh_manager),
):
    """
    Daily OHLCV series fetched live from Yahoo Finance

    Unknown symbols and empty series answer 404, upstream rate limiting 429,
    any other upstream failure 502.
    """
    try:
        outcome = await manager.get_history(symbol, days=days)
    except InvalidSymbolError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if isinstance(outcome, FetchSuccess):
        return PriceHistory(symbol=outcome.symbol, prices=outcome.prices)

    logger.warning(f"History lookup failed for {outcome.symbol}: {outcome.kind.value} - {outcome.error}")
    raise HTTPException(
        status_code=_HISTORY_FAILURE_STATUS.get(outcome.kind, status.HTTP_502_BAD_GATEWAY),
        detail=outcome.error,
    )
