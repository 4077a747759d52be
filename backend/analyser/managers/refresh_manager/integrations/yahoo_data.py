"""Yahoo Finance Data Integration

Fetches daily OHLCV series from the v8 chart endpoint and maps them into
PricePoint lists. fetch() never raises for upstream problems; every
symbol produces exactly one FetchSuccess or FetchFailure.
"""
from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from analyser.config import settings
from analyser.core.enums import FailureKind
from analyser.core.exceptions import (
    CredentialRejectedError,
    EmptyDataError,
    InvalidSymbolError,
    MalformedDataError,
    RateLimitedError,
    SessionRefreshError,
    UpstreamNetworkError,
)
from analyser.logger import logger
from analyser.managers.refresh_manager.backoff import backoff_delay
from analyser.managers.refresh_manager.integrations.yahoo_session import YahooSessionManager
from analyser.managers.refresh_manager.outcomes import (
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    SessionCredential,
)
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider
from analyser.models.market import PricePoint, normalize_symbol


def _column(values: Optional[List[Any]], index: int) -> Optional[float]:
    if not isinstance(values, list) or index >= len(values):
        return None
    value = values[index]
    return None if value is None else float(value)


def parse_chart_response(symbol: str, payload: Dict[str, Any]) -> List[PricePoint]:
    """Map a chart API payload to price points.

    The payload carries parallel arrays indexed like ``timestamp``. A point
    is kept only when open, high, low and close are all present at that
    index; a missing volume becomes 0.

    Raises:
        MalformedDataError: If the payload has an error or is missing arrays
        EmptyDataError: If no point survives filtering
    """
    chart = payload.get("chart") if isinstance(payload, dict) else None
    if not isinstance(chart, dict):
        raise MalformedDataError(f"No chart object for {symbol}", symbol)

    error = chart.get("error")
    if error:
        if isinstance(error, dict):
            detail = f"{error.get('code')} - {error.get('description')}"
        else:
            detail = str(error)
        raise MalformedDataError(f"Yahoo Finance error for {symbol}: {detail}", symbol)

    results = chart.get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise MalformedDataError(f"No data returned for {symbol}", symbol)
    result = results[0]

    timestamps = result.get("timestamp")
    if not isinstance(timestamps, list) or not timestamps:
        raise MalformedDataError(f"No timestamps for {symbol}", symbol)

    indicators = result.get("indicators")
    quotes = indicators.get("quote") if isinstance(indicators, dict) else None
    if not isinstance(quotes, list) or not quotes or not isinstance(quotes[0], dict):
        raise MalformedDataError(f"No quote data for {symbol}", symbol)
    quote = quotes[0]

    opens = quote.get("open")
    highs = quote.get("high")
    lows = quote.get("low")
    closes = quote.get("close")
    volumes = quote.get("volume")

    prices: List[PricePoint] = []
    for i, ts in enumerate(timestamps):
        try:
            open_, high, low, close = (
                _column(opens, i), _column(highs, i), _column(lows, i), _column(closes, i)
            )
            if open_ is None or high is None or low is None or close is None:
                continue
            prices.append(PricePoint(
                timestamp=datetime.fromtimestamp(int(ts), tz=timezone.utc),
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=_column(volumes, i) or 0.0,
            ))
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise MalformedDataError(f"Bad value at index {i} for {symbol}: {e}", symbol) from e

    if not prices:
        raise EmptyDataError(f"No valid price data for {symbol}", symbol)
    return prices


class YahooFetchWorker:
    """One unit of work: fetch one symbol's daily series."""

    def __init__(
        self,
        session: YahooSessionManager,
        chart_url: Optional[str] = None,
        network_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_cap_seconds: Optional[float] = None,
        time_provider: Optional[TimeProvider] = None,
        rng: Optional[random.Random] = None,
    ):
        self._session = session
        self._chart_url = (chart_url or settings.YAHOO.chart_url).rstrip("/")
        self._network_retries = (
            network_retries if network_retries is not None else settings.YAHOO.network_retries
        )
        self._backoff_base = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.YAHOO.backoff_base_seconds
        )
        self._backoff_cap = (
            backoff_cap_seconds if backoff_cap_seconds is not None else settings.YAHOO.backoff_cap_seconds
        )
        self._time = time_provider or get_time_provider()
        self._rng = rng

    async def fetch(self, symbol: str, lookback_days: int) -> FetchOutcome:
        """Fetch ``lookback_days`` of daily prices for ``symbol``.

        - 429: rate-limited failure, no retry here (the caller owns that policy)
        - 401/403: invalidate the crumb and retry once with a fresh one
        - network errors and 5xx: retried with backoff up to the retry budget
        - anything else: non-retryable failure for this pass
        """
        try:
            symbol = normalize_symbol(symbol)
        except InvalidSymbolError as e:
            return FetchFailure(symbol=str(symbol), kind=FailureKind.MALFORMED, error=str(e))

        credential_retried = False
        network_attempt = 0

        while True:
            try:
                prices = await self._fetch_once(symbol, lookback_days)
                logger.debug(f"Fetched {len(prices)} prices for {symbol}")
                return FetchSuccess(symbol=symbol, prices=prices)

            except RateLimitedError as e:
                logger.warning(f"Rate limited: {symbol}")
                return FetchFailure(symbol, FailureKind.RATE_LIMITED, str(e), is_rate_limited=True)

            except CredentialRejectedError as e:
                if credential_retried:
                    logger.warning(f"Crumb rejected twice for {symbol}")
                    return FetchFailure(symbol, FailureKind.CREDENTIAL_REJECTED, str(e))
                credential_retried = True
                logger.info(f"Crumb rejected for {symbol}, retrying with a fresh one")

            except SessionRefreshError as e:
                logger.warning(f"No Yahoo session for {symbol}: {e}")
                return FetchFailure(symbol, FailureKind.SESSION, str(e))

            except UpstreamNetworkError as e:
                if network_attempt >= self._network_retries:
                    logger.warning(f"Failed {symbol} after {network_attempt + 1} attempts: {e}")
                    return FetchFailure(symbol, FailureKind.NETWORK, str(e))
                delay = backoff_delay(network_attempt, self._backoff_base, self._backoff_cap, self._rng)
                network_attempt += 1
                logger.debug(f"Retry {network_attempt} for {symbol} in {delay:.1f}s: {e}")
                await self._time.sleep(delay)

            except EmptyDataError as e:
                logger.warning(f"Failed {symbol}: {e}")
                return FetchFailure(symbol, FailureKind.EMPTY_DATA, str(e))

            except MalformedDataError as e:
                logger.warning(f"Failed {symbol}: {e}")
                return FetchFailure(symbol, FailureKind.MALFORMED, str(e))

    async def _fetch_once(self, symbol: str, lookback_days: int) -> List[PricePoint]:
        credential = await self._session.get_valid_credential()
        response = await self._request(symbol, lookback_days, credential)

        if response.status_code == 429:
            raise RateLimitedError("Rate limited by Yahoo Finance (429)", symbol)
        if response.status_code in (401, 403):
            self._session.invalidate(credential)
            raise CredentialRejectedError(
                f"Yahoo Finance rejected the crumb ({response.status_code})", symbol
            )
        if response.status_code >= 500:
            raise UpstreamNetworkError(f"Yahoo Finance returned status {response.status_code}", symbol)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedDataError(f"Failed to parse JSON for {symbol}: {e}", symbol) from e

        if not response.is_success and not (isinstance(payload, dict) and payload.get("chart")):
            raise MalformedDataError(f"Yahoo Finance returned status {response.status_code}", symbol)
        return parse_chart_response(symbol, payload)

    async def _request(
        self, symbol: str, lookback_days: int, credential: SessionCredential
    ) -> httpx.Response:
        params = {
            "interval": "1d",
            "range": f"{lookback_days}d",
            "crumb": credential.token,
        }
        try:
            return await self._session.client.get(f"{self._chart_url}/{symbol}", params=params)
        except httpx.HTTPError as e:
            raise UpstreamNetworkError(f"HTTP request failed for {symbol}: {e}", symbol) from e
