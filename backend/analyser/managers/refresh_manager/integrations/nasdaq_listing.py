"""NASDAQ Symbol Listing

Lists the symbol universe from the NASDAQ stock screener, largest market
cap first. Callers fall back to a previous listing or FALLBACK_SYMBOLS
when this raises.
"""
from __future__ import annotations

from typing import List, Optional

import httpx

from analyser.config import settings
from analyser.core.exceptions import UpstreamListingError
from analyser.logger import logger
from analyser.models.market import ListedSymbol

# Large caps used when the screener is unavailable and nothing was listed before
FALLBACK_SYMBOLS = [
    "AAPL", "MSFT", "GOOGL", "AMZN", "NVDA", "META", "TSLA", "BRK-B",
    "JPM", "JNJ", "V", "PG", "UNH", "HD", "MA", "DIS", "PYPL", "NFLX",
    "ADBE", "CRM", "CSCO", "INTC", "PFE", "VZ", "KO", "NKE", "MRK",
    "T", "PEP", "ABT", "TMO", "COST", "AVGO", "ACN", "DHR", "TXN",
    "NEE", "LLY", "MDT", "ORCL", "WMT", "HON", "PM", "UNP", "BMY",
    "QCOM", "C", "LOW", "UPS", "RTX", "BA", "AMGN", "IBM", "SBUX",
    "CAT", "GE", "AMD", "GILD", "CVS", "MMM", "MO", "USB", "TGT",
]

_NASDAQ_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://www.nasdaq.com",
    "Referer": "https://www.nasdaq.com/",
}


def parse_market_cap(value: Optional[str]) -> Optional[float]:
    """Parse a screener market cap such as "$1,234,567,890".

    Returns None for blank, zero or unparsable values.
    """
    if value is None:
        return None
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    if not cleaned or cleaned == "0":
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def fallback_listing() -> List[ListedSymbol]:
    return [ListedSymbol(symbol=symbol) for symbol in FALLBACK_SYMBOLS]


class NasdaqSymbolLister:
    """Fetches the listed stock universe from the NASDAQ screener."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        screener_url: Optional[str] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": settings.YAHOO.user_agent, **_NASDAQ_HEADERS},
            timeout=settings.NASDAQ.request_timeout_seconds,
        )
        self._screener_url = screener_url or settings.NASDAQ.screener_url

    async def list_symbols(self) -> List[ListedSymbol]:
        """Symbols with a known market cap, sorted by market cap descending.

        Raises:
            UpstreamListingError: On any transport, status or format problem
        """
        try:
            response = await self._client.get(self._screener_url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise UpstreamListingError(f"NASDAQ screener request failed: {e}") from e
        except ValueError as e:
            raise UpstreamListingError(f"NASDAQ screener returned invalid JSON: {e}") from e

        try:
            rows = payload["data"]["table"]["rows"]
        except (KeyError, TypeError) as e:
            raise UpstreamListingError("NASDAQ screener response has no table rows") from e
        if not isinstance(rows, list):
            raise UpstreamListingError("NASDAQ screener table rows are not a list")
        if not rows:
            raise UpstreamListingError("NASDAQ screener returned no rows")

        listed = []
        for row in rows:
            if not isinstance(row, dict) or not isinstance(row.get("symbol"), str):
                continue
            symbol = row["symbol"].strip().upper()
            market_cap = parse_market_cap(row.get("marketCap"))
            if symbol and market_cap is not None:
                listed.append(ListedSymbol(symbol=symbol, market_cap=market_cap))

        skipped = len(rows) - len(listed)
        if not listed:
            raise UpstreamListingError(f"NASDAQ screener returned no usable rows ({skipped} skipped)")

        listed.sort(key=lambda item: item.market_cap, reverse=True)
        logger.info(f"Listed {len(listed)} stocks from NASDAQ screener ({skipped} rows skipped)")
        return listed

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
