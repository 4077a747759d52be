"""Result Cache

Short-lived in-memory cache in front of the durable store, with two
independent spaces:

- STOCK: one StockAnalysis per symbol (ttl = CACHE__TTL_SECONDS)
- LIST: list query results keyed by query (ttl = half the stock ttl,
  since they depend on the whole, more volatile, symbol set)

Both spaces are cachetools.TTLCache instances, so an entry is never served
at or past its expiry and capacity overflow evicts least recently used
entries. A lock guards both because API handlers may run in a thread pool.
"""
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional

from cachetools import TTLCache

from analyser.config import settings
from analyser.core.enums import CacheKind
from analyser.logger import logger
from analyser.models.market import StockAnalysis, normalize_symbol


class ResultCache:
    """Two TTL cache spaces behind one lock."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        stock_max_entries: Optional[int] = None,
        list_max_entries: Optional[int] = None,
        list_ttl_seconds: Optional[float] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        stock_ttl = ttl_seconds if ttl_seconds is not None else settings.CACHE.ttl_seconds
        list_ttl = list_ttl_seconds if list_ttl_seconds is not None else stock_ttl / 2
        self._spaces: Dict[CacheKind, TTLCache] = {
            CacheKind.STOCK: TTLCache(
                maxsize=stock_max_entries or settings.CACHE.stock_max_entries,
                ttl=stock_ttl,
                timer=timer,
            ),
            CacheKind.LIST: TTLCache(
                maxsize=list_max_entries or settings.CACHE.list_max_entries,
                ttl=list_ttl,
                timer=timer,
            ),
        }
        self._lock = threading.Lock()

    def ttl(self, kind: CacheKind) -> float:
        return self._spaces[kind].ttl

    def get(self, kind: CacheKind, key: Hashable) -> Optional[Any]:
        with self._lock:
            return self._spaces[kind].get(key)

    def set(self, kind: CacheKind, key: Hashable, value: Any) -> None:
        with self._lock:
            self._spaces[kind][key] = value

    def invalidate(self, kind: CacheKind, key: Hashable) -> None:
        with self._lock:
            self._spaces[kind].pop(key, None)

    def invalidate_all_of_kind(self, kind: CacheKind) -> int:
        """Drop every entry of one space. Returns how many were dropped."""
        with self._lock:
            space = self._spaces[kind]
            space.expire()
            count = len(space)
            space.clear()
        logger.debug(f"Invalidated {count} {kind.value} cache entries")
        return count

    def size(self, kind: CacheKind) -> int:
        with self._lock:
            space = self._spaces[kind]
            space.expire()
            return len(space)

    # Typed helpers

    def get_stock(self, symbol: str) -> Optional[StockAnalysis]:
        return self.get(CacheKind.STOCK, normalize_symbol(symbol))

    def set_stock(self, analysis: StockAnalysis) -> None:
        self.set(CacheKind.STOCK, normalize_symbol(analysis.symbol), analysis)

    def invalidate_stock(self, symbol: str) -> None:
        self.invalidate(CacheKind.STOCK, normalize_symbol(symbol))

    def get_list(self, query_key: Hashable) -> Optional[List[StockAnalysis]]:
        return self.get(CacheKind.LIST, query_key)

    def set_list(self, query_key: Hashable, analyses: List[StockAnalysis]) -> None:
        self.set(CacheKind.LIST, query_key, list(analyses))
