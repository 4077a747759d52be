"""Time Provider

Single source of wall-clock time, monotonic time and sleeping for the
refresh pipeline. Components take a TimeProvider so tests can inject a
fake clock and run TTL, staleness and backoff logic without real sleeps.
"""
import asyncio
import time
from datetime import datetime, timezone
from typing import Optional


class TimeProvider:
    """Real clock backed by the system time and asyncio.sleep."""

    def now(self) -> datetime:
        """Current time (timezone-aware UTC)."""
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        """Seconds from an arbitrary origin, never going backwards."""
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


# Global singleton instance
_time_provider_instance: Optional[TimeProvider] = None


def get_time_provider() -> TimeProvider:
    """Get the shared TimeProvider, creating it on first use."""
    global _time_provider_instance
    if _time_provider_instance is None:
        _time_provider_instance = TimeProvider()
    return _time_provider_instance


def reset_time_provider() -> None:
    """Drop the shared instance (tests only)."""
    global _time_provider_instance
    _time_provider_instance = None
