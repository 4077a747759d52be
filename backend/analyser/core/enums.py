"""
Core enumerations used throughout the system.

These enums are shared by the refresh pipeline, the API and the CLI and
should be imported from here.
"""

from enum import Enum


class RefreshState(Enum):
    """
    Batch orchestrator state.

    Values:
        IDLE: Created, no cycle started yet
        LISTING_SYMBOLS: Fetching the symbol universe
        GATING_STALENESS: Deciding which symbols need a refresh
        FETCHING: Fetch workers running, results being persisted
        PERSISTING: Pass finished, invalidating list caches
        CYCLING: Sleeping until the next cycle
        STOPPED: Loop terminated
    """
    IDLE = "idle"
    LISTING_SYMBOLS = "listing_symbols"
    GATING_STALENESS = "gating_staleness"
    FETCHING = "fetching"
    PERSISTING = "persisting"
    CYCLING = "cycling"
    STOPPED = "stopped"


class FailureKind(Enum):
    """Classification carried by a failed fetch outcome."""
    RATE_LIMITED = "rate_limited"
    CREDENTIAL_REJECTED = "credential_rejected"
    MALFORMED = "malformed"
    EMPTY_DATA = "empty_data"
    NETWORK = "network"
    SESSION = "session"
    UNEXPECTED = "unexpected"


class CacheKind(Enum):
    """Independent result cache spaces."""
    STOCK = "stock"
    LIST = "list"
