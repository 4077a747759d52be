"""
Custom exceptions for the stock analyser.

All custom exceptions are defined here for easy discovery and consistent
error handling. Inside the refresh pipeline upstream exceptions never escape
a fetch worker: they are turned into FetchFailure values at that boundary.
"""


class AnalyserError(Exception):
    """Base exception for all analyser errors."""
    pass


class ConfigurationError(AnalyserError):
    """Raised when there's an error in configuration."""
    pass


class InvalidSymbolError(AnalyserError, ValueError):
    """Raised when a ticker symbol is empty or blank."""
    pass


class RepositoryError(AnalyserError):
    """Raised when there's an error in database repository operations."""
    pass


class UpstreamError(AnalyserError):
    """Base class for failures talking to an upstream data provider."""

    def __init__(self, message: str, symbol: str | None = None):
        super().__init__(message)
        self.symbol = symbol


class RateLimitedError(UpstreamError):
    """Upstream answered 429. Retryable with backoff by the caller."""
    pass


class CredentialRejectedError(UpstreamError):
    """Upstream rejected the session token (401/403). Retryable once after refresh."""
    pass


class MalformedDataError(UpstreamError):
    """Upstream response could not be interpreted. Not retried this pass."""
    pass


class EmptyDataError(MalformedDataError):
    """Upstream response parsed but contained no usable price points."""
    pass


class UpstreamNetworkError(UpstreamError):
    """Transport failure or timeout. Retryable within the retry budget."""
    pass


class SessionRefreshError(UpstreamError):
    """The cookie/crumb handshake failed."""
    pass


class UpstreamListingError(UpstreamError):
    """The symbol universe could not be listed. Triggers the fallback list."""
    pass
