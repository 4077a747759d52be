"""
Core module - Fundamental types and exceptions.

This module contains:
- enums: Core enumerations (RefreshState, FailureKind, CacheKind)
- exceptions: Custom exception hierarchy
"""

from analyser.core.enums import RefreshState, FailureKind, CacheKind
from analyser.core.exceptions import (
    AnalyserError,
    ConfigurationError,
    InvalidSymbolError,
    RepositoryError,
    UpstreamError,
    RateLimitedError,
    CredentialRejectedError,
    MalformedDataError,
    EmptyDataError,
    UpstreamNetworkError,
    SessionRefreshError,
    UpstreamListingError,
)

__all__ = [
    'RefreshState',
    'FailureKind',
    'CacheKind',
    'AnalyserError',
    'ConfigurationError',
    'InvalidSymbolError',
    'RepositoryError',
    'UpstreamError',
    'RateLimitedError',
    'CredentialRejectedError',
    'MalformedDataError',
    'EmptyDataError',
    'UpstreamNetworkError',
    'SessionRefreshError',
    'UpstreamListingError',
]
