"""
🔄 RefreshManager Module

Keeps stored stock analyses fresh against rate-limited upstreams.

Responsibilities:
- Yahoo Finance session crumb (single-flight refresh)
- Per-symbol fetch with retry and backoff
- Bounded, staggered concurrency with streaming results
- Skipping recently analyzed symbols
- Refresh cycles with observable progress
- Short-lived result cache in front of the store
"""

from analyser.managers.refresh_manager.api import (
    RefreshManager,
    get_refresh_manager,
    reset_refresh_manager,
    set_refresh_manager,
)
from analyser.managers.refresh_manager.backoff import backoff_delay
from analyser.managers.refresh_manager.governor import (
    ConcurrencyGovernor,
    GovernorConfig,
    StreamingBatch,
)
from analyser.managers.refresh_manager.orchestrator import BatchOrchestrator, CycleSummary
from analyser.managers.refresh_manager.outcomes import (
    BatchReport,
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    RefreshDecision,
    SessionCredential,
)
from analyser.managers.refresh_manager.result_cache import ResultCache
from analyser.managers.refresh_manager.staleness import StalenessGate
from analyser.managers.refresh_manager.time_provider import (
    TimeProvider,
    get_time_provider,
    reset_time_provider,
)

__all__ = [
    'RefreshManager',
    'get_refresh_manager',
    'reset_refresh_manager',
    'set_refresh_manager',
    'backoff_delay',
    'ConcurrencyGovernor',
    'GovernorConfig',
    'StreamingBatch',
    'BatchOrchestrator',
    'CycleSummary',
    'BatchReport',
    'FetchFailure',
    'FetchOutcome',
    'FetchSuccess',
    'RefreshDecision',
    'SessionCredential',
    'ResultCache',
    'StalenessGate',
    'TimeProvider',
    'get_time_provider',
    'reset_time_provider',
]
