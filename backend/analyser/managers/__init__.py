"""
Top-Level Module APIs

This package contains the management modules:
- RefreshManager: refresh pipeline (session, fetching, governor, gate,
  orchestrator, result cache)

All CLI and API interactions should go through get_refresh_manager().
"""

from analyser.managers.refresh_manager import (
    RefreshManager,
    get_refresh_manager,
    reset_refresh_manager,
)
from analyser.core.enums import RefreshState

__all__ = [
    'RefreshManager',
    'get_refresh_manager',
    'reset_refresh_manager',
    'RefreshState',
]
