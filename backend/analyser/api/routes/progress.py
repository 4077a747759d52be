"""
Refresh Progress API Routes
Read-only view of the running refresh cycle
"""
from fastapi import APIRouter, Depends

from analyser.managers import RefreshManager, get_refresh_manager
from analyser.models.market import ProgressSnapshot

router = APIRouter(prefix="/api/progress", tags=["Progress"])


@router.get("", response_model=ProgressSnapshot)
async def get_progress(manager: RefreshManager = Depends(get_refresh_manager)):
    """
    Current refresh pass: state, total symbols, completed, current symbol,
    errors and skipped count. Never blocks the pipeline.
    """
    return manager.get_progress()
