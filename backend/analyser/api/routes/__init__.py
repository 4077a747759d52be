"""
API Routes
"""
from analyser.api.routes import progress, stocks

__all__ = ["progress", "stocks"]
