"""
Database repositories
"""
from analyser.repositories.analysis_repository import AnalysisRepository

__all__ = ["AnalysisRepository"]
