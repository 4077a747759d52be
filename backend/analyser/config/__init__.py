"""
Configuration module
"""
from analyser.config.settings import settings, Settings

__all__ = [
    "settings",
    "Settings",
]
