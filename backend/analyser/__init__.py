"""
Auto Stock Analyser backend
"""
__version__ = "2.0.0"
