"""
HTTP API
"""
