"""
Pure computation services
"""
