"""
Utility modules for Domain Health Monitor: logging setup, time helpers
and input validators.
"""
