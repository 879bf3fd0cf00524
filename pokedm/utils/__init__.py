"""
Shared utilities: logging setup and time helpers
"""
