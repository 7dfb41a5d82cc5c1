"""
Shared utilities: logging setup and runtime configuration.
"""
