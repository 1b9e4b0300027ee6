"""
Configuration management for Backend BlockScan.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for all run configuration.
"""

from backend_blockscan.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
