"""
Core utilities shared across the block source, pipeline and CLI.
"""

from backend_blockscan.core.exceptions import (
    BlockscanError,
    BlockSourceError,
    ConfigError,
    SinkError,
)

__all__ = ["BlockscanError", "BlockSourceError", "ConfigError", "SinkError"]
