"""
Structured logging for Backend BlockScan.

JSON logs with timestamp, level, event_type and keyword context.
Use get_logger() in every module.
"""

from backend_blockscan.blockscan_logging.logger import get_logger

__all__ = ["get_logger"]
