"""
Backend BlockScan — recent-block ingestion for Solana-compatible chains.

Scans a window of recent slots over JSON-RPC, normalizes transactions into
canonical flat records, classifies instructions into transfer events, and
writes the filtered result to a sink (JSON file or SQLite).
"""

__version__ = "0.1.0"
