"""
Main entrypoint: scan the most recent Solana blocks and write normalized records.

Configuration comes from env / .env (SOLANA_RPC_URL, BLOCKSCAN_BLOCK_COUNT, ...)
and CLI flags; see backend_blockscan.cli for the full list.
"""

from backend_blockscan.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
