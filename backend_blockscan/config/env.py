"""
Environment variable loading for BlockScan.

- SOLANA_NETWORK: mainnet | devnet | testnet | sonic-testnet (default: mainnet)
- SOLANA_RPC_URL: RPC endpoint; overrides the network default
- HELIUS_API_KEY: Helius API key (fallback for RPC URL on mainnet/devnet)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is backend_blockscan/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_ROOT = _CONFIG_DIR.parent.parent
_ENV_PATH = _ROOT / ".env"

NETWORK_RPC_URLS = {
    "mainnet": "https://api.mainnet-beta.solana.com",
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "sonic-testnet": "https://api.testnet.sonic.game",
}
HELIUS_URL_TEMPLATES = {
    "mainnet": "https://mainnet.helius-rpc.com/?api-key={key}",
    "devnet": "https://devnet.helius-rpc.com/?api-key={key}",
}
DEFAULT_NETWORK = "mainnet"


def load_blockscan_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH, override=False)


def get_solana_network() -> str:
    """
    Return SOLANA_NETWORK from env, normalized to a key of NETWORK_RPC_URLS.
    Unknown values fall back to mainnet.
    """
    load_blockscan_env()
    raw = (os.getenv("SOLANA_NETWORK") or os.getenv("SOLANA_CLUSTER") or DEFAULT_NETWORK).strip().lower()
    if raw == "mainnet-beta":
        return "mainnet"
    if raw in NETWORK_RPC_URLS:
        return raw
    return DEFAULT_NETWORK


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY (network-specific) > network default.
    """
    load_blockscan_env()
    url = (os.getenv("SOLANA_RPC_URL") or "").strip()
    if url:
        return url
    network = get_solana_network()
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key and network in HELIUS_URL_TEMPLATES:
        return HELIUS_URL_TEMPLATES[network].format(key=key)
    return NETWORK_RPC_URLS[network]


def mask_rpc_url(url: str) -> str:
    """Hide API keys embedded in an RPC URL before logging it."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
