"""
Solana block access and decoding.

Fetches raw blocks over JSON-RPC, normalizes transactions into canonical
records, and classifies instructions into transfer events.
"""

from backend_blockscan.solana_listener.block_source import (
    BlockSource,
    SolanaRpcBlockSource,
)
from backend_blockscan.solana_listener.classifier import classify
from backend_blockscan.solana_listener.models import (
    BlockFetch,
    CanonicalTransactionRecord,
    ClassifiedInstruction,
    EventType,
    ParsedInstructionRecord,
    RawBlock,
)
from backend_blockscan.solana_listener.normalizer import normalize, parse_instructions

__all__ = [
    "BlockFetch",
    "BlockSource",
    "CanonicalTransactionRecord",
    "ClassifiedInstruction",
    "EventType",
    "ParsedInstructionRecord",
    "RawBlock",
    "SolanaRpcBlockSource",
    "classify",
    "normalize",
    "parse_instructions",
]
