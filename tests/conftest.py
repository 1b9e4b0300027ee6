"""
Pytest fixtures for BlockScan tests: raw getBlock transaction builders and an
in-memory BlockSource double.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from backend_blockscan.solana_listener.models import BlockFetch, RawBlock

WALLET_A = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
WALLET_B = "So11111111111111111111111111111111111111112"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


def build_tx(
    signature: str,
    *,
    keys: list[str] | None = None,
    pre: list[int] | None = None,
    post: list[int] | None = None,
    fee: int | None = 5000,
    err: Any = None,
    instructions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """jsonParsed-style block transaction; first key is the only signer."""
    keys = [WALLET_A, WALLET_B, SYSTEM_PROGRAM] if keys is None else keys
    meta: dict[str, Any] = {"err": err, "preBalances": pre or [], "postBalances": post or []}
    if fee is not None:
        meta["fee"] = fee
    return {
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": [
                    {"pubkey": k, "signer": i == 0, "writable": i < 2, "source": "transaction"}
                    for i, k in enumerate(keys)
                ],
                "instructions": instructions or [],
            },
        },
        "meta": meta,
    }


def system_transfer(source: str, destination: str, lamports: int) -> dict[str, Any]:
    return {
        "program": "system",
        "programId": SYSTEM_PROGRAM,
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
        "stackHeight": None,
    }


def token_transfer(source: str, destination: str, amount: str, op: str = "transfer") -> dict[str, Any]:
    return {
        "program": "spl-token",
        "programId": TOKEN_PROGRAM,
        "parsed": {
            "type": op,
            "info": {"source": source, "destination": destination, "amount": amount, "authority": WALLET_A},
        },
        "stackHeight": None,
    }


class FakeBlockSource:
    """In-memory BlockSource; slots absent from `blocks` are reported missing."""

    def __init__(
        self,
        current_slot: int,
        blocks: dict[int, RawBlock],
        *,
        delays: dict[int, float] | None = None,
        on_fetch: Callable[[int], None] | None = None,
    ) -> None:
        self._current_slot = current_slot
        self._blocks = blocks
        self._delays = delays or {}
        self._on_fetch = on_fetch
        self.requested: list[int] = []
        self.slot_reads = 0

    async def __aenter__(self) -> "FakeBlockSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def current_slot(self) -> int:
        self.slot_reads += 1
        return self._current_slot

    async def block(self, slot: int) -> BlockFetch:
        self.requested.append(slot)
        if slot in self._delays:
            await asyncio.sleep(self._delays[slot])
        if self._on_fetch is not None:
            self._on_fetch(slot)
        block = self._blocks.get(slot)
        if block is None:
            return BlockFetch.missing(slot)
        return BlockFetch.ok(block)


@pytest.fixture
def make_tx():
    return build_tx


@pytest.fixture
def make_system_transfer():
    return system_transfer


@pytest.fixture
def make_token_transfer():
    return token_transfer


@pytest.fixture
def fake_source_cls():
    return FakeBlockSource


@pytest.fixture(autouse=True)
def clean_blockscan_env(monkeypatch):
    """Keep developer env vars from leaking into config-dependent tests."""
    for name in (
        "SOLANA_NETWORK",
        "SOLANA_CLUSTER",
        "SOLANA_RPC_URL",
        "HELIUS_API_KEY",
        "BLOCKSCAN_BLOCK_COUNT",
        "BLOCKSCAN_GRANULARITY",
        "BLOCKSCAN_FILTER",
        "BLOCKSCAN_SINK",
        "BLOCKSCAN_OUTPUT_DIR",
        "BLOCKSCAN_DB_PATH",
        "BLOCKSCAN_SOURCE_TAG",
        "BLOCKSCAN_CONCURRENCY",
        "BLOCKSCAN_REQUEST_TIMEOUT_SEC",
        "BLOCKSCAN_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)
