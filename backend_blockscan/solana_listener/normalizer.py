"""
Transaction normalizer — raw getBlock transactions to canonical records.

Handles both accountKeys shapes (json: list of base58 strings; jsonParsed:
list of {pubkey, signer, ...}) and versioned transactions (meta.loadedAddresses).
A malformed transaction is logged and skipped; it never aborts the block.
"""

from __future__ import annotations

import json
from typing import Any, Iterator

from backend_blockscan.blockscan_logging import get_logger
from backend_blockscan.solana_listener.classifier import classify
from backend_blockscan.solana_listener.models import (
    CanonicalTransactionRecord,
    ParsedInstructionRecord,
)

logger = get_logger(__name__)

# Structural errors raised by field access on malformed RPC payloads
_MALFORMED_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError)


def _get_message_and_meta(raw_tx: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (transaction.message, meta); meta is {} when absent."""
    message = raw_tx["transaction"]["message"]
    if not isinstance(message, dict):
        raise TypeError("transaction.message is not an object")
    meta = raw_tx.get("meta")
    return message, meta if isinstance(meta, dict) else {}


def get_account_keys(message: dict[str, Any], meta: dict[str, Any] | None = None) -> list[str]:
    """
    Resolve accountKeys to a list of base58 strings (handles json vs jsonParsed).
    For versioned transactions, appends meta.loadedAddresses (writable + readonly).
    """
    keys = message.get("accountKeys") or []
    out = [k if isinstance(k, str) else k["pubkey"] for k in keys]
    loaded = (meta or {}).get("loadedAddresses") or {}
    for role in ("writable", "readonly"):
        out.extend(loaded.get(role) or [])
    return out


def get_signers(message: dict[str, Any]) -> frozenset[str]:
    """
    Signer addresses: jsonParsed flags each key; plain json relies on the
    first header.numRequiredSignatures keys.
    """
    keys = message.get("accountKeys") or []
    if keys and isinstance(keys[0], dict):
        return frozenset(k["pubkey"] for k in keys if k.get("signer"))
    num_required = int((message.get("header") or {}).get("numRequiredSignatures", 1))
    return frozenset(keys[:num_required])


def _program_id(account_keys: list[str], instruction: dict[str, Any]) -> str:
    """jsonParsed carries programId; json carries programIdIndex into accountKeys."""
    program_id = instruction.get("programId")
    if program_id:
        return str(program_id)
    return account_keys[int(instruction["programIdIndex"])]


def _balance_at(balances: list[int] | None, idx: int) -> int:
    if not balances or len(balances) <= idx:
        return 0
    return int(balances[idx])


def net_value(pre_balances: list[int] | None, post_balances: list[int] | None, idx: int = 1) -> int:
    """Lamports gained by account idx across the transaction, clipped at 0."""
    return max(0, _balance_at(post_balances, idx) - _balance_at(pre_balances, idx))


def _build_record(
    raw_tx: dict[str, Any],
    block_timestamp: int | None,
    block_number: int,
    block_hash: str,
    index: int,
    source: str,
) -> CanonicalTransactionRecord | None:
    message, meta = _get_message_and_meta(raw_tx)
    account_keys = get_account_keys(message, meta)
    if not account_keys:
        return None
    instructions = message.get("instructions") or []
    return CanonicalTransactionRecord(
        hash=str(raw_tx["transaction"]["signatures"][0]),
        block_number=block_number,
        block_hash=block_hash,
        block_timestamp=int(block_timestamp or 0),
        transaction_index=index,
        from_address=account_keys[0],
        to_address=account_keys[1] if len(account_keys) > 1 else "",
        value=net_value(meta.get("preBalances"), meta.get("postBalances")),
        fee=int(meta.get("fee") or 0),
        status=1 if meta.get("err") is None else 0,
        instructions_payload=json.dumps(instructions, separators=(",", ":"), default=str),
        source=source,
    )


def normalize(
    raw_tx: dict[str, Any],
    block_timestamp: int | None,
    block_number: int,
    block_hash: str,
    index: int,
    *,
    source: str = "",
) -> CanonicalTransactionRecord | None:
    """
    Convert one raw block transaction into a canonical record.

    Returns None for a transaction without account keys (dropped silently) or
    with an unexpected structure (logged, then dropped).
    """
    try:
        return _build_record(raw_tx, block_timestamp, block_number, block_hash, index, source)
    except _MALFORMED_ERRORS as e:
        logger.warning(
            "transaction_malformed",
            slot=block_number,
            transaction_index=index,
            error_type=type(e).__name__,
            error=str(e),
        )
        return None


def parse_instructions(raw_tx: dict[str, Any], block_number: int) -> Iterator[ParsedInstructionRecord]:
    """
    Yield one classified record per top-level instruction, in message order.

    A malformed transaction yields nothing; records are built up front so a
    failure part-way never emits a partial transaction.
    """
    try:
        message, meta = _get_message_and_meta(raw_tx)
        tx_id = str(raw_tx["transaction"]["signatures"][0])
        account_keys = get_account_keys(message, meta)
        signers = get_signers(message)
        records: list[ParsedInstructionRecord] = []
        for instruction in message.get("instructions") or []:
            program_id = _program_id(account_keys, instruction)
            classified = classify(program_id, instruction)
            records.append(
                ParsedInstructionRecord(
                    block_id=block_number,
                    tx_id=tx_id,
                    signer=signers,
                    program_id=program_id,
                    event_type=classified.event_type,
                    decoded_instruction=classified.detail,
                )
            )
    except _MALFORMED_ERRORS as e:
        logger.warning(
            "transaction_malformed",
            slot=block_number,
            error_type=type(e).__name__,
            error=str(e),
        )
        return
    yield from records
