"""
Data models for the block pipeline.

- RawBlock / BlockFetch: what the block source hands to the pipeline.
- CanonicalTransactionRecord: one flat row per transaction.
- ParsedInstructionRecord: one row per top-level instruction.
- EventType and the detail variants produced by the instruction classifier.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union


class EventType(str, enum.Enum):
    """Semantic classification of one instruction."""

    NATIVE_SOL_TRANSFER = "NativeSOLTransfer"
    SPL_TOKEN_TRANSFER = "SPLTokenTransfer"
    UNKNOWN_INSTRUCTION = "UnknownInstruction"
    INVALID_DATA = "InvalidData"


KNOWN_TRANSFER_EVENTS = frozenset(
    {EventType.NATIVE_SOL_TRANSFER, EventType.SPL_TOKEN_TRANSFER}
)


@dataclass(frozen=True)
class NativeTransferDetail:
    """System Program transfer of lamports."""

    source: str
    destination: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "destination": self.destination, "amount": self.amount}


@dataclass(frozen=True)
class TokenTransferDetail:
    """SPL Token Program transfer between token accounts (amount in base units)."""

    source: str
    destination: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "destination": self.destination, "amount": self.amount}


@dataclass(frozen=True)
class RawInstructionData:
    """Catch-all: base58-decoded instruction payload of an unrecognized instruction."""

    data: bytes

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data}


InstructionDetail = Union[NativeTransferDetail, TokenTransferDetail, RawInstructionData]


@dataclass(frozen=True)
class ClassifiedInstruction:
    """Tagged classifier result; detail is None only for InvalidData."""

    event_type: EventType
    detail: InstructionDetail | None

    @property
    def is_known_transfer(self) -> bool:
        return self.event_type in KNOWN_TRANSFER_EVENTS


@dataclass(frozen=True)
class RawBlock:
    """
    One block as returned by getBlock, reduced to what the pipeline reads.

    transactions keep the RPC's jsonParsed shape ({"transaction": ..., "meta": ...}).
    """

    slot: int
    blockhash: str
    block_time: int | None
    transactions: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_rpc_result(cls, slot: int, result: dict[str, Any]) -> "RawBlock":
        """Build from a getBlock result object."""
        block_time = result.get("blockTime")
        return cls(
            slot=slot,
            blockhash=str(result.get("blockhash") or ""),
            block_time=int(block_time) if block_time is not None else None,
            transactions=list(result.get("transactions") or []),
        )


class FetchStatus(str, enum.Enum):
    AVAILABLE = "available"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class BlockFetch:
    """
    Outcome of fetching one slot. The pipeline treats MISSING and FAILED
    identically (skip the slot); the distinction is kept for logging.
    """

    slot: int
    status: FetchStatus
    block: RawBlock | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.status is FetchStatus.AVAILABLE and self.block is not None

    @classmethod
    def ok(cls, block: RawBlock) -> "BlockFetch":
        return cls(slot=block.slot, status=FetchStatus.AVAILABLE, block=block)

    @classmethod
    def missing(cls, slot: int, error: str | None = None) -> "BlockFetch":
        return cls(slot=slot, status=FetchStatus.MISSING, error=error)

    @classmethod
    def failed(cls, slot: int, error: str) -> "BlockFetch":
        return cls(slot=slot, status=FetchStatus.FAILED, error=error)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CanonicalTransactionRecord:
    """
    Network-agnostic flat transaction row.

    Fields with no Solana analogue (nonce, gas pricing, contract address) are
    kept with neutral values so the record shape matches EVM-style exports.
    """

    hash: str
    block_number: int
    block_hash: str
    block_timestamp: int
    transaction_index: int
    from_address: str
    to_address: str
    value: int
    """Net lamport gain of the second account key; never negative."""
    fee: int
    """Network fee in lamports; used in place of gas."""
    status: int
    """1 if meta.err is null, else 0."""
    instructions_payload: str
    """JSON-encoded instruction list, for auditability."""
    source: str
    created_at: str = field(default_factory=_utc_now_iso)
    nonce: int | None = None
    gas: int = 0
    gas_price: int = 0
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    transaction_type: int | None = None
    receipt_contract_address: str | None = None

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(f"value must be non-negative, got {self.value}")
        if self.transaction_index < 0:
            raise ValueError(f"transaction_index must be non-negative, got {self.transaction_index}")

    @property
    def instructions(self) -> list[dict[str, Any]]:
        """Instruction list decoded back from instructions_payload."""
        return json.loads(self.instructions_payload) if self.instructions_payload else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "nonce": self.nonce,
            "block_hash": self.block_hash,
            "block_number": self.block_number,
            "block_timestamp": self.block_timestamp,
            "transaction_index": self.transaction_index,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": self.value,
            "fee": self.fee,
            "gas": self.gas,
            "gas_price": self.gas_price,
            "max_fee_per_gas": self.max_fee_per_gas,
            "max_priority_fee_per_gas": self.max_priority_fee_per_gas,
            "transaction_type": self.transaction_type,
            "receipt_contract_address": self.receipt_contract_address,
            "status": self.status,
            "instructions_payload": self.instructions_payload,
            "source": self.source,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class ParsedInstructionRecord:
    """One classified top-level instruction of a transaction."""

    block_id: int
    tx_id: str
    signer: frozenset[str]
    program_id: str
    event_type: EventType
    decoded_instruction: InstructionDetail | None

    def to_dict(self) -> dict[str, Any]:
        detail = self.decoded_instruction
        return {
            "blockId": self.block_id,
            "txId": self.tx_id,
            "signer": sorted(self.signer),
            "programId": self.program_id,
            "eventType": self.event_type.value,
            "decodedInstruction": detail.to_dict() if detail is not None else None,
        }


PipelineRecord = Union[CanonicalTransactionRecord, ParsedInstructionRecord]
