"""
Instruction classifier — program id + jsonParsed instruction to a tagged event.

Dispatch is a table keyed by program id. Each decoder looks at the RPC's
pre-parsed detail and returns a typed detail, or None when the shape does not
match; unmatched or unregistered instructions fall through to
UnknownInstruction with the base58-decoded payload. classify() never raises.
"""

from __future__ import annotations

from typing import Any, Callable

import base58

from backend_blockscan.blockscan_logging import get_logger
from backend_blockscan.solana_listener.models import (
    ClassifiedInstruction,
    EventType,
    InstructionDetail,
    NativeTransferDetail,
    RawInstructionData,
    TokenTransferDetail,
)

logger = get_logger(__name__)

# System Program (native SOL transfers)
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
# SPL Token Program (token transfers)
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

Decoder = Callable[[dict[str, Any]], "InstructionDetail | None"]


def decode_instruction_data(data: Any) -> bytes:
    """
    Decode the opaque base58 data field of an instruction.

    Missing data (parsed instructions carry none) decodes to b"".
    Raises ValueError when the payload is not valid base58.
    """
    if data is None or data == "":
        return b""
    if not isinstance(data, str):
        raise ValueError(f"instruction data must be a base58 string, got {type(data).__name__}")
    return base58.b58decode(data)


def _parsed_info(parsed: dict[str, Any]) -> dict[str, Any] | None:
    info = parsed.get("info")
    return info if isinstance(info, dict) else None


def _as_amount(raw: Any) -> int | None:
    """Accept int lamports or the decimal-string amounts jsonParsed uses for tokens."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        digits = raw.strip()
        # str.isdigit() also accepts superscripts and other non-ASCII digits
        if digits.isascii() and digits.isdigit():
            return int(digits)
    return None


def _decode_system_transfer(parsed: dict[str, Any]) -> NativeTransferDetail | None:
    """transfer / transferWithSeed: info.source, info.destination, info.lamports > 0."""
    info = _parsed_info(parsed)
    if info is None:
        return None
    lamports = _as_amount(info.get("lamports"))
    source, destination = info.get("source"), info.get("destination")
    if not lamports or lamports <= 0:
        return None
    if not isinstance(source, str) or not isinstance(destination, str):
        return None
    return NativeTransferDetail(source=source, destination=destination, amount=lamports)


def _decode_token_transfer(parsed: dict[str, Any]) -> TokenTransferDetail | None:
    """Only the plain "transfer" op; info.amount is a decimal string."""
    if parsed.get("type") != "transfer":
        return None
    info = _parsed_info(parsed)
    if info is None:
        return None
    amount = _as_amount(info.get("amount"))
    source, destination = info.get("source"), info.get("destination")
    if amount is None or not isinstance(source, str) or not isinstance(destination, str):
        return None
    return TokenTransferDetail(source=source, destination=destination, amount=amount)


DISPATCH_TABLE: dict[str, tuple[EventType, Decoder]] = {
    SYSTEM_PROGRAM_ID: (EventType.NATIVE_SOL_TRANSFER, _decode_system_transfer),
    TOKEN_PROGRAM_ID: (EventType.SPL_TOKEN_TRANSFER, _decode_token_transfer),
}


def _match_transfer(program_id: str, instruction: dict[str, Any]) -> ClassifiedInstruction | None:
    """Registered event for this instruction, or None when no decoder matches."""
    entry = DISPATCH_TABLE.get(program_id)
    parsed = instruction.get("parsed")
    if entry is None or not isinstance(parsed, dict):
        return None
    event_type, decoder = entry
    detail = decoder(parsed)
    if detail is None:
        return None
    return ClassifiedInstruction(event_type, detail)


def is_known_transfer(program_id: str, instruction: Any) -> bool:
    """Same decision as classify(...).is_known_transfer, without logging."""
    if not isinstance(instruction, dict):
        return False
    try:
        decode_instruction_data(instruction.get("data"))
    except ValueError:
        return False
    return _match_transfer(program_id, instruction) is not None


def classify(program_id: str, instruction: dict[str, Any]) -> ClassifiedInstruction:
    """
    Classify one instruction.

    Returns InvalidData (detail None) when the instruction is not an object or
    its opaque payload cannot be decoded, the registered event when the
    program's decoder matches, else UnknownInstruction carrying the decoded
    payload bytes.
    """
    if not isinstance(instruction, dict):
        logger.warning(
            "instruction_not_an_object",
            program_id=program_id,
            value_type=type(instruction).__name__,
        )
        return ClassifiedInstruction(EventType.INVALID_DATA, None)
    try:
        raw = decode_instruction_data(instruction.get("data"))
    except ValueError as e:
        logger.warning(
            "instruction_data_undecodable",
            program_id=program_id,
            error=str(e),
        )
        return ClassifiedInstruction(EventType.INVALID_DATA, None)

    matched = _match_transfer(program_id, instruction)
    if matched is not None:
        return matched
    return ClassifiedInstruction(EventType.UNKNOWN_INSTRUCTION, RawInstructionData(raw))
