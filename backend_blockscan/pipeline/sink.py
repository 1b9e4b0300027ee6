"""
Result filter and sinks.

emit() runs a single order-preserving pass of a predicate over the records and
hands the survivors to a sink. Sinks either persist the whole sequence or
raise SinkError; a partially written output is never left behind.

JSON rendering: amount fields (value, fee, amount) and any integer outside the
IEEE-754 safe range are written as decimal strings; bytes are written as hex.
"""

from __future__ import annotations

import enum
import json
import os
import sqlite3
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from backend_blockscan.blockscan_logging import get_logger
from backend_blockscan.core.exceptions import SinkError
from backend_blockscan.solana_listener.classifier import is_known_transfer
from backend_blockscan.solana_listener.models import (
    KNOWN_TRANSFER_EVENTS,
    CanonicalTransactionRecord,
    ParsedInstructionRecord,
    PipelineRecord,
)

logger = get_logger(__name__)

Predicate = Callable[[PipelineRecord], bool]

MAX_SAFE_INTEGER = 2**53 - 1
AMOUNT_KEYS = frozenset({"value", "fee", "amount"})

# -----------------------------------------------------------------------------
# Predicates
# -----------------------------------------------------------------------------


def accept_all(record: PipelineRecord) -> bool:
    return True


def known_transfers_only(record: PipelineRecord) -> bool:
    """
    Instruction records: keep NativeSOLTransfer / SPLTokenTransfer.
    Transaction records: keep those with at least one such instruction.
    """
    if isinstance(record, ParsedInstructionRecord):
        return record.event_type in KNOWN_TRANSFER_EVENTS
    for ix in record.instructions:
        if isinstance(ix, dict) and is_known_transfer(str(ix.get("programId") or ""), ix):
            return True
    return False


FILTERS: dict[str, Predicate] = {
    "all": accept_all,
    "transfers": known_transfers_only,
}


def get_filter(name: str) -> Predicate:
    try:
        return FILTERS[name]
    except KeyError:
        raise ValueError(f"unknown filter {name!r}; expected one of {sorted(FILTERS)}") from None


def apply_filter(records: Iterable[PipelineRecord], predicate: Predicate) -> list[PipelineRecord]:
    """Single pass, order-preserving, no deduplication."""
    return [r for r in records if predicate(r)]


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def to_jsonable(value: Any, key: str | None = None) -> Any:
    """Convert record dicts to JSON-safe values (see module docstring for int rules)."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        if key in AMOUNT_KEYS or abs(value) > MAX_SAFE_INTEGER:
            return str(value)
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {k: to_jsonable(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return [to_jsonable(v) for v in sorted(value)]
    return value


def serialize_records(records: Sequence[PipelineRecord]) -> str:
    """Pretty-printed JSON array of record dicts."""
    return json.dumps([to_jsonable(r.to_dict()) for r in records], indent=2, ensure_ascii=False)


# -----------------------------------------------------------------------------
# Sinks
# -----------------------------------------------------------------------------


class Sink(ABC):
    """Destination for a filtered record sequence."""

    @abstractmethod
    def write(self, records: Sequence[PipelineRecord]) -> str:
        """Persist all records; return a description of the destination. Raise SinkError on failure."""


class JsonFileSink(Sink):
    """
    Writes one JSON document per run:
    <output_dir>/<prefix>_<source_tag>_<block_count>_blocks_<epoch_ms>.json

    The file appears only once fully written (temp file + fsync + os.replace).
    """

    def __init__(
        self,
        output_dir: Path | str,
        *,
        source_tag: str,
        block_count: int,
        prefix: str = "parsed_transactions",
    ) -> None:
        self._output_dir = Path(output_dir)
        self._source_tag = source_tag
        self._block_count = block_count
        self._prefix = prefix

    def output_path(self, now_ms: int | None = None) -> Path:
        ts = now_ms if now_ms is not None else int(time.time() * 1000)
        name = f"{self._prefix}_{self._source_tag}_{self._block_count}_blocks_{ts}.json"
        return self._output_dir / name

    def write(self, records: Sequence[PipelineRecord]) -> str:
        path = self.output_path()
        tmp_name: str | None = None
        replaced = False
        try:
            payload = serialize_records(records)
            self._output_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._output_dir,
                prefix=f".{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
            replaced = True
        except (OSError, ValueError) as e:
            raise SinkError(f"failed to write {path}: {e}", destination=str(path)) from e
        finally:
            if not replaced and tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.info("sink_json_written", path=str(path), records=len(records))
        return str(path)


SCHEMA_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    hash TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    block_hash TEXT NOT NULL,
    block_timestamp INTEGER NOT NULL,
    transaction_index INTEGER NOT NULL,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    value TEXT NOT NULL,
    fee TEXT NOT NULL,
    status INTEGER NOT NULL,
    instructions_payload TEXT,
    source TEXT,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS ix_transactions_block ON transactions(block_number);
CREATE INDEX IF NOT EXISTS ix_transactions_hash ON transactions(hash);
"""

SCHEMA_INSTRUCTIONS = """
CREATE TABLE IF NOT EXISTS instructions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    block_id INTEGER NOT NULL,
    tx_id TEXT NOT NULL,
    signer_json TEXT NOT NULL,
    program_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    decoded_json TEXT
);
CREATE INDEX IF NOT EXISTS ix_instructions_tx ON instructions(tx_id);
CREATE INDEX IF NOT EXISTS ix_instructions_event ON instructions(event_type);
"""


class SqliteSink(Sink):
    """
    Appends records to a SQLite database in a single transaction; on any
    error the transaction is rolled back and SinkError is raised.
    Amounts are stored as decimal TEXT to keep u64 precision.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _insert(conn: sqlite3.Connection, record: PipelineRecord) -> None:
        if isinstance(record, CanonicalTransactionRecord):
            conn.execute(
                "INSERT INTO transactions (hash, block_number, block_hash, block_timestamp, "
                "transaction_index, from_address, to_address, value, fee, status, "
                "instructions_payload, source, created_at) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)",
                (
                    record.hash,
                    record.block_number,
                    record.block_hash,
                    record.block_timestamp,
                    record.transaction_index,
                    record.from_address,
                    record.to_address,
                    str(record.value),
                    str(record.fee),
                    record.status,
                    record.instructions_payload,
                    record.source,
                    record.created_at,
                ),
            )
            return
        row = to_jsonable(record.to_dict())
        conn.execute(
            "INSERT INTO instructions (block_id, tx_id, signer_json, program_id, event_type, decoded_json) "
            "VALUES (?,?,?,?,?,?)",
            (
                record.block_id,
                record.tx_id,
                json.dumps(row["signer"]),
                record.program_id,
                row["eventType"],
                json.dumps(row["decodedInstruction"]) if row["decodedInstruction"] is not None else None,
            ),
        )

    def write(self, records: Sequence[PipelineRecord]) -> str:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise SinkError(f"cannot open {self._db_path}: {e}", destination=str(self._db_path)) from e
        try:
            conn.executescript(SCHEMA_TRANSACTIONS + SCHEMA_INSTRUCTIONS)
            with conn:
                for record in records:
                    self._insert(conn, record)
        except sqlite3.Error as e:
            raise SinkError(f"failed to write {self._db_path}: {e}", destination=str(self._db_path)) from e
        finally:
            conn.close()
        logger.info("sink_sqlite_written", path=str(self._db_path), records=len(records))
        return str(self._db_path)


def emit(records: Iterable[PipelineRecord], predicate: Predicate, sink: Sink) -> list[PipelineRecord]:
    """Filter records and write the survivors; SinkError propagates to the caller."""
    kept = apply_filter(records, predicate)
    logger.info("records_filtered", kept=len(kept))
    sink.write(kept)
    return kept
