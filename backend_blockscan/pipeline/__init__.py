# Block pipeline: slot window -> records -> filter -> sink.

from backend_blockscan.pipeline.orchestrator import BlockPipeline, RunStats, target_slots
from backend_blockscan.pipeline.sink import (
    FILTERS,
    JsonFileSink,
    Sink,
    SqliteSink,
    accept_all,
    apply_filter,
    emit,
    get_filter,
    known_transfers_only,
    serialize_records,
)

__all__ = [
    "BlockPipeline",
    "FILTERS",
    "JsonFileSink",
    "RunStats",
    "Sink",
    "SqliteSink",
    "accept_all",
    "apply_filter",
    "emit",
    "get_filter",
    "known_transfers_only",
    "serialize_records",
    "target_slots",
]
