"""
Block pipeline orchestrator — recent slot window to an ordered record list.

Reads the current slot once, then walks current, current-1, ... for
block_count slots. An unavailable slot is logged and skipped; it never aborts
the run. Output order is slot descending, then transaction order, then
instruction order, regardless of the fetch mode.

Fetching is sequential by default to stay under RPC rate limits. With
concurrency > 1 up to that many getBlock calls are in flight; results are
re-assembled by slot before returning. An optional stop event is checked
between slots only, so each block is either fully included or absent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal

from backend_blockscan.blockscan_logging import get_logger
from backend_blockscan.solana_listener.block_source import BlockSource
from backend_blockscan.solana_listener.models import PipelineRecord, RawBlock
from backend_blockscan.solana_listener.normalizer import normalize, parse_instructions

logger = get_logger(__name__)

Granularity = Literal["transactions", "instructions"]


@dataclass
class RunStats:
    """Counters for one run; logged at the end and kept on the pipeline."""

    start_slot: int | None = None
    slots_requested: int = 0
    blocks_processed: int = 0
    blocks_skipped: int = 0
    records: int = 0
    stopped_early: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "start_slot": self.start_slot,
            "slots_requested": self.slots_requested,
            "blocks_processed": self.blocks_processed,
            "blocks_skipped": self.blocks_skipped,
            "records": self.records,
            "stopped_early": self.stopped_early,
        }


def target_slots(current_slot: int, block_count: int) -> list[int]:
    """Strictly descending contiguous window starting at current_slot; never below slot 0."""
    if block_count < 0:
        raise ValueError(f"block_count must be >= 0, got {block_count}")
    return [current_slot - i for i in range(block_count) if current_slot - i >= 0]


class BlockPipeline:
    """
    Drives a BlockSource over a window of recent slots.

    The source is injected, so tests pass an in-memory double and the CLI
    passes a SolanaRpcBlockSource.
    """

    def __init__(
        self,
        source: BlockSource,
        *,
        granularity: Granularity = "transactions",
        source_tag: str = "",
        concurrency: int = 1,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        if granularity not in ("transactions", "instructions"):
            raise ValueError(f"unknown granularity: {granularity!r}")
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._source = source
        self._granularity = granularity
        self._source_tag = source_tag
        self._concurrency = concurrency
        self._stop_event = stop_event
        self.last_stats = RunStats()

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def process_block(self, block: RawBlock) -> list[PipelineRecord]:
        """All records of one block, in transaction (and instruction) order."""
        out: list[PipelineRecord] = []
        for index, raw_tx in enumerate(block.transactions):
            if self._granularity == "instructions":
                out.extend(parse_instructions(raw_tx, block.slot))
                continue
            record = normalize(
                raw_tx,
                block.block_time,
                block.slot,
                block.blockhash,
                index,
                source=self._source_tag,
            )
            if record is not None:
                out.append(record)
        return out

    async def _fetch_and_process(self, slot: int, stats: RunStats) -> list[PipelineRecord] | None:
        fetch = await self._source.block(slot)
        if not fetch.available:
            stats.blocks_skipped += 1
            logger.warning(
                "block_unavailable",
                slot=slot,
                status=fetch.status.value,
                error=fetch.error,
            )
            return None
        records = self.process_block(fetch.block)
        stats.blocks_processed += 1
        logger.debug(
            "block_processed",
            slot=slot,
            transactions=len(fetch.block.transactions),
            records=len(records),
        )
        return records

    async def _run_sequential(self, slots: list[int], stats: RunStats) -> list[PipelineRecord]:
        accumulated: list[PipelineRecord] = []
        for slot in slots:
            if self._stop_requested():
                stats.stopped_early = True
                break
            records = await self._fetch_and_process(slot, stats)
            if records:
                accumulated.extend(records)
        return accumulated

    async def _run_concurrent(self, slots: list[int], stats: RunStats) -> list[PipelineRecord]:
        sem = asyncio.Semaphore(self._concurrency)
        by_slot: dict[int, list[PipelineRecord]] = {}

        async def worker(slot: int) -> None:
            async with sem:
                if self._stop_requested():
                    stats.stopped_early = True
                    return
                records = await self._fetch_and_process(slot, stats)
            if records:
                by_slot[slot] = records

        await asyncio.gather(*(worker(slot) for slot in slots))
        accumulated: list[PipelineRecord] = []
        for slot in sorted(by_slot, reverse=True):
            accumulated.extend(by_slot[slot])
        return accumulated

    async def run(self, block_count: int) -> list[PipelineRecord]:
        """
        Scan block_count slots back from the current slot and return all records.

        Raises BlockSourceError if the current slot cannot be read.
        """
        current_slot = await self._source.current_slot()
        slots = target_slots(current_slot, block_count)
        stats = RunStats(start_slot=current_slot, slots_requested=len(slots))
        self.last_stats = stats
        logger.info(
            "pipeline_started",
            start_slot=current_slot,
            block_count=block_count,
            granularity=self._granularity,
            concurrency=self._concurrency,
        )
        if self._concurrency > 1:
            records = await self._run_concurrent(slots, stats)
        else:
            records = await self._run_sequential(slots, stats)
        stats.records = len(records)
        logger.info("pipeline_finished", **stats.to_dict())
        return records
