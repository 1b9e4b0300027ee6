"""
Tests for BlockPipeline: slot window, skip-on-unavailable, ordering, concurrency, stop.
"""

from __future__ import annotations

import asyncio

import pytest

from backend_blockscan.core.exceptions import BlockSourceError
from backend_blockscan.pipeline.orchestrator import BlockPipeline, target_slots
from backend_blockscan.solana_listener.models import (
    CanonicalTransactionRecord,
    EventType,
    ParsedInstructionRecord,
    RawBlock,
)

A = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
B = "So11111111111111111111111111111111111111112"


def _block(slot: int, txs: list[dict], block_time: int | None = 1_700_000_000) -> RawBlock:
    return RawBlock(slot=slot, blockhash=f"hash-{slot}", block_time=block_time, transactions=txs)


@pytest.mark.parametrize("n", [0, 1, 3, 10])
def test_attempts_exactly_n_descending_slots(fake_source_cls, n):
    source = fake_source_cls(1000, {})
    asyncio.run(BlockPipeline(source).run(n))
    assert source.requested == [1000 - i for i in range(n)]
    assert source.slot_reads == 1


def test_target_slots_stops_at_genesis():
    assert target_slots(2, 5) == [2, 1, 0]


def test_negative_block_count_rejected(fake_source_cls):
    with pytest.raises(ValueError):
        asyncio.run(BlockPipeline(fake_source_cls(10, {})).run(-1))


def test_two_transaction_block_scenario(fake_source_cls, make_tx):
    ok = make_tx("ok", pre=[100, 10, 1], post=[94, 15, 1], fee=1)
    failed = make_tx("bad", pre=[50, 20, 1], post=[45, 22, 1], fee=5000, err={"InstructionError": [0, "Custom"]})
    source = fake_source_cls(10, {10: _block(10, [ok, failed])})

    records = asyncio.run(BlockPipeline(source, source_tag="test").run(1))

    assert len(records) == 2
    first, second = records
    assert isinstance(first, CanonicalTransactionRecord)
    assert (first.hash, first.status, first.value, first.fee) == ("ok", 1, 5, 1)
    assert (second.hash, second.status, second.value) == ("bad", 0, 2)
    assert [r.transaction_index for r in records] == [0, 1]
    assert all(r.source == "test" for r in records)


def test_missing_middle_slot_is_skipped(fake_source_cls, make_tx):
    blocks = {
        100: _block(100, [make_tx("t100a"), make_tx("t100b")]),
        98: _block(98, [make_tx("t98")]),
    }
    source = fake_source_cls(100, blocks)
    pipeline = BlockPipeline(source)

    records = asyncio.run(pipeline.run(3))

    assert source.requested == [100, 99, 98]
    assert [r.block_number for r in records] == [100, 100, 98]
    assert [r.hash for r in records] == ["t100a", "t100b", "t98"]
    assert pipeline.last_stats.blocks_skipped == 1
    assert pipeline.last_stats.blocks_processed == 2
    assert pipeline.last_stats.records == 3


def test_malformed_transaction_does_not_drop_block(fake_source_cls, make_tx):
    block = _block(5, [make_tx("good1"), {"transaction": None}, make_tx("good2")])
    records = asyncio.run(BlockPipeline(fake_source_cls(5, {5: block})).run(1))
    assert [r.hash for r in records] == ["good1", "good2"]
    assert [r.transaction_index for r in records] == [0, 2]


def test_instruction_granularity(fake_source_cls, make_tx, make_system_transfer, make_token_transfer):
    tx1 = make_tx("t1", instructions=[make_system_transfer(A, B, 7), make_token_transfer(A, B, "3")])
    tx2 = make_tx("t2", instructions=[make_system_transfer(B, A, 9)])
    blocks = {20: _block(20, [tx1]), 19: _block(19, [tx2])}

    records = asyncio.run(BlockPipeline(fake_source_cls(20, blocks), granularity="instructions").run(2))

    assert all(isinstance(r, ParsedInstructionRecord) for r in records)
    assert [(r.block_id, r.tx_id, r.event_type) for r in records] == [
        (20, "t1", EventType.NATIVE_SOL_TRANSFER),
        (20, "t1", EventType.SPL_TOKEN_TRANSFER),
        (19, "t2", EventType.NATIVE_SOL_TRANSFER),
    ]


def test_concurrent_fetch_preserves_slot_order(fake_source_cls, make_tx):
    blocks = {s: _block(s, [make_tx(f"{s}-a"), make_tx(f"{s}-b")]) for s in (50, 49, 48, 47)}
    # Newest slot finishes last
    delays = {50: 0.05, 49: 0.03, 48: 0.01, 47: 0.0}
    source = fake_source_cls(50, blocks, delays=delays)

    records = asyncio.run(BlockPipeline(source, concurrency=4).run(4))

    assert [r.hash for r in records] == [
        "50-a", "50-b", "49-a", "49-b", "48-a", "48-b", "47-a", "47-b",
    ]


def test_concurrent_and_sequential_agree(fake_source_cls, make_tx):
    blocks = {s: _block(s, [make_tx(f"sig-{s}")]) for s in (30, 28, 27)}
    seq = asyncio.run(BlockPipeline(fake_source_cls(30, blocks)).run(4))
    con = asyncio.run(BlockPipeline(fake_source_cls(30, blocks), concurrency=2).run(4))
    assert [r.hash for r in seq] == [r.hash for r in con] == ["sig-30", "sig-28", "sig-27"]


def test_stop_event_checked_between_slots(fake_source_cls, make_tx):
    blocks = {s: _block(s, [make_tx(f"sig-{s}")]) for s in (9, 8, 7)}

    async def scenario():
        stop = asyncio.Event()
        source = fake_source_cls(9, blocks, on_fetch=lambda slot: stop.set())
        pipeline = BlockPipeline(source, stop_event=stop)
        records = await pipeline.run(3)
        return source, pipeline, records

    source, pipeline, records = asyncio.run(scenario())
    assert source.requested == [9]
    assert [r.hash for r in records] == ["sig-9"]
    assert pipeline.last_stats.stopped_early


def test_current_slot_failure_propagates(fake_source_cls):
    class Unreachable(fake_source_cls):
        async def current_slot(self) -> int:
            raise BlockSourceError("down", method="getSlot")

    with pytest.raises(BlockSourceError):
        asyncio.run(BlockPipeline(Unreachable(0, {})).run(3))


def test_invalid_constructor_arguments(fake_source_cls):
    with pytest.raises(ValueError):
        BlockPipeline(fake_source_cls(1, {}), granularity="blocks")
    with pytest.raises(ValueError):
        BlockPipeline(fake_source_cls(1, {}), concurrency=0)


def test_run_skips_slot_whose_rpc_reply_is_not_an_object():
    import json

    import httpx

    from backend_blockscan.solana_listener.block_source import SolanaRpcBlockSource

    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "getSlot":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": 50})
        slot = body["params"][0]
        if slot == 49:
            return httpx.Response(200, content=b"[]")
        result = {"blockhash": f"hash-{slot}", "blockTime": 1, "transactions": []}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    async def inner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = SolanaRpcBlockSource("https://rpc.test.invalid", client=client, retry_backoff_sec=0)
            pipeline = BlockPipeline(source)
            records = await pipeline.run(3)
            return pipeline, records

    pipeline, records = asyncio.run(inner())
    assert records == []
    assert pipeline.last_stats.blocks_processed == 2
    assert pipeline.last_stats.blocks_skipped == 1
