"""
Scan recent Solana blocks and write normalized records.

How to run (from project root, with .env configured for RPC):

    python main.py --blocks 10
    python main.py --blocks 5 --granularity instructions --filter transfers
    python main.py --blocks 20 --sink sqlite --db-path blockscan.db

Env vars (CLI flags win): SOLANA_NETWORK, SOLANA_RPC_URL, HELIUS_API_KEY,
BLOCKSCAN_BLOCK_COUNT, BLOCKSCAN_GRANULARITY, BLOCKSCAN_FILTER,
BLOCKSCAN_SINK, BLOCKSCAN_OUTPUT_DIR, BLOCKSCAN_DB_PATH,
BLOCKSCAN_SOURCE_TAG, BLOCKSCAN_CONCURRENCY, LOG_LEVEL, LOG_FORMAT.

Exit code 0 when the run completes (skipped slots included); 1 when the RPC
endpoint is unreachable, the sink write fails, or anything unexpected happens.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import signal
import uuid
from pathlib import Path
from typing import Sequence

from backend_blockscan.blockscan_logging.logger import bind_run
from backend_blockscan.config import Settings, get_settings
from backend_blockscan.config.env import mask_rpc_url
from backend_blockscan.config.settings import FILTER_NAMES, GRANULARITIES, SINK_NAMES
from backend_blockscan.core.exceptions import BlockscanError
from backend_blockscan.pipeline.orchestrator import BlockPipeline
from backend_blockscan.pipeline.sink import JsonFileSink, Sink, SqliteSink, emit, get_filter
from backend_blockscan.solana_listener.block_source import SolanaRpcBlockSource


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockscan",
        description="Normalize and classify transactions from the most recent Solana blocks.",
    )
    parser.add_argument("--blocks", type=int, dest="block_count", help="Number of recent blocks to scan")
    parser.add_argument("--rpc-url", dest="rpc_url", help="Solana JSON-RPC endpoint")
    parser.add_argument("--granularity", choices=GRANULARITIES, help="One record per transaction or per instruction")
    parser.add_argument("--filter", choices=FILTER_NAMES, dest="filter_name", help="Result filter")
    parser.add_argument("--sink", choices=SINK_NAMES, help="Output destination")
    parser.add_argument("--output-dir", type=Path, dest="output_dir", help="Directory for JSON output")
    parser.add_argument("--db-path", type=Path, dest="db_path", help="SQLite file for --sink sqlite")
    parser.add_argument("--source-tag", dest="source_tag", help="Tag written into each record's source field")
    parser.add_argument("--concurrency", type=int, help="Max getBlock requests in flight (1 = sequential)")
    return parser


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    """Apply CLI flags that were given on top of env-derived settings."""
    overrides = {
        f.name: getattr(args, f.name)
        for f in dataclasses.fields(Settings)
        if getattr(args, f.name, None) is not None
    }
    return dataclasses.replace(base, **overrides) if overrides else base


def build_sink(settings: Settings) -> Sink:
    if settings.sink == "sqlite":
        return SqliteSink(settings.db_path)
    prefix = "parsed_instructions" if settings.granularity == "instructions" else "parsed_transactions"
    return JsonFileSink(
        settings.output_dir,
        source_tag=settings.source_tag,
        block_count=settings.block_count,
        prefix=prefix,
    )


def _install_stop_handler(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM finish the current block, then stop scanning."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform / not in main thread
            pass


async def run_scan(settings: Settings) -> int:
    """Fetch, normalize, filter, write. Returns the number of records written."""
    stop_event = asyncio.Event()
    _install_stop_handler(stop_event)
    async with SolanaRpcBlockSource(
        settings.rpc_url,
        request_timeout_sec=settings.request_timeout_sec,
        max_retries=settings.max_retries,
    ) as source:
        pipeline = BlockPipeline(
            source,
            granularity=settings.granularity,
            source_tag=settings.source_tag,
            concurrency=settings.concurrency,
            stop_event=stop_event,
        )
        records = await pipeline.run(settings.block_count)
    kept = emit(records, get_filter(settings.effective_filter_name), build_sink(settings))
    return len(kept)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = bind_run(uuid.uuid4().hex[:12])
    try:
        settings = settings_from_args(args, get_settings())
        logger.info(
            "scan_starting",
            network=settings.network,
            rpc_url=mask_rpc_url(settings.rpc_url),
            block_count=settings.block_count,
            granularity=settings.granularity,
            filter=settings.effective_filter_name,
            sink=settings.sink,
        )
        written = asyncio.run(run_scan(settings))
    except BlockscanError as e:
        logger.error("scan_failed", error_type=type(e).__name__, error=str(e))
        return e.exit_code
    except Exception as e:  # noqa: BLE001
        logger.exception("scan_crashed", error_type=type(e).__name__, error=str(e))
        return 1
    logger.info("scan_completed", records_written=written)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
