"""
Application settings for a scan run.

Values come from environment variables (after .env is loaded) and may be
overridden field-by-field by the CLI via dataclasses.replace().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from backend_blockscan.config.env import (
    get_solana_network,
    get_solana_rpc_url,
    load_blockscan_env,
)
from backend_blockscan.core.exceptions import ConfigError

GRANULARITIES = ("transactions", "instructions")
FILTER_NAMES = ("all", "transfers")
SINK_NAMES = ("json", "sqlite")

DEFAULT_BLOCK_COUNT = 1
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_DB_PATH = "blockscan.db"
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0
DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class Settings:
    """Typed run configuration."""

    rpc_url: str
    network: str
    block_count: int = DEFAULT_BLOCK_COUNT
    granularity: str = "transactions"
    filter_name: str | None = None
    """None means the granularity's default (see effective_filter_name)."""
    sink: str = "json"
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    db_path: Path = Path(DEFAULT_DB_PATH)
    source_tag: str = ""
    concurrency: int = 1
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        if not self.rpc_url.strip():
            raise ConfigError("rpc_url must be non-empty")
        if self.block_count < 0:
            raise ConfigError(f"block_count must be >= 0, got {self.block_count}")
        if self.granularity not in GRANULARITIES:
            raise ConfigError(f"granularity must be one of {GRANULARITIES}, got {self.granularity!r}")
        if self.filter_name is not None and self.filter_name not in FILTER_NAMES:
            raise ConfigError(f"filter must be one of {FILTER_NAMES}, got {self.filter_name!r}")
        if self.sink not in SINK_NAMES:
            raise ConfigError(f"sink must be one of {SINK_NAMES}, got {self.sink!r}")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 1:
            raise ConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if not self.source_tag:
            object.__setattr__(self, "source_tag", f"solana_{self.network}".replace("-", "_"))

    @property
    def effective_filter_name(self) -> str:
        """Instruction runs keep only known transfers unless told otherwise."""
        if self.filter_name is not None:
            return self.filter_name
        return "transfers" if self.granularity == "instructions" else "all"


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def get_settings() -> Settings:
    """
    Return settings built from the environment.

    Raises ConfigError for malformed values.
    """
    load_blockscan_env()
    filter_name = (os.getenv("BLOCKSCAN_FILTER") or "").strip().lower() or None
    return Settings(
        rpc_url=get_solana_rpc_url(),
        network=get_solana_network(),
        block_count=_int_env("BLOCKSCAN_BLOCK_COUNT", DEFAULT_BLOCK_COUNT),
        granularity=(os.getenv("BLOCKSCAN_GRANULARITY") or "transactions").strip().lower(),
        filter_name=filter_name,
        sink=(os.getenv("BLOCKSCAN_SINK") or "json").strip().lower(),
        output_dir=Path(os.getenv("BLOCKSCAN_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR),
        db_path=Path(os.getenv("BLOCKSCAN_DB_PATH") or DEFAULT_DB_PATH),
        source_tag=(os.getenv("BLOCKSCAN_SOURCE_TAG") or "").strip(),
        concurrency=_int_env("BLOCKSCAN_CONCURRENCY", 1),
        request_timeout_sec=_float_env("BLOCKSCAN_REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
        max_retries=_int_env("BLOCKSCAN_MAX_RETRIES", DEFAULT_MAX_RETRIES),
    )
