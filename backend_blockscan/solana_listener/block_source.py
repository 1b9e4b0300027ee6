"""
Raw block source — getSlot / getBlock over Solana JSON-RPC.

The pipeline depends only on the BlockSource protocol; SolanaRpcBlockSource is
the httpx implementation. block() never raises for a single slot: a null
result or a "slot skipped / not available" RPC error is MISSING, anything else
(after retries) is FAILED. current_slot() raises BlockSourceError, since a run
cannot start without it.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Protocol

import httpx

from backend_blockscan.blockscan_logging import get_logger
from backend_blockscan.config.env import mask_rpc_url
from backend_blockscan.core.exceptions import BlockSourceError
from backend_blockscan.solana_listener.models import BlockFetch, RawBlock

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30.0
MAX_RETRIES = 3
RETRY_BACKOFF = 1.5

# Fixed decoding options: no rewards, legacy + v0 transactions, pre-parsed instructions
GET_BLOCK_OPTIONS: dict[str, Any] = {
    "encoding": "jsonParsed",
    "maxSupportedTransactionVersion": 0,
    "transactionDetails": "full",
    "rewards": False,
}

# RPC error codes meaning "no block for this slot" rather than a failure
MISSING_BLOCK_ERROR_CODES = frozenset(
    {
        -32004,  # block not available for slot
        -32007,  # slot skipped or missing due to ledger jump
        -32009,  # slot skipped or missing in long-term storage
        -32014,  # block status not yet available
    }
)


class RpcError(Exception):
    """JSON-RPC error object returned by the node."""

    def __init__(self, method: str, error: dict[str, Any]) -> None:
        self.method = method
        self.code = error.get("code")
        self.message = error.get("message", str(error))
        super().__init__(f"Solana RPC error in {method}: {self.message} (code={self.code})")


class BlockSource(Protocol):
    """Contract the pipeline consumes."""

    async def current_slot(self) -> int: ...

    async def block(self, slot: int) -> BlockFetch: ...


class SolanaRpcBlockSource:
    """
    httpx-backed block source. Use as an async context manager, or pass an
    existing AsyncClient (it is then left open on exit).
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        request_timeout_sec: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        retry_backoff_sec: float = RETRY_BACKOFF,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._rpc_url = rpc_url.strip()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(request_timeout_sec))
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_sec
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SolanaRpcBlockSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request_with_retry(self, body: dict[str, Any]) -> httpx.Response:
        last_err: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.post(self._rpc_url, json=body)
                if resp.status_code == 429:
                    last_err = httpx.HTTPStatusError(
                        "rate limited (429)", request=resp.request, response=resp
                    )
                else:
                    resp.raise_for_status()
                    return resp
            except httpx.HTTPError as e:
                last_err = e
            logger.debug(
                "rpc_retry",
                method=body["method"],
                attempt=attempt + 1,
                max_retries=self._max_retries,
                error=str(last_err),
            )
            if attempt + 1 < self._max_retries:
                await asyncio.sleep(self._retry_backoff * (2**attempt))
        raise last_err or RuntimeError("RPC request failed after retries")

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; raise RpcError on an error object, httpx errors on transport failure."""
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        resp = await self._request_with_retry(body)
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"{method} response is not a JSON-RPC object: {type(data).__name__}")
        if "error" in data:
            raise RpcError(method, data["error"])
        return data.get("result")

    async def current_slot(self) -> int:
        try:
            result = await self._rpc("getSlot", [])
            return int(result)
        except (httpx.HTTPError, RpcError, TypeError, ValueError) as e:
            logger.error("rpc_get_slot_failed", rpc_url=mask_rpc_url(self._rpc_url), error=str(e))
            raise BlockSourceError(f"getSlot failed: {e}", method="getSlot") from e

    async def block(self, slot: int) -> BlockFetch:
        try:
            result = await self._rpc("getBlock", [slot, dict(GET_BLOCK_OPTIONS)])
        except RpcError as e:
            if e.code in MISSING_BLOCK_ERROR_CODES:
                return BlockFetch.missing(slot, error=e.message)
            return BlockFetch.failed(slot, error=str(e))
        except (httpx.HTTPError, ValueError) as e:
            return BlockFetch.failed(slot, error=str(e))
        if not isinstance(result, dict):
            return BlockFetch.missing(slot)
        try:
            return BlockFetch.ok(RawBlock.from_rpc_result(slot, result))
        except (TypeError, ValueError) as e:
            return BlockFetch.failed(slot, error=f"malformed block: {e}")
