"""EVM JSON-RPC client - balances, nonces, gas price, broadcast and receipts."""

from __future__ import annotations

import asyncio
import itertools
import logging

import httpx

from gas_relay.chain.units import parse_hex_quantity
from gas_relay.errors import ChainCommunicationError
from gas_relay.models.records import TransactionReceipt

log = logging.getLogger(__name__)


class JsonRpcChainClient:
    """Talks to one EVM node over HTTP JSON-RPC.

    Each public method is exactly one request/response. Transport errors,
    non-2xx statuses, RPC error objects and malformed hex all raise
    ChainCommunicationError carrying the method name.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: list | None = None) -> object:
        """Issue one JSON-RPC request and return its ``result`` member."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        try:
            resp = await self._client.post(self._rpc_url, json=payload)
        except httpx.HTTPError as exc:
            raise ChainCommunicationError(method, f"transport error: {exc}") from exc

        if not resp.is_success:
            raise ChainCommunicationError(
                method, f"HTTP {resp.status_code}: {resp.reason_phrase}"
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise ChainCommunicationError(method, "response is not JSON") from exc
        if not isinstance(data, dict):
            raise ChainCommunicationError(method, "response is not a JSON object")

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise ChainCommunicationError(
                    method, str(error.get("message", "unknown error")), error.get("code"),
                )
            raise ChainCommunicationError(method, str(error))

        if "result" not in data:
            raise ChainCommunicationError(method, "response has no result")
        return data["result"]

    async def _quantity(self, method: str, params: list | None = None) -> int:
        result = await self.call(method, params)
        try:
            return parse_hex_quantity(result)
        except ValueError as exc:
            raise ChainCommunicationError(method, str(exc)) from exc

    # ── Reads ──────────────────────────────────────────────

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return await self._quantity("eth_getBalance", [address, block])

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        return await self._quantity("eth_getTransactionCount", [address, block])

    async def get_gas_price(self) -> int:
        return await self._quantity("eth_gasPrice")

    async def estimate_transfer_cost(self, gas_limit: int = 21_000) -> int:
        """Wei a transaction of ``gas_limit`` gas costs at the current gas price."""
        return gas_limit * await self.get_gas_price()

    # ── Writes ─────────────────────────────────────────────

    async def broadcast(self, raw_transaction: bytes) -> str:
        method = "eth_sendRawTransaction"
        result = await self.call(method, ["0x" + bytes(raw_transaction).hex()])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise ChainCommunicationError(method, f"unexpected result {result!r}")
        return result

    # ── Receipts ───────────────────────────────────────────

    async def get_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        method = "eth_getTransactionReceipt"
        raw = await self.call(method, [tx_hash])
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ChainCommunicationError(method, f"unexpected result {raw!r}")
        try:
            return TransactionReceipt(
                tx_hash=raw.get("transactionHash") or tx_hash,
                status=parse_hex_quantity(raw.get("status", "0x1")),
                block_number=parse_hex_quantity(raw.get("blockNumber")),
                gas_used=parse_hex_quantity(raw.get("gasUsed")),
            )
        except ValueError as exc:
            raise ChainCommunicationError(method, str(exc)) from exc

    async def await_receipt(
        self, tx_hash: str, max_attempts: int = 30, poll_interval: float = 2.0
    ) -> TransactionReceipt | None:
        """Poll until mined. Returns None once ``max_attempts`` are used up.

        A missing receipt is the normal state of a pending transaction, and
        a failed poll counts as an attempt rather than aborting the wait.
        """
        for attempt in range(1, max_attempts + 1):
            try:
                receipt = await self.get_receipt(tx_hash)
            except ChainCommunicationError as exc:
                log.warning(
                    "Receipt poll %d/%d for %s failed: %s",
                    attempt, max_attempts, tx_hash[:18], exc,
                )
                receipt = None
            if receipt is not None:
                log.info(
                    "Transaction %s mined in block %d (status=%d)",
                    tx_hash[:18], receipt.block_number, receipt.status,
                )
                return receipt
            log.debug("Attempt %d: %s not yet mined", attempt, tx_hash[:18])
            if attempt < max_attempts:
                await asyncio.sleep(poll_interval)

        log.info("No receipt for %s after %d attempts", tx_hash[:18], max_attempts)
        return None
