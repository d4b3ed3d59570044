"""ChainClient protocol - the JSON-RPC node the relay talks to."""

from __future__ import annotations

from typing import Protocol

from gas_relay.models.records import TransactionReceipt


class ChainClient(Protocol):
    """Single-request wrappers around the node's JSON-RPC methods.

    Every failure surfaces as ChainCommunicationError; callers decide whether
    to retry.
    """

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Native balance in wei."""
        ...

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        ...

    async def get_gas_price(self) -> int:
        ...

    async def estimate_transfer_cost(self, gas_limit: int = 21_000) -> int:
        ...

    async def broadcast(self, raw_transaction: bytes) -> str:
        """Submit a signed transaction, returning its hash."""
        ...

    async def get_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        ...

    async def await_receipt(
        self, tx_hash: str, max_attempts: int = 30, poll_interval: float = 2.0
    ) -> TransactionReceipt | None:
        """Poll for a receipt. None after ``max_attempts`` is not an error."""
        ...

    async def close(self) -> None:
        ...
