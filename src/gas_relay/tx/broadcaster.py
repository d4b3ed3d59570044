"""Broadcaster - submits signed transactions and waits for receipts."""

from __future__ import annotations

import logging

from gas_relay.interfaces.chain import ChainClient
from gas_relay.models.records import SignedTransaction, TransactionReceipt

log = logging.getLogger(__name__)


class Broadcaster:
    """Sends signed transactions. Never retries a broadcast.

    A failed send propagates ChainCommunicationError upward; re-sending
    requires a freshly built transaction with a new nonce.
    """

    def __init__(
        self,
        chain: ChainClient,
        receipt_attempts: int = 30,
        poll_interval: float = 2.0,
    ) -> None:
        self._chain = chain
        self._receipt_attempts = receipt_attempts
        self._poll_interval = poll_interval

    async def send(self, signed: SignedTransaction) -> str:
        tx_hash = await self._chain.broadcast(signed.raw)
        if tx_hash.lower() != signed.tx_hash.lower():
            log.warning(
                "Node returned hash %s, expected %s", tx_hash, signed.tx_hash,
            )
        log.info("Broadcast %s", tx_hash)
        return tx_hash

    async def confirm(self, tx_hash: str) -> TransactionReceipt | None:
        """Wait for the receipt; None means still unconfirmed after the wait."""
        return await self._chain.await_receipt(
            tx_hash, self._receipt_attempts, self._poll_interval,
        )
