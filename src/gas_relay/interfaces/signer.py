"""Signer protocol - the transaction signing capability boundary."""

from __future__ import annotations

from typing import Protocol

from gas_relay.models.records import SignedTransaction, TransactionDescriptor


class Signer(Protocol):
    """Turns an unsigned descriptor into raw transaction bytes."""

    def sign(
        self, descriptor: TransactionDescriptor, credential: str
    ) -> SignedTransaction:
        ...
