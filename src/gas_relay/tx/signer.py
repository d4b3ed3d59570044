"""secp256k1 transaction signing via eth_account."""

from __future__ import annotations

import logging

from eth_account import Account
from eth_utils import to_checksum_address

from gas_relay.errors import ConfigurationError
from gas_relay.models.records import SignedTransaction, TransactionDescriptor

log = logging.getLogger(__name__)


def derive_address(private_key: str) -> str:
    """Checksum address controlled by ``private_key``."""
    try:
        return Account.from_key(private_key).address
    except Exception as exc:
        raise ConfigurationError(f"unusable private key: {type(exc).__name__}") from None


class EthAccountSigner:
    """Signs legacy (EIP-155) transactions with a raw private key."""

    def sign(
        self, descriptor: TransactionDescriptor, credential: str
    ) -> SignedTransaction:
        signer_address = derive_address(credential)
        if signer_address != to_checksum_address(descriptor.sender):
            # Nonce and balance checks were done for descriptor.sender
            raise ConfigurationError(
                f"credential controls {signer_address}, not {descriptor.sender}"
            )

        signed = Account.sign_transaction(descriptor.to_tx_dict(), credential)
        tx_hash = "0x" + bytes(signed.hash).hex()
        log.debug("Signed tx %s (nonce %d)", tx_hash, descriptor.nonce)
        return SignedTransaction(raw=bytes(signed.raw_transaction), tx_hash=tx_hash)
