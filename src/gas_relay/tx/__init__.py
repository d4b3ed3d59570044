"""Transaction building, signing and broadcast."""

from gas_relay.tx.broadcaster import Broadcaster
from gas_relay.tx.builder import TransactionBuilder, encode_token_transfer
from gas_relay.tx.signer import EthAccountSigner, derive_address

__all__ = [
    "Broadcaster", "TransactionBuilder", "encode_token_transfer",
    "EthAccountSigner", "derive_address",
]
