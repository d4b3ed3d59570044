"""Transaction builder - assembles unsigned descriptors with a fresh nonce."""

from __future__ import annotations

import logging

from eth_utils import to_checksum_address

from gas_relay.interfaces.chain import ChainClient
from gas_relay.models.records import TransactionDescriptor

log = logging.getLogger(__name__)

TRANSFER_GAS_LIMIT = 21_000
CONTRACT_CALL_GAS_LIMIT = 100_000

# transfer(address,uint256)
TOKEN_TRANSFER_SELECTOR = bytes.fromhex("a9059cbb")

_UINT256_MAX = 2**256 - 1


def encode_token_transfer(to: str, amount: int) -> bytes:
    """ABI calldata for ``transfer(to, amount)``: selector + two 32-byte words."""
    if not 0 <= amount <= _UINT256_MAX:
        raise ValueError(f"amount out of uint256 range: {amount}")
    address = bytes.fromhex(to_checksum_address(to)[2:])
    return (
        TOKEN_TRANSFER_SELECTOR
        + address.rjust(32, b"\x00")
        + amount.to_bytes(32, "big")
    )


class TransactionBuilder:
    """Builds TransactionDescriptors against the current chain state.

    The nonce and gas price are fetched on every build; descriptors are never
    cached or reused.
    """

    def __init__(self, chain: ChainClient, chain_id: int) -> None:
        self._chain = chain
        self._chain_id = chain_id

    async def build(
        self,
        sender: str,
        to: str,
        value: int,
        data: bytes = b"",
        gas_limit: int | None = None,
    ) -> TransactionDescriptor:
        if value < 0:
            raise ValueError("value must be >= 0")
        if gas_limit is None:
            gas_limit = CONTRACT_CALL_GAS_LIMIT if data else TRANSFER_GAS_LIMIT

        nonce = await self._chain.get_nonce(sender, "pending")
        gas_price = await self._chain.get_gas_price()

        descriptor = TransactionDescriptor(
            sender=to_checksum_address(sender),
            to=to_checksum_address(to),
            value=value,
            data=bytes(data),
            gas_limit=gas_limit,
            gas_price=gas_price,
            nonce=nonce,
            chain_id=self._chain_id,
        )
        log.debug(
            "Built tx: from=%s to=%s value=%d gas=%d gasPrice=%d nonce=%d",
            descriptor.sender, descriptor.to, value, gas_limit, gas_price, nonce,
        )
        return descriptor

    async def build_token_transfer(
        self,
        sender: str,
        token_contract: str,
        to: str,
        amount: int,
        gas_limit: int = CONTRACT_CALL_GAS_LIMIT,
    ) -> TransactionDescriptor:
        """Contract call moving ``amount`` token base units to ``to``."""
        return await self.build(
            sender,
            token_contract,
            0,
            data=encode_token_transfer(to, amount),
            gas_limit=gas_limit,
        )
