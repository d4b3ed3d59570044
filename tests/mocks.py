"""Mock implementations of the external-facing components."""

from __future__ import annotations

import asyncio
import json

from eth_utils import keccak

from gas_relay.errors import ChainCommunicationError
from gas_relay.models.records import (
    RateLimitRecord,
    SignedTransaction,
    TransactionDescriptor,
    TransactionReceipt,
)


def raw_hash(raw: bytes) -> str:
    return "0x" + keccak(raw).hex()


class MockChain:
    """Implements the ChainClient protocol against in-memory balances.

    Transactions signed by FakeSigner are decoded on broadcast: the sender's
    nonce must match, balances move and (with ``auto_mine``) a receipt is
    produced. Raw bytes from a real signer are accepted as-is.
    """

    def __init__(
        self,
        balances: dict[str, int] | None = None,
        gas_price: int = 5_000_000_000,
        auto_mine: bool = True,
        receipt_status: int = 1,
    ) -> None:
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.nonces: dict[str, int] = {}
        self.gas_price = gas_price
        self.auto_mine = auto_mine
        self.receipt_status = receipt_status
        self.receipts: dict[str, TransactionReceipt] = {}
        self.broadcasts: list[bytes] = []
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.closed = False
        self._block = 100

    def set_balance(self, address: str, wei: int) -> None:
        self.balances[address.lower()] = wei

    def balance_of(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    def fail(self, method: str, message: str = "mock failure", code: int | None = -32000) -> None:
        self.failures[method] = ChainCommunicationError(method, message, code)

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        # Always yield so concurrent callers interleave
        await asyncio.sleep(self.delays.get(method, 0))
        if method in self.failures:
            raise self.failures[method]

    async def get_balance(self, address: str, block: str = "latest") -> int:
        await self._enter("eth_getBalance", address, block)
        return self.balance_of(address)

    async def get_nonce(self, address: str, block: str = "pending") -> int:
        await self._enter("eth_getTransactionCount", address, block)
        return self.nonces.get(address.lower(), 0)

    async def get_gas_price(self) -> int:
        await self._enter("eth_gasPrice")
        return self.gas_price

    async def estimate_transfer_cost(self, gas_limit: int = 21_000) -> int:
        return gas_limit * await self.get_gas_price()

    async def broadcast(self, raw_transaction: bytes) -> str:
        await self._enter("eth_sendRawTransaction", raw_transaction)
        tx_hash = raw_hash(raw_transaction)

        try:
            tx = json.loads(raw_transaction)
        except ValueError:
            tx = None
        if tx is not None:
            sender = tx["from"].lower()
            expected = self.nonces.get(sender, 0)
            if tx["nonce"] != expected:
                raise ChainCommunicationError(
                    "eth_sendRawTransaction", f"nonce too low: {tx['nonce']} < {expected}", -32000,
                )
            self.nonces[sender] = expected + 1
            fee = tx["gas"] * tx["gasPrice"]
            self.balances[sender] = self.balances.get(sender, 0) - tx["value"] - fee
            to = tx["to"].lower()
            self.balances[to] = self.balances.get(to, 0) + tx["value"]

        self.broadcasts.append(raw_transaction)
        if self.auto_mine:
            self._block += 1
            self.receipts[tx_hash] = TransactionReceipt(
                tx_hash=tx_hash, status=self.receipt_status,
                block_number=self._block, gas_used=21_000,
            )
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        await self._enter("eth_getTransactionReceipt", tx_hash)
        return self.receipts.get(tx_hash)

    async def await_receipt(
        self, tx_hash: str, max_attempts: int = 30, poll_interval: float = 2.0
    ) -> TransactionReceipt | None:
        for _ in range(max_attempts):
            receipt = await self.get_receipt(tx_hash)
            if receipt is not None:
                return receipt
            await asyncio.sleep(poll_interval)
        return None

    async def close(self) -> None:
        self.closed = True


class FakeSigner:
    """Deterministic stand-in for EthAccountSigner.

    The "raw transaction" is the descriptor as JSON, which MockChain decodes.
    """

    def __init__(self) -> None:
        self.signed: list[TransactionDescriptor] = []

    def sign(
        self, descriptor: TransactionDescriptor, credential: str
    ) -> SignedTransaction:
        self.signed.append(descriptor)
        raw = json.dumps(
            {
                "from": descriptor.sender,
                "to": descriptor.to,
                "value": descriptor.value,
                "gas": descriptor.gas_limit,
                "gasPrice": descriptor.gas_price,
                "nonce": descriptor.nonce,
                "chainId": descriptor.chain_id,
                "data": descriptor.data.hex(),
            },
            sort_keys=True,
        ).encode()
        return SignedTransaction(raw=raw, tx_hash=raw_hash(raw))


class FailingSigner:
    """Signer that always raises."""

    def sign(self, descriptor, credential):
        raise RuntimeError("hardware wallet unplugged")


class FakeClock:
    """Manually advanced clock for rate-limit windows."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class YieldingRateLimitStore:
    """RateLimitStore that yields to the event loop inside get and put."""

    def __init__(self) -> None:
        self.records: dict[str, RateLimitRecord] = {}

    async def get(self, key: str) -> RateLimitRecord | None:
        await asyncio.sleep(0)
        return self.records.get(key)

    async def put(self, key: str, record: RateLimitRecord) -> None:
        await asyncio.sleep(0)
        self.records[key] = record
