"""Tier 2 fixtures: a local JSON-RPC node that accepts real signed transactions."""

from __future__ import annotations

import pytest
import rlp
from aiohttp import web
from eth_account import Account
from eth_utils import keccak, to_checksum_address

from tests.conftest import ETHER, MILLI, RECIPIENT, TEST_PROVIDER

NODE_PORT = 9187


class FakeNode:
    """Minimal EVM node state: balances, nonces, legacy transfers and receipts."""

    def __init__(self, gas_price: int = 3_000_000_000) -> None:
        self.balances: dict[str, int] = {}
        self.nonces: dict[str, int] = {}
        self.receipts: dict[str, dict] = {}
        self.transactions: list[dict] = []
        self.errors: dict[str, dict] = {}
        self.gas_price = gas_price
        self.block = 1000

    def set_balance(self, address: str, wei: int) -> None:
        self.balances[address.lower()] = wei

    def balance_of(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    def fail(self, method: str, message: str, code: int = -32000) -> None:
        self.errors[method] = {"code": code, "message": message}

    def send_raw(self, raw_hex: str) -> str:
        raw = bytes.fromhex(raw_hex[2:])
        sender = Account.recover_transaction(raw).lower()
        nonce, gas_price, gas, to, value, data, _v, _r, _s = rlp.decode(raw)
        tx = {
            "from": to_checksum_address(sender),
            "to": to_checksum_address(to),
            "nonce": int.from_bytes(nonce, "big"),
            "gasPrice": int.from_bytes(gas_price, "big"),
            "gas": int.from_bytes(gas, "big"),
            "value": int.from_bytes(value, "big"),
            "data": data,
        }
        expected = self.nonces.get(sender, 0)
        if tx["nonce"] != expected:
            raise ValueError(f"nonce too low: next nonce {expected}, tx nonce {tx['nonce']}")

        self.nonces[sender] = expected + 1
        self.balances[sender] = self.balance_of(sender) - tx["value"] - 21_000 * tx["gasPrice"]
        self.balances[tx["to"].lower()] = self.balance_of(tx["to"]) + tx["value"]
        self.transactions.append(tx)

        tx_hash = "0x" + keccak(raw).hex()
        self.block += 1
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": "0x1",
            "blockNumber": hex(self.block),
            "gasUsed": hex(21_000),
        }
        return tx_hash

    def dispatch(self, method: str, params: list):
        if method == "eth_getBalance":
            return hex(self.balance_of(params[0]))
        if method == "eth_getTransactionCount":
            return hex(self.nonces.get(params[0].lower(), 0))
        if method == "eth_gasPrice":
            return hex(self.gas_price)
        if method == "eth_sendRawTransaction":
            return self.send_raw(params[0])
        if method == "eth_getTransactionReceipt":
            return self.receipts.get(params[0])
        raise LookupError(method)


@pytest.fixture
def fake_node():
    node = FakeNode()
    node.set_balance(TEST_PROVIDER, ETHER)
    node.set_balance(RECIPIENT, MILLI)
    return node


@pytest.fixture
async def node_url(fake_node):
    """Serve ``fake_node`` over HTTP JSON-RPC on localhost."""

    async def handle_rpc(request):
        payload = await request.json()
        reply = {"jsonrpc": "2.0", "id": payload.get("id")}
        method = payload.get("method")
        if method in fake_node.errors:
            reply["error"] = fake_node.errors[method]
            return web.json_response(reply)
        try:
            reply["result"] = fake_node.dispatch(method, payload.get("params", []))
        except LookupError:
            reply["error"] = {"code": -32601, "message": f"method {method} not found"}
        except ValueError as exc:
            reply["error"] = {"code": -32000, "message": str(exc)}
        return web.json_response(reply)

    app = web.Application()
    app.router.add_post("/", handle_rpc)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", NODE_PORT)
    await site.start()
    yield f"http://127.0.0.1:{NODE_PORT}/"
    await runner.cleanup()
