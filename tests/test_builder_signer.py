"""Tests 22-24: Transaction building, ERC-20 calldata and secp256k1 signing."""

from __future__ import annotations

import pytest
from eth_account import Account
from eth_utils import keccak

from gas_relay.errors import ChainCommunicationError, ConfigurationError
from gas_relay.models.records import SignedTransaction
from gas_relay.tx.broadcaster import Broadcaster
from gas_relay.tx.builder import (
    TOKEN_TRANSFER_SELECTOR,
    TransactionBuilder,
    encode_token_transfer,
)
from gas_relay.tx.signer import EthAccountSigner, derive_address
from tests.conftest import CHAIN_ID, RECIPIENT, RECIPIENT_2, TEST_PRIVATE_KEY, TEST_PROVIDER
from tests.factories import make_descriptor
from tests.mocks import MockChain


# ── Test 22: Builder ──────────────────────────────────────────────


async def test_plain_transfer_descriptor():
    chain = MockChain(gas_price=3_000_000_000)
    chain.nonces[TEST_PROVIDER.lower()] = 9
    builder = TransactionBuilder(chain, CHAIN_ID)

    tx = await builder.build(TEST_PROVIDER.lower(), RECIPIENT.lower(), 12345)

    assert tx.sender == TEST_PROVIDER
    assert tx.to == RECIPIENT
    assert tx.value == 12345
    assert tx.data == b""
    assert tx.gas_limit == 21_000
    assert tx.gas_price == 3_000_000_000
    assert tx.nonce == 9
    assert tx.chain_id == CHAIN_ID
    assert tx.max_fee == 21_000 * 3_000_000_000
    assert ("eth_getTransactionCount", TEST_PROVIDER.lower(), "pending") in chain.calls


async def test_every_build_fetches_a_fresh_nonce():
    chain = MockChain()
    builder = TransactionBuilder(chain, CHAIN_ID)

    first = await builder.build(TEST_PROVIDER, RECIPIENT, 1)
    chain.nonces[TEST_PROVIDER.lower()] = 1
    second = await builder.build(TEST_PROVIDER, RECIPIENT, 1)

    assert (first.nonce, second.nonce) == (0, 1)
    assert chain.call_names().count("eth_getTransactionCount") == 2


async def test_token_transfer_uses_contract_gas_limit():
    chain = MockChain()
    builder = TransactionBuilder(chain, CHAIN_ID)

    tx = await builder.build_token_transfer(TEST_PROVIDER, RECIPIENT_2, RECIPIENT, 10**18)

    assert tx.to == RECIPIENT_2
    assert tx.value == 0
    assert tx.gas_limit == 100_000
    assert tx.data == encode_token_transfer(RECIPIENT, 10**18)


async def test_negative_value_rejected():
    builder = TransactionBuilder(MockChain(), CHAIN_ID)
    with pytest.raises(ValueError):
        await builder.build(TEST_PROVIDER, RECIPIENT, -1)


# ── Test 23: ERC-20 calldata ──────────────────────────────────────


def test_encode_token_transfer_layout():
    data = encode_token_transfer(RECIPIENT.lower(), 1)

    assert len(data) == 4 + 32 + 32
    assert data[:4] == TOKEN_TRANSFER_SELECTOR == keccak(text="transfer(address,uint256)")[:4]
    assert data[4:16] == b"\x00" * 12
    assert data[16:36] == bytes.fromhex(RECIPIENT[2:])
    assert int.from_bytes(data[36:], "big") == 1


def test_encode_token_transfer_range():
    encode_token_transfer(RECIPIENT, 2**256 - 1)
    with pytest.raises(ValueError):
        encode_token_transfer(RECIPIENT, 2**256)
    with pytest.raises(ValueError):
        encode_token_transfer(RECIPIENT, -1)


# ── Test 24: Signing ──────────────────────────────────────────────


def test_derive_address():
    assert derive_address(TEST_PRIVATE_KEY) == TEST_PROVIDER
    assert derive_address(TEST_PRIVATE_KEY[2:]) == TEST_PROVIDER


@pytest.mark.parametrize("key", ["", "0x00", "0x" + "00" * 32, "not hex at all"])
def test_derive_address_rejects_unusable_keys(key):
    with pytest.raises(ConfigurationError):
        derive_address(key)


def test_signed_transaction_recovers_provider():
    descriptor = make_descriptor(nonce=4)

    signed = EthAccountSigner().sign(descriptor, TEST_PRIVATE_KEY)

    assert isinstance(signed.raw, bytes)
    assert signed.tx_hash == "0x" + keccak(signed.raw).hex()
    assert Account.recover_transaction(signed.raw) == TEST_PROVIDER


def test_signing_is_deterministic_per_descriptor():
    signer = EthAccountSigner()
    a = signer.sign(make_descriptor(nonce=1), TEST_PRIVATE_KEY)
    b = signer.sign(make_descriptor(nonce=1), TEST_PRIVATE_KEY)
    c = signer.sign(make_descriptor(nonce=2), TEST_PRIVATE_KEY)

    assert a == b
    assert a.tx_hash != c.tx_hash


def test_key_for_another_sender_is_refused():
    descriptor = make_descriptor(sender=RECIPIENT)
    with pytest.raises(ConfigurationError):
        EthAccountSigner().sign(descriptor, TEST_PRIVATE_KEY)


async def test_broadcaster_never_resends_on_failure():
    chain = MockChain()
    chain.fail("eth_sendRawTransaction", "nonce too low")
    broadcaster = Broadcaster(chain, receipt_attempts=1, poll_interval=0)

    with pytest.raises(ChainCommunicationError):
        await broadcaster.send(SignedTransaction(raw=b"\x01", tx_hash="0x" + keccak(b"\x01").hex()))

    assert chain.call_names().count("eth_sendRawTransaction") == 1
