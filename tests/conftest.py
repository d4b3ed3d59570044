"""Shared fixtures for gas_relay tests."""

from __future__ import annotations

import pytest

from gas_relay.models.config import GasPolicyConfig, RateLimitConfig, RelayConfig
from gas_relay.models.records import ProviderAccount
from gas_relay.policy.gas import GasCalculator
from gas_relay.policy.ratelimit import InMemoryRateLimitStore, RateLimiter
from gas_relay.service import SponsorshipService
from gas_relay.storage.sqlite import SQLiteStore

from tests.mocks import FakeClock, FakeSigner, MockChain

# Well-known development key (first account of the Hardhat/Anvil test mnemonic)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_PROVIDER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
RECIPIENT_2 = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

CHAIN_ID = 56
ETHER = 10**18
MILLI = 10**15  # 0.001 native


def make_test_config(**overrides) -> RelayConfig:
    """Build a RelayConfig suitable for testing."""
    defaults = dict(
        rpc_url="http://127.0.0.1:8545",
        chain_id=CHAIN_ID,
        request_timeout=5.0,
        receipt_attempts=3,
        receipt_poll_interval=0.0,
        provider_address=TEST_PROVIDER,
        provider_private_key=TEST_PRIVATE_KEY,
        db_path="",
        gas=GasPolicyConfig(),
        sponsor_limit=RateLimitConfig(max_requests=5, window_seconds=3600),
        eligibility_limit=RateLimitConfig(max_requests=3, window_seconds=1800),
    )
    defaults.update(overrides)
    return RelayConfig(**defaults)


def make_service(
    chain: MockChain,
    signer=None,
    clock=None,
    provider: ProviderAccount | None = None,
    gas: GasPolicyConfig | None = None,
    sponsor_max: int = 5,
    eligibility_max: int | None = 3,
    ledger=None,
) -> SponsorshipService:
    """Wire a SponsorshipService around mocked chain access."""
    clock = clock or FakeClock()
    eligibility = None
    if eligibility_max is not None:
        eligibility = RateLimiter(
            InMemoryRateLimitStore(), eligibility_max, 1800, name="eligibility", clock=clock,
        )
    return SponsorshipService(
        chain=chain,
        provider=provider or ProviderAccount(TEST_PROVIDER, TEST_PRIVATE_KEY),
        chain_id=CHAIN_ID,
        calculator=GasCalculator(gas or GasPolicyConfig()),
        sponsor_limiter=RateLimiter(
            InMemoryRateLimitStore(), sponsor_max, 3600, name="sponsor", clock=clock,
        ),
        eligibility_limiter=eligibility,
        signer=signer or FakeSigner(),
        ledger=ledger,
        receipt_attempts=3,
        receipt_poll_interval=0.0,
    )


@pytest.fixture
def test_config():
    return make_test_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_chain():
    """Provider funded with 1 native unit, recipients holding 0.001."""
    return MockChain(
        balances={
            TEST_PROVIDER: 1 * ETHER,
            RECIPIENT: 1 * MILLI,
            RECIPIENT_2: 1 * MILLI,
        },
    )


@pytest.fixture
def fake_signer():
    return FakeSigner()


@pytest.fixture
def service(mock_chain, fake_signer, clock):
    return make_service(mock_chain, signer=fake_signer, clock=clock)


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteStore."""
    s = SQLiteStore(":memory:")
    await s.initialize()
    yield s
    await s.close()
