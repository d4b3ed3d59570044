"""Configuration models for the relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class RateLimitConfig:
    """Fixed-window limit for one call site."""

    max_requests: int = 5
    window_seconds: int = 3600


@dataclass
class GasPolicyConfig:
    """Sponsorship sizing and solvency constants, in native units."""

    min_balance: Decimal = Decimal("0.005")  # at or above this, no sponsorship
    base_floor: Decimal = Decimal("0.004")  # gas for one token transfer
    buffer_constant: Decimal = Decimal("0.002")
    reference_amount: Decimal = Decimal("1000")  # context size for multiplier 1.0
    max_multiplier: Decimal = Decimal("1.5")
    hard_cap: Decimal = Decimal("0.02")  # never send more per sponsorship
    provider_reserve: Decimal = Decimal("0.002")  # left behind for our own fees
    max_single_amount: Decimal = Decimal("0.1")  # ceiling for explicit overrides

    # Provider health thresholds
    healthy_balance: Decimal = Decimal("0.1")
    critical_balance: Decimal = Decimal("0.01")
    refill_balance: Decimal = Decimal("0.05")


@dataclass
class RelayConfig:
    """Complete relay configuration."""

    # Relay
    log_level: str = "info"
    db_path: str = ""  # empty: in-memory limiter state, no ledger

    # Chain
    rpc_url: str = "https://bsc-dataseed.binance.org/"
    chain_id: int = 56
    request_timeout: float = 15.0  # seconds per RPC call
    receipt_attempts: int = 30
    receipt_poll_interval: float = 2.0  # seconds
    native_symbol: str = "BNB"

    # Provider (private key loaded from env var GAS_RELAY_PRIVATE_KEY)
    provider_address: str = ""
    provider_private_key: str = field(default="", repr=False)

    # Policy
    gas: GasPolicyConfig = field(default_factory=GasPolicyConfig)
    sponsor_limit: RateLimitConfig = field(
        default_factory=lambda: RateLimitConfig(max_requests=5, window_seconds=3600)
    )
    eligibility_limit: RateLimitConfig = field(
        default_factory=lambda: RateLimitConfig(max_requests=3, window_seconds=1800)
    )
