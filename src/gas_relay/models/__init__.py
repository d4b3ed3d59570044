"""Data models for the gas_relay service."""

from gas_relay.models.records import (
    EligibilityReport,
    HealthLevel,
    ProviderAccount,
    ProviderStatus,
    RateDecision,
    RateLimitRecord,
    SignedTransaction,
    SponsorshipEntry,
    SponsorshipOutcome,
    SponsorshipRequest,
    SponsorshipResult,
    TransactionDescriptor,
    TransactionReceipt,
    normalize_address,
)
from gas_relay.models.config import GasPolicyConfig, RateLimitConfig, RelayConfig

__all__ = [
    "EligibilityReport", "HealthLevel", "ProviderAccount", "ProviderStatus",
    "RateDecision", "RateLimitRecord", "SignedTransaction", "SponsorshipEntry",
    "SponsorshipOutcome", "SponsorshipRequest", "SponsorshipResult",
    "TransactionDescriptor", "TransactionReceipt", "normalize_address",
    "GasPolicyConfig", "RateLimitConfig", "RelayConfig",
]
