"""Sponsorship policy: sizing and rate limiting."""

from gas_relay.policy.gas import GasCalculator
from gas_relay.policy.ratelimit import InMemoryRateLimitStore, RateLimiter

__all__ = ["GasCalculator", "InMemoryRateLimitStore", "RateLimiter"]
