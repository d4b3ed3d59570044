"""Storage protocols - rate-limit records and the sponsorship ledger."""

from __future__ import annotations

from typing import Protocol

from gas_relay.models.records import (
    RateLimitRecord,
    SponsorshipEntry,
    SponsorshipResult,
)


class RateLimitStore(Protocol):
    """Keyed storage for rate-limit records.

    The RateLimiter serializes access per key; a store only has to make a
    single get or put consistent.
    """

    async def get(self, key: str) -> RateLimitRecord | None:
        ...

    async def put(self, key: str, record: RateLimitRecord) -> None:
        ...


class SponsorshipLedger(Protocol):
    """Append-only history of sponsorship results."""

    async def record_sponsorship(self, result: SponsorshipResult) -> None:
        ...

    async def get_recent_sponsorships(self, limit: int = 20) -> list[SponsorshipEntry]:
        ...
