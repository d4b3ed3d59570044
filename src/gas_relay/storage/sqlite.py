"""SQLite persistence for rate-limit windows and the sponsorship ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from gas_relay.models.records import (
    RateLimitRecord,
    SponsorshipEntry,
    SponsorshipResult,
)

SCHEMA = """
-- Rate-limit windows, one row per (limiter scope, key)
CREATE TABLE IF NOT EXISTS rate_limits (
    scope TEXT NOT NULL,
    key TEXT NOT NULL,
    count INTEGER NOT NULL,
    window_reset_at REAL NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (scope, key)
);

-- Every terminal sponsorship result
CREATE TABLE IF NOT EXISTS sponsorships (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recipient TEXT NOT NULL,
    outcome TEXT NOT NULL,
    amount_wei TEXT NOT NULL,
    tx_hash TEXT,
    reason TEXT,
    detail TEXT,
    confirmed INTEGER,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_sponsorships_recipient ON sponsorships(recipient);
CREATE INDEX IF NOT EXISTS idx_sponsorships_created ON sponsorships(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore:
    """SQLite-backed SponsorshipLedger and factory for scoped rate-limit stores."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    def rate_limits(self, scope: str) -> SQLiteRateLimitStore:
        """A RateLimitStore over this database, isolated by ``scope``."""
        return SQLiteRateLimitStore(self, scope)

    # ── Rate limits ────────────────────────────────────────

    async def get_rate_limit(self, scope: str, key: str) -> RateLimitRecord | None:
        async with self.db.execute(
            "SELECT key, count, window_reset_at FROM rate_limits WHERE scope=? AND key=?",
            (scope, key),
        ) as cur:
            row = await cur.fetchone()
            if row is None:
                return None
            return RateLimitRecord(
                key=row["key"], count=row["count"], window_reset_at=row["window_reset_at"],
            )

    async def put_rate_limit(self, scope: str, key: str, record: RateLimitRecord) -> None:
        await self.db.execute(
            "INSERT INTO rate_limits (scope, key, count, window_reset_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT(scope, key) DO UPDATE SET count=excluded.count,"
            " window_reset_at=excluded.window_reset_at, updated_at=excluded.updated_at",
            (scope, key, record.count, record.window_reset_at, _now()),
        )
        await self.db.commit()

    # ── Sponsorship ledger ─────────────────────────────────

    async def record_sponsorship(self, result: SponsorshipResult) -> None:
        await self.db.execute(
            "INSERT INTO sponsorships"
            " (recipient, outcome, amount_wei, tx_hash, reason, detail, confirmed, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                result.recipient,
                result.outcome.value,
                # wei can exceed SQLite's 64-bit INTEGER
                str(result.amount_wei),
                result.tx_hash,
                result.reason,
                result.detail,
                None if result.confirmed is None else int(result.confirmed),
                _now(),
            ),
        )
        await self.db.commit()

    async def get_recent_sponsorships(self, limit: int = 20) -> list[SponsorshipEntry]:
        async with self.db.execute(
            "SELECT * FROM sponsorships ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [_row_to_entry(row) async for row in cur]

    async def get_sponsorships_for(self, recipient: str) -> list[SponsorshipEntry]:
        async with self.db.execute(
            "SELECT * FROM sponsorships WHERE recipient=? ORDER BY id DESC", (recipient,)
        ) as cur:
            return [_row_to_entry(row) async for row in cur]


class SQLiteRateLimitStore:
    """RateLimitStore view of one limiter scope inside a SQLiteStore."""

    def __init__(self, store: SQLiteStore, scope: str) -> None:
        self._store = store
        self._scope = scope

    async def get(self, key: str) -> RateLimitRecord | None:
        return await self._store.get_rate_limit(self._scope, key)

    async def put(self, key: str, record: RateLimitRecord) -> None:
        await self._store.put_rate_limit(self._scope, key, record)


def _row_to_entry(row: aiosqlite.Row) -> SponsorshipEntry:
    confirmed = row["confirmed"]
    return SponsorshipEntry(
        id=row["id"],
        recipient=row["recipient"],
        outcome=row["outcome"],
        amount_wei=int(row["amount_wei"]),
        tx_hash=row["tx_hash"],
        reason=row["reason"],
        detail=row["detail"],
        confirmed=None if confirmed is None else bool(confirmed),
        created_at=row["created_at"],
    )
