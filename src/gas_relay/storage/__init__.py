"""Persistent state stores."""

from gas_relay.storage.sqlite import SQLiteRateLimitStore, SQLiteStore

__all__ = ["SQLiteRateLimitStore", "SQLiteStore"]
