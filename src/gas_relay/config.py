"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from gas_relay.errors import ConfigurationError
from gas_relay.models.config import GasPolicyConfig, RateLimitConfig, RelayConfig

_GAS_FIELDS = (
    "min_balance",
    "base_floor",
    "buffer_constant",
    "reference_amount",
    "max_multiplier",
    "hard_cap",
    "provider_reserve",
    "max_single_amount",
    "healthy_balance",
    "critical_balance",
    "refill_balance",
)


def _decimal(name: str, value: object) -> Decimal:
    # TOML floats arrive as binary floats; go through str to keep 0.004 exact
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(f"gas.{name} is not a number: {value!r}") from None


def _rate_limit(raw: dict, default: RateLimitConfig) -> RateLimitConfig:
    return RateLimitConfig(
        max_requests=int(raw.get("max_requests", default.max_requests)),
        window_seconds=int(raw.get("window_seconds", default.window_seconds)),
    )


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "GAS_RELAY_",
) -> RelayConfig:
    """Load relay configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (GAS_RELAY_PRIVATE_KEY, etc.)
        2. TOML config file
        3. Defaults from RelayConfig

    The result is read once at startup and never reloaded.
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = RelayConfig()

    # ── Relay section ──────────────────────────────────────
    relay = raw.get("relay", {})
    if v := relay.get("log_level"):
        cfg.log_level = str(v)
    if v := relay.get("db_path"):
        cfg.db_path = str(v)

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    if v := chain.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := chain.get("chain_id"):
        cfg.chain_id = int(v)
    if v := chain.get("request_timeout"):
        cfg.request_timeout = float(v)
    if v := chain.get("receipt_attempts"):
        cfg.receipt_attempts = int(v)
    if v := chain.get("receipt_poll_interval"):
        cfg.receipt_poll_interval = float(v)
    if v := chain.get("native_symbol"):
        cfg.native_symbol = str(v)

    # ── Provider section ───────────────────────────────────
    provider = raw.get("provider", {})
    if v := provider.get("address"):
        cfg.provider_address = str(v)
    if v := provider.get("private_key"):
        cfg.provider_private_key = str(v)

    # ── Gas policy section ─────────────────────────────────
    gas_raw = raw.get("gas", {})
    gas = GasPolicyConfig()
    for name in _GAS_FIELDS:
        if name in gas_raw:
            setattr(gas, name, _decimal(name, gas_raw[name]))
    cfg.gas = gas

    # ── Rate limit sections ────────────────────────────────
    limits = raw.get("rate_limits", {})
    cfg.sponsor_limit = _rate_limit(limits.get("sponsor", {}), cfg.sponsor_limit)
    cfg.eligibility_limit = _rate_limit(limits.get("eligibility", {}), cfg.eligibility_limit)

    # ── Environment variable overrides (highest priority) ──
    if key := os.environ.get(f"{env_prefix}PRIVATE_KEY"):
        cfg.provider_private_key = key
    if addr := os.environ.get(f"{env_prefix}PROVIDER_ADDRESS"):
        cfg.provider_address = addr
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = rpc
    if chain_id := os.environ.get(f"{env_prefix}CHAIN_ID"):
        cfg.chain_id = int(chain_id)
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db

    # Expand ~ in paths
    if cfg.db_path and cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg
