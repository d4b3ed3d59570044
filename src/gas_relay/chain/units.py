"""Exact conversions between wei, display decimals and JSON-RPC hex quantities."""

from __future__ import annotations

import decimal
import re
from decimal import Decimal

WEI_PER_ETHER = 10**18
DECIMALS = 18

# Wide enough for any uint256 expressed with 18 fractional digits.
_CTX = decimal.Context(prec=100, rounding=decimal.ROUND_DOWN)
_QUANTUM = Decimal(1).scaleb(-DECIMALS)
_HEX_QUANTITY_RE = re.compile(r"^0[xX][0-9a-fA-F]+\Z")


def to_wei(amount: Decimal | int | str, decimals: int = DECIMALS) -> int:
    """Convert a display amount to the smallest unit, truncating sub-wei dust."""
    value = Decimal(amount) if not isinstance(amount, Decimal) else amount
    if not value.is_finite():
        raise ValueError(f"not a finite amount: {amount!r}")
    scaled = _CTX.multiply(value, Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=decimal.ROUND_DOWN))


def from_wei(wei: int, decimals: int = DECIMALS) -> Decimal:
    """Convert a smallest-unit integer to an exact Decimal."""
    return _CTX.divide(Decimal(wei), Decimal(10) ** decimals)


def quantize(amount: Decimal) -> Decimal:
    """Truncate a Decimal to 18 fractional digits."""
    return amount.quantize(_QUANTUM, rounding=decimal.ROUND_DOWN, context=_CTX)


def parse_hex_quantity(value: object) -> int:
    """Parse a ``0x``-prefixed hex quantity. Raises ValueError if malformed."""
    if not isinstance(value, str) or not _HEX_QUANTITY_RE.match(value):
        raise ValueError(f"malformed hex quantity: {value!r}")
    return int(value[2:], 16)


def to_hex(value: int) -> str:
    if value < 0:
        raise ValueError("hex quantities are unsigned")
    return hex(value)


def format_native(wei: int, symbol: str = "BNB", places: int = 6) -> str:
    """Human readable amount, e.g. ``0.003020 BNB``."""
    return f"{from_wei(wei):.{places}f} {symbol}"
