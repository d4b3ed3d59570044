"""Request, transaction and result types exchanged between relay components."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum

from eth_utils import is_address, to_checksum_address

from gas_relay.chain.units import from_wei, to_wei
from gas_relay.errors import ValidationError

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: object) -> str:
    """Return the EIP-55 checksum form of a 20-byte hex address.

    Raises ValidationError for anything that is not ``0x`` + 40 hex digits.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValidationError(f"invalid address format: {address!r}")
    if not is_address(address):
        # Mixed case with a bad checksum
        raise ValidationError(f"invalid address checksum: {address}")
    return to_checksum_address(address)


def _as_decimal(name: str, value: object) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{name} is not a number: {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite: {value!r}")
    return result


class SponsorshipOutcome(str, Enum):
    """Terminal state of a sponsorship attempt."""

    SPONSORED = "sponsored"  # funding transaction broadcast
    NOT_NEEDED = "not_needed"  # recipient already has enough gas
    REJECTED = "rejected"


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    LOW = "low"
    CRITICAL = "critical"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class SponsorshipRequest:
    """A single call to sponsor gas for ``recipient``.

    ``context_amount`` is the size (token units) of the transfer the recipient
    intends to make; it only scales the sponsorship. ``requested_amount``
    overrides the computed amount (native units).
    """

    recipient: str
    context_amount: Decimal = Decimal(0)
    requested_amount: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "recipient", normalize_address(self.recipient))

        context = _as_decimal("context_amount", self.context_amount)
        if context < 0:
            raise ValidationError(f"context_amount must be >= 0, got {context}")
        object.__setattr__(self, "context_amount", context)

        if self.requested_amount is not None:
            requested = _as_decimal("requested_amount", self.requested_amount)
            if requested <= 0:
                raise ValidationError(
                    f"requested_amount must be > 0, got {requested}"
                )
            if to_wei(requested) == 0:
                raise ValidationError(
                    f"requested_amount {requested} is smaller than one wei"
                )
            object.__setattr__(self, "requested_amount", requested)


@dataclass(frozen=True)
class RateLimitRecord:
    """Per-key admission counter for the current window."""

    key: str
    count: int
    window_reset_at: float  # unix seconds


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a rate-limit admission check."""

    allowed: bool
    key: str
    count: int
    reset_at: float
    retry_after: float = 0.0


@dataclass(frozen=True)
class ProviderAccount:
    """The custodial account that pays for sponsorships."""

    address: str = ""
    signing_credential: str = field(default="", repr=False)

    def problems(self) -> list[str]:
        """Describe what is wrong with this account; empty when usable."""
        issues = []
        if not self.address:
            issues.append("missing provider address")
        elif not _ADDRESS_RE.match(self.address) or not is_address(self.address):
            issues.append("malformed provider address")
        if not self.signing_credential:
            issues.append("missing signing credential")
        elif not _PRIVATE_KEY_RE.match(self.signing_credential):
            issues.append(
                f"malformed signing credential (length {len(self.signing_credential)})"
            )
        return issues

    def is_valid(self) -> bool:
        return not self.problems()


@dataclass(frozen=True)
class TransactionDescriptor:
    """Unsigned legacy transaction. Built fresh for every send."""

    sender: str
    to: str
    value: int  # wei
    data: bytes
    gas_limit: int
    gas_price: int  # wei
    nonce: int
    chain_id: int

    def to_tx_dict(self) -> dict:
        """Transaction fields in the shape eth_account expects."""
        return {
            "to": self.to,
            "value": self.value,
            "gas": self.gas_limit,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "data": self.data,
        }

    @property
    def max_fee(self) -> int:
        return self.gas_limit * self.gas_price


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    tx_hash: str  # 0x-prefixed keccak of raw


@dataclass(frozen=True)
class TransactionReceipt:
    """Confirmation record for a mined transaction."""

    tx_hash: str
    status: int  # 1 success, 0 reverted
    block_number: int
    gas_used: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass
class SponsorshipResult:
    """What happened to one SponsorshipRequest."""

    outcome: SponsorshipOutcome
    recipient: str
    amount_wei: int = 0
    tx_hash: str | None = None
    reason: str | None = None
    detail: str | None = None
    confirmed: bool | None = None  # None when confirmation was not requested
    receipt: TransactionReceipt | None = None
    retry_after: float | None = None  # seconds, for rate_limited

    @property
    def succeeded(self) -> bool:
        return self.outcome != SponsorshipOutcome.REJECTED

    @property
    def amount_sent(self) -> Decimal:
        return from_wei(self.amount_wei)

    @classmethod
    def rejected(
        cls,
        recipient: str,
        reason: str,
        detail: str | None = None,
        **kwargs,
    ) -> SponsorshipResult:
        return cls(
            outcome=SponsorshipOutcome.REJECTED,
            recipient=recipient,
            reason=reason,
            detail=detail,
            **kwargs,
        )

    @classmethod
    def not_needed(cls, recipient: str, detail: str) -> SponsorshipResult:
        return cls(
            outcome=SponsorshipOutcome.NOT_NEEDED,
            recipient=recipient,
            detail=detail,
        )


@dataclass
class EligibilityReport:
    """Whether an address needs sponsorship and whether we could provide it."""

    address: str
    needs_gas: bool
    current_balance: int  # wei
    required_amount: int  # wei we would send right now
    min_balance: int  # wei
    provider_can_send: bool
    estimated_tx_cost: int | None = None  # wei for a plain transfer


@dataclass
class ProviderStatus:
    """Health summary of the provider account."""

    configured: bool
    address: str | None = None
    balance: int | None = None  # wei
    health: HealthLevel = HealthLevel.UNCONFIGURED
    can_send: bool = False
    needs_refill: bool = False
    error: str | None = None


@dataclass
class SponsorshipEntry:
    """A sponsorship result as persisted in the ledger."""

    id: int
    recipient: str
    outcome: str
    amount_wei: int
    tx_hash: str | None
    reason: str | None
    detail: str | None
    confirmed: bool | None
    created_at: str
