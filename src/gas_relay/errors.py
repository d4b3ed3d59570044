"""Error taxonomy for the relay.

Every error carries a short ``reason`` code which is what ends up in a
rejected SponsorshipResult.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all relay errors."""

    reason = "relay_error"


class ConfigurationError(RelayError):
    """Provider address or signing credential is missing or malformed."""

    reason = "not_configured"


class ValidationError(RelayError):
    """Malformed address or out-of-range amount."""

    reason = "invalid_request"


class RateLimitError(RelayError):
    """Too many requests for a key within the current window."""

    reason = "rate_limited"

    def __init__(self, key: str, retry_after: float | None = None) -> None:
        super().__init__(f"rate limit exceeded for {key}")
        self.key = key
        self.retry_after = retry_after


class ChainCommunicationError(RelayError):
    """Upstream JSON-RPC failure (transport, HTTP status or RPC error object)."""

    reason = "chain_error"

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        detail = f"{method}: {message}"
        if code is not None:
            detail += f" (code {code})"
        super().__init__(detail)
        self.method = method
        self.message = message
        self.code = code


class InsufficientFundsError(RelayError):
    """Provider cannot cover the sponsorship amount plus its reserve."""

    reason = "insufficient_provider_balance"

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"provider balance {available} wei below required {required} wei"
        )
        self.available = available
        self.required = required


class SendFailure(RelayError):
    """Signing or broadcast failed after every prior check passed.

    The transaction may or may not have reached the network, so whatever is
    known about the attempt travels with the error.
    """

    reason = "send_failed"

    def __init__(
        self,
        message: str,
        recipient: str,
        amount_wei: int,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message)
        self.recipient = recipient
        self.amount_wei = amount_wei
        self.tx_hash = tx_hash


__all__ = [
    "RelayError",
    "ConfigurationError",
    "ValidationError",
    "RateLimitError",
    "ChainCommunicationError",
    "InsufficientFundsError",
    "SendFailure",
]
