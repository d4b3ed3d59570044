"""Gas calculator - sizes a sponsorship from transfer context and current balance."""

from __future__ import annotations

import decimal
import logging
from decimal import Decimal

from gas_relay.chain.units import from_wei, quantize, to_wei
from gas_relay.models.config import GasPolicyConfig

log = logging.getLogger(__name__)

_CTX = decimal.Context(prec=100, rounding=decimal.ROUND_DOWN)


class GasCalculator:
    """Pure sponsorship sizing.

    needed  = base_floor + buffer_constant * min(context / reference, max_multiplier)
    to_send = min(max(0, needed - balance), hard_cap)

    The result is always in ``[0, hard_cap]``.
    """

    def __init__(self, policy: GasPolicyConfig | None = None) -> None:
        self._policy = policy or GasPolicyConfig()

    @property
    def policy(self) -> GasPolicyConfig:
        return self._policy

    @property
    def min_balance_wei(self) -> int:
        return to_wei(self._policy.min_balance)

    @property
    def hard_cap_wei(self) -> int:
        return to_wei(self._policy.hard_cap)

    def needs_gas(self, balance_wei: int) -> bool:
        """True when the balance is below the sponsorship floor."""
        return balance_wei < self.min_balance_wei

    def buffer_multiplier(self, context_amount: Decimal) -> Decimal:
        p = self._policy
        if context_amount <= 0 or p.reference_amount <= 0:
            return Decimal(0)
        ratio = _CTX.divide(context_amount, p.reference_amount)
        return min(ratio, p.max_multiplier)

    def optimal_amount(self, context_amount: Decimal, current_balance: Decimal) -> Decimal:
        """Native-unit amount to send so the recipient can afford its transfer."""
        p = self._policy
        multiplier = self.buffer_multiplier(Decimal(context_amount))
        needed = _CTX.add(p.base_floor, _CTX.multiply(p.buffer_constant, multiplier))
        to_send = max(Decimal(0), _CTX.subtract(needed, Decimal(current_balance)))
        amount = quantize(min(to_send, p.hard_cap))

        log.debug(
            "Gas calculation: context=%s balance=%s needed=%s to_send=%s",
            context_amount, current_balance, needed, amount,
        )
        return amount

    def optimal_amount_wei(self, context_amount: Decimal, balance_wei: int) -> int:
        return to_wei(self.optimal_amount(context_amount, from_wei(balance_wei)))
