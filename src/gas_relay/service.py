"""Sponsorship service - wires chain access, policy and signing together."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, TypeVar

from gas_relay.chain.rpc import JsonRpcChainClient
from gas_relay.chain.units import format_native, from_wei, to_wei
from gas_relay.errors import (
    ChainCommunicationError,
    ConfigurationError,
    InsufficientFundsError,
    RelayError,
    SendFailure,
    ValidationError,
)
from gas_relay.interfaces.chain import ChainClient
from gas_relay.interfaces.signer import Signer
from gas_relay.interfaces.store import RateLimitStore, SponsorshipLedger
from gas_relay.models.config import RelayConfig
from gas_relay.models.records import (
    EligibilityReport,
    HealthLevel,
    ProviderAccount,
    ProviderStatus,
    SponsorshipOutcome,
    SponsorshipRequest,
    SponsorshipResult,
    normalize_address,
)
from gas_relay.policy.gas import GasCalculator
from gas_relay.policy.ratelimit import InMemoryRateLimitStore, RateLimiter
from gas_relay.storage.sqlite import SQLiteStore
from gas_relay.tx.broadcaster import Broadcaster
from gas_relay.tx.builder import TRANSFER_GAS_LIMIT, TransactionBuilder
from gas_relay.tx.signer import EthAccountSigner, derive_address

log = logging.getLogger(__name__)

T = TypeVar("T")


class _DeadlineExceeded(Exception):
    pass


class SponsorshipService:
    """Decides whether to fund a recipient, and funds it.

    sponsor() runs one pass of the state machine:

        config -> rate limit -> recipient balance -> amount -> provider
        solvency -> build -> sign -> send -> (confirm)

    Business rejections come back as SponsorshipResult(outcome=REJECTED).
    Malformed input raises ValidationError before any network call, and a
    ChainCommunicationError before the send stage propagates to the caller.

    Everything from the provider solvency check to the broadcast runs under
    one provider lock, so concurrent sponsorships never share a nonce.
    """

    def __init__(
        self,
        chain: ChainClient,
        provider: ProviderAccount,
        chain_id: int,
        calculator: GasCalculator | None = None,
        sponsor_limiter: RateLimiter | None = None,
        eligibility_limiter: RateLimiter | None = None,
        signer: Signer | None = None,
        ledger: SponsorshipLedger | None = None,
        receipt_attempts: int = 30,
        receipt_poll_interval: float = 2.0,
        native_symbol: str = "BNB",
    ) -> None:
        self._chain = chain
        self._provider = provider
        self._calculator = calculator or GasCalculator()
        self._sponsor_limiter = sponsor_limiter or RateLimiter(
            InMemoryRateLimitStore(), max_requests=5, window_seconds=3600, name="sponsor",
        )
        self._eligibility_limiter = eligibility_limiter
        self._signer: Signer = signer or EthAccountSigner()
        self._ledger = ledger
        self._builder = TransactionBuilder(chain, chain_id)
        self._broadcaster = Broadcaster(chain, receipt_attempts, receipt_poll_interval)
        self._symbol = native_symbol
        self._provider_lock = asyncio.Lock()
        self._owned_store: SQLiteStore | None = None

        self._config_problem = self._validate_provider(provider)
        if self._config_problem:
            log.error("Gas provider not configured: %s", self._config_problem)

    @classmethod
    async def from_config(cls, cfg: RelayConfig, transport=None) -> SponsorshipService:
        """Build a service and its collaborators from a RelayConfig.

        With ``db_path`` set, rate-limit windows and the sponsorship ledger
        live in SQLite; otherwise limiter state is in memory and no ledger
        is kept.
        """
        chain = JsonRpcChainClient(cfg.rpc_url, cfg.request_timeout, transport=transport)

        store: SQLiteStore | None = None
        sponsor_store: RateLimitStore
        eligibility_store: RateLimitStore
        if cfg.db_path:
            store = SQLiteStore(cfg.db_path)
            await store.initialize()
            sponsor_store = store.rate_limits("sponsor")
            eligibility_store = store.rate_limits("eligibility")
        else:
            sponsor_store = InMemoryRateLimitStore()
            eligibility_store = InMemoryRateLimitStore()

        service = cls(
            chain=chain,
            provider=ProviderAccount(cfg.provider_address, cfg.provider_private_key),
            chain_id=cfg.chain_id,
            calculator=GasCalculator(cfg.gas),
            sponsor_limiter=RateLimiter(
                sponsor_store,
                cfg.sponsor_limit.max_requests,
                cfg.sponsor_limit.window_seconds,
                name="sponsor",
            ),
            eligibility_limiter=RateLimiter(
                eligibility_store,
                cfg.eligibility_limit.max_requests,
                cfg.eligibility_limit.window_seconds,
                name="eligibility",
            ),
            ledger=store,
            receipt_attempts=cfg.receipt_attempts,
            receipt_poll_interval=cfg.receipt_poll_interval,
            native_symbol=cfg.native_symbol,
        )
        service._owned_store = store
        return service

    async def close(self) -> None:
        await self._chain.close()
        if self._owned_store is not None:
            await self._owned_store.close()

    # ── Configuration ──────────────────────────────────────

    @staticmethod
    def _validate_provider(provider: ProviderAccount) -> str | None:
        problems = provider.problems()
        if problems:
            return "; ".join(problems)
        try:
            derived = derive_address(provider.signing_credential)
        except ConfigurationError as exc:
            return str(exc)
        if derived != normalize_address(provider.address):
            return f"signing credential does not control {provider.address}"
        return None

    @property
    def configured(self) -> bool:
        return self._config_problem is None

    @property
    def provider_address(self) -> str | None:
        return normalize_address(self._provider.address) if self.configured else None

    @property
    def calculator(self) -> GasCalculator:
        return self._calculator

    def _require_configured(self) -> str:
        if self._config_problem:
            raise ConfigurationError(self._config_problem)
        return normalize_address(self._provider.address)

    # ── Inbound operations ─────────────────────────────────

    async def check_eligibility(
        self, address: str, context_amount: Decimal | int | str = 0,
    ) -> EligibilityReport:
        """Report whether ``address`` needs gas and how much we would send.

        Guarded by the eligibility limiter (raises RateLimitError).
        """
        request = SponsorshipRequest(address, context_amount)
        if self._eligibility_limiter is not None:
            await self._eligibility_limiter.enforce(request.recipient)

        balance = await self._chain.get_balance(request.recipient)
        needs_gas = self._calculator.needs_gas(balance)
        required = (
            self._calculator.optimal_amount_wei(request.context_amount, balance)
            if needs_gas else 0
        )

        provider_can_send = False
        if self.configured:
            provider_balance = await self._chain.get_balance(self._require_configured())
            provider_can_send = provider_balance >= required + self._reserve_wei

        estimated_cost = await self._chain.estimate_transfer_cost(TRANSFER_GAS_LIMIT)

        log.info(
            "Gas check for %s: balance=%s needs=%s required=%s",
            request.recipient,
            format_native(balance, self._symbol),
            needs_gas,
            format_native(required, self._symbol),
        )
        return EligibilityReport(
            address=request.recipient,
            needs_gas=needs_gas,
            current_balance=balance,
            required_amount=required,
            min_balance=self._calculator.min_balance_wei,
            provider_can_send=provider_can_send,
            estimated_tx_cost=estimated_cost,
        )

    async def provider_status(self) -> ProviderStatus:
        """Configuration and balance health of the provider account."""
        if not self.configured:
            return ProviderStatus(configured=False, error=self._config_problem)

        address = self._require_configured()
        balance = await self._chain.get_balance(address)
        policy = self._calculator.policy
        balance_dec = from_wei(balance)

        if balance_dec > policy.healthy_balance:
            health = HealthLevel.HEALTHY
        elif balance_dec > policy.critical_balance:
            health = HealthLevel.LOW
        else:
            health = HealthLevel.CRITICAL

        log.info("Gas provider balance: %s (%s)", format_native(balance, self._symbol), health.value)
        return ProviderStatus(
            configured=True,
            address=address,
            balance=balance,
            health=health,
            can_send=balance_dec > policy.critical_balance,
            needs_refill=balance_dec < policy.refill_balance,
        )

    async def sponsor(
        self,
        request: SponsorshipRequest,
        wait_for_receipt: bool = False,
        deadline: float | None = None,
    ) -> SponsorshipResult:
        """Run one sponsorship attempt for ``request``.

        ``deadline`` bounds the whole call in seconds. There is no automatic
        retry; a caller retrying must call sponsor() again from the top.
        """
        if request.requested_amount is not None:
            cap = self._calculator.policy.max_single_amount
            if request.requested_amount > cap:
                raise ValidationError(
                    f"requested amount {request.requested_amount} exceeds {cap}"
                )

        loop = asyncio.get_running_loop()
        deadline_at = None if deadline is None else loop.time() + deadline

        try:
            result = await self._run(request, wait_for_receipt, deadline_at)
        except SendFailure as exc:
            log.error(
                "Gas send to %s failed (%s, tx=%s): %s",
                exc.recipient, format_native(exc.amount_wei, self._symbol),
                exc.tx_hash or "none", exc,
            )
            result = SponsorshipResult.rejected(
                request.recipient, exc.reason, str(exc),
                amount_wei=exc.amount_wei, tx_hash=exc.tx_hash,
            )
        except RelayError as exc:
            if isinstance(exc, ChainCommunicationError):
                log.error("Chain error while sponsoring %s: %s", request.recipient, exc)
                raise
            result = SponsorshipResult.rejected(
                request.recipient, exc.reason, str(exc),
                retry_after=getattr(exc, "retry_after", None),
            )
        except _DeadlineExceeded:
            log.warning("Deadline exceeded before sending to %s", request.recipient)
            result = SponsorshipResult.rejected(
                request.recipient, "deadline_exceeded", "deadline exceeded before send",
            )

        await self._record(result)
        return result

    # ── State machine ──────────────────────────────────────

    @property
    def _reserve_wei(self) -> int:
        return to_wei(self._calculator.policy.provider_reserve)

    async def _bounded(self, aw: Awaitable[T], deadline_at: float | None) -> T:
        if deadline_at is None:
            return await aw
        remaining = deadline_at - asyncio.get_running_loop().time()
        if remaining <= 0:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise _DeadlineExceeded()
        try:
            return await asyncio.wait_for(aw, remaining)
        except asyncio.TimeoutError:
            raise _DeadlineExceeded() from None

    async def _run(
        self,
        request: SponsorshipRequest,
        wait_for_receipt: bool,
        deadline_at: float | None,
    ) -> SponsorshipResult:
        recipient = request.recipient

        # 1. Configuration
        provider = self._require_configured()

        # 2. Rate limit
        decision = await self._sponsor_limiter.check(recipient)
        if not decision.allowed:
            return SponsorshipResult.rejected(
                recipient, "rate_limited",
                f"limit of {self._sponsor_limiter.max_requests} per window reached",
                retry_after=decision.retry_after,
            )

        # 3. Recipient balance
        balance = await self._bounded(self._chain.get_balance(recipient), deadline_at)
        if not self._calculator.needs_gas(balance):
            log.info(
                "Recipient %s already has %s", recipient, format_native(balance, self._symbol),
            )
            return SponsorshipResult.not_needed(recipient, "recipient already has sufficient gas")

        # 4. Amount
        if request.requested_amount is not None:
            amount = to_wei(request.requested_amount)
        else:
            amount = self._calculator.optimal_amount_wei(request.context_amount, balance)
        if amount <= 0:
            return SponsorshipResult.not_needed(recipient, "sufficient gas already available")

        async with self._provider_lock:
            # 5. Provider solvency
            provider_balance = await self._bounded(
                self._chain.get_balance(provider), deadline_at,
            )
            required = amount + self._reserve_wei
            if provider_balance < required:
                log.warning(
                    "Insufficient provider balance: %s, need %s",
                    format_native(provider_balance, self._symbol),
                    format_native(required, self._symbol),
                )
                raise InsufficientFundsError(provider_balance, required)

            # 6. Build, sign, send
            tx_hash = await self._send(provider, recipient, amount, deadline_at)

        log.info(
            "Sent %s to %s (tx=%s)", format_native(amount, self._symbol), recipient, tx_hash,
        )
        result = SponsorshipResult(
            outcome=SponsorshipOutcome.SPONSORED,
            recipient=recipient,
            amount_wei=amount,
            tx_hash=tx_hash,
        )

        # 7. Confirmation
        if wait_for_receipt:
            await self._confirm(result, deadline_at)
        return result

    async def _send(
        self, provider: str, recipient: str, amount: int, deadline_at: float | None,
    ) -> str:
        signed = None
        try:
            descriptor = await self._bounded(
                self._builder.build(provider, recipient, amount), deadline_at,
            )
            signed = self._signer.sign(descriptor, self._provider.signing_credential)
            return await self._bounded(self._broadcaster.send(signed), deadline_at)
        except asyncio.CancelledError:
            if signed is not None:
                log.error(
                    "Cancelled while sending to %s; tx %s may have been accepted",
                    recipient, signed.tx_hash,
                )
                await self._record(SponsorshipResult.rejected(
                    recipient, SendFailure.reason,
                    "cancelled during broadcast; transaction may have been accepted",
                    amount_wei=amount, tx_hash=signed.tx_hash,
                ))
            raise
        except _DeadlineExceeded:
            if signed is None:
                raise
            raise SendFailure(
                "deadline exceeded during broadcast; transaction may have been accepted",
                recipient, amount, signed.tx_hash,
            ) from None
        except Exception as exc:
            raise SendFailure(
                f"failed to send gas: {exc}",
                recipient, amount, signed.tx_hash if signed else None,
            ) from exc

    async def _confirm(self, result: SponsorshipResult, deadline_at: float | None) -> None:
        assert result.tx_hash is not None
        try:
            receipt = await self._bounded(self._broadcaster.confirm(result.tx_hash), deadline_at)
        except _DeadlineExceeded:
            result.confirmed = False
            result.detail = "sent, unconfirmed (deadline exceeded)"
            return

        if receipt is None:
            result.confirmed = False
            result.detail = "sent, unconfirmed"
        elif not receipt.succeeded:
            result.confirmed = False
            result.receipt = receipt
            result.detail = f"transaction reverted in block {receipt.block_number}"
            log.error("Gas transaction %s reverted", result.tx_hash)
        else:
            result.confirmed = True
            result.receipt = receipt

    async def _record(self, result: SponsorshipResult) -> None:
        if self._ledger is None:
            return
        try:
            await self._ledger.record_sponsorship(result)
        except Exception as exc:
            # The result (and any tx hash in it) must still reach the caller
            log.error("Failed to record sponsorship for %s: %s", result.recipient, exc, exc_info=True)
