"""CLI entry point for the gas relay."""

from __future__ import annotations

import asyncio
import logging
import sys
from decimal import Decimal
from pathlib import Path

import click

from gas_relay.chain.units import format_native
from gas_relay.config import load_config
from gas_relay.errors import ChainCommunicationError, RateLimitError, ValidationError
from gas_relay.models.config import RelayConfig
from gas_relay.models.records import SponsorshipOutcome, SponsorshipRequest
from gas_relay.service import SponsorshipService
from gas_relay.storage.sqlite import SQLiteStore

DEFAULT_DB_PATH = "~/.gas_relay/state.db"


def _load(ctx: click.Context) -> RelayConfig:
    cfg = load_config(ctx.obj["config_path"])
    if not cfg.db_path:
        # Rate-limit windows must survive between CLI invocations
        cfg.db_path = str(Path(DEFAULT_DB_PATH).expanduser())
    return cfg


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """gas-relay - sponsor native gas for wallets that cannot pay fees."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show relay configuration."""
    cfg = _load(ctx)
    gas = cfg.gas
    click.echo(f"RPC URL:      {cfg.rpc_url}")
    click.echo(f"Chain ID:     {cfg.chain_id}")
    click.echo(f"Provider:     {cfg.provider_address or '(not set)'}")
    click.echo(f"Private key:  {'***configured***' if cfg.provider_private_key else '(not set)'}")
    click.echo(f"Min balance:  {gas.min_balance} {cfg.native_symbol}")
    click.echo(f"Hard cap:     {gas.hard_cap} {cfg.native_symbol}")
    click.echo(f"Reserve:      {gas.provider_reserve} {cfg.native_symbol}")
    click.echo(
        f"Sponsor limit:     {cfg.sponsor_limit.max_requests} per "
        f"{cfg.sponsor_limit.window_seconds}s"
    )
    click.echo(
        f"Eligibility limit: {cfg.eligibility_limit.max_requests} per "
        f"{cfg.eligibility_limit.window_seconds}s"
    )
    click.echo(f"DB path:      {cfg.db_path}")


@cli.command()
@click.pass_context
def provider(ctx: click.Context) -> None:
    """Query the provider account's balance and health."""
    cfg = _load(ctx)

    async def _provider():
        service = await SponsorshipService.from_config(cfg)
        try:
            st = await service.provider_status()
        finally:
            await service.close()

        if not st.configured:
            click.echo("Configured: no")
            click.echo(f"  {st.error}")
            click.echo("  Set GAS_RELAY_PRIVATE_KEY and GAS_RELAY_PROVIDER_ADDRESS.")
            sys.exit(1)

        click.echo(f"Address:    {st.address}")
        click.echo(f"Balance:    {format_native(st.balance or 0, cfg.native_symbol)}")
        click.echo(f"Health:     {st.health.value}")
        click.echo(f"Can send:   {st.can_send}")
        if st.needs_refill:
            click.echo("Provider balance is low; refill recommended.", err=True)

    try:
        asyncio.run(_provider())
    except ChainCommunicationError as exc:
        _fail(str(exc))


@cli.command()
@click.argument("address")
@click.option("--context-amount", default="0", help="Size of the transfer the wallet intends to make")
@click.pass_context
def check(ctx: click.Context, address: str, context_amount: str) -> None:
    """Check whether ADDRESS needs gas and how much would be sent."""
    cfg = _load(ctx)

    async def _check():
        service = await SponsorshipService.from_config(cfg)
        try:
            report = await service.check_eligibility(address, context_amount)
        finally:
            await service.close()

        sym = cfg.native_symbol
        click.echo(f"Address:        {report.address}")
        click.echo(f"Balance:        {format_native(report.current_balance, sym)}")
        click.echo(f"Minimum:        {format_native(report.min_balance, sym)}")
        click.echo(f"Needs gas:      {report.needs_gas}")
        click.echo(f"Would send:     {format_native(report.required_amount, sym)}")
        click.echo(f"Provider ready: {report.provider_can_send}")
        if report.estimated_tx_cost is not None:
            click.echo(f"Transfer cost:  {format_native(report.estimated_tx_cost, sym, 8)}")

    try:
        asyncio.run(_check())
    except ValidationError as exc:
        _fail(str(exc))
    except RateLimitError as exc:
        _fail(f"{exc}; retry in {exc.retry_after or 0:.0f}s")
    except ChainCommunicationError as exc:
        _fail(str(exc))


# ── Sponsorship ────────────────────────────────────────


@cli.command()
@click.argument("address")
@click.option("--context-amount", default="0", help="Size of the transfer the wallet intends to make")
@click.option("--amount", default=None, help="Send exactly this much (native units)")
@click.option("--wait/--no-wait", default=True, help="Wait for the transaction receipt")
@click.option("--deadline", type=float, default=None, help="Give up after this many seconds")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def sponsor(
    ctx: click.Context,
    address: str,
    context_amount: str,
    amount: str | None,
    wait: bool,
    deadline: float | None,
    yes: bool,
) -> None:
    """Fund ADDRESS with enough gas for its next transfer."""
    cfg = _load(ctx)

    try:
        request = SponsorshipRequest(
            address,
            Decimal(context_amount),
            Decimal(amount) if amount is not None else None,
        )
    except (ValidationError, ArithmeticError) as exc:
        _fail(str(exc))
        return

    if not yes:
        click.confirm(f"Sponsor gas for {request.recipient} on chain {cfg.chain_id}?", abort=True)

    async def _sponsor():
        service = await SponsorshipService.from_config(cfg)
        try:
            return await service.sponsor(request, wait_for_receipt=wait, deadline=deadline)
        finally:
            await service.close()

    try:
        result = asyncio.run(_sponsor())
    except (ValidationError, ChainCommunicationError) as exc:
        _fail(str(exc))
        return

    if result.outcome == SponsorshipOutcome.NOT_NEEDED:
        click.echo(f"No sponsorship needed: {result.detail}")
        return
    if result.outcome == SponsorshipOutcome.REJECTED:
        click.echo(f"Rejected: {result.reason}", err=True)
        if result.detail:
            click.echo(f"  {result.detail}", err=True)
        if result.tx_hash:
            click.echo(f"  Tx hash (may be pending): {result.tx_hash}", err=True)
        if result.retry_after:
            click.echo(f"  Retry in {result.retry_after:.0f}s", err=True)
        sys.exit(1)

    click.echo("Sponsorship sent!")
    click.echo(f"  Amount:   {format_native(result.amount_wei, cfg.native_symbol)}")
    click.echo(f"  Tx hash:  {result.tx_hash}")
    if result.confirmed is True and result.receipt is not None:
        click.echo(f"  Block:    {result.receipt.block_number}")
    elif result.confirmed is False:
        click.echo(f"  Status:   {result.detail}")


@cli.command()
@click.option("--limit", type=int, default=20, help="Number of entries to show")
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """Show recent sponsorship results."""
    cfg = _load(ctx)

    async def _history():
        store = SQLiteStore(cfg.db_path)
        await store.initialize()
        try:
            return await store.get_recent_sponsorships(limit)
        finally:
            await store.close()

    entries = asyncio.run(_history())
    if not entries:
        click.echo("No sponsorships recorded.")
        return
    for e in entries:
        amount = format_native(e.amount_wei, cfg.native_symbol)
        line = f"{e.created_at[:19]}  {e.recipient}  {e.outcome:<10}  {amount}"
        if e.tx_hash:
            line += f"  {e.tx_hash}"
        if e.reason:
            line += f"  ({e.reason})"
        click.echo(line)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
