"""
Agora CLI - Command Line Interface for the marketplace engine

Main entry point for all CLI commands.
"""

import json
from pathlib import Path

import click

from agora.utils.logger import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", is_flag=True, help="Also write logs to <log_dir>/agora.log")
@click.option("--env-file", default=None, help="Read AGORA_* settings from this .env file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, log_file, env_file):
    """Agora - marketplace engine for unique and multi-unit assets"""
    import logging
    from agora.core.config import load_config

    config = load_config(env_file)
    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=str(config.log_dir), log_to_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Config Command
# =============================================================================


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show effective configuration"""
    click.echo(json.dumps(ctx.obj["config"].to_dict(), indent=2))


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--journal", "journal_dir", default=None, help="Directory to journal events into")
@click.pass_context
def demo(ctx, journal_dir):
    """Run a scripted listing / auction / offer session"""
    from agora.crypto import generate_keypair, short_address
    from agora.core.assets import MultiUnitCollection, UniqueCollection
    from agora.core.errors import MarketError
    from agora.core.market import Marketplace
    from agora.core.payments import FungibleToken
    from agora.core.storage import EventJournal

    config = ctx.obj["config"]

    click.echo("=" * 60)
    click.echo("  AGORA MARKETPLACE - DEMO")
    click.echo("=" * 60)
    click.echo()

    now = [1_700_000_000]
    admin, alice, bob, carol, dev = (generate_keypair().address for _ in range(5))

    market = Marketplace(admin=admin, config=config, clock=lambda: now[0])
    market.set_dev_recipient(admin, dev)

    journal = None
    if journal_dir:
        journal = EventJournal(Path(journal_dir))
        run = journal.attach(market.events)
        click.echo(f"📒 Journaling events to {journal.db_path} (run {run})")

    usd = FungibleToken("USDX")
    usd_method = market.register_payment_token(admin, usd)

    art = UniqueCollection("art")
    prints = MultiUnitCollection("prints")
    market.register_collection(art)
    market.register_collection(prints)
    for collection in (art, prints):
        collection.set_approval_for_all(alice, market.custody, True)

    art.mint(alice, 1, creator=carol, uri="ipfs://art/1")
    prints.mint(alice, 7, 10, creator=carol, uri="ipfs://prints/7")

    market.payments.native.mint(bob, 10_000)
    market.payments.native.mint(carol, 10_000)
    usd.mint(bob, 5_000)
    usd.approve(bob, market.custody, 5_000)

    click.echo(f"  Alice (seller):  {short_address(alice)}")
    click.echo(f"  Bob (buyer):     {short_address(bob)}")
    click.echo(f"  Carol (creator): {short_address(carol)}")
    click.echo()

    try:
        # Fixed sale with partial fill
        click.echo("🏷️  Alice lists 5 prints at 100 USDX each...")
        fixed = market.create_fixed_sale(alice, prints.address, 7, 5, usd_method, 3600, 100, royalty_ratio=500)
        fees = market.buy(fixed, bob, 2)
        click.echo(f"  ✓ Bob buys 2: seller {fees.seller_payout}, royalty {fees.royalty}, fee {fees.service_fee}")
        click.echo(f"  ✓ Outstanding: {market.get_sale(fixed).quantity}")
        click.echo()

        # Auction
        click.echo("🔨 Alice auctions art #1 (reserve 1000)...")
        auction = market.create_auction(alice, art.address, 1, 1, 0, 600, 1000)
        market.place_bid(auction, bob, 1200)
        market.place_bid(auction, carol, 1500)
        market.place_bid(auction, bob, 1500)
        click.echo(f"  ✓ Bids: {[(short_address(b.bidder), b.price) for b in market.bids_for(auction)]}")

        now[0] += 601
        swept = market.sweep([fixed, auction], admin)
        click.echo(f"  ✓ Sweep closed sales {swept}")
        click.echo(f"  ✓ Art #1 owner: {short_address(art.owner_of(1))}")
        click.echo()

        # Offer with partial acceptance
        click.echo("🤝 Bob offers for 12 prints at 50 (Alice holds fewer)...")
        offer = market.create_offer(bob, prints.address, 7, alice, 12, 0, 50, 3600)
        fees = market.accept_offer(offer, alice)
        click.echo(f"  ✓ Settled {fees.total_price // 50} prints, seller received {fees.seller_payout}")
        click.echo()
    except MarketError as exc:
        raise click.ClickException(str(exc))

    click.echo("📊 Final Statistics:")
    for key, value in market.stats().items():
        click.echo(f"  {key}: {value}")
    if journal is not None:
        journal.close()
    click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# Events Command
# =============================================================================


@cli.command("events")
@click.argument("journal_dir", required=False, type=click.Path(exists=True, file_okay=False))
@click.option("--run", default=None, type=int, help="Only events of this journal run")
@click.option("--sale", "sale_id", default=None, type=int, help="Only events of this sale")
@click.option("--type", "event_type", default=None, help="Only events of this type (e.g. TRADE_EXECUTED)")
@click.option("--address", default=None, help="Only events involving this 0x address")
@click.option("--limit", default=50, help="Max events to show")
@click.pass_context
def events(ctx, journal_dir, run, sale_id, event_type, address, limit):
    """Show journaled events (defaults to the configured data_dir)"""
    from agora.crypto import is_valid_address
    from agora.core.storage import EventJournal

    if address is not None:
        if not is_valid_address(address):
            raise click.BadParameter(f"not a 0x-prefixed 20-byte address: {address}", param_hint="--address")
        address = address.lower()

    directory = Path(journal_dir) if journal_dir else ctx.obj["config"].data_dir
    if not directory.is_dir():
        raise click.ClickException(f"No journal directory at {directory}")

    journal = EventJournal(directory)
    rows = journal.events(run=run, sale_id=sale_id, event_type=event_type, limit=None if address else limit)
    journal.close()

    if address:
        rows = [row for row in rows if _involves(row, address)][:limit]
    if not rows:
        click.echo("No events found.")
        return

    for row in rows:
        sale = row["sale"]
        click.echo(
            f"  #{row['journal_id']:<4} run={row['run']:<3} seq={row['seq']:<4} "
            f"{row['event_type']:<15} sale={sale['sale_id']:<4} "
            f"kind={sale['kind']:<10} t={row['timestamp']}"
        )


def _involves(row: dict, address: str) -> bool:
    parties = [row["sale"][key] for key in ("creator", "seller", "counterparty")]
    parties += [value for value in row["data"].values() if isinstance(value, str)]
    return address in parties


if __name__ == "__main__":
    cli()
