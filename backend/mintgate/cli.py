# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/mintgate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and register the native currency.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Items:
# - python -m flask items list
#   List item overrides with supply counters.
# - python -m flask items state 1
#   Print the effective sale state of an item (reads the ledger).
# - python -m flask items check 1 0xabc...
#   Print the mint decision for a wallet.
# - python -m flask items set-max-supply 1 --max-supply 500 --reserved 20
#   Set (or clear with --unlimited) the supply cap.
# - python -m flask items set-minted 1 120
#   Correct the minted counter upward.
#
# Allowlists:
# - python -m flask allowlist upload 1 ./allowlist.csv
#   Replace an item's allowlist from a .csv, .json or .xlsx file.
# - python -m flask allowlist export 1 > allowlist.csv
#   Write an item's allowlist as CSV.
# - python -m flask allowlist root 1
#   Print the membership root for an item.
#
# Currencies:
# - python -m flask currencies list
# - python -m flask currencies add --symbol USDC --address 0x... --decimals 6
#
# Chain:
# - python -m flask chain read 1
#   Read the raw claim condition of an item and refresh its snapshot.

import json
import os

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Currency
from .services import (
    allowlist_service,
    chain_service,
    currency_service,
    eligibility_service,
    merkle_service,
    override_service,
    sale_state_service,
    supply_service,
)
from .services.abi_codec import AbiError
from .services.allowlist_service import AllowlistError
from .services.currency_service import CurrencyError
from .services.supply_service import SupplyError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables (if missing) and register the native currency."""
    click.echo("START Initializing mintgate...")
    db.create_all()
    native = currency_service.resolve(None)
    existing = db.session.query(Currency).filter_by(is_native=True).first()
    if existing:
        click.echo(f"PASS Native currency already registered: {existing.symbol}")
    else:
        currency_service.upsert_currency({
            "symbol": native.symbol,
            "address": currency_service.ZERO_ADDRESS,
            "decimals": native.decimals,
            "is_native": True,
            "description": "Native currency",
        })
        click.echo(f"PASS Registered native currency: {native.symbol}")
    click.echo("DONE mintgate initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including allowlists and minted counters!
    """
    if not yes:
        click.confirm("This drops every table. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    merkle_service.invalidate()
    click.echo("PASS Database reset")


@click.group('items')
def items_group():
    """Item override, sale state and supply commands."""


@items_group.command('list')
@with_appcontext
def list_items():
    """List item overrides."""
    rows = override_service.list_overrides()
    if not rows:
        click.echo("No item overrides found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Item':<6} {'Name':<24} {'Shown':<6} {'Period':<7} {'Max':<8} {'Minted':<8} {'Price'}")
    click.echo("="*80)
    for row in rows:
        shown = "Yes" if row.display_enabled else "No"
        period = "On" if row.sales_period_enabled else "Off"
        max_supply = row.max_supply if row.max_supply is not None else "-"
        price = f"{row.custom_price} {row.custom_currency or ''}".strip() if row.custom_price else "-"
        click.echo(
            f"{row.item_id:<6} {(row.name or '-')[:24]:<24} {shown:<6} {period:<7} "
            f"{str(max_supply):<8} {row.total_minted:<8} {price}"
        )
    click.echo("="*80 + "\n")


@items_group.command('state')
@click.argument('item_id', type=int)
@with_appcontext
def item_state(item_id):
    """Print the effective sale state of an item."""
    state = sale_state_service.get_effective_state(item_id)
    click.echo(json.dumps(state.to_dict(), indent=2))


@items_group.command('check')
@click.argument('item_id', type=int)
@click.argument('address')
@with_appcontext
def check_wallet(item_id, address):
    """Print the mint decision for a wallet."""
    try:
        decision = eligibility_service.resolve(address, item_id)
    except AbiError as e:
        raise click.BadParameter(str(e), param_hint='address')
    click.echo(json.dumps(decision.to_dict(), indent=2))


@items_group.command('set-max-supply')
@click.argument('item_id', type=int)
@click.option('--max-supply', type=int, default=None, help='Total supply cap')
@click.option('--reserved', type=int, default=0, help='Units held back from sale')
@click.option('--unlimited', is_flag=True, help='Clear the cap')
@with_appcontext
def set_max_supply(item_id, max_supply, reserved, unlimited):
    """Set or clear an item's supply cap."""
    if not unlimited and max_supply is None:
        raise click.UsageError("Pass --max-supply N or --unlimited")
    try:
        override_service.set_max_supply(item_id, None if unlimited else max_supply, reserved)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    status = supply_service.supply_status(item_id)
    cap = "unlimited" if status["is_unlimited"] else status["max_supply"]
    click.echo(f"PASS Item {item_id}: cap {cap}, remaining {status['remaining_supply']}")


@items_group.command('set-minted')
@click.argument('item_id', type=int)
@click.argument('value', type=int)
@with_appcontext
def set_minted(item_id, value):
    """Correct the minted counter (upward only)."""
    try:
        supply_service.adjust_minted(item_id, value)
    except SupplyError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Item {item_id} minted count set to {value}")


@click.group('allowlist')
def allowlist_group():
    """Allowlist ingestion and export commands."""


@allowlist_group.command('upload')
@click.argument('item_id', type=int)
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def upload_allowlist(item_id, path):
    """Replace an item's allowlist from a file."""
    with open(path, "rb") as fh:
        raw = fh.read()
    try:
        result = allowlist_service.ingest_file(
            item_id=item_id,
            file_name=os.path.basename(path),
            raw=raw,
            uploaded_by="cli",
        )
    except (AllowlistError, ValueError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    upload = result.upload
    click.echo(
        f"PASS Item {item_id}: {upload.accepted_rows} accepted, {upload.rejected_rows} rejected, "
        f"{upload.duplicate_rows} duplicates"
    )
    click.echo(f"     root {upload.merkle_root}")
    for err in result.errors:
        click.echo(f"WARN  row {err['row']}: {err['error']}")


@allowlist_group.command('export')
@click.argument('item_id', type=int)
@with_appcontext
def export_allowlist(item_id):
    """Write an item's allowlist as CSV to stdout."""
    click.echo(allowlist_service.export_csv(item_id), nl=False)


@allowlist_group.command('root')
@click.argument('item_id', type=int)
@with_appcontext
def allowlist_root(item_id):
    """Print the membership root for an item."""
    tree = merkle_service.get_tree(item_id)
    click.echo(f"{tree.root_hex} ({tree.size} addresses)")


@click.group('currencies')
def currencies_group():
    """Payment currency registry commands."""


@currencies_group.command('list')
@with_appcontext
def list_currencies():
    for c in currency_service.list_currencies():
        native = " (native)" if c.get("is_native") else ""
        click.echo(f"{c['symbol']:<10} {c['address']} decimals={c['decimals']}{native}")


@currencies_group.command('add')
@click.option('--symbol', required=True)
@click.option('--address', required=True)
@click.option('--decimals', type=int, required=True)
@click.option('--name', default=None)
@with_appcontext
def add_currency(symbol, address, decimals, name):
    try:
        row, created = currency_service.upsert_currency(
            {"symbol": symbol, "address": address, "decimals": decimals, "name": name}
        )
    except CurrencyError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS {'Added' if created else 'Updated'} {row.symbol} at {row.address}")


@click.group('chain')
def chain_group():
    """Ledger inspection commands."""


@chain_group.command('read')
@click.argument('item_id', type=int)
@with_appcontext
def read_chain(item_id):
    """Read an item's claim condition and refresh its snapshot."""
    read = chain_service.fetch_sale_record(item_id)
    if read.error:
        click.echo(f"WARN  Ledger unavailable ({read.error}); showing last snapshot")
    if read.record is None:
        click.echo("No claim condition")
        return
    click.echo(json.dumps(read.record.to_json(), indent=2))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(allowlist_group)
    app.cli.add_command(currencies_group)
    app.cli.add_command(chain_group)
