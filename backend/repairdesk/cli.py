# Overview: Flask CLI command groups for bootstrap, inventory checks and finance reports.

# backend/repairdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app repairdesk <group> <command> [options]
#
# System bootstrap:
# - python -m flask --app repairdesk system init-db
#   Create all tables (idempotent).
# - python -m flask --app repairdesk system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory:
# - python -m flask --app repairdesk inventory reconcile
#   Compare cached part quantities with the transaction ledger. Exits 1 on drift.
# - python -m flask --app repairdesk inventory low-stock
#   List parts at or below their reorder level.
#
# Finance:
# - python -m flask --app repairdesk finance metrics --period weekly --compare
#   Print period metrics as JSON.

import json
import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import finance_service, inventory_service


@click.group('system')
def system_group():
    """System bootstrap commands."""
    pass


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data')
@with_appcontext
def reset_db(yes: bool):
    """Drop and recreate all tables. DEV/TEST only."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        sys.exit(1)
    from . import models  # noqa: F401

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('inventory')
def inventory_group():
    """Inventory ledger checks."""
    pass


@inventory_group.command('reconcile')
@with_appcontext
def reconcile():
    """Report parts whose cached quantity differs from the ledger."""
    drift = inventory_service.reconcile_parts()
    if not drift:
        click.echo("PASS Inventory ledger matches cached quantities")
        return
    click.echo(f"FAIL {len(drift)} part(s) drift from the ledger:")
    for row in drift:
        click.echo(
            f"  part {row['part_id']} ({row['sku']}): cached={row['cached_quantity']} "
            f"ledger={row['ledger_quantity']} drift={row['drift']:+d}"
        )
    sys.exit(1)


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List parts at or below reorder level."""
    parts = inventory_service.low_stock_parts()
    if not parts:
        click.echo("No parts at or below reorder level.")
        return
    click.echo(f"{'ID':<6} {'SKU':<20} {'QTY':>6} {'REORDER':>8}  NAME")
    for part in parts:
        click.echo(f"{part.id:<6} {part.sku:<20} {part.quantity:>6} {part.reorder_level:>8}  {part.name}")


@click.group('finance')
def finance_group():
    """Financial reports."""
    pass


@finance_group.command('metrics')
@click.option('--period', type=click.Choice(['daily', 'weekly', 'monthly', 'yearly']), default='weekly')
@click.option('--compare/--no-compare', default=False, help='Include previous-period comparison')
@with_appcontext
def metrics(period: str, compare: bool):
    """Print financial metrics for a period as JSON."""
    data = finance_service.metrics_for_period(period, compare=compare)
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(finance_group)
