# Overview: Flask CLI command groups for bootstrap, blacklist management, and stock maintenance.

# backend/order_gate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Security console:
# - python -m flask security blacklist-list
# - python -m flask security blacklist-add 203.0.113.7 --reason "Repeated fake orders"
# - python -m flask security blacklist-remove 12
# - python -m flask security events --type FAKE_ORDER_ATTEMPT --limit 20
# - python -m flask security cleanup-events --retention-days 90
#
# Catalog / stock:
# - python -m flask catalog seed-demo
#   Demo product with three price tiers and two stocked variants.
# - python -m flask stock reconcile
#   Compare variant stock projections against the movement ledger.

import click
from flask.cli import with_appcontext

from .actors import Actor
from .extensions import db
from .services import security_event_service, stock_service
from .services.blacklist_service import BlacklistStore, BlacklistEntryNotFound
from .validation import ValidationError


CLI_ACTOR = Actor(id="cli", name="CLI")


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset.")


@click.group('security')
def security_group():
    """Blacklist and security event commands."""


@security_group.command('blacklist-list')
@with_appcontext
def blacklist_list():
    entries = BlacklistStore().list()
    if not entries:
        click.echo("Blacklist is empty.")
        return

    click.echo(f"{'ID':<6} {'IP':<40} {'Created By':<20} {'Reason'}")
    click.echo("-" * 100)
    for entry in entries:
        click.echo(f"{entry.id:<6} {entry.ip_address:<40} {entry.created_by:<20} {entry.reason or ''}")


@security_group.command('blacklist-add')
@click.argument('ip')
@click.option('--reason', default=None, help='Why the IP is blocked')
@with_appcontext
def blacklist_add(ip, reason):
    try:
        entry = BlacklistStore().add(ip, reason, CLI_ACTOR.name)
        db.session.commit()
        click.echo(f"PASS Blacklisted {entry.ip_address} (entry ID: {entry.id})")
    except ValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Error: {str(e)}")


@security_group.command('blacklist-remove')
@click.argument('entry_id', type=int)
@with_appcontext
def blacklist_remove(entry_id):
    try:
        BlacklistStore().remove(entry_id)
        db.session.commit()
        click.echo(f"PASS Removed blacklist entry {entry_id}")
    except BlacklistEntryNotFound as e:
        click.echo(f"FAIL Error: {str(e)}")


@security_group.command('events')
@click.option('--type', 'event_type', default=None, help='Filter by event type')
@click.option('--ip', default=None, help='Filter by client IP')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_events(event_type, ip, limit):
    """Show recent security events, newest first."""
    events = security_event_service.list_events(event_type=event_type, ip_address=ip, limit=limit)
    if not events:
        click.echo("No security events found.")
        return

    click.echo(f"{'ID':<6} {'Occurred':<20} {'Type':<20} {'Risk':<9} {'IP':<40} {'Description'}")
    for event in events:
        occurred = event.occurred_at.strftime("%Y-%m-%d %H:%M:%S") if event.occurred_at else ""
        click.echo(
            f"{event.id:<6} {occurred:<20} {event.event_type:<20} {event.risk_level:<9} "
            f"{event.ip_address or '':<40} {event.description}"
        )


@security_group.command('cleanup-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_events(retention_days):
    """Delete security events older than the retention window."""
    if retention_days < 1:
        click.echo("FAIL retention-days must be at least 1")
        return
    deleted = security_event_service.cleanup_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


@catalog_group.command('seed-demo')
@with_appcontext
def seed_demo():
    from .services.catalog_service import seed_demo_catalog

    product = seed_demo_catalog(CLI_ACTOR)
    click.echo(f"PASS Created demo product: {product.name} (ID: {product.id})")
    for price in product.prices:
        click.echo(f"   Price ID {price.id}: {price.quantity} x {price.label} = {price.price_cents} cents")
    for variant in product.variants:
        click.echo(f"   Variant ID {variant.id}: {variant.variant_name} (stock {variant.stock})")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance commands."""


@stock_group.command('reconcile')
@with_appcontext
def reconcile():
    """Report variants whose stored stock differs from the ledger."""
    drift = stock_service.reconcile()
    if not drift:
        click.echo("PASS All variant stock projections match the ledger.")
        return

    click.echo(f"FAIL {len(drift)} variant(s) drifted:")
    for row in drift:
        click.echo(
            f"   Variant {row['variant_id']} (product {row['product_id']}): "
            f"projected={row['projected']} ledger={row['ledger']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(security_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stock_group)
