# Overview: Flask CLI command groups for bootstrap, reconciliation, and the offline queue.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create every table (shared store and offline bind). Idempotent.
# - python -m flask system seed
#   Insert default bill types and document sequences. Idempotent.
#
# Ledger maintenance:
# - python -m flask ledger reconcile [--items/--no-items] [--counterparties/--no-counterparties]
#   Recompute stock and balances from their source records and fix drift.
# - python -m flask ledger reconcile-item 42
#   Reconcile a single item.
#
# Offline queue:
# - python -m flask offline list
# - python -m flask offline drain
#   Replay queued events and reconcile everything they touched.
# - python -m flask offline clear --yes
#   DISCARD every queued event without replaying it.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service, document_service, offline_queue, reconciliation_service
from .services.errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables. Use 'flask db upgrade' instead when migrations are in play."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready. Run 'python -m flask system seed' next.")


@system_group.command('seed')
@with_appcontext
def seed():
    """Insert default bill types and document sequences."""
    bill_types = catalog_service.seed_bill_types()
    sequences = document_service.ensure_sequences()
    db.session.commit()
    click.echo(f"PASS Created {bill_types} bill types, {sequences} document sequences")


@click.group('ledger')
def ledger_group():
    """Reconciliation commands."""


@ledger_group.command('reconcile')
@click.option('--items/--no-items', default=True, help='Sweep item stock aggregates')
@click.option('--counterparties/--no-counterparties', default=True, help='Sweep vendor/customer balances')
@click.option('--batch-size', type=int, default=None, help='Items per commit')
@with_appcontext
def reconcile(items, counterparties, batch_size):
    """Recompute denormalized stock and balances and correct drift."""
    if items:
        report = reconciliation_service.reconcile_all_items(batch_size=batch_size)
        click.echo(
            f"Items: checked={report.checked} corrected={report.corrected} "
            f"failed={report.failed} negative={len(report.negative_items)}"
        )
        for correction in report.corrections:
            click.echo(f"  item {correction['item_id']}: {correction['changes']}")
        for item_id in report.negative_items:
            click.echo(f"  WARN item {item_id} has negative stock in its journal")

    if counterparties:
        report = reconciliation_service.reconcile_all_counterparties()
        click.echo(
            f"Counterparties: checked={report.checked} corrected={report.corrected} failed={report.failed}"
        )
        for correction in report.corrections:
            click.echo(
                f"  {correction['kind']} {correction['id']}: "
                f"{correction['stored_cents']} -> {correction['computed_cents']}"
            )
        for error in report.errors:
            click.echo(f"  FAIL {error['kind']} {error['id']}: {error['error']}")


@ledger_group.command('reconcile-item')
@click.argument('item_id', type=int)
@with_appcontext
def reconcile_item(item_id):
    """Reconcile one item against its journal."""
    try:
        report = reconciliation_service.reconcile_item(item_id)
    except LedgerError as e:
        raise click.ClickException(e.message)
    if report.corrected:
        click.echo(f"PASS Corrected item {item_id}: {report.to_dict()['changes']}")
    else:
        click.echo(f"PASS Item {item_id} already consistent (quantity {report.quantity})")


@click.group('offline')
def offline_group():
    """Offline queue inspection and replay."""


@offline_group.command('list')
@with_appcontext
def list_offline():
    events = offline_queue.list_pending()
    if not events:
        click.echo("No queued events.")
        return
    click.echo(f"{'TEMP ID':<34} {'KIND':<22} {'ATTEMPTS':<9} LAST ERROR")
    for event in events:
        click.echo(f"{event.temp_id:<34} {event.kind:<22} {event.attempts:<9} {event.last_error or ''}")


@offline_group.command('drain')
@with_appcontext
def drain_offline():
    """Replay queued events against the shared store."""
    try:
        result = offline_queue.drain()
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"Synced {result.synced}, failed {result.failed}")
    for error in result.errors:
        click.echo(f"  FAIL {error['temp_id']}: {error['error']}")


@offline_group.command('clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_offline(yes):
    """DANGER: discard every queued event without replaying it."""
    if not yes:
        click.confirm("WARN Queued events will be LOST. Are you sure?", abort=True)
    count = offline_queue.clear()
    click.echo(f"DELETE  Discarded {count} queued events")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(offline_group)
