# Overview: Flask CLI command groups for bootstrap and data repair.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema migrations (Flask-Migrate, scripts in backend/migrations):
# - python -m flask db upgrade
#   Apply pending migrations (creates the schema on an empty database).
# - python -m flask db migrate -m "message"
#   Autogenerate a revision after changing models.
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Customer commission repair:
# - python -m flask customers backfill-commissions --dry-run
#   Show which online customers are missing commission records.
# - python -m flask customers backfill-commissions
#   Create the missing commission accruals and sale records.
#
# Bill numbering:
# - python -m flask bills seed-sequence --last-number 1250
#   Continue bill numbers after 1250 (e.g. after importing old bills).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import customer_service, document_service
from .services.concurrency import commit_with_retry


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('customers')
def customers_group():
    """Customer data repair commands."""


def _echo_summary(summary: dict, created_key: str) -> None:
    click.echo(f"Processed: {summary['processed']}")
    click.echo(f"{created_key.replace('_', ' ').capitalize()}: {summary[created_key]}")
    click.echo(f"Skipped: {summary['skipped']}")
    click.echo(f"Total commission (cents): {summary['total_commission_cents']}")
    for entry in summary["per_seller"]:
        click.echo(
            f"  - {entry['seller_name']} (id={entry['seller_id']}): "
            f"{entry['customers']} customer(s), {entry['commission_cents']} cents"
        )


@customers_group.command('backfill-commissions')
@click.option('--dry-run', is_flag=True, help='Preview only; write nothing')
@with_appcontext
def backfill_commissions(dry_run):
    """Add missing commission records for online customers."""
    if dry_run:
        click.echo("DRY RUN  No changes will be written.")
        _echo_summary(customer_service.preview_online_customer_commissions(), "would_create")
        return

    summary = customer_service.backfill_online_customer_commissions()
    _echo_summary(summary, "created")
    click.echo("PASS Backfill complete.")


@click.group('bills')
def bills_group():
    """Bill numbering commands."""


@bills_group.command('seed-sequence')
@click.option('--last-number', type=int, required=True, help='Last bill number already issued')
@with_appcontext
def seed_bill_sequence(last_number):
    """Make the next bill number follow last-number."""
    if last_number < 0:
        raise click.BadParameter("must be >= 0", param_hint="--last-number")
    seq = document_service.seed_sequence("BILL", last_number)
    commit_with_retry()
    click.echo(f"PASS Next bill number: {seq.next_number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(customers_group)
    app.cli.add_command(bills_group)
