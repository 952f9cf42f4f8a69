# Overview: Flask CLI command groups for bootstrap, inspection, and operator recovery.

# backend/tripflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent; use migrations for schema changes).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management:
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Logistics" --code "ACME"
#
# Delivery memo numbering:
# - python -m flask sequences show --org-id 1 [--fy FY2425]
#   Show fiscal counters (current number per fiscal year).
#
# Trip wage recovery:
# - python -m flask wages revert --id 12
#   Delete the wage's ledger entries, strip attendance and delete the wage.
#   Use after a partially failed settlement.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import FiscalCounter, Organization
from .services import wage_service
from .services.wage_service import WageSettlementError
from .validation import NotFoundError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("="*60)

    for org in orgs:
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str}")

    click.echo("="*60 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# SEQUENCES
# =============================================================================

@click.group('sequences')
def sequences_group():
    """Delivery memo numbering inspection."""


@sequences_group.command('show')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--fy', help='Fiscal year label, e.g. FY2425')
@with_appcontext
def show_sequences(org_id, fy):
    """
    Show fiscal counters for an organization.

    Example:
        flask sequences show --org-id 1
        flask sequences show --org-id 1 --fy FY2425
    """
    query = db.session.query(FiscalCounter).filter_by(organization_id=org_id)
    if fy:
        query = query.filter_by(financial_year=fy)
    counters = query.order_by(FiscalCounter.financial_year).all()

    if not counters:
        click.echo("No counters found.")
        return

    click.echo("\n" + "="*50)
    click.echo(f"{'Fiscal year':<14} {'Current':<10} {'Next DM'}")
    click.echo("="*50)
    for counter in counters:
        click.echo(
            f"{counter.financial_year:<14} {counter.current_number:<10} "
            f"DM/{counter.financial_year}/{counter.current_number + 1}"
        )
    click.echo("="*50 + "\n")


# =============================================================================
# WAGES
# =============================================================================

@click.group('wages')
def wages_group():
    """Trip wage recovery commands."""


@wages_group.command('revert')
@click.option('--id', 'trip_wage_id', type=int, required=True, help='Trip wage ID')
@with_appcontext
def revert_wage_cli(trip_wage_id):
    """Revert a trip wage (entries, attendance, wage record)."""
    try:
        result = wage_service.revert_trip_wage(trip_wage_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return
    except WageSettlementError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(
        f"PASS Reverted trip wage {trip_wage_id}: "
        f"{result['deleted_entries']}/{result['entry_count']} ledger entries deleted"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(sequences_group)
    app.cli.add_command(wages_group)
