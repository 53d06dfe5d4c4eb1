# Overview: Flask CLI command groups for bootstrap, calibration tables and cash checks.

# backend/fuelpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
#
# Calibration tables:
# - python -m flask calibration import --vessel-id 1 --file tank1.csv
#   Replace a vessel's table from a CSV with height,volume columns.
# - python -m flask calibration export --vessel-id 1 [--file out.csv]
#   Write the table as CSV (stdout when --file is omitted).
# - python -m flask calibration generate --vessel-id 1 --diameter 2.5 --max-height 3 [--step 1]
#   Generate a table for an upright cylinder (metres; step in cm).
# - python -m flask calibration validate --vessel-id 1
#   Report table errors and warnings.
#
# Cash register:
# - python -m flask cash balance --pos-id 1 --shift-id 12
#   Opening/closing balance of a shift from the chain walk.
# - python -m flask cash rebuild --pos-id 1
#   Overwrite the cached register balance with the derived one.
# - python -m flask cash drift --pos-id 1
#   Show stored minus derived balance (0 when consistent).

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .services import calibration_service, cash_register_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create every table that does not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created")


# =============================================================================
# CALIBRATION
# =============================================================================

@click.group('calibration')
def calibration_group():
    """Vessel calibration table commands."""


@calibration_group.command('import')
@click.option('--vessel-id', required=True, type=int, help='Vessel ID')
@click.option('--file', 'csv_file', required=True, type=click.File('r', encoding='utf-8'), help='CSV with height,volume columns')
@with_appcontext
def import_table(vessel_id, csv_file):
    """Replace a vessel's calibration table from CSV."""
    try:
        table = calibration_service.import_table_csv(vessel_id, csv_file.read())
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Imported {len(table)} points for vessel {vessel_id}")
    for warning in table.validate().warnings:
        click.echo(f"WARN  {warning}")


@calibration_group.command('export')
@click.option('--vessel-id', required=True, type=int, help='Vessel ID')
@click.option('--file', 'csv_file', type=click.File('w', encoding='utf-8'), default='-', help='Output file (default stdout)')
@with_appcontext
def export_table(vessel_id, csv_file):
    """Write a vessel's calibration table as CSV."""
    try:
        csv_file.write(calibration_service.export_table_csv(vessel_id))
    except DomainError as e:
        raise click.ClickException(e.message)


@calibration_group.command('generate')
@click.option('--vessel-id', required=True, type=int, help='Vessel ID')
@click.option('--diameter', required=True, type=str, help='Diameter in metres')
@click.option('--max-height', required=True, type=str, help='Maximum height in metres')
@click.option('--step', default='1', type=str, help='Height increment in cm')
@with_appcontext
def generate_table(vessel_id, diameter, max_height, step):
    """Generate a calibration table for an upright cylindrical vessel."""
    try:
        table = calibration_service.generate_table(vessel_id, diameter, max_height, step)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Generated {len(table)} points for vessel {vessel_id} (max volume {table.to_rows()[-1]['volume']})")


@calibration_group.command('validate')
@click.option('--vessel-id', required=True, type=int, help='Vessel ID')
@with_appcontext
def validate_table(vessel_id):
    """Report calibration table errors and warnings."""
    try:
        result = calibration_service.validate_table(vessel_id)
    except DomainError as e:
        raise click.ClickException(e.message)

    for error in result.errors:
        click.echo(f"FAIL {error}")
    for warning in result.warnings:
        click.echo(f"WARN  {warning}")
    if result.is_valid:
        click.echo(f"PASS Calibration table of vessel {vessel_id} is valid")
    else:
        raise SystemExit(1)


# =============================================================================
# CASH REGISTER
# =============================================================================

@click.group('cash')
def cash_group():
    """Cash register balance commands."""


@cash_group.command('balance')
@click.option('--pos-id', required=True, type=int, help='Point of sale ID')
@click.option('--shift-id', required=True, type=int, help='Shift ID')
@with_appcontext
def show_balance(pos_id, shift_id):
    """Opening and closing cash balance of a shift (cents)."""
    try:
        balance = cash_register_service.get_chained_cash_balance(pos_id, shift_id)
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"Opening: {balance.opening_balance_cents}")
    click.echo(f"Closing: {balance.closing_balance_cents}")


@cash_group.command('rebuild')
@click.option('--pos-id', required=True, type=int, help='Point of sale ID')
@with_appcontext
def rebuild_balance(pos_id):
    """Overwrite the cached register balance with the chain-derived one."""
    register = cash_register_service.rebuild_current_balance(pos_id)
    db.session.commit()
    click.echo(f"PASS Register balance for point of sale {pos_id}: {register.current_balance_cents}")


@cash_group.command('drift')
@click.option('--pos-id', required=True, type=int, help='Point of sale ID')
@with_appcontext
def show_drift(pos_id):
    """Stored minus derived register balance."""
    try:
        drift = cash_register_service.balance_drift(pos_id)
    except DomainError as e:
        raise click.ClickException(e.message)

    if drift:
        click.echo(f"WARN  Register of point of sale {pos_id} drifts by {drift} cents; run `flask cash rebuild`")
        raise SystemExit(1)
    click.echo(f"PASS Register of point of sale {pos_id} is consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(calibration_group)
    app.cli.add_command(cash_group)
