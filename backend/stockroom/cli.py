# Overview: Flask CLI command groups for bootstrap, users, and ledger maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (development; use `flask db upgrade` elsewhere).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with roles, locations and active status.
# - python -m flask users create --username admin --email admin@stockroom.local --password "Password123!" --role admin
#   Create a user (prompts if options are omitted). Repeat --location-id to link locations.
#
# Ledger:
# - python -m flask ledger verify
#   Check every inventory record against its audit log.
# - python -m flask ledger check-low-stock
#   Raise low-stock notifications for records at or below their threshold.

import click
from flask.cli import with_appcontext

from .errors import StockroomError
from .extensions import db
from .models.auth import ROLES
from .services import auth_service, inventory_service, notification_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping every table')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='staff', show_default=True)
@click.option('--name', default=None)
@click.option('--location-id', 'location_ids', type=int, multiple=True, help='Location to link (repeatable)')
@with_appcontext
def create_user(username, email, password, role, name, location_ids):
    """Create a user."""
    try:
        user = auth_service.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            name=name,
            location_ids=list(location_ids),
        )
    except StockroomError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        locations = ", ".join(str(location_id) for location_id in sorted(user.location_ids)) or "-"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<8} {status:<8} locations: {locations}")


@click.group('ledger')
def ledger_group():
    """Stock ledger maintenance."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Check quantity >= 0, sum of deltas and audit tail for every record."""
    results = inventory_service.verify_all()
    failures = [result for result in results if not result["ok"]]
    for result in failures:
        click.echo(f"FAIL record {result['inventory_id']}: {'; '.join(result['problems'])}")
    click.echo(f"Checked {len(results)} inventory records, {len(failures)} inconsistent")
    if failures:
        raise SystemExit(1)


@ledger_group.command('check-low-stock')
@with_appcontext
def check_low_stock():
    """Raise low-stock notifications."""
    created = notification_service.check_low_stock()
    click.echo(f"PASS {len(created)} low-stock notification(s) created")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
