# Overview: Flask CLI command groups for bootstrap, users, exchange rates and ledger checks.

# backend/yuandi/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
#
# Users:
# - python -m flask users create --username admin --role Admin
#   Create a user and print its bearer token (shown once).
# - python -m flask users rotate-token --username admin
#   Issue a new token; the old one stops working.
# - python -m flask users list
#
# Exchange rates:
# - python -m flask fx set --currency CNY --rate 190.5 [--date 2024-01-31]
#
# Ledger checks:
# - python -m flask ledger verify [--product-id 1]
#   Replay movements and compare with on_hand; exits non-zero on mismatch.

import sys
from datetime import date

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Product
from .permissions import ROLES
from .services import session_service, exchange_rate_service, inventory_service
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK Database tables created.")


@click.group('users')
def users_group():
    """Back-office user commands."""


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--role', type=click.Choice(ROLES), prompt=True)
@click.option('--email', default=None)
@with_appcontext
def create_user_command(username, role, email):
    """Create a user and print its bearer token."""
    try:
        user, token = session_service.create_user(username=username, role=role, email=email)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"OK Created user {user.username} (id={user.id}, role={user.role})")
    click.echo(f"Token (shown once): {token}")


@users_group.command('rotate-token')
@click.option('--username', required=True)
@with_appcontext
def rotate_token(username):
    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        raise click.ClickException(f"User not found: {username}")
    token = session_service.issue_token(user)
    db.session.commit()
    click.echo(f"Token (shown once): {token}")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<14} {'Active'}")
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<14} {'yes' if user.is_active else 'no'}")


@click.group('fx')
def fx_group():
    """Exchange rate commands."""


@fx_group.command('set')
@click.option('--currency', required=True)
@click.option('--rate', required=True)
@click.option('--date', 'rate_date', default=None, help='YYYY-MM-DD (default: today in the business timezone)')
@with_appcontext
def set_rate_command(currency, rate, rate_date):
    try:
        parsed_date = date.fromisoformat(rate_date) if rate_date else None
        row = exchange_rate_service.set_rate(currency=currency.upper(), rate=rate, rate_date=parsed_date)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"OK {row.currency} {row.rate_date.isoformat()} = {row.rate} KRW")


@click.group('ledger')
def ledger_group():
    """Inventory ledger consistency commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None)
@with_appcontext
def verify_ledger(product_id):
    """Replay movements for one or all products."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id.asc())]

    failures = 0
    for pid in product_ids:
        report = inventory_service.verify_product_ledger(pid)
        if report.ok:
            click.echo(f"OK   product {pid}: on_hand={report.on_hand} movements={report.movement_count}")
            continue
        failures += 1
        click.echo(f"FAIL product {pid}: on_hand={report.on_hand} replayed={report.replayed_balance}")
        for problem in report.problems:
            click.echo(f"     - {problem}")

    click.echo(f"{len(product_ids)} product(s) checked, {failures} mismatch(es).")
    if failures:
        sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(fx_group)
    app.cli.add_command(ledger_group)
