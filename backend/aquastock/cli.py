# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/aquastock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Prefer `flask db upgrade` outside dev.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --email admin@aquastock.local --full-name "Admin" --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
#
# Product bootstrap/inspection:
# - python -m flask products create --name "20L Bottle" --min-stock-level 10
#   Create a product with zero stock at kamulu and utawala.
# - python -m flask products stock 1
#   Show a product's quantity at every location.

import click
from flask.cli import with_appcontext

from .errors import PortalError
from .extensions import db
from .models.auth import ROLES
from .models.inventory import LOCATIONS
from .services import stock_service
from .services.auth_service import create_user, list_users, PasswordValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, full_name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(email=email, password=password, full_name=full_name, role=role)
        click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except PortalError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their role."""
    users = list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<12} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {(user.full_name or '-'):<25} {user.role:<12} {active_str}")

    click.echo("="*90 + "\n")


@click.group('products')
def products_group():
    """Product bootstrap and stock inspection commands."""


@products_group.command('create')
@click.option('--name', prompt=True, help='Product name')
@click.option('--description', default=None, help='Description')
@click.option('--min-stock-level', default="0", help='Reorder threshold')
@with_appcontext
def create_product_cli(name, description, min_stock_level):
    """Create a product with zero stock at every location."""
    try:
        product = stock_service.create_product(name, description=description, min_stock_level=min_stock_level)
        click.echo(f"PASS Created product {product.id}: {product.name}")
    except PortalError as e:
        click.echo(f"FAIL Failed to create product: {e.message}")


@products_group.command('stock')
@click.argument('product_id', type=int)
@with_appcontext
def product_stock_cli(product_id):
    """Show a product's quantity at every location."""
    try:
        product = stock_service.get_product(product_id)
    except PortalError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"{product.id}: {product.name}")
    for location in LOCATIONS:
        quantity = stock_service.get_stock(product_id, location)
        click.echo(f"  {location:<10} {quantity}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
