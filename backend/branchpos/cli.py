# Overview: Flask CLI command group for bootstrapping and resetting the order database.

# backend/branchpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask system init [--shop "Shop Name"]
#   Idempotent bootstrap: shop, branch, store, base currency, payment methods and staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Currency, PaymentMethod, Shop, Store, User
from .services.auth_service import PasswordValidationError, create_user


DEFAULT_PAYMENT_METHODS = ("Cash", "Card", "E-Wallet")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='Default Shop', help='Shop name')
@click.option('--branch', 'branch_name', default='Main Branch', help='Branch name')
@click.option('--currency', 'currency_code', default='USD', help='Base currency code')
@with_appcontext
def init_system(shop_name, branch_name, currency_code):
    """
    Initialize a shop with one branch and store, a base currency, payment
    methods and default staff users.

    Users: admin, owner, manager, cashier; password "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing BranchPOS...")

    shop = db.session.query(Shop).filter_by(name=shop_name).first()
    if not shop:
        shop = Shop(name=shop_name, is_active=True)
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    branch = db.session.query(Branch).filter_by(shop_id=shop.id, name=branch_name).first()
    if not branch:
        branch = Branch(shop_id=shop.id, name=branch_name)
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")

    store = db.session.query(Store).filter_by(branch_id=branch.id).first()
    if not store:
        store = Store(branch_id=branch.id, name="Front Counter")
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id})")

    if not db.session.query(Currency).filter_by(code=currency_code).first():
        db.session.add(Currency(code=currency_code, exchange_rate=None))
        click.echo(f"PASS Created base currency: {currency_code}")

    for name in DEFAULT_PAYMENT_METHODS:
        if not db.session.query(PaymentMethod).filter_by(name=name).first():
            db.session.add(PaymentMethod(name=name, is_active=True))
    db.session.commit()
    click.echo(f"PASS Payment methods: {', '.join(DEFAULT_PAYMENT_METHODS)}")

    click.echo("\nUSERS Creating default users...")
    default_password = "Password123!"
    default_users = [
        ("admin", "admin", None),
        ("owner", "shop_owner", None),
        ("manager", "manager", branch.id),
        ("cashier", "cashier", branch.id),
    ]

    for username, role, branch_id in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username=username,
                password=default_password,
                shop_id=shop.id,
                role=role,
                branch_id=branch_id,
            )
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except (PasswordValidationError, ValueError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    click.echo("\nDONE BranchPOS initialized")
    click.echo(f"Shop: {shop.name} (ID: {shop.id}), Branch: {branch.name} (ID: {branch.id}), Store ID: {store.id}")
    click.echo("Default password for all users: Password123! (CHANGE IN PRODUCTION!)")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
