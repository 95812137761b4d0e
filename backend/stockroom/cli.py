# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, seeds the demo catalog when empty,
#   and creates the 'admin' account when missing.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List registered users with roles.
# - python -m flask users create --username alice --email alice@example.com --password "Password123!" --role viewer
#   Create a registered user (prompts if options are omitted).
# - python -m flask users set-role alice admin
#   Change a user's role (keeps at least one admin).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User
from .services.auth_service import create_user, PasswordValidationError
from .services.user_service import count_admins
from .errors import ValidationError

DEFAULT_PRODUCTS = [
    {
        "name": "MacBook Pro",
        "stock": 5,
        "price": 45000,
        "category": "Laptop",
        "description": "Apple high-end laptop.",
        "image": "https://example.com/macbook.jpg",
    },
    {
        "name": "iPhone 15",
        "stock": 10,
        "price": 35000,
        "category": "Phone",
        "description": "Apple flagship smartphone.",
        "image": "https://example.com/iphone15.jpg",
    },
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123!', help='Password for the admin account if it is created')
@with_appcontext
def init_system(admin_password):
    """
    Initialize the database: tables, demo catalog, and admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing database...")
    db.create_all()

    if db.session.query(Product).count() == 0:
        for row in DEFAULT_PRODUCTS:
            db.session.add(Product(**row))
        db.session.commit()
        click.echo(f"PASS Seeded {len(DEFAULT_PRODUCTS)} products")
    else:
        click.echo("WARN  Products already present, skipping seed")

    existing = db.session.query(User).filter_by(username="admin").first()
    if existing and existing.is_registered:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email=current_app.config["DEFAULT_ADMIN_EMAIL"],
                password=admin_password,
                role="admin",
            )
            click.echo("PASS Created user: admin with role 'admin'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")

    click.echo("DONE Database initialized")


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
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List registered users with roles."""
    users = db.session.query(User).filter(User.password_hash.isnot(None)).order_by(User.username).all()
    if not users:
        click.echo("No users found")
        return
    for u in users:
        click.echo(f"{u.id:>4}  {u.username:<24} {u.role:<8} {u.email or ''}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(['admin', 'viewer']), default='viewer', show_default=True)
@with_appcontext
def create_user_command(username, email, password, role):
    """Create a registered user without the email verification step."""
    try:
        user = create_user(username=username, email=email, password=password, role=role)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('set-role')
@click.argument('username')
@click.argument('role', type=click.Choice(['admin', 'viewer']))
@with_appcontext
def set_role(username, role):
    """Change a user's role; refuses to remove the last admin."""
    user = db.session.query(User).filter_by(username=username).first()
    if user is None or not user.is_registered:
        raise click.ClickException(f"User '{username}' not found")

    if user.role == "admin" and role != "admin":
        if count_admins() <= 1:
            raise click.ClickException("At least one admin account must remain")

    user.role = role
    db.session.commit()
    click.echo(f"PASS {username} is now '{role}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
