# Overview: Flask CLI command groups for bootstrap, users and backups.

# backend/voucherpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin and staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username cashier2 --password "Password123!" --role staff
#
# Backups:
# - python -m flask backup export pos-backup.json
# - python -m flask backup restore pos-backup.json --yes
#   Replaces all catalog, sales and (if present) user data.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLE_STAFF, ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services import backup_service
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and default users.

    Users: admin (admin) and staff (staff), both with password
    "Password123!". Existing users are left untouched.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing voucher POS...")
    db.create_all()
    click.echo("PASS Tables created")

    default_password = "Password123!"
    for username, role in (("admin", ROLE_ADMIN), ("staff", ROLE_STAFF)):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User '{username}' already exists")
            continue
        create_user(username, default_password, role=role)
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("\nWARN Default password is 'Password123!'; change it before going live.")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset. Run 'python -m flask system init' to create default users.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found. Run 'python -m flask system init' first.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<6} {status}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default=ROLE_STAFF, show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """
    Create a user.

    Password must have 8+ characters with uppercase, lowercase, digit and
    special character.
    """
    try:
        user = create_user(username, password, role=role)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


# =============================================================================
# BACKUP COMMANDS
# =============================================================================

@click.group('backup')
def backup_group():
    """JSON backup export and restore."""


@backup_group.command('export')
@click.argument('path', type=click.Path(dir_okay=False, writable=True))
@with_appcontext
def export_backup_cli(path):
    doc = backup_service.export_backup()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(doc, fh, ensure_ascii=False, indent=2)
    data = doc["data"]
    click.echo(
        f"PASS Wrote {path}: {len(data['products'])} products, "
        f"{len(data['sales'])} sales, {len(data['users'])} users"
    )


@backup_group.command('restore')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def restore_backup_cli(path, yes):
    """Replace all data with the contents of a backup file."""
    if not yes:
        click.confirm("WARN This replaces ALL current data. Continue?", abort=True)

    with open(path, encoding="utf-8") as fh:
        try:
            doc = json.load(fh)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Not a JSON file: {e}")

    try:
        counts = backup_service.restore_backup(doc)
    except ValidationError as e:
        raise click.ClickException(f"Invalid backup: {e}")

    click.echo(
        f"PASS Restored {counts['products']} products, {counts['categories']} categories, "
        f"{counts['sales']} sales, {counts['users']} users"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(backup_group)
