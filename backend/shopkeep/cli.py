# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopkeep/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv and install the project (pip install -e .).
# - Use: flask --app shopkeep <group> <command> [options]
#
# System bootstrap:
# - flask --app shopkeep system init-db
#   Create all tables that do not exist yet (idempotent).
# - flask --app shopkeep system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - flask --app shopkeep users create-super-user --email admin@shop.local --password "Password123!"
#   Ensure the SuperAdmin role and an administrator account exist.
# - flask --app shopkeep users list
#   List all users with their roles.
#
# Session maintenance:
# - flask --app shopkeep sessions cleanup
#   Delete sessions whose refresh token has expired.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import auth_service, session_service
from .errors import ServiceError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """
    Drop and recreate all tables.

    WARNING: This deletes all data. Intended for development/test only.
    """
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-super-user')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Display name (default "Super Admin")')
@with_appcontext
def create_super_user_cli(email, password, name):
    """
    Ensure the SuperAdmin role and an administrator with this email exist.

    Re-running with an existing email only updates the display name.
    """
    try:
        user, created = auth_service.ensure_super_user(email=email, password=password, name=name)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    if created:
        click.echo(f"PASS Created super user: {user.email} (ID: {user.id})")
    else:
        click.echo(f"PASS Super user already exists: {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Role'}")
    click.echo("="*80)

    for user in users:
        role_name = user.role.name if user.role else "-"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<35} {role_name}")

    click.echo("="*80 + "\n")


@click.group('sessions')
def sessions_group():
    """Session maintenance commands."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    """Delete sessions whose refresh token has expired."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Removed {deleted} expired sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sessions_group)
