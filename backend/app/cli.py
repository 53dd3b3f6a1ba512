# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@storefront.local --admin-phone 0000000000]
#   Idempotent bootstrap: creates tables, the first admin and the default reward tasks.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.
#
# User inspection/bootstrap:
# - python -m flask users list [--role admin] [--status pending]
#   List users with role, status and point balance.
# - python -m flask users create-admin --email admin@storefront.local --full-name "Store Admin" --phone 0000000000
#   Create a verified admin account (logs in with an OTP like everyone else).
# - python -m flask users set-status --identifier alice@example.com --status suspend
#   Change an account status; suspending signs the user out everywhere.
#
# Rewards:
# - python -m flask rewards seed-tasks
#   Install the default reward tasks (skips task ids that already exist).
# - python -m flask rewards list-tasks
#   List the task catalog.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import RewardTask, SessionToken, User
from .models.auth import USER_ROLES, USER_STATUSES
from .services import auth_service, reward_service
from .validation import ServiceError
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@storefront.local', help='Email of the first admin')
@click.option('--admin-name', default='Store Admin', help='Full name of the first admin')
@click.option('--admin-phone', default='0000000000', help='Phone of the first admin')
@with_appcontext
def init_system(admin_email, admin_name, admin_phone):
    """
    Initialize the storefront: tables, first admin and default reward tasks.

    Safe to re-run; existing rows are left alone.
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables created")

    admin = db.session.query(User).filter_by(role="admin").first()
    if admin is None:
        try:
            admin = auth_service.create_admin(admin_email, admin_name, admin_phone)
            click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")
        except ServiceError as e:
            click.echo(f"FAIL Could not create admin: {e.message}")
            return
    else:
        click.echo(f"PASS Using existing admin: {admin.email} (ID: {admin.id})")

    added = reward_service.seed_default_tasks(admin.id)
    click.echo(f"PASS Reward tasks seeded ({added} added)")
    click.echo("DONE Storefront initialized. Admins log in with a one-time code.")


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


@system_group.command('cleanup-sessions')
@click.option('--retention-days', default=30, show_default=True, type=int)
@with_appcontext
def cleanup_sessions(retention_days):
    """Delete expired or revoked session tokens older than the retention window."""
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)
    db.session.commit()
    click.echo(f"PASS Deleted {deleted} session tokens")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--phone', prompt=True, help='Phone number')
@with_appcontext
def create_admin_cli(email, full_name, phone):
    """Create a verified admin account."""
    try:
        user = auth_service.create_admin(email, full_name, phone)
    except ServiceError as e:
        click.echo(f"FAIL Failed to create admin: {e.message}")
        return
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


@users_group.command('set-status')
@click.option('--identifier', required=True, help='Email or phone')
@click.option('--status', required=True, type=click.Choice(USER_STATUSES), help='New account status')
@with_appcontext
def set_status_cli(identifier, status):
    """Change an account status."""
    try:
        user = auth_service.set_user_status(identifier, status)
    except ServiceError as e:
        click.echo(f"FAIL Failed to update status: {e.message}")
        return
    click.echo(f"PASS {user.email} is now {user.status}")


@users_group.command('list')
@click.option('--role', type=click.Choice(USER_ROLES), help='Filter by role')
@click.option('--status', type=click.Choice(USER_STATUSES), help='Filter by account status')
@with_appcontext
def list_users(role, status):
    """List users with role, status and point balance."""
    query = db.session.query(User).order_by(User.id.asc())
    if role:
        query = query.filter_by(role=role)
    if status:
        query = query.filter_by(status=status)

    users = query.all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<32} {'Phone':<16} {'Role':<7} {'Status':<10} {'Points'}")
    click.echo("="*100)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<32} {user.phone:<16} {user.role:<7} {user.status:<10} {user.reward_points}"
        )
    click.echo("="*100 + "\n")


@click.group('rewards')
def rewards_group():
    """Reward task catalog commands."""


@rewards_group.command('seed-tasks')
@with_appcontext
def seed_tasks_cli():
    """Install the default reward tasks."""
    admin = db.session.query(User).filter_by(role="admin").order_by(User.id.asc()).first()
    added = reward_service.seed_default_tasks(admin.id if admin else None)
    click.echo(f"PASS Added {added} reward tasks")


@rewards_group.command('list-tasks')
@with_appcontext
def list_tasks_cli():
    """List the task catalog."""
    tasks = db.session.query(RewardTask).order_by(RewardTask.sort_order.asc(), RewardTask.id.asc()).all()
    if not tasks:
        click.echo("No reward tasks. Run 'python -m flask rewards seed-tasks'.")
        return
    for task in tasks:
        flags = []
        if not task.is_visible:
            flags.append("hidden")
        if task.is_required:
            flags.append("required")
        click.echo(f"{task.id:<4} {task.task_id:<20} {task.title:<32} {task.reward:>4}  {', '.join(flags)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(rewards_group)
