# Overview: Flask CLI command groups for bootstrap, user administration, and maintenance.

# backend/steadymonitor/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed [--password "Password123!"]
#   Idempotent demo data: one user per role, Uniform/Stationery products, learners.
#
# User administration:
# - python -m flask users list
#   List all users with role, department and active status.
# - python -m flask users create --username alice --password "Secret123" --role department_uniform
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role alice manager --department Uniform
#   Change role/department; ends all of the user's open sessions.
# - python -m flask users deactivate alice
#   Block further logins and end all of the user's open sessions.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired and idle sessions.
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - python -m flask maintenance security-events [--type PERMISSION_DENIED] [--limit 20]
#   Show the most recent security events, newest first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, UserSession, Product, Customer
from .permissions import KNOWN_ROLES, DEPARTMENTS
from .services import auth_service, session_service, permission_service, login_throttle_service
from .services import catalog_service, customer_service
from .services.auth_service import PasswordValidationError


DEMO_USERS = (
    # username, role, department, display name
    ("admin", "admin", None, "Administrator"),
    ("manager", "manager", "Uniform", "Store Manager"),
    ("cashier", "cashier", "Stationery", "Front Cashier"),
    ("uniform", "department_uniform", "Uniform", "Uniform Desk"),
    ("stationery", "department_stationery", "Stationery", "Stationery Desk"),
)

DEMO_PRODUCTS = (
    # id, sku, name, department, category, price (cents), stock, reorder level
    ("P1", "UNI-SHIRT-32", "School Shirt (32)", "Uniform", "Shirts", 85000, 40, 10),
    ("P2", "UNI-SHORT-28", "School Shorts (28)", "Uniform", "Trousers", 70000, 30, 10),
    ("P3", "UNI-SWEATER-M", "Sweater (M)", "Uniform", "Sweaters", 150000, 20, 5),
    ("P4", "STA-EXBOOK-A4", "Exercise Book A4 96pg", "Stationery", "Books", 8000, 500, 100),
    ("P5", "STA-PEN-BLUE", "Ballpoint Pen (Blue)", "Stationery", "Writing", 2000, 1000, 200),
    ("P6", "STA-MATHSET", "Mathematical Set", "Stationery", "Instruments", 35000, 60, 15),
)

DEMO_LEARNERS = (
    # id, name, class
    ("C1", "Amani Otieno", "Grade 4"),
    ("C2", "Baraka Mwangi", "Grade 4"),
    ("C3", "Chebet Kiptoo", "Grade 6"),
)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed')
@click.option('--password', default='Password123!', show_default=True, help='Password for any seeded users')
@with_appcontext
def seed_cli(password):
    """
    Seed demo users, products and learners.

    Idempotent: existing rows (matched by username / id) are left alone.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Seeding SteadyMonitor demo data...")

    try:
        auth_service.validate_password_strength(password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        return

    for username, role, department, display_name in DEMO_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User {username} already exists")
            continue
        auth_service.create_user(username, password, role, department=department, display_name=display_name)
        click.echo(f"PASS Created user {username} ({role})")

    for product_id, sku, name, department, category, price, stock, reorder in DEMO_PRODUCTS:
        if db.session.get(Product, product_id):
            continue
        catalog_service.create_product(
            product_id=product_id,
            sku=sku,
            name=name,
            department=department,
            category=category,
            unit_price_cents=price,
            stock_quantity=stock,
            reorder_level=reorder,
            commit=False,
        )

    for customer_id, name, class_name in DEMO_LEARNERS:
        if db.session.get(Customer, customer_id):
            continue
        customer_service.create_customer(
            customer_id=customer_id,
            name=name,
            class_name=class_name,
            commit=False,
        )

    db.session.commit()
    click.echo(f"PASS {len(DEMO_PRODUCTS)} products and {len(DEMO_LEARNERS)} learners present")
    click.echo("Suggested login users: " + ", ".join(u[0] for u in DEMO_USERS))


@click.group('users')
def users_group():
    """User inspection and administration commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with their role and department."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<24} {'Department':<12} {'Active':<8} {'Locked'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        lockout = login_throttle_service.get_lockout_status(user.username)
        locked_str = "Yes" if lockout["locked"] else "No"
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.role:<24} {(user.department or '-'):<12} "
            f"{active_str:<8} {locked_str}"
        )

    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (case-sensitive)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(KNOWN_ROLES), prompt=True, help='Role')
@click.option('--department', type=click.Choice(DEPARTMENTS), default=None, help='Department (implied by department_* roles)')
@click.option('--display-name', default=None, help='Name shown on receipts')
@with_appcontext
def create_user_cli(username, password, role, department, display_name):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    try:
        user = auth_service.create_user(
            username,
            password,
            role,
            department=department,
            display_name=display_name,
        )
        click.echo(f"PASS Created user: {user.username} with role '{user.role}' (department: {user.department or '-'})")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('set-role')
@click.argument('username')
@click.argument('role', type=click.Choice(KNOWN_ROLES))
@click.option('--department', type=click.Choice(DEPARTMENTS), default=None, help='Department (implied by department_* roles)')
@with_appcontext
def set_role_cli(username, role, department):
    """Change a user's role and end their open sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User {username} not found")
        return

    try:
        open_sessions = db.session.query(UserSession).filter_by(user_id=user.id).count()
        auth_service.set_user_role(user.id, role, department=department)
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")
        return

    permission_service.log_security_event(
        user_id=user.id,
        event_type="ROLE_CHANGED",
        success=True,
        action=username,
        reason=f"Role set to {role} via CLI",
        department=user.department,
    )
    click.echo(f"PASS {username} is now {role} (department: {user.department or '-'})")
    click.echo(f"     Ended {open_sessions} open session(s)")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Block a user from logging in and end their open sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User {username} not found")
        return
    if not user.is_active:
        click.echo(f"SKIP {username} is already inactive")
        return

    open_sessions = db.session.query(UserSession).filter_by(user_id=user.id).count()
    auth_service.deactivate_user(user.id)

    permission_service.log_security_event(
        user_id=user.id,
        event_type="USER_DEACTIVATED",
        success=True,
        action=username,
        reason="Deactivated via CLI",
        department=user.department,
    )
    click.echo(f"PASS {username} deactivated")
    click.echo(f"     Ended {open_sessions} open session(s)")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete sessions past their absolute expiry or idle window."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or idle sessions.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = permission_service.cleanup_security_events(older_than_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('security-events')
@click.option('--type', 'event_type', default=None, help='Only this event type (e.g. LOGIN_FAILED, PERMISSION_DENIED)')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def security_events_cli(event_type, limit):
    """Show the most recent security events, newest first."""
    events = permission_service.get_recent_security_events(limit=limit, event_type=event_type)

    if not events:
        click.echo("No security events found.")
        return

    for event in events:
        status = "OK  " if event.success else "DENY"
        click.echo(
            f"{event.occurred_at:%Y-%m-%d %H:%M:%S} {status} {event.event_type:<20} "
            f"user={event.user_id or '-'} action={event.action or '-'} "
            f"dept={event.department or '-'} {event.reason or ''}".rstrip()
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
