# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/solemate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-catalog
#   Insert a small demo catalog with opening stock (skips existing SKUs).
#
# Users:
# - python -m flask users create-admin --email admin@solemate.local --password "Password123"
#   Create a storefront admin (prompts if options are omitted).
# - python -m flask users list
#   List accounts with admin/active flags.
#
# Maintenance:
# - python -m flask maintenance cleanup
#   Delete expired guest sessions, used/expired OTP codes and stale bearer tokens.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import ProductVariant, User
from .services import catalog_service, maintenance_service
from .services.auth_service import create_user, PasswordValidationError
from .validation import ConflictError, ValidationError, normalize_email


DEMO_CATALOG = [
    {
        "product": {"name": "Air Stride Runner", "brand": "Stride", "category": "RUNNING", "gender": "MEN",
                    "description": "Lightweight daily trainer."},
        "variants": [
            ({"sku": "STR-RUN-BLK-8", "size": "8", "color": "Black", "price_cents": 649900}, 10),
            ({"sku": "STR-RUN-BLK-9", "size": "9", "color": "Black", "price_cents": 649900}, 10),
            ({"sku": "STR-RUN-WHT-9", "size": "9", "color": "White", "price_cents": 649900}, 5),
        ],
    },
    {
        "product": {"name": "Court Classic Low", "brand": "Heritage", "category": "SNEAKERS", "gender": "UNISEX",
                    "description": "Leather low-top court sneaker."},
        "variants": [
            ({"sku": "HER-CRT-WHT-7", "size": "7", "color": "White", "price_cents": 499900}, 8),
            ({"sku": "HER-CRT-WHT-8", "size": "8", "color": "White", "price_cents": 499900}, 8),
        ],
    },
    {
        "product": {"name": "Trail Grip Mid", "brand": "Summit", "category": "OUTDOOR", "gender": "WOMEN",
                    "description": "Waterproof mid-cut hiker."},
        "variants": [
            ({"sku": "SUM-TRL-OLV-6", "size": "6", "color": "Olive", "price_cents": 899900}, 4),
        ],
    },
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@system_group.command('seed-catalog')
@with_appcontext
def seed_catalog():
    """Insert the demo catalog. Products whose SKUs already exist are skipped."""
    created = 0
    for entry in DEMO_CATALOG:
        skus = [patch["sku"] for patch, _ in entry["variants"]]
        if db.session.query(ProductVariant.id).filter(ProductVariant.sku.in_(skus)).first():
            click.echo(f"SKIP {entry['product']['name']} (already seeded)")
            continue
        catalog_service.create_product(
            patch=entry["product"],
            variants=entry["variants"],
            performed_by="seed",
        )
        created += 1
        click.echo(f"PASS Created {entry['product']['name']}")
    click.echo(f"Seeded {created} products.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_admin_cli(email, password, full_name):
    """
    Create a storefront admin.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(
            email=normalize_email(email),
            password=password,
            full_name=full_name,
            is_admin=True,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
        return
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all accounts."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        flags = []
        if user.is_admin:
            flags.append("admin")
        if not user.is_active:
            flags.append("inactive")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(f"{user.id:>5}  {user.email or '-':<32} {user.phone or '-':<16}{suffix}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup')
@with_appcontext
def cleanup_cli():
    """Delete expired guest sessions, used/expired OTP codes, stale bearer tokens and old security events."""
    result = maintenance_service.run_cleanup()
    click.echo(
        f"Deleted {result['guest_sessions']} guest sessions, "
        f"{result['otp_challenges']} OTP challenges, "
        f"{result['auth_tokens']} auth tokens, "
        f"{result['security_events']} security events."
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
