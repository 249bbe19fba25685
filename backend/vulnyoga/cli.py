# Overview: Flask CLI command groups for policy inspection and database bootstrap.

# backend/vulnyoga/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Policy:
# - python -m flask policy status
#   Print STRICT/PERMISSIVE per category as resolved from the VULN_* flags and SAFE_MODE.
#
# Database bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system seed
#   Create demo users (alice/bob/admin) and the demo catalog (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db, get_policy
from .models import ApiKey, Item, User
from .policy import policy_status
from .security import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_STAFF
from .services.account_service import hash_password


DEMO_USERS = [
    {
        "email": "alice@demo.local",
        "password": "alice123",
        "name": "Alice Johnson",
        "address": "123 Main St, Anytown, USA",
        "phone": "+1-555-0101",
        "role": ROLE_CUSTOMER,
    },
    {
        "email": "bob@demo.local",
        "password": "bob12345",
        "name": "Bob Smith",
        "address": "456 Oak Ave, Somewhere, USA",
        "phone": "+1-555-0102",
        "role": ROLE_STAFF,
    },
    {
        "email": "admin@demo.local",
        "password": "admin123",
        "name": "Admin User",
        "address": "789 Admin Blvd, System, USA",
        "phone": "+1-555-0000",
        "role": ROLE_ADMIN,
    },
]

# (name, description, price_cents, cost_price_cents, supplier_email, stock, featured)
DEMO_ITEMS = [
    ("Premium Yoga Mat", "High-quality non-slip yoga mat perfect for all types of yoga practice",
     4999, 2500, "mats@yogasupplier.com", 50, True),
    ("Yoga Blocks Set", "Set of 2 high-density foam yoga blocks for support and alignment",
     1999, 800, "blocks@yogasupplier.com", 100, False),
    ("Yoga Strap", "Cotton yoga strap for stretching and improving flexibility",
     1299, 500, "straps@yogasupplier.com", 75, False),
    ("Meditation Cushion", "Comfortable meditation cushion for seated practice",
     3499, 1500, "cushions@yogasupplier.com", 30, True),
    ("Yoga Towel", "Absorbent yoga towel for hot yoga and intense sessions",
     2499, 1000, "towels@yogasupplier.com", 60, False),
    ("Online Yoga Class - Beginner", "4-week beginner yoga course with video lessons",
     7999, 2000, "classes@yogainstructor.com", 999, True),
]

# (owner role, key, label)
DEMO_API_KEYS = [
    (ROLE_CUSTOMER, "vulnyoga_alice_demo_key_1234567890abcdef", "Demo API Key"),
    (ROLE_STAFF, "vulnyoga_bob_staff_key_abcdef1234567890", "Staff API Key"),
]


@click.group('policy')
def policy_group():
    """Authorization policy inspection."""


@policy_group.command('status')
@with_appcontext
def policy_status_cli():
    """Show the effective policy, one line per category."""
    policy = get_policy()
    click.echo(f"SAFE_MODE inverted: {'yes' if policy.safe_mode_inverted else 'no'}")
    for category, mode in policy_status(policy):
        click.echo(f"  {category:<16} {mode}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Create the demo users, catalog and API keys.

    Existing users (by email) and items (by name) are left untouched.
    SECURITY: demo passwords are public; never seed a shared deployment.
    """
    db.create_all()

    click.echo("USERS Creating demo users...")
    users = {}
    for spec in DEMO_USERS:
        user = db.session.query(User).filter_by(email=spec["email"]).first()
        if user is None:
            fields = {k: v for k, v in spec.items() if k != "password"}
            user = User(password_hash=hash_password(spec["password"]), **fields)
            db.session.add(user)
            click.echo(f"PASS Created {spec['role']}: {spec['email']} / {spec['password']}")
        else:
            click.echo(f"SKIP {spec['email']} already exists")
        users[spec["role"]] = user
    db.session.commit()

    click.echo("\nITEMS Creating demo catalog...")
    staff = users[ROLE_STAFF]
    created = 0
    for index, (name, description, price, cost, supplier, stock, featured) in enumerate(DEMO_ITEMS, start=1):
        if db.session.query(Item).filter_by(name=name).first() is not None:
            continue
        db.session.add(Item(
            name=name,
            description=description,
            price_cents=price,
            cost_price_cents=cost,
            supplier_email=supplier,
            stock=stock,
            image_url=f"https://picsum.photos/400/300?random={index}",
            is_featured=featured,
            owner_id=staff.id,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} items")

    click.echo("\nKEYS Creating demo API keys...")
    created = 0
    for role, key, label in DEMO_API_KEYS:
        if db.session.query(ApiKey).filter_by(key=key).first() is not None:
            continue
        db.session.add(ApiKey(user_id=users[role].id, key=key, label=label))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} API keys")


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

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(policy_group)
    app.cli.add_command(system_group)
