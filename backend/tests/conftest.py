"""
Pytest fixtures for VulnYoga backend tests.

Provides test database setup, policy switching, seeded users/items and auth
headers. The app is built once per session with an all-strict policy, a
recording audit sink and a deterministic payment gateway; each test starts
from empty tables and the strict policy.
"""

import pytest

from vulnyoga import create_app
from vulnyoga.extensions import db, AUDIT_KEY, IDENTITY_KEY, POLICY_KEY
from vulnyoga.models import Item, User
from vulnyoga.policy import PolicyConfig
from vulnyoga.security import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_STAFF
from vulnyoga.services.account_service import hash_password
from vulnyoga.services.audit_service import CompositeAuditSink, DatabaseAuditSink, RecordingAuditSink
from vulnyoga.services.payment_service import FixedPaymentGateway


TEST_JWT_SECRET = "test-secret-key-for-the-vulnyoga-suite-0123456789"
TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    recorder = RecordingAuditSink()
    gateway = FixedPaymentGateway(success=True)
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_TRACK_MODIFICATIONS': False,
            'JWT_SECRET': TEST_JWT_SECRET,
            'PAYMENT_TIMEOUT_SECONDS': 1.0,
        },
        policy=PolicyConfig.all_strict(),
        audit_sink=CompositeAuditSink(recorder, DatabaseAuditSink()),
        payment_gateway=gateway,
    )
    app.test_recorder = recorder
    app.test_gateway = gateway

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions[POLICY_KEY] = PolicyConfig.all_strict()
        app.test_recorder.clear()
        app.test_gateway.success = True
        app.test_gateway.calls.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def audit(app, db_session):
    """The in-memory sink the app emits to (alongside the database sink)."""
    return app.test_recorder


@pytest.fixture(scope='function')
def gateway(app, db_session):
    return app.test_gateway


@pytest.fixture(scope='function')
def strict(app, db_session):
    policy = PolicyConfig.all_strict()
    app.extensions[POLICY_KEY] = policy
    return policy


@pytest.fixture(scope='function')
def permissive(app, db_session):
    policy = PolicyConfig.all_permissive()
    app.extensions[POLICY_KEY] = policy
    return policy


def make_user(session, email, role, name=None):
    user = User(
        email=email,
        name=name or email.split("@")[0].title(),
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def alice(db_session):
    """CUSTOMER who owns the cart in most scenarios."""
    return make_user(db_session, "alice@demo.local", ROLE_CUSTOMER, "Alice Johnson")


@pytest.fixture(scope='function')
def carol(db_session):
    """Second CUSTOMER; never owns alice's records."""
    return make_user(db_session, "carol@demo.local", ROLE_CUSTOMER, "Carol White")


@pytest.fixture(scope='function')
def bob(db_session):
    """STAFF member who owns the catalog items."""
    return make_user(db_session, "bob@demo.local", ROLE_STAFF, "Bob Smith")


@pytest.fixture(scope='function')
def dave(db_session):
    """STAFF member who owns no items."""
    return make_user(db_session, "dave@demo.local", ROLE_STAFF, "Dave Brown")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, "admin@demo.local", ROLE_ADMIN, "Admin User")


def make_item(session, owner, name, price_cents, **fields):
    item = Item(
        name=name,
        description=fields.pop("description", f"{name} for daily practice"),
        price_cents=price_cents,
        cost_price_cents=fields.pop("cost_price_cents", price_cents // 2),
        supplier_email=fields.pop("supplier_email", "supply@yogasupplier.com"),
        stock=fields.pop("stock", 50),
        owner_id=owner.id,
        **fields,
    )
    session.add(item)
    session.commit()
    return item


@pytest.fixture(scope='function')
def mat(db_session, bob):
    """Item A: $10.00"""
    return make_item(db_session, bob, "Premium Yoga Mat", 1000)


@pytest.fixture(scope='function')
def block(db_session, bob):
    """Item B: $5.00"""
    return make_item(db_session, bob, "Yoga Blocks Set", 500)


def issue_token(app, user, expires_in=3600) -> str:
    return app.extensions[IDENTITY_KEY].issue_token(user, expires_in)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def alice_headers(app, alice):
    return auth_headers(issue_token(app, alice))


@pytest.fixture(scope='function')
def carol_headers(app, carol):
    return auth_headers(issue_token(app, carol))


@pytest.fixture(scope='function')
def bob_headers(app, bob):
    return auth_headers(issue_token(app, bob))


@pytest.fixture(scope='function')
def admin_headers(app, admin):
    return auth_headers(issue_token(app, admin))
