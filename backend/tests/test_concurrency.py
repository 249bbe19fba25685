"""
Concurrency tests for the order lifecycle.

Runs against a file-backed SQLite database so every worker thread gets its
own connection, as it would under a threaded server.
"""

import threading

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from vulnyoga import create_app
from vulnyoga.extensions import db, LIFECYCLE_KEY
from vulnyoga.models import Item, Order, User, STATUS_CART
from vulnyoga.policy import PolicyConfig
from vulnyoga.security import ROLE_CUSTOMER, ROLE_STAFF, Principal
from vulnyoga.services.audit_service import RecordingAuditSink
from vulnyoga.repository import Repository, RepositoryError
from vulnyoga.services.concurrency import OrderLockRegistry, run_with_retry
from vulnyoga.services.order_lifecycle import CouponAlreadyAppliedError
from vulnyoga.services.payment_service import FixedPaymentGateway


STRICT = PolicyConfig.all_strict()
PERMISSIVE = PolicyConfig.all_permissive()

THREADS = 8
ADDS_PER_THREAD = 5


@pytest.fixture
def threaded_app(tmp_path):
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
            'JWT_SECRET': 'concurrency-secret-0123456789-abcdefghij',
        },
        policy=STRICT,
        audit_sink=RecordingAuditSink(),
        payment_gateway=FixedPaymentGateway(success=True),
    )
    with app.app_context():
        db.create_all()
        shopper = User(email="shopper@demo.local", name="Shopper", password_hash="x", role=ROLE_CUSTOMER)
        staff = User(email="staff@demo.local", name="Staff", password_hash="x", role=ROLE_STAFF)
        db.session.add_all([shopper, staff])
        db.session.commit()
        item = Item(name="Yoga Strap", description="", price_cents=300, owner_id=staff.id)
        db.session.add(item)
        db.session.commit()
        app.test_ids = {"shopper": shopper.id, "item": item.id}
        db.session.remove()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def run_threads(app, target, count=THREADS):
    errors = []
    results = []
    barrier = threading.Barrier(count)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                results.append(target())
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results, errors


class TestOrderLockRegistry:

    def test_same_key_same_lock(self):
        locks = OrderLockRegistry()
        assert locks._lock_for(("order", 1)) is locks._lock_for(("order", 1))
        assert locks._lock_for(("order", 1)) is not locks._lock_for(("order", 2))

    def test_hold_is_exclusive(self):
        locks = OrderLockRegistry()
        inside = []
        overlap = []

        def worker():
            with locks.order(7):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(1)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlap == []


class TestConcurrentCart:

    def test_parallel_adds_keep_one_cart_and_every_qty(self, threaded_app):
        ids = threaded_app.test_ids
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=ids["shopper"], role=ROLE_CUSTOMER)

        def add_many():
            for _ in range(ADDS_PER_THREAD):
                lifecycle.add_item(shopper, ids["item"], 1, STRICT)
            return True

        _, errors = run_threads(threaded_app, add_many)
        assert errors == []

        with threaded_app.app_context():
            carts = db.session.query(Order).filter_by(owner_id=ids["shopper"], status=STATUS_CART).all()
            assert len(carts) == 1
            assert carts[0].items == [{"item_id": ids["item"], "qty": THREADS * ADDS_PER_THREAD}]
            assert carts[0].total_cents == 300 * THREADS * ADDS_PER_THREAD


class TestConcurrentCoupons:

    @pytest.fixture
    def placed_order_id(self, threaded_app):
        ids = threaded_app.test_ids
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=ids["shopper"], role=ROLE_CUSTOMER)
        with threaded_app.app_context():
            cart = lifecycle.add_item(shopper, ids["item"], 10, STRICT)
            order = lifecycle.start_checkout(shopper, cart.id, STRICT)
            return order.id

    def test_strict_exactly_one_coupon_wins(self, threaded_app, placed_order_id):
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=threaded_app.test_ids["shopper"], role=ROLE_CUSTOMER)

        results, errors = run_threads(
            threaded_app,
            lambda: lifecycle.apply_coupon(shopper, placed_order_id, "FREESHIP", STRICT).id,
        )

        assert len(results) == 1
        assert len(errors) == THREADS - 1
        assert all(isinstance(e, CouponAlreadyAppliedError) for e in errors)

        with threaded_app.app_context():
            assert db.session.get(Order, placed_order_id).total_cents == 3000 - 1000

    def test_permissive_every_replay_applies_once(self, threaded_app, placed_order_id):
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=threaded_app.test_ids["shopper"], role=ROLE_CUSTOMER)

        results, errors = run_threads(
            threaded_app,
            lambda: lifecycle.apply_coupon(shopper, placed_order_id, "FREESHIP", PERMISSIVE).id,
            count=3,
        )

        assert errors == []
        assert len(results) == 3
        with threaded_app.app_context():
            # No lost updates: three discounts of 1000 from 3000
            assert db.session.get(Order, placed_order_id).total_cents == 0


class FlakySession:
    """Session stand-in whose first `failures` commits raise the given error."""

    def __init__(self, failures, error):
        self.failures = failures
        self.error = error
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1
        if self.commits <= self.failures:
            raise self.error

    def rollback(self):
        self.rollbacks += 1


def locked_error():
    return OperationalError("COMMIT", {}, Exception("database is locked"))


class TestRetryOnConflict:

    def test_lock_contention_is_retried(self, app):
        session = FlakySession(2, locked_error())
        run_with_retry(Repository(Order, session=session).commit, backoff_base=0)
        assert session.commits == 3
        assert session.rollbacks == 2

    def test_gives_up_after_last_attempt(self, app):
        session = FlakySession(5, locked_error())
        with pytest.raises(OperationalError):
            run_with_retry(Repository(Order, session=session).commit, backoff_base=0)
        assert session.commits == 3

    def test_other_storage_errors_are_not_retried(self, app):
        session = FlakySession(5, IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
        with pytest.raises(RepositoryError):
            run_with_retry(Repository(Order, session=session).commit, backoff_base=0)
        assert session.commits == 1


class TestCheckoutHoldsCartLock:

    def test_checkout_waits_for_cart_owner_lock(self, threaded_app):
        ids = threaded_app.test_ids
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=ids["shopper"], role=ROLE_CUSTOMER)
        with threaded_app.app_context():
            cart_id = lifecycle.add_item(shopper, ids["item"], 1, STRICT).id

        placed = threading.Event()

        def checkout():
            with threaded_app.app_context():
                lifecycle.start_checkout(shopper, cart_id, STRICT)
                placed.set()

        worker = threading.Thread(target=checkout)
        with lifecycle.locks.cart_owner(ids["shopper"]):
            worker.start()
            assert not placed.wait(0.3)
        worker.join(timeout=10)
        assert placed.is_set()

    def test_adds_racing_checkout_never_hit_a_closed_cart(self, threaded_app):
        ids = threaded_app.test_ids
        lifecycle = threaded_app.extensions[LIFECYCLE_KEY]
        shopper = Principal(id=ids["shopper"], role=ROLE_CUSTOMER)
        with threaded_app.app_context():
            cart_id = lifecycle.add_item(shopper, ids["item"], 1, STRICT).id

        calls = iter([lambda: lifecycle.start_checkout(shopper, cart_id, STRICT)] + [
            lambda: lifecycle.add_item(shopper, ids["item"], 1, STRICT)
            for _ in range(THREADS - 1)
        ])
        guard = threading.Lock()

        def next_call():
            with guard:
                call = next(calls)
            return call()

        _, errors = run_threads(threaded_app, next_call)
        assert errors == []

        with threaded_app.app_context():
            orders = db.session.query(Order).filter_by(owner_id=ids["shopper"]).all()
            qty = sum(line["qty"] for o in orders for line in o.items)
            assert qty == THREADS
            assert len([o for o in orders if o.status == STATUS_CART]) <= 1
