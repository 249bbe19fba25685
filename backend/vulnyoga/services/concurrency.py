# Overview: Service-layer concurrency helpers; per-order locks and optimistic-conflict retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Hashable

from ..extensions import db
from ..repository import CONFLICT_ERRORS


class OrderLockRegistry:
    """
    Arena of locks keyed by order id (or any hashable key).

    Serializes read-modify-write on the same order inside one process.
    Cross-process writers are caught by Order.version_id and retried.
    Locks are never evicted; one Lock per order ever touched is cheap.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable):
        lock = self._lock_for(key)
        with lock:
            yield

    def order(self, order_id: int):
        return self.hold(("order", order_id))

    def cart_owner(self, owner_id: int):
        """Serializes cart lookup-or-create for one user."""
        return self.hold(("cart", owner_id))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError (optimistic
    version conflicts). func must redo its reads on every attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except CONFLICT_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
