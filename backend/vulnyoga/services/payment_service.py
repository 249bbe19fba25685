# Overview: Service-layer operations for payment; stub gateway with a bounded call.

"""
Payment Stub

WHY: Orders need a payment step, but gateway integration is out of scope.
StubPaymentGateway succeeds with a configurable probability after a short
simulated latency. charge_with_timeout() bounds every call: a timeout is a
failed payment, never an assumed success.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Protocol


logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"
SUPPORTED_CURRENCIES = {"USD", "EUR", "GBP"}


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    reason: str = ""


class PaymentGateway(Protocol):
    def charge(self, amount_cents: int, currency: str) -> PaymentResult:
        ...


class StubPaymentGateway:
    """Probabilistic stand-in for a card processor."""

    def __init__(self, success_rate: float = 0.9, latency_seconds: float = 0.1, rng: random.Random | None = None):
        self.success_rate = success_rate
        self.latency_seconds = latency_seconds
        self.rng = rng or random.Random()

    def charge(self, amount_cents: int, currency: str) -> PaymentResult:
        if self.latency_seconds:
            time.sleep(self.latency_seconds)
        if self.rng.random() < self.success_rate:
            return PaymentResult(success=True)
        return PaymentResult(success=False, reason="Card declined")


class FixedPaymentGateway:
    """Deterministic gateway; always returns the configured outcome."""

    def __init__(self, success: bool, latency_seconds: float = 0.0):
        self.success = success
        self.latency_seconds = latency_seconds
        self.calls: list[tuple[int, str]] = []

    def charge(self, amount_cents: int, currency: str) -> PaymentResult:
        self.calls.append((amount_cents, currency))
        if self.latency_seconds:
            time.sleep(self.latency_seconds)
        if self.success:
            return PaymentResult(success=True)
        return PaymentResult(success=False, reason="Payment declined")


class PaymentService:
    """Runs gateway calls on a small worker pool so each can be timed out."""

    def __init__(self, gateway: PaymentGateway, timeout_seconds: float = 2.0, max_workers: int = 4):
        self.gateway = gateway
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="payment")

    def charge_with_timeout(self, amount_cents: int, currency: str) -> PaymentResult:
        future = self._executor.submit(self.gateway.charge, amount_cents, currency)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning("Payment gateway timed out after %.2fs", self.timeout_seconds)
            return PaymentResult(success=False, reason="Payment gateway timeout")
        except Exception:
            logger.exception("Payment gateway raised")
            return PaymentResult(success=False, reason="Payment gateway error")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
