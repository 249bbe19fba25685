# Overview: Service-layer operations for the order lifecycle; guarded CART -> PLACED -> PAID -> SHIPPED transitions.

"""
Order Lifecycle Service

================================================================================
PURPOSE: Move orders through CART -> PLACED -> PAID -> SHIPPED under the
business-flow policy
================================================================================

STATE MACHINE:
    CART -> PLACED -> PAID -> SHIPPED

    CART:    One per user; created by the first add_item, editable
    PLACED:  Checkout started; coupons may be applied; awaiting payment
    PAID:    Payment confirmed (strict) or asserted by the client (permissive)
    SHIPPED: Terminal; every further transition is rejected

RULES:
1. Status never moves backwards
2. Every transition first passes the object-level gate on the order owner
3. Strict business flow: one coupon per order, pay through the gateway,
   ship only PAID orders
4. Permissive business flow: coupons stack, client-asserted payment is
   trusted, PLACED orders ship directly; each shortcut is audited
5. Mutations on one order are serialized (OrderLockRegistry) and
   version-checked (Order.version_id)
6. Audit events are emitted after the state change is committed

================================================================================
"""

from __future__ import annotations

import logging
from typing import Callable

from ..models import Item, Order, STATUS_CART, STATUS_PAID, STATUS_PLACED, STATUS_SHIPPED
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import (
    CATEGORY_BUSINESS_FLOW,
    CATEGORY_UNSAFE_CONSUMPTION,
    Principal,
    SecurityEventRecord,
)
from ..validation import NotFoundError, ValidationError, parse_id, parse_qty
from .audit_service import AuditSink
from .authorization import AccessDeniedError, object_level
from .concurrency import OrderLockRegistry, run_with_retry
from .payment_service import DEFAULT_CURRENCY, SUPPORTED_CURRENCIES, PaymentService


logger = logging.getLogger(__name__)


FREESHIP_DISCOUNT_CENTS = 1000

COUPONS: dict[str, Callable[[int], int]] = {
    "FREESHIP": lambda total: max(0, total - FREESHIP_DISCOUNT_CENTS),
    "HALFPRICE": lambda total: total // 2,
}


class LifecycleError(ValueError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error. The caller may retry once
    the order is in the right state.
    """
    pass


class CouponAlreadyAppliedError(LifecycleError):
    """Strict business flow allows one coupon per order."""


class PaymentFailedError(Exception):
    """Gateway declined or timed out; the order stays PLACED."""


def apply_discount(total_cents: int, code: str) -> int:
    try:
        return COUPONS[code](total_cents)
    except KeyError:
        raise ValidationError(f"Unknown coupon code: {code}")


def normalize_coupon(code) -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("coupon_code required")
    normalized = code.strip().upper()
    if normalized not in COUPONS:
        raise ValidationError(f"Unknown coupon code: {normalized}")
    return normalized


class OrderLifecycle:
    """Order state machine bound to its collaborators."""

    def __init__(
        self,
        payments: PaymentService,
        audit: AuditSink,
        *,
        locks: OrderLockRegistry | None = None,
        orders: Repository | None = None,
        items: Repository | None = None,
    ):
        self.payments = payments
        self.audit = audit
        self.locks = locks or OrderLockRegistry()
        self.orders = orders or Repository(Order)
        self.items = items or Repository(Item)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_orders(self, principal: Principal) -> list[Order]:
        return self.orders.find_all(owner_id=principal.id, order_by=[Order.id.desc()])

    def get_order(self, principal: Principal, order_id, policy: PolicyConfig) -> Order:
        order_id = parse_id(order_id, "order_id")
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        decision = object_level(principal, order.owner_id, policy, target_id=order.id, resource="order")
        self.audit.emit_all(decision.events)
        if not decision.allowed:
            # Strict posture hides foreign orders entirely
            raise NotFoundError("Order not found")
        return order

    def recompute_total(self, lines: list[dict]) -> int:
        """
        Sum price * qty over the lines.

        Items deleted since they were added are skipped, not fatal.
        """
        total = 0
        for line in lines:
            item = self.items.get(line["item_id"])
            if item is None:
                logger.info("Skipping missing item %s while pricing cart", line["item_id"])
                continue
            total += item.price_cents * line["qty"]
        return total

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def add_item(self, principal: Principal, item_id, qty, policy: PolicyConfig) -> Order:
        """
        Merge qty of item_id into the caller's cart, creating the cart if needed.

        Valid only while the order is CART (by construction: the cart lookup
        only matches CART orders).
        """
        item_id = parse_id(item_id, "item_id")
        qty = parse_qty(qty)

        if self.items.get(item_id) is None:
            raise NotFoundError("Item not found")

        def _op():
            cart = self.orders.find_one(owner_id=principal.id, status=STATUS_CART)
            if cart is None:
                cart = self.orders.add(Order(
                    owner_id=principal.id,
                    status=STATUS_CART,
                    items=[],
                    total_cents=0,
                    shipping_address="",
                ))
                self.orders.commit()

            with self.locks.order(cart.id):
                cart = self.orders.get_for_update(cart.id)
                if cart is None or cart.status != STATUS_CART:
                    raise LifecycleError("Cart is no longer open")

                lines = [dict(line) for line in (cart.items or [])]
                for line in lines:
                    if line["item_id"] == item_id:
                        line["qty"] += qty
                        break
                else:
                    lines.append({"item_id": item_id, "qty": qty})

                cart.items = lines
                cart.total_cents = self.recompute_total(lines)
                self.orders.commit()
                return cart

        with self.locks.cart_owner(principal.id):
            return run_with_retry(_op)

    def start_checkout(
        self,
        principal: Principal,
        order_id,
        policy: PolicyConfig,
        *,
        shipping_address: str | None = None,
    ) -> Order:
        """
        CART -> PLACED. Ownership is the only guard.

        Holds the owner's cart lock so a concurrent add_item either lands
        in this cart before it closes or opens a fresh one afterwards.
        """
        order_id = parse_id(order_id, "order_id")
        current = self.orders.get(order_id)
        owner_id = current.owner_id if current is not None else principal.id

        def mutate(order: Order, events: list) -> None:
            if order.status != STATUS_CART:
                raise LifecycleError(
                    f"Cannot start checkout for order {order.id}: "
                    f"current status is '{order.status}', must be '{STATUS_CART}'"
                )
            if shipping_address is not None:
                order.shipping_address = str(shipping_address).strip()[:255]
            order.status = STATUS_PLACED

        with self.locks.cart_owner(owner_id):
            return self._transition(principal, order_id, policy, mutate)

    def apply_coupon(self, principal: Principal, order_id, code, policy: PolicyConfig) -> Order:
        """
        Apply a coupon to a PLACED or PAID order.

        Strict: one coupon per order; a second call fails without mutation.
        Permissive: the discount applies to the current total every time and
        overwrites discount_code; replays are audited.
        """
        code = normalize_coupon(code)

        def mutate(order: Order, events: list) -> None:
            if order.status not in (STATUS_PLACED, STATUS_PAID):
                raise LifecycleError(
                    f"Cannot apply coupon to order {order.id}: current status is '{order.status}'"
                )

            if policy.business_flow_strict:
                if order.discount_code:
                    raise CouponAlreadyAppliedError("Coupon already applied")
            elif order.discount_code:
                events.append(SecurityEventRecord(
                    category=CATEGORY_BUSINESS_FLOW,
                    principal_id=principal.id,
                    target_id=order.id,
                    detail=f"Coupon replay: '{code}' applied over '{order.discount_code}'",
                ))

            order.total_cents = apply_discount(order.total_cents, code)
            order.discount_code = code

        return self._transition(principal, order_id, policy, mutate)

    def pay(
        self,
        principal: Principal,
        order_id,
        policy: PolicyConfig,
        *,
        client_asserted_paid: bool = False,
        amount=None,
        currency: str | None = None,
    ) -> Order:
        """
        PLACED -> PAID.

        Strict: client_asserted_paid is ignored; the gateway is charged
        order.total_cents and decides.
        Permissive: client_asserted_paid=True marks the order paid without
        calling the gateway; amount/currency are recorded, not checked.
        """
        currency = str(currency or DEFAULT_CURRENCY).strip().upper()
        if policy.business_flow_strict and currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(f"Unsupported currency: {currency}")

        def mutate(order: Order, events: list) -> None:
            if order.status != STATUS_PLACED:
                raise LifecycleError(
                    f"Cannot pay order {order.id}: current status is '{order.status}', must be '{STATUS_PLACED}'"
                )

            if policy.business_flow_strict:
                result = self.payments.charge_with_timeout(order.total_cents, currency)
                if not result.success:
                    raise PaymentFailedError(result.reason or "Payment failed")
            else:
                if not client_asserted_paid:
                    raise PaymentFailedError("Payment failed")
                events.append(SecurityEventRecord(
                    category=CATEGORY_UNSAFE_CONSUMPTION,
                    principal_id=principal.id,
                    target_id=order.id,
                    detail=(
                        f"Client-asserted payment trusted: paid=True amount={amount!r} "
                        f"currency={currency} order_total_cents={order.total_cents}"
                    ),
                ))

            order.status = STATUS_PAID
            order.paid = True

        return self._transition(principal, order_id, policy, mutate)

    def ship(self, principal: Principal, order_id, policy: PolicyConfig) -> Order:
        """
        PAID -> SHIPPED (strict); PLACED or PAID -> SHIPPED (permissive).
        """
        def mutate(order: Order, events: list) -> None:
            if order.status not in (STATUS_PLACED, STATUS_PAID):
                raise LifecycleError(
                    f"Cannot ship order {order.id}: current status is '{order.status}'"
                )

            if policy.business_flow_strict:
                if order.status != STATUS_PAID:
                    raise LifecycleError("Order must be paid before shipping")
            elif order.status != STATUS_PAID:
                events.append(SecurityEventRecord(
                    category=CATEGORY_BUSINESS_FLOW,
                    principal_id=principal.id,
                    target_id=order.id,
                    detail=f"Shipped before payment (status was '{order.status}')",
                ))

            order.status = STATUS_SHIPPED

        return self._transition(principal, order_id, policy, mutate)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _transition(self, principal: Principal, order_id, policy: PolicyConfig, mutate) -> Order:
        """
        Locked load -> ownership gate -> mutate -> commit, then audit.

        mutate(order, events) raises to reject the transition; it must not
        touch the order before it has decided to proceed.
        """
        order_id = parse_id(order_id, "order_id")
        events: list[SecurityEventRecord] = []

        def _op():
            events.clear()
            with self.locks.order(order_id):
                order = self.orders.get_for_update(order_id)
                if order is None:
                    raise NotFoundError("Order not found")

                decision = object_level(principal, order.owner_id, policy, target_id=order.id, resource="order")
                events.extend(decision.events)
                if not decision.allowed:
                    raise AccessDeniedError(decision.reason)

                mutate(order, events)
                self.orders.commit()
                return order

        try:
            return run_with_retry(_op)
        except Exception:
            self.orders.rollback()
            raise
        finally:
            self.audit.emit_all(list(events))
