# Overview: Retired v0 endpoints that stay reachable under a permissive inventory policy.

"""
Legacy (v0) Service

WHY: The v0 API predates the token login and every gate. It was never
removed from the inventory, so under permissive policy it still answers,
without authentication, with the data it used to serve. Under strict
policy the endpoints do not exist.
"""

from __future__ import annotations

from ..models import Item, Order, User
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import CATEGORY_INVENTORY, CATEGORY_OBJECT_LEVEL, Principal, SecurityEventRecord
from ..validation import NotFoundError, parse_id
from .audit_service import AuditSink


USER_FIELDS = ("id", "email", "name", "role", "address", "phone", "created_at")
ITEM_FIELDS = ("id", "name", "description", "price_cents", "stock", "image_url", "is_featured", "created_at")
SUPPLIER_FIELDS = ("cost_price_cents", "supplier_email")


def _enter(principal: Principal | None, endpoint: str, policy: PolicyConfig, audit: AuditSink) -> None:
    if policy.inventory_strict:
        raise NotFoundError("Endpoint not found")
    audit.emit(SecurityEventRecord(
        category=CATEGORY_INVENTORY,
        principal_id=principal.id if principal else None,
        target_id=endpoint,
        detail=f"Retired endpoint served: {endpoint}",
    ))


def _pick(record: dict, names) -> dict:
    return {name: record[name] for name in names}


def list_all_users(principal: Principal | None, policy: PolicyConfig, audit: AuditSink) -> list[dict]:
    _enter(principal, "legacy_list_all_users", policy, audit)
    records = Repository(User).find_all(order_by=[User.created_at.desc(), User.id.desc()])
    return [_pick(user.to_dict(), USER_FIELDS) for user in records]


def user_orders(principal: Principal | None, user_id, policy: PolicyConfig, audit: AuditSink) -> list[dict]:
    """Orders of any user, with the owner's contact details attached."""
    _enter(principal, "legacy_get_user_orders", policy, audit)
    user_id = parse_id(user_id, "user_id")
    if principal is None or principal.id != user_id:
        audit.emit(SecurityEventRecord(
            category=CATEGORY_OBJECT_LEVEL,
            principal_id=principal.id if principal else None,
            target_id=user_id,
            detail=f"Legacy order listing for user {user_id}",
        ))

    records = Repository(Order).find_all(owner_id=user_id, order_by=[Order.created_at.desc(), Order.id.desc()])
    views = []
    for order in records:
        view = order.to_dict()
        view["owner"] = {"id": order.owner.id, "name": order.owner.name, "email": order.owner.email}
        views.append(view)
    return views


def bulk_items(principal: Principal | None, include, policy: PolicyConfig, audit: AuditSink) -> list[dict]:
    """Every item; include="supplier" adds cost price and supplier email."""
    _enter(principal, "legacy_bulk_items", policy, audit)
    names = ITEM_FIELDS + SUPPLIER_FIELDS if include == "supplier" else ITEM_FIELDS
    records = Repository(Item).find_all(order_by=[Item.created_at.desc(), Item.id.desc()])
    return [_pick(item.to_dict(), names) for item in records]
