# Overview: Service-layer operations for the item catalog; reads, search, writes and CSV export.

"""
Catalog Service

WHY: Items are priced into carts and are the resource carrying restricted
properties (cost price, supplier contact).

SECURITY:
- Reads and writes pass through the property-level gate
- Search pagination and matching come from the resource-limit gate
- Function-level access (STAFF for writes) is enforced by the caller
"""

from __future__ import annotations

import csv
import io
import math

from sqlalchemy import or_

from ..models import Item
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import ROLE_ADMIN, ROLE_STAFF, Principal
from ..validation import (
    MAX_SQL_INT,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_item,
    parse_id,
    parse_int,
    validate_payload,
)
from .audit_service import AuditSink
from .authorization import (
    DEFAULT_PAGE_SIZE,
    MATCH_PREFIX,
    FieldRule,
    property_level,
    resource_limit,
)


_STAFF_OWNER = FieldRule(roles=frozenset({ROLE_STAFF, ROLE_ADMIN}), owner_only=True)

ITEM_RESTRICTED_FIELDS = {
    "cost_price_cents": _STAFF_OWNER,
    "supplier_email": _STAFF_OWNER,
}

ITEM_POLICY = ModelValidationPolicy(
    accepted_fields=frozenset({
        "name", "description", "price_cents", "cost_price_cents",
        "supplier_email", "stock", "image_url", "is_featured",
    }),
    required_on_create=frozenset({"name", "price_cents"}),
)

DEFAULT_SUPPLIER_EMAIL = "default@supplier.com"

CSV_COLUMNS = ["id", "name", "description", "price_cents", "stock", "is_featured", "created_at"]


def items() -> Repository:
    return Repository(Item)


def item_view(principal: Principal | None, item: Item, policy: PolicyConfig) -> tuple[dict, tuple]:
    """Serialize an item with restricted properties filtered for the caller."""
    decision = property_level(
        principal, item.to_dict(), ITEM_RESTRICTED_FIELDS, policy,
        owner_id=item.owner_id, is_update=False, target_id=item.id,
    )
    return decision.fields, decision.events


def _views(principal, records, policy, audit) -> list[dict]:
    views = []
    for record in records:
        view, events = item_view(principal, record, policy)
        audit.emit_all(events)
        views.append(view)
    return views


def list_items(principal: Principal | None, policy: PolicyConfig, audit: AuditSink) -> list[dict]:
    return _views(principal, items().find_all(order_by=[Item.id.desc()]), policy, audit)


def get_item(principal: Principal | None, item_id, policy: PolicyConfig, audit: AuditSink) -> dict:
    item = items().get(parse_id(item_id, "item_id"))
    if item is None:
        raise NotFoundError("Item not found")
    return _views(principal, [item], policy, audit)[0]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_items(
    principal: Principal | None,
    query: str,
    page,
    page_size,
    policy: PolicyConfig,
    audit: AuditSink,
) -> dict:
    """
    Paginated name/description search.

    Strict: page size clamped, prefix match, LIKE wildcards in the query are
    escaped. Permissive: unbounded page size and substring match with the
    caller's wildcards honoured.
    """
    page = parse_int(page, "page") if page not in (None, "") else 1
    page_size = parse_int(page_size, "page_size") if page_size not in (None, "") else DEFAULT_PAGE_SIZE
    query = (query or "").strip()

    plan = resource_limit(principal, page, page_size, query, policy)
    audit.emit_all(plan.events)
    if plan.offset + plan.page_size > MAX_SQL_INT:
        raise ValidationError("page is out of range")

    criteria = []
    if query:
        if plan.match == MATCH_PREFIX:
            pattern = f"{_escape_like(query)}%"
            criteria.append(or_(
                Item.name.ilike(pattern, escape="\\"),
                Item.description.ilike(pattern, escape="\\"),
            ))
        else:
            pattern = f"%{query}%"
            criteria.append(or_(Item.name.ilike(pattern), Item.description.ilike(pattern)))

    repo = items()
    total = repo.count(*criteria)
    records = repo.find_all(
        *criteria,
        order_by=[Item.id.desc()],
        offset=plan.offset,
        limit=plan.page_size,
    )

    return {
        "items": _views(principal, records, policy, audit),
        "pagination": {
            "page": plan.page,
            "page_size": plan.page_size,
            "total": total,
            "total_pages": math.ceil(total / plan.page_size) if total else 0,
        },
    }


def create_item(principal: Principal, payload: dict, policy: PolicyConfig, audit: AuditSink) -> dict:
    """
    Create an item owned by the caller.

    Restricted properties the caller may not set are dropped (strict) and
    fall back to neutral defaults.
    """
    cleaned = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(cleaned)

    decision = property_level(
        principal, cleaned, ITEM_RESTRICTED_FIELDS, policy,
        owner_id=principal.id, is_update=True,
    )
    fields = dict(decision.fields)
    fields.setdefault("cost_price_cents", 0)
    fields.setdefault("supplier_email", DEFAULT_SUPPLIER_EMAIL)
    fields.setdefault("description", "")

    repo = items()
    item = repo.add(Item(owner_id=principal.id, **fields))
    repo.commit()

    audit.emit_all(decision.events)
    return _views(principal, [item], policy, audit)[0]


def update_item(principal: Principal, item_id, payload: dict, policy: PolicyConfig, audit: AuditSink) -> dict:
    item_id = parse_id(item_id, "item_id")
    cleaned = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(cleaned)

    repo = items()
    item = repo.get(item_id)
    if item is None:
        raise NotFoundError("Item not found")

    decision = property_level(
        principal, cleaned, ITEM_RESTRICTED_FIELDS, policy,
        owner_id=item.owner_id, is_update=True, target_id=item.id,
    )
    for key, value in decision.fields.items():
        setattr(item, key, value)
    repo.commit()

    audit.emit_all(decision.events)
    return _views(principal, [item], policy, audit)[0]


def delete_item(item_id) -> None:
    repo = items()
    item = repo.get(parse_id(item_id, "item_id"))
    if item is None:
        raise NotFoundError("Item not found")
    repo.delete(item)
    repo.commit()


def export_items_csv() -> str:
    """Public fields only, whatever the policy."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for item in items().find_all(order_by=[Item.id.asc()]):
        row = item.to_dict()
        writer.writerow([row[c] for c in CSV_COLUMNS])
    return buffer.getvalue()
