# Overview: Authorization gates; pure strict/permissive decisions plus the audit events they imply.

"""
Authorization Gates

Four independently invokable checks:
- object_level:   caller owns (or administers) the specific record
- property_level: caller may read/write each requested field
- function_level: caller's role permits the operation at all
- resource_limit: request size and query cost stay within bounds

Every gate is a pure function of (principal, resource descriptor, policy).
None of them touches shared state; each returns its outcome together with
the SecurityEventRecords the caller must hand to the audit sink. Gates never
raise for malformed input: callers validate ids and payloads first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ..policy import PolicyConfig
from ..security import (
    CATEGORY_FUNCTION_LEVEL,
    CATEGORY_OBJECT_LEVEL,
    CATEGORY_PROPERTY_LEVEL,
    CATEGORY_RESOURCE_LIMIT,
    ROLE_ADMIN,
    Principal,
    SecurityEventRecord,
)


MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

MATCH_PREFIX = "prefix"
MATCH_CONTAINS = "contains"


class AccessDeniedError(Exception):
    """Raised by services when a gate returns Deny (403)."""

    def __init__(self, reason: str, events: tuple = ()):
        super().__init__(reason)
        self.reason = reason
        self.events = tuple(events)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""
    events: tuple[SecurityEventRecord, ...] = ()

    @classmethod
    def allow(cls, *events: SecurityEventRecord) -> "Decision":
        return cls(True, "", tuple(events))

    @classmethod
    def deny(cls, reason: str, *events: SecurityEventRecord) -> "Decision":
        return cls(False, reason, tuple(events))

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise AccessDeniedError(self.reason, self.events)


@dataclass(frozen=True)
class FieldRule:
    """
    Who may touch a restricted field under strict policy.

    roles:      roles allowed at all (empty means nobody)
    owner_only: additionally require ownership of the record; ADMIN is exempt
    """
    roles: frozenset[str] = frozenset()
    owner_only: bool = False

    def permits(self, principal: Principal | None, owner_id: int | None) -> bool:
        if principal is None or principal.role not in self.roles:
            return False
        if not self.owner_only or principal.role == ROLE_ADMIN:
            return True
        return owner_id is not None and principal.id == owner_id


@dataclass(frozen=True)
class PropertyDecision:
    fields: dict[str, Any]
    dropped: tuple[str, ...] = ()
    events: tuple[SecurityEventRecord, ...] = ()


@dataclass(frozen=True)
class SearchPlan:
    page: int
    page_size: int
    match: str
    events: tuple[SecurityEventRecord, ...] = ()

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def object_level(
    principal: Principal,
    owner_id: int | None,
    policy: PolicyConfig,
    *,
    target_id: int | None = None,
    resource: str = "object",
) -> Decision:
    """
    Allow iff the caller owns the record or is ADMIN (strict).

    Permissive: always Allow; a non-owner access is recorded.
    """
    is_owner = owner_id is not None and principal.id == owner_id

    if not policy.object_level_strict:
        if is_owner:
            return Decision.allow()
        return Decision.allow(SecurityEventRecord(
            category=CATEGORY_OBJECT_LEVEL,
            principal_id=principal.id,
            target_id=target_id,
            detail=f"Ownership not checked on {resource}; owner is {owner_id}",
        ))

    if is_owner or principal.role == ROLE_ADMIN:
        return Decision.allow()
    return Decision.deny(f"Access denied to {resource}")


def property_level(
    principal: Principal | None,
    requested: Mapping[str, Any],
    restricted: Mapping[str, FieldRule],
    policy: PolicyConfig,
    *,
    owner_id: int | None = None,
    is_update: bool = False,
    target_id: int | None = None,
) -> PropertyDecision:
    """
    Filter requested fields against restricted-field rules.

    Strict: restricted fields the caller is not entitled to are silently
    dropped (writes) or stripped (reads).
    Permissive: everything passes; each restricted field touched is recorded.
    """
    verb = "write" if is_update else "read"
    principal_id = principal.id if principal else None

    if not policy.property_level_strict:
        events = tuple(
            SecurityEventRecord(
                category=CATEGORY_PROPERTY_LEVEL,
                principal_id=principal_id,
                target_id=target_id,
                detail=f"Restricted property '{name}' {verb} allowed",
            )
            for name in requested
            if name in restricted
        )
        return PropertyDecision(fields=dict(requested), events=events)

    kept: dict[str, Any] = {}
    dropped: list[str] = []
    for name, value in requested.items():
        rule = restricted.get(name)
        if rule is None or rule.permits(principal, owner_id):
            kept[name] = value
        else:
            dropped.append(name)
    return PropertyDecision(fields=kept, dropped=tuple(dropped))


def function_level(
    principal: Principal,
    required_role: str,
    policy: PolicyConfig,
    *,
    client_asserted_role: str | None = None,
    operation: str = "",
) -> Decision:
    """
    Allow iff role == required_role or role == ADMIN.

    Permissive: a client-asserted role replaces the principal's role for
    this single check, and the substitution is recorded.
    """
    role = principal.role
    events: tuple[SecurityEventRecord, ...] = ()

    if not policy.function_level_strict and client_asserted_role:
        role = client_asserted_role
        events = (SecurityEventRecord(
            category=CATEGORY_FUNCTION_LEVEL,
            principal_id=principal.id,
            target_id=operation or None,
            detail=f"Client-asserted role '{client_asserted_role}' replaced '{principal.role}'",
        ),)

    if role == required_role or role == ROLE_ADMIN:
        return Decision.allow(*events)
    return Decision.deny(f"{required_role} role required", *events)


def resource_limit(
    principal: Principal | None,
    page: int,
    page_size: int,
    query: str,
    policy: PolicyConfig,
) -> SearchPlan:
    """
    Bound pagination and choose the search predicate.

    Strict: page size clamped into [1, 100]; prefix matching only.
    Permissive: any page size >= 1; substring matching; sizes over 100 are
    recorded.
    """
    page = max(1, page)

    if policy.resource_limits_strict:
        size = min(max(MIN_PAGE_SIZE, page_size), MAX_PAGE_SIZE)
        return SearchPlan(page=page, page_size=size, match=MATCH_PREFIX)

    size = max(MIN_PAGE_SIZE, page_size)
    events: tuple[SecurityEventRecord, ...] = ()
    if size > MAX_PAGE_SIZE:
        events = (SecurityEventRecord(
            category=CATEGORY_RESOURCE_LIMIT,
            principal_id=principal.id if principal else None,
            target_id="search",
            detail=f"Page size {size} exceeds limit {MAX_PAGE_SIZE}",
        ),)
    return SearchPlan(page=page, page_size=size, match=MATCH_CONTAINS, events=events)
