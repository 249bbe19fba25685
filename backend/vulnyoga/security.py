# Overview: Request-scoped identity and security event value types shared by gates and services.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .time_utils import utcnow


ROLE_CUSTOMER = "CUSTOMER"
ROLE_STAFF = "STAFF"
ROLE_ADMIN = "ADMIN"

VALID_ROLES = {ROLE_CUSTOMER, ROLE_STAFF, ROLE_ADMIN}


# Security event categories
CATEGORY_AUTHENTICATION = "AUTHENTICATION"
CATEGORY_OBJECT_LEVEL = "OBJECT_LEVEL"
CATEGORY_PROPERTY_LEVEL = "PROPERTY_LEVEL"
CATEGORY_FUNCTION_LEVEL = "FUNCTION_LEVEL"
CATEGORY_RESOURCE_LIMIT = "RESOURCE_LIMIT"
CATEGORY_BUSINESS_FLOW = "BUSINESS_FLOW"
CATEGORY_UNSAFE_CONSUMPTION = "UNSAFE_CONSUMPTION"
CATEGORY_SSRF = "SSRF"
CATEGORY_MISCONFIG = "MISCONFIG"
CATEGORY_INVENTORY = "INVENTORY"


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller for one request.

    Never persisted. role always comes from the stored User, not the token.
    """
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class SecurityEventRecord:
    """Write-only audit record emitted by gates and the order lifecycle."""
    category: str
    principal_id: int | None
    target_id: int | str | None
    detail: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "principal_id": self.principal_id,
            "target_id": self.target_id,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }
