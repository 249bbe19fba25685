# Overview: Service-layer operations for accounts; registration, login, profiles and password reset.

"""
Account Service

WHY: Users are the subjects of every token and the owners of orders and
items. Passwords are hashed with bcrypt.

RESTRICTED PROPERTIES:
- role:        settable by ADMIN only (strict); by anyone (permissive)
- reset_token: never settable through the API (strict)

PASSWORD RESET:
- strict:     random single-use token, stored as a SHA-256 hash with an
              expiry; the requester learns nothing about the account
- permissive: the raw token is stored and handed back to whoever asked,
              and expiry is not enforced
"""

from __future__ import annotations

import hashlib
import logging
import re
import secrets
from datetime import timedelta

import bcrypt

from ..models import ApiKey, Item, Order, User
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import (
    CATEGORY_AUTHENTICATION,
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    VALID_ROLES,
    Principal,
    SecurityEventRecord,
)
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    parse_id,
    validate_payload,
)
from .audit_service import AuditSink
from .authorization import FieldRule, object_level, property_level


logger = logging.getLogger(__name__)


BCRYPT_ROUNDS = 10
RESET_TOKEN_TTL_SECONDS = 3600
MIN_PASSWORD_LENGTH = 8

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

USER_RESTRICTED_FIELDS = {
    "role": FieldRule(roles=frozenset({ROLE_ADMIN})),
    "reset_token": FieldRule(),
}

REGISTER_POLICY = ModelValidationPolicy(
    accepted_fields=frozenset({"email", "name", "address", "phone", "role"}),
    required_on_create=frozenset({"email", "name"}),
)

UPDATE_POLICY = ModelValidationPolicy(
    accepted_fields=frozenset({"name", "address", "phone", "role", "reset_token"}),
)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def users() -> Repository:
    return Repository(User)


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated before hashing."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


def _check_role(role) -> str:
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(sorted(VALID_ROLES))}")
    return role


def register(payload: dict, policy: PolicyConfig, audit: AuditSink) -> User:
    """
    Create a user from a registration payload.

    Under strict property-level policy a supplied role is dropped and the
    account is a CUSTOMER.
    """
    payload = dict(payload or {})
    password = payload.pop("password", None)
    cleaned = validate_payload(model=User, payload=payload, policy=REGISTER_POLICY, partial=False)

    email = cleaned["email"].lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("email is not a valid address")

    repo = users()
    if repo.find_one(email=email) is not None:
        raise ConflictError("User already exists")

    decision = property_level(None, cleaned, USER_RESTRICTED_FIELDS, policy, is_update=True)
    fields = decision.fields
    role = _check_role(fields.pop("role")) if fields.get("role") is not None else ROLE_CUSTOMER
    fields.pop("role", None)
    fields.pop("email", None)

    user = User(email=email, password_hash=hash_password(password), role=role, **fields)
    repo.add(user)
    repo.commit()

    audit.emit_all(decision.events)
    return user


def authenticate(email: str, password: str) -> User | None:
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    user = users().find_one(email=email.strip().lower())
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def get_user(principal: Principal, user_id, policy: PolicyConfig, audit: AuditSink) -> User:
    user_id = parse_id(user_id, "user_id")
    decision = object_level(principal, user_id, policy, target_id=user_id, resource="user")
    audit.emit_all(decision.events)
    decision.raise_if_denied()

    user = users().get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(principal: Principal, user_id, payload: dict, policy: PolicyConfig, audit: AuditSink) -> User:
    """
    Patch a user profile.

    Object-level gate first (owner or ADMIN), then the property-level gate
    over role / reset_token.
    """
    user_id = parse_id(user_id, "user_id")
    gate = object_level(principal, user_id, policy, target_id=user_id, resource="user")
    audit.emit_all(gate.events)
    gate.raise_if_denied()

    cleaned = validate_payload(model=User, payload=payload, policy=UPDATE_POLICY, partial=True)

    repo = users()
    user = repo.get(user_id)
    if user is None:
        raise NotFoundError("User not found")

    decision = property_level(
        principal, cleaned, USER_RESTRICTED_FIELDS, policy,
        owner_id=user.id, is_update=True, target_id=user.id,
    )
    if "role" in decision.fields:
        _check_role(decision.fields["role"])

    for key, value in decision.fields.items():
        setattr(user, key, value)
    repo.commit()

    audit.emit_all(decision.events)
    return user


# =============================================================================
# PASSWORD RESET (authn policy)
# =============================================================================

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def request_password_reset(
    email,
    policy: PolicyConfig,
    audit: AuditSink,
    *,
    ttl_seconds: int = RESET_TOKEN_TTL_SECONDS,
) -> str | None:
    """
    Issue a reset token for the account behind email.

    Returns the raw token (None when no such account exists); delivering it
    is the caller's concern. Strict keeps only its hash and an expiry;
    permissive stores it as-is with no expiry and records the disclosure.
    """
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("email required")

    repo = users()
    user = repo.find_one(email=email.strip().lower())
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = secrets.token_hex(32)
    if policy.authn_strict:
        user.reset_token = hash_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(seconds=ttl_seconds)
    else:
        user.reset_token = token
        user.reset_token_expires_at = None
    repo.commit()

    logger.info("Password reset token issued for user %s", user.id)
    if not policy.authn_strict:
        audit.emit(SecurityEventRecord(
            category=CATEGORY_AUTHENTICATION,
            principal_id=None,
            target_id=user.id,
            detail="Reset token disclosed to the requester without proof of mailbox ownership",
        ))
    return token


def consume_reset_token(token, new_password, policy: PolicyConfig, audit: AuditSink) -> User:
    """
    Set a new password using a reset token; tokens are single use.

    Strict: hashed lookup, expired tokens are rejected.
    Permissive: raw lookup, expiry ignored (and audited when it was past).
    """
    if not isinstance(token, str) or not token:
        raise ValidationError("token required")
    password_hash = hash_password(new_password)

    repo = users()
    if policy.authn_strict:
        user = repo.find_one(reset_token=hash_token(token))
        expires_at = user.reset_token_expires_at if user is not None else None
        if user is None or expires_at is None or expires_at <= utcnow():
            raise ValidationError("Invalid or expired token")
    else:
        user = repo.find_one(reset_token=token)
        if user is None:
            raise ValidationError("Invalid or expired token")
        expires_at = user.reset_token_expires_at
        if expires_at is not None and expires_at <= utcnow():
            audit.emit(SecurityEventRecord(
                category=CATEGORY_AUTHENTICATION,
                principal_id=None,
                target_id=user.id,
                detail="Expired reset token accepted",
            ))

    user.password_hash = password_hash
    user.reset_token = None
    user.reset_token_expires_at = None
    repo.commit()

    logger.info("Password reset completed for user %s", user.id)
    return user


# =============================================================================
# ADMIN OPERATIONS (function-level gate applied by the caller)
# =============================================================================

def list_users() -> list[User]:
    return users().find_all(order_by=[User.id.asc()])


def system_stats() -> dict:
    orders = Repository(Order)
    paid_orders = orders.find_all(paid=True)
    return {
        "users": users().count(),
        "items": Repository(Item).count(),
        "orders": orders.count(),
        "total_revenue_cents": sum(o.total_cents for o in paid_orders),
    }


def delete_user(principal: Principal, user_id) -> None:
    user_id = parse_id(user_id, "user_id")
    repo = users()
    user = repo.get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.id == principal.id:
        raise ConflictError("Cannot delete your own account")
    if Repository(Order).count(owner_id=user.id):
        raise ConflictError("User has orders and cannot be deleted")
    keys = Repository(ApiKey)
    for key in keys.find_all(user_id=user.id):
        keys.delete(key)
    repo.delete(user)
    repo.commit()

