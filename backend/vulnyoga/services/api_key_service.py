# Overview: Service-layer operations for user API keys; listing, issuing and revoking under the inventory policy.

"""
API Key Service

WHY: API keys are a second credential surface that grew next to the token
login and was never brought under the object-level gate. Whether a caller
may reach another user's keys is decided by the inventory policy alone.

- strict:     every operation is confined to the caller's own keys; foreign
              keys look missing
- permissive: user_id / key id are taken from the request as-is and every
              cross-user access is audited
"""

from __future__ import annotations

import logging
import secrets

from ..models import ApiKey, User
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import CATEGORY_INVENTORY, Principal, SecurityEventRecord
from ..validation import NotFoundError, ValidationError, parse_id
from .audit_service import AuditSink


logger = logging.getLogger(__name__)


KEY_PREFIX = "vulnyoga_"
MAX_LABEL_LENGTH = 128


def keys() -> Repository:
    return Repository(ApiKey)


def generate_api_key() -> str:
    return KEY_PREFIX + secrets.token_hex(32)


def _foreign_access(principal: Principal, target_id, detail: str) -> SecurityEventRecord:
    return SecurityEventRecord(
        category=CATEGORY_INVENTORY,
        principal_id=principal.id,
        target_id=target_id,
        detail=detail,
    )


def _target_user(principal: Principal, user_id, policy: PolicyConfig) -> int:
    """Whose keys the request addresses; strict always answers the caller."""
    if user_id is None or user_id == "" or policy.inventory_strict:
        return principal.id
    return parse_id(user_id, "user_id")


def list_keys(principal: Principal, user_id, policy: PolicyConfig, audit: AuditSink) -> list[ApiKey]:
    target = _target_user(principal, user_id, policy)
    if target != principal.id:
        audit.emit(_foreign_access(principal, target, f"Listed API keys of user {target}"))
    return keys().find_all(user_id=target, order_by=[ApiKey.id.asc()])


def create_key(principal: Principal, payload: dict, policy: PolicyConfig, audit: AuditSink) -> ApiKey:
    """
    Issue a key labelled payload["label"].

    Permissive policy honours payload["user_id"] and issues the key to
    that user.
    """
    payload = payload or {}
    label = payload.get("label")
    if not isinstance(label, str) or not label.strip():
        raise ValidationError("label is required")
    label = label.strip()
    if len(label) > MAX_LABEL_LENGTH:
        raise ValidationError(f"label must be at most {MAX_LABEL_LENGTH} characters")

    target = _target_user(principal, payload.get("user_id"), policy)
    if target != principal.id and Repository(User).get(target) is None:
        raise NotFoundError("User not found")

    repo = keys()
    key = repo.add(ApiKey(user_id=target, key=generate_api_key(), label=label))
    repo.commit()

    logger.info("API key %s issued to user %s", key.id, target)
    if target != principal.id:
        audit.emit(_foreign_access(principal, target, f"Issued API key {key.id} to user {target}"))
    return key


def revoke_key(principal: Principal, key_id, policy: PolicyConfig, audit: AuditSink) -> ApiKey:
    key_id = parse_id(key_id, "key_id")
    repo = keys()
    if policy.inventory_strict:
        key = repo.find_one(id=key_id, user_id=principal.id)
    else:
        key = repo.get(key_id)
    if key is None:
        raise NotFoundError("Key not found")

    key.revoked = True
    repo.commit()

    logger.info("API key %s revoked", key.id)
    if key.user_id != principal.id:
        audit.emit(_foreign_access(principal, key.id, f"Revoked API key of user {key.user_id}"))
    return key
