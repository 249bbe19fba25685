# Overview: Service-layer operations for identity; token issuance and per-request caller resolution.

"""
Identity Resolution

WHY: Every request that reaches an authorization gate needs a Principal.
Tokens are HS256 JWTs signed with JWT_SECRET (PyJWT).

STRICT POSTURE:
- Token only from "Authorization: Bearer <token>"
- HS256 only, exp required and enforced

PERMISSIVE POSTURE (lab behaviour, kept on purpose):
- Token may also come from the ?token= query parameter
- A token that fails HS256 verification is retried as an unsigned
  ("alg": "none") token
- An expired token is logged and still accepted

In both postures the role is read from the stored User matching the token
subject; the role claim inside the token is never trusted.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Callable, Mapping

import jwt

from ..models import User
from ..policy import PolicyConfig
from ..repository import Repository
from ..security import CATEGORY_AUTHENTICATION, Principal, SecurityEventRecord


PRIMARY_ALGORITHM = "HS256"
FALLBACK_ALGORITHM = "none"
BEARER_PREFIX = "Bearer "
QUERY_PARAM = "token"


class AuthFailure(enum.Enum):
    MISSING = "missing"
    INVALID = "invalid"
    UNKNOWN_SUBJECT = "unknown_subject"

    @property
    def message(self) -> str:
        return {
            AuthFailure.MISSING: "Authentication required",
            AuthFailure.INVALID: "Invalid or expired token",
            AuthFailure.UNKNOWN_SUBJECT: "User not found",
        }[self]


@dataclass(frozen=True)
class TokenSources:
    header_bearer: str | None = None
    query_param: str | None = None

    @classmethod
    def from_request(cls, headers: Mapping[str, str], args: Mapping[str, str]) -> "TokenSources":
        bearer = None
        auth_header = headers.get("Authorization")
        if auth_header and auth_header.startswith(BEARER_PREFIX):
            bearer = auth_header[len(BEARER_PREFIX):].strip() or None
        return cls(header_bearer=bearer, query_param=args.get(QUERY_PARAM) or None)


@dataclass(frozen=True)
class AuthResult:
    principal: Principal | None = None
    failure: AuthFailure | None = None
    events: tuple[SecurityEventRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return self.principal is not None


def _event(detail: str, principal_id: int | None = None) -> SecurityEventRecord:
    return SecurityEventRecord(
        category=CATEGORY_AUTHENTICATION,
        principal_id=principal_id,
        target_id=None,
        detail=detail,
    )


class IdentityResolver:
    """
    Issues tokens and resolves callers.

    user_lookup maps a user id to the stored User (or None); it defaults to
    the User repository. clock returns epoch seconds.
    """

    def __init__(
        self,
        secret: str,
        user_lookup: Callable[[int], User | None] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.secret = secret
        self.user_lookup = user_lookup or Repository(User).get
        self.clock = clock

    def issue_token(self, user: User, expires_in: int) -> str:
        now = int(self.clock())
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "iat": now,
            "exp": now + int(expires_in),
        }
        return jwt.encode(payload, self.secret, algorithm=PRIMARY_ALGORITHM)

    def authenticate(self, sources: TokenSources, policy: PolicyConfig) -> AuthResult:
        if policy.authn_strict:
            return self._authenticate_strict(sources)
        return self._authenticate_permissive(sources)

    # ------------------------------------------------------------------

    def _authenticate_strict(self, sources: TokenSources) -> AuthResult:
        token = sources.header_bearer
        if not token:
            return AuthResult(failure=AuthFailure.MISSING)

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[PRIMARY_ALGORITHM],
                options={"require": ["exp", "sub"], "verify_exp": False},
            )
        except jwt.InvalidTokenError as exc:
            return AuthResult(
                failure=AuthFailure.INVALID,
                events=(_event(f"Invalid token rejected: {exc.__class__.__name__}"),),
            )

        # exp is checked against the resolver clock, not PyJWT's wall clock
        exp = claims["exp"]
        if not isinstance(exp, (int, float)) or exp <= self.clock():
            return AuthResult(failure=AuthFailure.INVALID, events=(_event("Expired token rejected"),))

        return self._resolve_subject(claims, ())

    def _authenticate_permissive(self, sources: TokenSources) -> AuthResult:
        events: list[SecurityEventRecord] = []

        token = sources.header_bearer
        if not token and sources.query_param:
            token = sources.query_param
            events.append(_event("Token accepted from query parameter"))
        if not token:
            return AuthResult(failure=AuthFailure.MISSING)

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[PRIMARY_ALGORITHM],
                options={"verify_exp": False},
            )
        except jwt.InvalidTokenError:
            claims = self._decode_unsigned(token)
            if claims is None:
                events.append(_event("Invalid token rejected"))
                return AuthResult(failure=AuthFailure.INVALID, events=tuple(events))
            events.append(_event(f"Token accepted with fallback algorithm '{FALLBACK_ALGORITHM}'"))

        exp = claims.get("exp")
        if isinstance(exp, (int, float)) and exp <= self.clock():
            events.append(_event(f"Expired token accepted (expired at {int(exp)})"))

        return self._resolve_subject(claims, tuple(events))

    def _decode_unsigned(self, token: str) -> dict | None:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            return None
        if str(header.get("alg", "")).lower() != FALLBACK_ALGORITHM:
            return None
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            return None

    def _resolve_subject(self, claims: dict, events: tuple) -> AuthResult:
        subject = claims.get("sub")
        try:
            user_id = int(subject)
        except (TypeError, ValueError):
            return AuthResult(failure=AuthFailure.INVALID, events=events + (_event("Token subject malformed"),))

        user = self.user_lookup(user_id)
        if user is None:
            return AuthResult(failure=AuthFailure.UNKNOWN_SUBJECT, events=events)

        principal = Principal(id=user.id, role=user.role)
        events = tuple(
            SecurityEventRecord(e.category, principal.id, e.target_id, e.detail, e.timestamp)
            for e in events
        )
        return AuthResult(principal=principal, events=events)
