# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import get_audit_sink, get_identity_resolver, get_policy
from .security import Principal
from .services.authorization import function_level
from .services.identity_service import TokenSources


CLIENT_ROLE_HEADER = "X-Role"


def _is_authenticated() -> bool:
    return isinstance(getattr(g, "principal", None), Principal)


def resolve_principal():
    """
    Run the IdentityResolver for the current request.

    Returns the AuthResult; audit events are emitted here.
    """
    sources = TokenSources.from_request(request.headers, request.args)
    result = get_identity_resolver().authenticate(sources, get_policy())
    get_audit_sink().emit_all(result.events)
    return result


def require_auth(f):
    """
    Require authentication.

    Sets g.principal (Principal) for the route. Returns 401 on a missing,
    invalid or expired token, or when the token subject no longer exists.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        result = resolve_principal()
        if not result.ok:
            return jsonify({"error": result.failure.message}), 401

        g.principal = result.principal
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Like require_auth, but anonymous callers pass with g.principal = None."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.principal = None
        sources = TokenSources.from_request(request.headers, request.args)
        if sources.header_bearer or sources.query_param:
            result = resolve_principal()
            if result.ok:
                g.principal = result.principal
        return f(*args, **kwargs)

    return decorated_function


def require_role(required_role: str):
    """
    Function-level gate for a route.

    The X-Role header is passed as the client-asserted role; only the
    permissive policy honours it.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            decision = function_level(
                g.principal,
                required_role,
                get_policy(),
                client_asserted_role=request.headers.get(CLIENT_ROLE_HEADER),
                operation=request.endpoint or request.path,
            )
            get_audit_sink().emit_all(decision.events)

            if not decision.allowed:
                return jsonify({
                    "error": "Insufficient permissions",
                    "required_role": required_role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
