# Overview: Flask API routes for the retired v0 API; reachable only under permissive inventory policy.

"""
Legacy v0 routes (no authentication)

- GET /api/v0/users/listAll
- GET /api/v0/orders/user/<user_id>
- GET /api/v0/items/bulk?include=supplier

Under strict inventory policy every route answers 404 "Endpoint not found",
the same body as an unknown path.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import optional_auth
from ..extensions import get_audit_sink, get_policy
from ..services import legacy_service
from ..validation import NotFoundError, ValidationError
from ..errors import error_response, internal_error


legacy_bp = Blueprint("legacy", __name__, url_prefix="/api/v0")


@legacy_bp.get("/users/listAll")
@optional_auth
def list_all_users_route():
    try:
        return jsonify(legacy_service.list_all_users(g.principal, get_policy(), get_audit_sink())), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except Exception as e:
        return internal_error("Legacy list all users failed", e)


@legacy_bp.get("/orders/user/<user_id>")
@optional_auth
def user_orders_route(user_id):
    try:
        return jsonify(legacy_service.user_orders(g.principal, user_id, get_policy(), get_audit_sink())), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Legacy get user orders failed", e)


@legacy_bp.get("/items/bulk")
@optional_auth
def bulk_items_route():
    try:
        include = request.args.get("include")
        return jsonify(legacy_service.bulk_items(g.principal, include, get_policy(), get_audit_sink())), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except Exception as e:
        return internal_error("Legacy bulk items failed", e)
