# Overview: Flask API routes for admin operations; user listing, system stats and user deletion.

"""
Admin API routes

All routes require ADMIN through the function-level gate. Under permissive
function-level policy an "X-Role: ADMIN" header is enough.
"""

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_role
from ..security import ROLE_ADMIN
from ..services import account_service
from ..validation import ConflictError, NotFoundError, ValidationError
from ..errors import error_response, internal_error


admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    try:
        users = account_service.list_users()
        return jsonify({"users": [u.to_dict() for u in users]}), 200
    except Exception as e:
        return internal_error("Failed to list users", e)


@admin_bp.get("/stats")
@require_auth
@require_role(ROLE_ADMIN)
def system_stats_route():
    try:
        return jsonify({"stats": account_service.system_stats()}), 200
    except Exception as e:
        return internal_error("Failed to compute system stats", e)


@admin_bp.delete("/users/<user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id):
    """
    Error responses:
        404: User not found
        409: Deleting yourself, or a user who still owns orders
    """
    try:
        account_service.delete_user(g.principal, user_id)
        return jsonify({"message": "User deleted"}), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ConflictError as e:
        return error_response(str(e), 409)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to delete user", e)
