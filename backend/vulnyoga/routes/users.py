# Overview: Flask API routes for user profiles; object- and property-level gated reads and patches.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..extensions import get_audit_sink, get_policy
from ..services import account_service
from ..services.authorization import AccessDeniedError
from ..validation import NotFoundError, ValidationError
from ..errors import error_response, internal_error


users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.get("/<user_id>")
@require_auth
def get_user_route(user_id):
    """
    Read a user profile.

    Strict object-level policy: only the user themself or an ADMIN.
    """
    try:
        user = account_service.get_user(g.principal, user_id, get_policy(), get_audit_sink())
        return jsonify({"user": user.to_dict()}), 200

    except AccessDeniedError as e:
        return error_response(e.reason or "Access denied", 403)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to get user", e)


@users_bp.patch("/<user_id>")
@require_auth
def update_user_route(user_id):
    """
    Patch name / address / phone.

    role (ADMIN only) and reset_token (nobody) are restricted properties:
    dropped under strict policy, written and audited under permissive.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = account_service.update_user(g.principal, user_id, data, get_policy(), get_audit_sink())
        return jsonify({"user": user.to_dict()}), 200

    except AccessDeniedError as e:
        return error_response(e.reason or "Access denied", 403)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to update user", e)
