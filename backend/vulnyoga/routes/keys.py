# Overview: Flask API routes for user API keys; list, issue and revoke.

"""
API key routes (authenticated)

- GET    /api/v1/keys/mine     List keys (?user_id= is honoured only under permissive inventory policy)
- POST   /api/v1/keys          Issue a key {"label": "...", "user_id": ...}
- DELETE /api/v1/keys/<id>     Revoke a key
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..extensions import get_audit_sink, get_policy
from ..services import api_key_service
from ..validation import NotFoundError, ValidationError
from ..errors import error_response, internal_error


keys_bp = Blueprint("keys", __name__, url_prefix="/api/v1/keys")


@keys_bp.get("/mine")
@require_auth
def list_keys_route():
    try:
        user_id = request.args.get("user_id", request.args.get("userId"))
        records = api_key_service.list_keys(g.principal, user_id, get_policy(), get_audit_sink())
        return jsonify({"keys": [k.to_dict() for k in records]}), 200

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to list API keys", e)


@keys_bp.post("")
@require_auth
def create_key_route():
    """
    Error responses:
        400: label missing or too long
        404: target user does not exist (permissive user_id)
    """
    try:
        data = dict(request.get_json(silent=True) or {})
        if "user_id" not in data and "userId" in data:
            data["user_id"] = data["userId"]
        key = api_key_service.create_key(g.principal, data, get_policy(), get_audit_sink())
        return jsonify({"key": key.to_dict()}), 201

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to create API key", e)


@keys_bp.delete("/<key_id>")
@require_auth
def revoke_key_route(key_id):
    try:
        key = api_key_service.revoke_key(g.principal, key_id, get_policy(), get_audit_sink())
        return jsonify({"message": "API key revoked", "key": key.to_dict()}), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to revoke API key", e)
