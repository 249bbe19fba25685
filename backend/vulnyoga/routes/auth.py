# Overview: Flask API routes for auth operations; registration, token login and password reset.

"""
Authentication API routes

- POST /api/v1/auth/register  Create a CUSTOMER account (role field is a restricted property)
- POST /api/v1/auth/login     Exchange email + password for a signed token
- POST /api/v1/auth/reset     Request a password reset token
- GET|POST /api/v1/auth/reset/consume  Set a new password with a reset token

Tokens are HS256 JWTs issued by the IdentityResolver. Protected routes read
them from "Authorization: Bearer <token>" (and, under permissive authn
policy, from ?token=).
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import get_audit_sink, get_identity_resolver, get_policy
from ..services import account_service
from ..validation import ConflictError, ValidationError
from ..errors import error_response, internal_error


auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration.

    Request body:
        {"email": "...", "password": "...", "name": "...", "address": "...", "phone": "..."}

    Error responses:
        400: Validation failure (missing fields, weak password, unknown field)
        409: Email already registered
    """
    try:
        data = request.get_json(silent=True) or {}
        user = account_service.register(data, get_policy(), get_audit_sink())
        return jsonify({"user": user.to_dict()}), 201

    except ConflictError as e:
        return error_response(str(e), 409)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to register user", e)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and issue a token.

    Response:
        {"token": "...", "token_type": "Bearer", "expires_in": 86400, "user": {...}}
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = account_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        expires_in = current_app.config["JWT_EXPIRES_IN_SECONDS"]
        token = get_identity_resolver().issue_token(user, expires_in)

        return jsonify({
            "token": token,
            "token_type": "Bearer",
            "expires_in": expires_in,
            "user": user.to_dict(),
        }), 200

    except Exception as e:
        return internal_error("Failed to log in", e)


RESET_REQUESTED_MESSAGE = "If the email exists, a reset link has been sent"


@auth_bp.post("/reset")
def request_reset_route():
    """
    Start a password reset.

    The answer is identical whether or not the account exists. Under
    permissive authn policy the token itself is echoed as reset_token.
    """
    try:
        data = request.get_json(silent=True) or {}
        policy = get_policy()
        token = account_service.request_password_reset(
            data.get("email"), policy, get_audit_sink(),
            ttl_seconds=current_app.config["RESET_TOKEN_TTL_SECONDS"],
        )

        body = {"message": RESET_REQUESTED_MESSAGE}
        if token is not None and not policy.authn_strict:
            body["reset_token"] = token
        return jsonify(body), 200

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to request password reset", e)


@auth_bp.route("/reset/consume", methods=["GET", "POST"])
def consume_reset_route():
    """
    Finish a password reset.

    Request:
        ?token=... (or "token" in the body)
        {"new_password": "..."}  ("newPassword" is accepted too)

    Error responses:
        400: Missing, unknown or expired token; weak password
    """
    try:
        data = request.get_json(silent=True) or {}
        token = request.args.get("token") or data.get("token")
        new_password = data.get("new_password", data.get("newPassword"))

        account_service.consume_reset_token(token, new_password, get_policy(), get_audit_sink())
        return jsonify({"message": "Password updated successfully"}), 200

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to reset password", e)
