# Overview: JSON error responses shared by the API routes; detail echoing follows the misconfig policy.

"""
Error Responses

STRICT (misconfig_strict): the body carries a short "error" message only.
PERMISSIVE: the body also echoes the exception type, message and traceback,
as a misconfigured production server would.
"""

import traceback

from flask import current_app, jsonify

from .extensions import get_policy


def _verbose() -> bool:
    return not get_policy().misconfig_strict


def error_response(message: str, status: int, exc: Exception | None = None, **extra):
    body = {"error": message}
    body.update(extra)
    if exc is not None and _verbose():
        body["exception"] = exc.__class__.__name__
        body["detail"] = str(exc)
        body["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return jsonify(body), status


def internal_error(log_message: str, exc: Exception):
    """Log with traceback and return 500."""
    current_app.logger.exception(log_message)
    return error_response("Internal server error", 500, exc)
