# backend/vulnyoga/routes/system.py
"""
System health and policy endpoints.

/healthz checks database connectivity; /api/v1/policy reports the effective
strict/permissive posture per category, the same table the startup banner
and `flask policy status` print.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db, get_policy
from ..models import Item, User
from ..policy import policy_status
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with two cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        item_count = db.session.query(Item).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "items": item_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/healthz")
def healthz():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/api/v1/policy")
def policy_route():
    policy = get_policy()
    return jsonify({
        "safe_mode": policy.safe_mode_inverted,
        "categories": {category: mode for category, mode in policy_status(policy)},
    }), 200
