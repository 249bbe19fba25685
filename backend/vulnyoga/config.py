# backend/vulnyoga/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Token signing secret; intentionally weak default for the lab
    JWT_SECRET = os.environ.get("JWT_SECRET", "dev-weak-secret-change-in-production")
    JWT_EXPIRES_IN_SECONDS = int(os.environ.get("JWT_EXPIRES_IN_SECONDS", str(24 * 3600)))

    # Lifetime of a password reset token under strict authn policy
    RESET_TOKEN_TTL_SECONDS = int(os.environ.get("RESET_TOKEN_TTL_SECONDS", "3600"))

    # SQLite DB stored in backend/instance/vulnyoga.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///vulnyoga.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment stub
    PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "2.0"))
    PAYMENT_SUCCESS_RATE = float(os.environ.get("PAYMENT_SUCCESS_RATE", "0.9"))
    PAYMENT_LATENCY_SECONDS = float(os.environ.get("PAYMENT_LATENCY_SECONDS", "0.1"))

    # Outbound image proxy
    OUTBOUND_TIMEOUT_SECONDS = float(os.environ.get("OUTBOUND_TIMEOUT_SECONDS", "5.0"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Allowed browser origins under strict misconfig policy
    CORS_ORIGINS = {
        o.strip() for o in os.environ.get(
            "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",") if o.strip()
    }
