# backend/vulnyoga/__init__.py
import logging
import os

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, get_policy, POLICY_KEY, AUDIT_KEY, IDENTITY_KEY, LIFECYCLE_KEY
from .policy import from_env, policy_status


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger("vulnyoga").setLevel(level)


def _log_policy_banner(app: Flask, policy) -> None:
    app.logger.info("VulnYoga policy (safe_mode=%s)", policy.safe_mode_inverted)
    for category, mode in policy_status(policy):
        app.logger.info("  %-16s %s", category, mode)


def create_app(config_overrides=None, *, policy=None, audit_sink=None, payment_gateway=None) -> Flask:
    """
    Application factory.

    policy, audit_sink and payment_gateway default to the environment policy,
    log + database audit sinks and the random payment stub; tests inject
    their own.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.audit_service import CompositeAuditSink, DatabaseAuditSink, LoggingAuditSink
    from .services.identity_service import IdentityResolver
    from .services.order_lifecycle import OrderLifecycle
    from .services.payment_service import PaymentService, StubPaymentGateway

    # Policy is resolved once; nothing re-reads the environment afterwards
    if policy is None:
        policy = from_env(os.environ)
    if audit_sink is None:
        audit_sink = CompositeAuditSink(LoggingAuditSink(), DatabaseAuditSink())
    if payment_gateway is None:
        payment_gateway = StubPaymentGateway(
            success_rate=app.config["PAYMENT_SUCCESS_RATE"],
            latency_seconds=app.config["PAYMENT_LATENCY_SECONDS"],
        )

    payments = PaymentService(payment_gateway, timeout_seconds=app.config["PAYMENT_TIMEOUT_SECONDS"])

    app.extensions[POLICY_KEY] = policy
    app.extensions[AUDIT_KEY] = audit_sink
    app.extensions[IDENTITY_KEY] = IdentityResolver(app.config["JWT_SECRET"])
    app.extensions[LIFECYCLE_KEY] = OrderLifecycle(payments, audit_sink)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.items import items_bp
    from .routes.orders import orders_bp
    from .routes.admin import admin_bp
    from .routes.proxy import proxy_bp
    from .routes.keys import keys_bp
    from .routes.legacy import legacy_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(proxy_bp)
    app.register_blueprint(keys_bp)
    app.register_blueprint(legacy_bp)

    @app.errorhandler(404)
    def endpoint_not_found(error):
        return {"error": "Endpoint not found"}, 404

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if get_policy().misconfig_strict:
            if origin in app.config["CORS_ORIGINS"]:
                response.headers["Access-Control-Allow-Origin"] = origin
                response.headers["Vary"] = "Origin"
                response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
                response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
        elif origin:
            # Any origin is reflected, with credentials
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Role"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    _log_policy_banner(app, policy)
    return app
