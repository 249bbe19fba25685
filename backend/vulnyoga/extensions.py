# Overview: Flask extension instances for database and migrations, plus accessors for app-scoped singletons.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

POLICY_KEY = "vulnyoga.policy"
AUDIT_KEY = "vulnyoga.audit"
IDENTITY_KEY = "vulnyoga.identity"
LIFECYCLE_KEY = "vulnyoga.lifecycle"


def get_policy():
    """PolicyConfig resolved once in create_app()."""
    return current_app.extensions[POLICY_KEY]


def get_audit_sink():
    return current_app.extensions[AUDIT_KEY]


def get_identity_resolver():
    return current_app.extensions[IDENTITY_KEY]


def get_order_lifecycle():
    return current_app.extensions[LIFECYCLE_KEY]
