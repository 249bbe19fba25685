from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ApiKey(db.Model):
    """
    Long-lived API key issued to a user.

    Revoked keys are kept for the audit trail; revoked is one-way.
    """
    __tablename__ = "api_keys"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_api_keys_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    key = db.Column(db.String(128), nullable=False)
    label = db.Column(db.String(128), nullable=False)
    revoked = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "key": self.key,
            "label": self.label,
            "revoked": self.revoked,
            "created_at": to_utc_z(self.created_at),
        }
