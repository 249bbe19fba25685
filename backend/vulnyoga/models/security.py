from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Records every weakened or bypassed control so a lab session can be
    reviewed afterwards.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_principal_category", "principal_id", "category"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # No foreign key: events outlive deleted users
    principal_id = db.Column(db.Integer, nullable=True, index=True)

    category = db.Column(db.String(32), nullable=False, index=True)
    target_id = db.Column(db.String(64), nullable=True)
    detail = db.Column(db.Text, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "principal_id": self.principal_id,
            "category": self.category,
            "target_id": self.target_id,
            "detail": self.detail,
            "occurred_at": to_utc_z(self.occurred_at),
        }
