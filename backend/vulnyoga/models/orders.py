from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Lifecycle states, in order
STATUS_CART = "CART"
STATUS_PLACED = "PLACED"
STATUS_PAID = "PAID"
STATUS_SHIPPED = "SHIPPED"

ORDER_STATUSES = (STATUS_CART, STATUS_PLACED, STATUS_PAID, STATUS_SHIPPED)


class Order(db.Model):
    """
    Order document moving CART -> PLACED -> PAID -> SHIPPED.

    items is an ordered list of {"item_id": int, "qty": int}; reassign the
    list rather than mutating it in place so the change is flushed.
    version_id gives optimistic locking across processes.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_owner_status", "owner_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_CART, index=True)
    items = db.Column(db.JSON, nullable=False, default=list)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_code = db.Column(db.String(32), nullable=True)
    shipping_address = db.Column(db.String(255), nullable=False, default="")
    paid = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    owner = db.relationship("User", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "status": self.status,
            "items": list(self.items or []),
            "total_cents": self.total_cents,
            "discount_code": self.discount_code,
            "shipping_address": self.shipping_address,
            "paid": self.paid,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
            "version_id": self.version_id,
        }
