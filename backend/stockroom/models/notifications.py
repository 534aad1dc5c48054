from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


NOTIFICATION_LOW_STOCK = "low_stock"


class Notification(db.Model):
    """Alert surfaced to staff, currently only low-stock warnings."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_read_created", "is_read", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, default=NOTIFICATION_LOW_STOCK)
    message = db.Column(db.Text, nullable=False)

    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "inventory_id": self.inventory_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
