from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


# Transfer status constants
TRANSFER_STATUS_PENDING = "Pending"
TRANSFER_STATUS_SHIPPED = "Shipped"
TRANSFER_STATUS_RECEIVED = "Received"
TRANSFER_STATUS_CANCELLED = "Cancelled"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_SHIPPED,
    TRANSFER_STATUS_RECEIVED,
    TRANSFER_STATUS_CANCELLED,
)


class StockTransfer(db.Model):
    """
    Directed movement of a single product between two locations.

    LIFECYCLE:
    1. Pending: requested, no stock moved
    2. Shipped: stock left the source (transfer_out entry at from_location)
    3. Received: stock arrived (transfer_in entry at to_location)
    4. Cancelled: from Pending (no effect) or from Shipped (transfer_out_reversed
       entry restores the source)

    Received and Cancelled are terminal.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_transfer_quantity_positive"),
        db.CheckConstraint("from_location_id <> to_location_id", name="ck_transfer_distinct_locations"),
        db.Index("ix_transfers_status_requested", "status", "requested_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable id, e.g. "TR-1A2B3C4D"
    transfer_id = db.Column(db.String(16), nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    # User attribution per transition
    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shipped_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Timestamps per transition
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    shipped_at = db.Column(db.DateTime, nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", lazy="joined")
    from_location = db.relationship("Location", foreign_keys=[from_location_id], lazy="joined")
    to_location = db.relationship("Location", foreign_keys=[to_location_id], lazy="joined")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockTransfer {self.transfer_id} {self.status} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "from_location_id": self.from_location_id,
            "from_location": self.from_location.to_summary() if self.from_location else None,
            "to_location_id": self.to_location_id,
            "to_location": self.to_location.to_summary() if self.to_location else None,
            "status": self.status,
            "notes": self.notes,
            "requested_by_user_id": self.requested_by_user_id,
            "shipped_by_user_id": self.shipped_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "requested_at": to_utc_z(self.requested_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }


class DocumentSequence(db.Model):
    """
    Serialised counters for human-readable document numbers.

    One row per sequence key ("ADJ" for adjustments, "PO202401" for the
    purchases of one month). next_number is advanced with an atomic UPDATE.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_key": self.sequence_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
