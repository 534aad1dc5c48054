from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


# Adjustment types
ADJ_ADDITION = "Addition"
ADJ_SUBTRACTION = "Subtraction"
ADJ_DAMAGE = "Damage"
ADJ_THEFT = "Theft"
ADJ_CORRECTION = "Correction"
ADJ_CORRECTION_DOWN = "Correction Down"
ADJ_INITIAL_STOCK = "Initial Stock"
ADJ_RETURN = "Return"
ADJ_TRANSFER_OUT = "Transfer Out"
ADJ_TRANSFER_IN = "Transfer In"
ADJ_CYCLE_COUNT = "Cycle Count Adj"
ADJ_OBSOLETE = "Obsolete"
ADJ_OTHER = "Other"

ADDITIVE_TYPES = frozenset({
    ADJ_ADDITION,
    ADJ_CORRECTION,
    ADJ_INITIAL_STOCK,
    ADJ_TRANSFER_IN,
    ADJ_RETURN,
})
SUBTRACTIVE_TYPES = frozenset({
    ADJ_SUBTRACTION,
    ADJ_CORRECTION_DOWN,
    ADJ_DAMAGE,
    ADJ_THEFT,
    ADJ_TRANSFER_OUT,
    ADJ_OBSOLETE,
})
# The caller supplies the sign for these
CALLER_SIGNED_TYPES = frozenset({ADJ_OTHER, ADJ_CYCLE_COUNT})

ADJUSTMENT_TYPES = ADDITIVE_TYPES | SUBTRACTIVE_TYPES | CALLER_SIGNED_TYPES


class StockAdjustment(db.Model):
    """
    Immutable record of one typed quantity change against an InventoryRecord.

    APPEND-ONLY: only reason and reference_number may be edited after
    creation. Rows are never deleted; a mistake is corrected with a new
    reversing adjustment.

    quantity_adjusted is always positive. quantity_delta carries the sign
    that was actually applied, so new_quantity - previous_quantity ==
    quantity_delta holds for every row.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity_adjusted > 0", name="ck_adjustment_quantity_positive"),
        db.CheckConstraint(
            "new_quantity - previous_quantity = quantity_delta",
            name="ck_adjustment_delta_consistent",
        ),
        db.CheckConstraint("new_quantity >= 0", name="ck_adjustment_new_quantity_non_negative"),
        db.Index("ix_adjustments_location_date", "location_id", "adjustment_date"),
        db.Index("ix_adjustments_product_date", "product_id", "adjustment_date"),
        db.Index("ix_adjustments_user", "adjusted_by_user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    adjustment_number = db.Column(db.String(32), nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(32), nullable=False)
    quantity_adjusted = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(128), nullable=True, index=True)
    batch_note = db.Column(db.Text, nullable=True)

    adjusted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    adjustment_date = db.Column(db.DateTime, nullable=False, default=utcnow)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", lazy="joined")
    location = db.relationship("Location", lazy="joined")
    adjusted_by = db.relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<StockAdjustment {self.adjustment_number} {self.adjustment_type} "
            f"{self.quantity_delta:+d}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_number": self.adjustment_number,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "location_id": self.location_id,
            "location": self.location.to_summary() if self.location else None,
            "inventory_id": self.inventory_id,
            "adjustment_type": self.adjustment_type,
            "quantity_adjusted": self.quantity_adjusted,
            "quantity_delta": self.quantity_delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "reference_number": self.reference_number,
            "batch_note": self.batch_note,
            "adjusted_by_user_id": self.adjusted_by_user_id,
            "adjusted_by": self.adjusted_by.username if self.adjusted_by else None,
            "adjustment_date": to_utc_z(self.adjustment_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
