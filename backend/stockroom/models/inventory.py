from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


DEFAULT_MIN_STOCK = 5

# Audit action tags
ACTION_INITIAL_STOCK = "initial_stock"
ACTION_ADJUSTMENT = "adjustment"
ACTION_TRANSFER_OUT = "transfer_out"
ACTION_TRANSFER_IN = "transfer_in"
ACTION_TRANSFER_OUT_REVERSED = "transfer_out_reversed"
ACTION_PURCHASE_RECEIVED = "purchase_received"
ACTION_SALE = "sale"

AUDIT_ACTIONS = (
    ACTION_INITIAL_STOCK,
    ACTION_ADJUSTMENT,
    ACTION_TRANSFER_OUT,
    ACTION_TRANSFER_IN,
    ACTION_TRANSFER_OUT_REVERSED,
    ACTION_PURCHASE_RECEIVED,
    ACTION_SALE,
)


class InventoryRecord(db.Model):
    """
    Stock held for one product at one location.

    DESIGN: This is the only place a quantity lives. The quantity column is a
    cached projection of the audit log: it always equals the sum of the
    signed deltas in inventory_audit_entries for this record, and the last
    entry's new_quantity always equals it.

    Mutations go through inventory_service.apply_delta only.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_inventory_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_inventory_min_stock_non_negative"),
        db.Index("ix_inventory_location_product", "location_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    notify_at = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK)
    last_notified = db.Column(db.DateTime, nullable=True)

    # Per-record audit counter; the next entry gets last_sequence + 1
    last_sequence = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", lazy="joined")
    location = db.relationship("Location", lazy="joined")
    audit_entries = db.relationship(
        "InventoryAuditEntry",
        backref="record",
        lazy=True,
        order_by="InventoryAuditEntry.sequence",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord id={self.id} product={self.product_id} "
            f"location={self.location_id} qty={self.quantity}>"
        )

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.notify_at

    def to_dict(self, include_audit: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "location_id": self.location_id,
            "location": self.location.to_summary() if self.location else None,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "notify_at": self.notify_at,
            "last_notified": to_utc_z(self.last_notified),
            "is_low_stock": self.is_low_stock,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_audit:
            data["audit_log"] = [entry.to_dict() for entry in self.audit_entries]
        return data


class InventoryAuditEntry(db.Model):
    """
    One immutable quantity change on an InventoryRecord.

    APPEND-ONLY: rows are inserted by apply_delta and never updated or
    deleted. (inventory_id, sequence) orders the log of a single record.
    """
    __tablename__ = "inventory_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("inventory_id", "sequence", name="uq_inventory_audit_sequence"),
        db.CheckConstraint("delta <> 0", name="ck_inventory_audit_delta_nonzero"),
        db.CheckConstraint("new_quantity >= 0", name="ck_inventory_audit_new_quantity_non_negative"),
        db.Index("ix_inventory_audit_action", "action"),
        db.Index("ix_inventory_audit_sale", "sale_id"),
        db.Index("ix_inventory_audit_transfer", "transfer_id"),
        db.Index("ix_inventory_audit_purchase", "purchase_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    action = db.Column(db.String(32), nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=True)

    # Back-references to the document that caused this change
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=True, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<InventoryAuditEntry record={self.inventory_id} seq={self.sequence} "
            f"{self.action} {self.delta:+d} -> {self.new_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "sequence": self.sequence,
            "user_id": self.user_id,
            "action": self.action,
            "delta": self.delta,
            "new_quantity": self.new_quantity,
            "note": self.note,
            "sale_id": self.sale_id,
            "transfer_id": self.transfer_id,
            "adjustment_id": self.adjustment_id,
            "purchase_id": self.purchase_id,
            "created_at": to_utc_z(self.created_at),
        }
