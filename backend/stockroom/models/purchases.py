from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


PURCHASE_STATUS_PENDING = "pending"
PURCHASE_STATUS_ORDERED = "ordered"
PURCHASE_STATUS_RECEIVED = "received"
PURCHASE_STATUS_CANCELLED = "cancelled"
PURCHASE_STATUS_PARTIAL = "partial"

PURCHASE_STATUSES = (
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_ORDERED,
    PURCHASE_STATUS_RECEIVED,
    PURCHASE_STATUS_CANCELLED,
    PURCHASE_STATUS_PARTIAL,
)

PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"


class Purchase(db.Model):
    """
    Purchase order placed with a supplier.

    Receiving credits every line into the warehouse location's inventory
    (purchase_received audit entries). The purchase itself is the document
    of record; receiving does not create stock adjustments.

    Money columns are integer cents. Header totals are derived from lines by
    purchase_service and stored for reporting.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("amount_paid_cents >= 0", name="ck_purchase_paid_non_negative"),
        db.CheckConstraint("amount_paid_cents <= grand_total_cents", name="ck_purchase_paid_le_total"),
        db.Index("ix_purchases_status_date", "status", "purchase_date"),
        db.Index("ix_purchases_supplier", "supplier_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(32), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    purchase_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime, nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PURCHASE_STATUS_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_UNPAID)
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.BigInteger, nullable=False, default=0)
    line_tax_cents = db.Column(db.BigInteger, nullable=False, default=0)
    order_tax_cents = db.Column(db.BigInteger, nullable=False, default=0)
    discount_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.BigInteger, nullable=False, default=0)
    grand_total_cents = db.Column(db.BigInteger, nullable=False, default=0)
    amount_paid_cents = db.Column(db.BigInteger, nullable=False, default=0)
    amount_due_cents = db.Column(db.BigInteger, nullable=False, default=0)

    received_date = db.Column(db.DateTime, nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Soft delete
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", lazy="joined")
    warehouse = db.relationship("Location", lazy="joined")
    lines = db.relationship(
        "PurchaseLine",
        backref="purchase",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )
    payments = db.relationship(
        "PurchasePayment",
        backref="purchase",
        lazy="selectin",
        order_by="PurchasePayment.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase {self.purchase_number} {self.status}/{self.payment_status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "supplier_id": self.supplier_id,
            "supplier": {"id": self.supplier.id, "name": self.supplier.name} if self.supplier else None,
            "warehouse_id": self.warehouse_id,
            "warehouse": self.warehouse.to_summary() if self.warehouse else None,
            "purchase_date": to_utc_z(self.purchase_date),
            "due_date": to_utc_z(self.due_date),
            "reference_number": self.reference_number,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "line_tax_cents": self.line_tax_cents,
            "order_tax_cents": self.order_tax_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "grand_total_cents": self.grand_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_due_cents": self.amount_due_cents,
            "received_date": to_utc_z(self.received_date),
            "received_by_user_id": self.received_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_purchase_line_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchase_line_cost_non_negative"),
        db.CheckConstraint("discount_cents >= 0", name="ck_purchase_line_discount_non_negative"),
        db.CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_purchase_line_tax_rate_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.BigInteger, nullable=False)
    discount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    # Derived
    tax_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    line_total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "discount_cents": self.discount_cents,
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else 0.0,
            "tax_amount_cents": self.tax_amount_cents,
            "line_total_cents": self.line_total_cents,
        }


class PurchasePayment(db.Model):
    """Append-only payment made against a purchase."""
    __tablename__ = "purchase_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_purchase_payment_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "payment_date": to_utc_z(self.payment_date),
            "notes": self.notes,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
