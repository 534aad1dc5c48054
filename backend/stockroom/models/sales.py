from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUSES = (SALE_STATUS_PENDING, SALE_STATUS_COMPLETED, SALE_STATUS_CANCELLED)

PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "mobile_payment")

INCOME_SOURCE_POS = "POS Sale"


def _pct(value) -> float:
    return float(value) if value is not None else 0.0


class Sale(db.Model):
    """
    Point-of-sale transaction at one location.

    Prices are captured on the lines at sale time; later product price
    changes never touch posted sales or their Income rows.

    When status becomes completed, every line decrements stock at the sale's
    location (sale audit entries) and one Income row is written, all in the
    same transaction as the status change.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("total_cents >= 0", name="ck_sale_total_non_negative"),
        db.Index("ix_sales_location_status", "location_id", "status"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    customer_name = db.Column(db.String(255), nullable=True)
    customer_contact = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    subtotal_cents = db.Column(db.BigInteger, nullable=False, default=0)
    tax_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location", lazy="joined")
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} location={self.location_id} {self.status} total={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "location": self.location.to_summary() if self.location else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "customer": {
                "name": self.customer_name,
                "contact": self.customer_contact,
                "email": self.customer_email,
            },
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "tax_percent": _pct(self.tax_percent),
            "discount_percent": _pct(self.discount_percent),
            "total_cents": self.total_cents,
            "lines": [line.to_dict() for line in self.lines],
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_line_quantity_positive"),
        db.CheckConstraint("price_cents > 0", name="ck_sale_line_price_positive"),
        db.CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_sale_line_discount_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.BigInteger, nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "discount_percent": _pct(self.discount_percent),
            "line_total_cents": self.line_total_cents,
        }


class Income(db.Model):
    """
    Revenue row posted by a completed sale.

    Exactly one Income per completed sale (unique sale_id).
    """
    __tablename__ = "incomes"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_incomes_sale"),
        db.CheckConstraint("amount_cents >= 0", name="ck_income_amount_non_negative"),
        db.Index("ix_incomes_date", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(64), nullable=False, default=INCOME_SOURCE_POS)
    description = db.Column(db.Text, nullable=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=utcnow)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
            "sale_id": self.sale_id,
            "location_id": self.location_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
