from __future__ import annotations

from ..extensions import db
from steadymonitor.time_utils import to_utc_z

SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_VOIDED = "voided"


class Sale(db.Model):
    """
    Sale document produced by checkout.

    LIFECYCLE: pending -> completed | voided. Checkout writes the sale as
    completed inside the same transaction as its stock decrements, so a
    pending row never becomes visible to other requests.

    IDEMPOTENCY: idempotency_key is unique per cashier; a retried checkout with
    the same key returns this sale instead of charging twice.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("cashier_user_id", "idempotency_key", name="uq_sales_cashier_idempotency"),
        db.Index("ix_sales_department_created", "department", "created_at"),
    )

    # e.g. "SAL-20261018-9F2C41AB"
    id = db.Column(db.String(32), primary_key=True)

    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cashier_name = db.Column(db.String(128), nullable=True)

    department = db.Column(db.String(32), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLineItem",
        back_populates="sale",
        order_by="SaleLineItem.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "sale_id": self.id,
            "customer_id": self.customer_id,
            "cashier_user_id": self.cashier_user_id,
            "cashier_name": self.cashier_name,
            "department": self.department,
            "payment_method": self.payment_method,
            "total_amount": self.total_amount_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }


class SaleLineItem(db.Model):
    """
    One product line on a sale, with the price snapshotted at sale time.

    IMMUTABLE: never updated once the sale completes; reports and refunds
    read unit_price_cents from here, not from the current product price.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price_cents,
            "line_total": self.line_total_cents,
        }


class Refund(db.Model):
    """
    Refund against a completed sale.

    WHY: Money and stock go back at the ORIGINAL snapshotted price, never the
    current shelf price.
    """
    __tablename__ = "refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True))
    lines = db.relationship("RefundLine", back_populates="refund", cascade="all, delete-orphan", lazy=True)

    def to_dict(self) -> dict:
        return {
            "refund_id": self.id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "amount": self.amount_cents,
            "reason": self.reason,
            "processed_by_user_id": self.processed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class RefundLine(db.Model):
    __tablename__ = "refund_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("refunds.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    refund = db.relationship("Refund", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price_cents,
            "amount": self.amount_cents,
        }
