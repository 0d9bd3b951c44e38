from __future__ import annotations

from ..extensions import db
from steadymonitor.time_utils import to_utc_z


class Customer(db.Model):
    """
    Learner (customer) master data.

    BALANCE: balance_cents is signed. Positive means the learner owes the
    school; negative is credit. Only checkout (account sales), payments,
    refunds and voids change it, always with a relative UPDATE.

    POCKET MONEY: pocket_money_cents is a prepaid wallet and can never go
    below zero. Every change is mirrored by a PocketMoneyEntry row.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("pocket_money_cents >= 0", name="ck_customers_pocket_money_non_negative"),
        db.Index("ix_customers_class_name", "class_name", "name"),
    )

    # Business identifier (admission number, e.g. "C1")
    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    class_name = db.Column(db.String(64), nullable=True)
    department = db.Column(db.String(32), nullable=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    pocket_money_cents = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    parent_name = db.Column(db.String(255), nullable=True)
    parent_phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "customer_id": self.id,
            "name": self.name,
            "class": self.class_name,
            "department": self.department,
            "balance": self.balance_cents,
            "pocket_money": self.pocket_money_cents,
            "parent_name": self.parent_name,
            "parent_phone": self.parent_phone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Payment(db.Model):
    """
    Money received against a learner's outstanding balance.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=False, index=True)

    # Optional link to the sale the payment settles
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id"), nullable=True, index=True)

    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Balance after this payment was applied
    balance_after_cents = db.Column(db.Integer, nullable=False)

    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "payment_id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount": self.amount_cents,
            "reference": self.reference,
            "notes": self.notes,
            "balance_after": self.balance_after_cents,
            "received_by_user_id": self.received_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


POCKET_MONEY_TOPUP = "topup"
POCKET_MONEY_PURCHASE = "purchase"
POCKET_MONEY_REFUND = "refund"
POCKET_MONEY_VOID = "void"


class PocketMoneyEntry(db.Model):
    """
    One movement of a learner's pocket money wallet.

    IMMUTABLE: amount_cents is signed (purchases are negative) and
    balance_after_cents is the wallet balance once the entry was applied.
    """
    __tablename__ = "pocket_money_entries"
    __table_args__ = (
        db.Index("ix_pocket_money_entries_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id"), nullable=True, index=True)

    kind = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "entry_id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "kind": self.kind,
            "amount": self.amount_cents,
            "balance_after": self.balance_after_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
