from __future__ import annotations

from ..extensions import db
from steadymonitor.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data with on-hand stock.

    DEPARTMENT: every product belongs to exactly one department (Uniform,
    Stationery). Department users sell only their own department's products.

    STOCK: stock_quantity is decremented by checkout with a conditional
    UPDATE (see checkout_service) and can never go negative; the CHECK
    constraint backs that up at the database level.

    PRICING: unit_price_cents is the current shelf price. Sales snapshot it
    into their line items, so changing it never rewrites history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_department_active", "department", "is_active"),
        db.Index("ix_products_department_name", "department", "name"),
    )

    # Business identifier (e.g. "P1", "UNI-SHIRT-32")
    id = db.Column(db.String(64), primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    department = db.Column(db.String(32), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} sku={self.sku!r} department={self.department!r}>"

    @property
    def needs_reorder(self) -> bool:
        return self.stock_quantity <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "product_id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "department": self.department,
            "category": self.category,
            "unit_price_cents": self.unit_price_cents,
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "needs_reorder": self.needs_reorder,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
