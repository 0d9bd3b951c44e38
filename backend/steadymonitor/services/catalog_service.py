# Overview: Service-layer operations for the product catalog; read paths used by the POS screens.

"""
Product catalog reads for the POS.

Stock and prices are always read from the database; nothing here is cached.
Writes to stock happen only in checkout_service and refund_service.
"""

from ..extensions import db
from ..models import Product
from ..permissions import DEPARTMENTS, ROLE_ADMIN


class CatalogError(Exception):
    """Raised for invalid catalog requests."""
    pass


DEFAULT_SEARCH_LIMIT = 50


def list_departments() -> list[dict]:
    return [
        {"id": department.lower(), "name": department, "label": f"{department} Department"}
        for department in DEPARTMENTS
    ]


def get_products_by_department(department: str, include_inactive: bool = False) -> list[Product]:
    """All products of one department, ordered by name."""
    if department not in DEPARTMENTS:
        raise CatalogError(f"Invalid department. Must be one of: {', '.join(DEPARTMENTS)}")

    query = db.session.query(Product).filter(Product.department == department)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def _visible_department(identity) -> str | None:
    """Non-admin department users only see their own department's products."""
    if identity is None or identity.role == ROLE_ADMIN:
        return None
    return identity.department


def search_products(identity, term: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[Product]:
    """
    Case-insensitive search on SKU, name and id.

    Limited to the caller's department unless the caller is admin or has no
    department.
    """
    term = (term or "").strip()
    if not term:
        raise CatalogError("Search query is required")

    pattern = f"%{term}%"
    query = db.session.query(Product).filter(
        Product.is_active.is_(True),
        db.or_(
            Product.sku.ilike(pattern),
            Product.name.ilike(pattern),
            Product.id.ilike(pattern),
        ),
    )

    department = _visible_department(identity)
    if department:
        query = query.filter(Product.department == department)

    return query.order_by(Product.name.asc()).limit(limit).all()


def lookup_product(identity, identifier: str) -> Product | None:
    """Exact lookup by SKU first, then by product id."""
    identifier = (identifier or "").strip()
    if not identifier:
        return None

    product = db.session.query(Product).filter(
        Product.sku == identifier,
        Product.is_active.is_(True),
    ).first()
    if product is None:
        product = db.session.get(Product, identifier)
        if product is not None and not product.is_active:
            product = None

    department = _visible_department(identity)
    if product is not None and department and product.department != department:
        return None
    return product


def create_product(
    *,
    product_id: str,
    sku: str,
    name: str,
    department: str,
    unit_price_cents: int,
    stock_quantity: int = 0,
    reorder_level: int = 0,
    category: str | None = None,
    description: str | None = None,
    commit: bool = True,
) -> Product:
    """Create a product (used by seeding and tests)."""
    if department not in DEPARTMENTS:
        raise CatalogError(f"Invalid department. Must be one of: {', '.join(DEPARTMENTS)}")
    if unit_price_cents < 0:
        raise CatalogError("unit_price_cents must be >= 0")
    if stock_quantity < 0:
        raise CatalogError("stock_quantity must be >= 0")

    product = Product(
        id=product_id,
        sku=sku,
        name=name,
        department=department,
        category=category,
        description=description,
        unit_price_cents=unit_price_cents,
        stock_quantity=stock_quantity,
        reorder_level=reorder_level,
    )
    db.session.add(product)
    if commit:
        db.session.commit()
    return product
