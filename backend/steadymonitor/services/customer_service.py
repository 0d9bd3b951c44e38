# Overview: Service-layer operations for learners (customers).

"""
Learner lookups for the POS, plus creation for seeding.

Balances are never written here. Only checkout, payments, refunds and voids
move them.
"""

from ..extensions import db
from ..models import Customer


class CustomerError(Exception):
    """Raised for invalid learner requests."""
    pass


DEFAULT_SEARCH_LIMIT = 50


def get_customer(customer_id: str) -> Customer | None:
    if not customer_id:
        return None
    return db.session.get(Customer, customer_id)


def search_customers(term: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[Customer]:
    """Case-insensitive match on name, admission number or class."""
    term = (term or "").strip()
    if not term:
        raise CustomerError("Search query is required")

    pattern = f"%{term}%"
    return (
        db.session.query(Customer)
        .filter(db.or_(
            Customer.name.ilike(pattern),
            Customer.id.ilike(pattern),
            Customer.class_name.ilike(pattern),
        ))
        .order_by(Customer.name.asc())
        .limit(limit)
        .all()
    )


def get_customers_by_class(class_name: str) -> list[Customer]:
    return (
        db.session.query(Customer)
        .filter(Customer.class_name == class_name)
        .order_by(Customer.name.asc())
        .all()
    )


def list_classes() -> list[str]:
    rows = (
        db.session.query(Customer.class_name)
        .filter(Customer.class_name.isnot(None))
        .distinct()
        .order_by(Customer.class_name.asc())
        .all()
    )
    return [row[0] for row in rows]


def create_customer(
    *,
    customer_id: str,
    name: str,
    class_name: str | None = None,
    department: str | None = None,
    balance_cents: int = 0,
    parent_name: str | None = None,
    parent_phone: str | None = None,
    commit: bool = True,
) -> Customer:
    if not customer_id or not name:
        raise CustomerError("customer_id and name are required")
    if db.session.get(Customer, customer_id):
        raise CustomerError(f"Learner {customer_id} already exists")

    customer = Customer(
        id=customer_id,
        name=name,
        class_name=class_name,
        department=department,
        balance_cents=balance_cents,
        parent_name=parent_name,
        parent_phone=parent_phone,
    )
    db.session.add(customer)
    if commit:
        db.session.commit()
    return customer
