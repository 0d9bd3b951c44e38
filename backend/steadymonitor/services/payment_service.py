# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Learner account payments.

WHY: Account sales raise a learner's balance; payments bring it back down.
Every payment is an immutable row recording the balance it left behind.

CONCURRENCY: the balance changes with a relative UPDATE inside a write
transaction, so two cashiers taking payments for the same learner cannot
lose each other's update.
"""

from sqlalchemy import update

from ..extensions import db
from ..models import Customer, Payment, Sale
from . import permission_service
from .checkout_service import IMMEDIATE_PAYMENT_METHODS
from .concurrency import begin_write_transaction, run_with_retry
from steadymonitor.time_utils import utcnow


class PaymentError(Exception):
    """Raised for payment operation errors."""
    kind = "InvalidRequest"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PaymentCustomerNotFoundError(PaymentError):
    kind = "CustomerNotFound"
    status_code = 404


def record_payment(
    identity,
    *,
    customer_id: str,
    amount_cents: int,
    method: str = "cash",
    reference: str | None = None,
    notes: str | None = None,
    sale_id: str | None = None,
) -> Payment:
    """
    Record money received from a learner and reduce their balance.

    Returns the Payment with balance_after_cents set.
    """
    permission_service.authorize(identity, "payments")

    if not customer_id:
        raise PaymentError("learnerId is required")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise PaymentError("amount must be a positive integer (cents)", details={"amount": amount_cents})
    method = (method or "cash").strip().lower()
    if method not in IMMEDIATE_PAYMENT_METHODS:
        raise PaymentError(
            f"Unsupported payment method: {method}",
            details={"payment_methods": list(IMMEDIATE_PAYMENT_METHODS)},
        )

    def _op():
        begin_write_transaction()

        customer = db.session.get(Customer, customer_id)
        if not customer:
            raise PaymentCustomerNotFoundError(
                f"Learner {customer_id} not found",
                details={"customer_id": customer_id},
            )

        if sale_id:
            sale = db.session.get(Sale, sale_id)
            if not sale or sale.customer_id != customer_id:
                raise PaymentError(
                    f"Sale {sale_id} does not belong to learner {customer_id}",
                    details={"sale_id": sale_id},
                )

        db.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(balance_cents=Customer.balance_cents - amount_cents)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(customer)

        payment = Payment(
            customer_id=customer_id,
            sale_id=sale_id or None,
            method=method,
            amount_cents=amount_cents,
            reference=reference or f"PAY-{utcnow().strftime('%Y%m%d%H%M%S')}",
            notes=notes,
            balance_after_cents=customer.balance_cents,
            received_by_user_id=identity.user_id,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    return run_with_retry(_op)


def get_customer_payments(customer_id: str) -> list[Payment]:
    """Payments for a learner, newest first."""
    if not db.session.get(Customer, customer_id):
        raise PaymentCustomerNotFoundError(
            f"Learner {customer_id} not found",
            details={"customer_id": customer_id},
        )

    return (
        db.session.query(Payment)
        .filter(Payment.customer_id == customer_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
