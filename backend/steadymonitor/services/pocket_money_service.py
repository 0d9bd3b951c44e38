# Overview: Service-layer operations for pocket money; encapsulates business logic and database work.

"""
Learner pocket money wallets.

WHY: Boarders carry a prepaid wallet that departments can sell against.
Unlike the account balance it is money already held by the school, so it
can never be overdrawn.

RULES:
- Top-ups are admin-only
- A debit is a conditional UPDATE guarded by pocket_money_cents >= :amount
  and its row count is checked; a short wallet raises InsufficientFundsError
- Every movement writes an immutable PocketMoneyEntry with the balance it
  left behind

debit_wallet() and credit_wallet() never commit. Checkout, refunds and voids
call them inside their own write transaction.
"""

from sqlalchemy import update

from ..extensions import db
from ..models import Customer, PocketMoneyEntry
from ..models.customers import POCKET_MONEY_PURCHASE, POCKET_MONEY_TOPUP
from . import permission_service
from .concurrency import begin_write_transaction, run_with_retry
from steadymonitor.time_utils import utcnow


class PocketMoneyError(Exception):
    """Raised for pocket money operation errors."""
    kind = "InvalidRequest"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PocketMoneyCustomerNotFoundError(PocketMoneyError):
    kind = "CustomerNotFound"
    status_code = 404


class InsufficientFundsError(PocketMoneyError):
    """The wallet holds less than the amount asked for."""
    kind = "InsufficientFunds"
    status_code = 409


def _wallet_balance(customer_id: str) -> int:
    # Column query, so the value comes from the database and not the identity map
    return db.session.query(Customer.pocket_money_cents).filter(Customer.id == customer_id).scalar()


def _record_entry(customer_id, amount_cents, kind, user_id, sale_id=None, notes=None) -> PocketMoneyEntry:
    entry = PocketMoneyEntry(
        customer_id=customer_id,
        sale_id=sale_id,
        kind=kind,
        amount_cents=amount_cents,
        balance_after_cents=_wallet_balance(customer_id),
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def debit_wallet(customer_id: str, amount_cents: int, *, user_id: int, sale_id: str | None = None,
                 notes: str | None = None) -> PocketMoneyEntry:
    """
    Take amount_cents out of a learner's wallet.

    Raises InsufficientFundsError when the wallet cannot cover it. The
    caller owns the transaction and rolls it back on any error.
    """
    result = db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id, Customer.pocket_money_cents >= amount_cents)
        .values(pocket_money_cents=Customer.pocket_money_cents - amount_cents)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = _wallet_balance(customer_id)
        raise InsufficientFundsError(
            f"Insufficient pocket money: required {amount_cents}, available {available or 0}",
            details={
                "customer_id": customer_id,
                "required_amount": amount_cents,
                "available_amount": available or 0,
            },
        )

    return _record_entry(customer_id, -amount_cents, POCKET_MONEY_PURCHASE, user_id, sale_id=sale_id, notes=notes)


def credit_wallet(customer_id: str, amount_cents: int, *, kind: str, user_id: int,
                  sale_id: str | None = None, notes: str | None = None) -> PocketMoneyEntry:
    """Put amount_cents back into (or onto) a learner's wallet. Does not commit."""
    db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(pocket_money_cents=Customer.pocket_money_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    return _record_entry(customer_id, amount_cents, kind, user_id, sale_id=sale_id, notes=notes)


def top_up(identity, *, customer_id: str, amount_cents: int, notes: str | None = None) -> PocketMoneyEntry:
    """Credit a learner's wallet. Admin only."""
    permission_service.authorize(identity, "admin")

    if not customer_id:
        raise PocketMoneyError("learnerId is required")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise PocketMoneyError("amount must be a positive integer (cents)", details={"amount": amount_cents})
    if notes is not None and not isinstance(notes, str):
        raise PocketMoneyError("notes must be a string")

    def _op():
        begin_write_transaction()

        if not db.session.get(Customer, customer_id):
            raise PocketMoneyCustomerNotFoundError(
                f"Learner {customer_id} not found",
                details={"customer_id": customer_id},
            )

        entry = credit_wallet(
            customer_id,
            amount_cents,
            kind=POCKET_MONEY_TOPUP,
            user_id=identity.user_id,
            notes=notes,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def get_wallet(customer_id: str) -> tuple[Customer, list[PocketMoneyEntry]]:
    """Learner and their wallet entries, newest first."""
    customer = db.session.get(Customer, customer_id, populate_existing=True)
    if not customer:
        raise PocketMoneyCustomerNotFoundError(
            f"Learner {customer_id} not found",
            details={"customer_id": customer_id},
        )

    entries = (
        db.session.query(PocketMoneyEntry)
        .filter(PocketMoneyEntry.customer_id == customer_id)
        .order_by(PocketMoneyEntry.created_at.desc(), PocketMoneyEntry.id.desc())
        .all()
    )
    return customer, entries
