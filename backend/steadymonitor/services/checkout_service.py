# Overview: Service-layer operations for checkout; encapsulates business logic and database work.

"""
Checkout Transaction Handler

WHY: A checkout is the one business operation that must change several
tables together: stock goes down, a sale with its line items is written, and
for account sales the learner's balance goes up. Either all of it happens or
none of it does.

CONCURRENCY:
- The whole unit of work runs in one transaction (BEGIN IMMEDIATE on SQLite,
  SELECT ... FOR UPDATE on product rows elsewhere, taken in id order)
- Each decrement is a conditional UPDATE guarded by stock_quantity >= :q and
  its affected row count is checked, so two checkouts can never both take
  the last units
- Any failure rolls the whole transaction back

PRICING: line totals use the product's current unit price, snapshotted into
sale_items. Later price changes never touch completed sales.

PAYMENT: account sales raise the learner balance; pocket money sales take
the total out of the learner wallet with the same guarded UPDATE pattern
as stock, so a short wallet fails the whole checkout.

IDEMPOTENCY: a client-supplied idempotency key is unique per cashier. A
repeated request with the same key returns the original sale unchanged, as
long as that sale is still completed.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Customer, Sale, SaleLineItem, RefundLine, Refund
from ..models.customers import POCKET_MONEY_VOID
from ..models.sales import SALE_STATUS_PENDING, SALE_STATUS_COMPLETED, SALE_STATUS_VOIDED
from ..permissions import DEPARTMENTS, ROLE_ADMIN
from . import permission_service, pocket_money_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from steadymonitor.time_utils import utcnow, to_utc_z, sale_date_stamp


PAYMENT_METHOD_ACCOUNT = "account"
PAYMENT_METHOD_POCKET_MONEY = "pocket_money"
IMMEDIATE_PAYMENT_METHODS = ("cash", "card", "mpesa", "bank")
PAYMENT_METHODS = IMMEDIATE_PAYMENT_METHODS + (PAYMENT_METHOD_ACCOUNT, PAYMENT_METHOD_POCKET_MONEY)

MAX_REASON_LENGTH = 255

MAX_IDEMPOTENCY_KEY_LENGTH = 128


# =============================================================================
# ERRORS
# =============================================================================

class CheckoutError(Exception):
    """
    Base class for checkout failures.

    `kind` is the stable error name returned to clients; `status_code` is the
    HTTP status the routes map it to.
    """
    kind = "CheckoutError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CheckoutValidationError(CheckoutError):
    """Malformed request (missing department, unknown payment method, no lines)."""
    kind = "InvalidRequest"
    status_code = 400


class InvalidLineItemError(CheckoutError):
    """Unknown/inactive product, wrong department or non-positive quantity."""
    kind = "InvalidLineItem"
    status_code = 400


class OutOfStockError(CheckoutError):
    """A line asks for more than is on hand. Names the product."""
    kind = "OutOfStock"
    status_code = 409


class CustomerNotFoundError(CheckoutError):
    kind = "CustomerNotFound"
    status_code = 404


class SaleNotFoundError(CheckoutError):
    kind = "SaleNotFound"
    status_code = 404


class SaleStateError(CheckoutError):
    """Operation not allowed for the sale's current status."""
    kind = "InvalidSaleState"
    status_code = 409


# =============================================================================
# REQUEST / RESULT
# =============================================================================

@dataclass(frozen=True)
class CheckoutLine:
    product_id: str
    quantity: int


@dataclass
class CheckoutRequest:
    department: str
    payment_method: str
    lines: list[CheckoutLine]
    customer_id: str | None = None
    idempotency_key: str | None = None
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload, idempotency_key: str | None = None) -> "CheckoutRequest":
        """
        Build a request from the JSON body.

        Accepts `lines` (or `items`) as [{productId, quantity}]. The body's
        idempotencyKey wins over the header value passed in.

        Raises CheckoutValidationError or InvalidLineItemError.
        """
        if not isinstance(payload, dict):
            raise CheckoutValidationError("Request body must be a JSON object")

        department = payload.get("department")
        if not isinstance(department, str) or not department.strip():
            raise CheckoutValidationError("department is required")

        payment_method = payload.get("paymentMethod") or payload.get("payment_method")
        if not isinstance(payment_method, str) or not payment_method.strip():
            raise CheckoutValidationError("paymentMethod is required")

        raw_lines = payload.get("lines")
        if raw_lines is None:
            raw_lines = payload.get("items")
        if not isinstance(raw_lines, list) or not raw_lines:
            raise CheckoutValidationError("At least one line item is required")

        lines = [_parse_line(raw, index) for index, raw in enumerate(raw_lines)]

        customer_id = payload.get("customerId") or payload.get("customer_id")
        if customer_id is not None and not isinstance(customer_id, (str, int)):
            raise CheckoutValidationError("customerId must be a string")

        key = payload.get("idempotencyKey") or idempotency_key
        if key is not None:
            if not isinstance(key, str) or not key.strip():
                raise CheckoutValidationError("idempotencyKey must be a non-empty string")
            if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
                raise CheckoutValidationError("idempotencyKey is too long")
            key = key.strip()

        notes = payload.get("notes")

        return cls(
            department=department.strip(),
            payment_method=payment_method.strip().lower(),
            lines=lines,
            customer_id=str(customer_id) if customer_id is not None else None,
            idempotency_key=key,
            notes=notes if isinstance(notes, str) else None,
        )


def _parse_line(raw, index: int) -> CheckoutLine:
    if not isinstance(raw, dict):
        raise InvalidLineItemError(
            f"Line {index + 1} must be an object",
            details={"line": index + 1},
        )

    product_id = raw.get("productId", raw.get("product_id"))
    if isinstance(product_id, int) and not isinstance(product_id, bool):
        product_id = str(product_id)
    if not isinstance(product_id, str) or not product_id.strip():
        raise InvalidLineItemError(
            f"Line {index + 1} is missing productId",
            details={"line": index + 1},
        )

    quantity = raw.get("quantity")
    # bool is an int subclass; reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidLineItemError(
            f"Quantity for product {product_id} must be a positive integer",
            details={"line": index + 1, "product_id": product_id, "quantity": quantity},
        )

    return CheckoutLine(product_id=product_id.strip(), quantity=quantity)


@dataclass
class CheckoutResult:
    sale_id: str
    total_amount: int
    receipt: dict
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "saleId": self.sale_id,
            "totalAmount": self.total_amount,
            "receipt": self.receipt,
        }


# =============================================================================
# HELPERS
# =============================================================================

def generate_sale_id(now=None) -> str:
    """Sale ids look like SAL-20261018-9F2C41AB."""
    return f"SAL-{sale_date_stamp(now)}-{secrets.token_hex(4).upper()}"


def _merge_lines(lines: list[CheckoutLine]) -> dict[str, int]:
    """Total requested quantity per product, in first-seen order."""
    merged: dict[str, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return merged


def _validate_request(req: CheckoutRequest) -> None:
    if req.department not in DEPARTMENTS:
        raise CheckoutValidationError(
            f"Unknown department: {req.department}",
            details={"departments": list(DEPARTMENTS)},
        )

    if req.payment_method not in PAYMENT_METHODS:
        raise CheckoutValidationError(
            f"Unsupported payment method: {req.payment_method}",
            details={"payment_methods": list(PAYMENT_METHODS)},
        )

    if req.payment_method == PAYMENT_METHOD_ACCOUNT and not req.customer_id:
        raise CheckoutValidationError("Account sales require a customerId")

    if req.payment_method == PAYMENT_METHOD_POCKET_MONEY and not req.customer_id:
        raise CheckoutValidationError("Pocket money sales require a customerId")


def clean_reason(reason) -> str | None:
    """Optional free-text reason for voids and refunds, trimmed to the column size."""
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise CheckoutValidationError("reason must be a string", details={"reason": reason})
    return reason.strip()[:MAX_REASON_LENGTH] or None


def _find_by_idempotency_key(cashier_user_id: int, key: str) -> Sale | None:
    return db.session.query(Sale).filter_by(
        cashier_user_id=cashier_user_id,
        idempotency_key=key,
    ).first()


def _lock_products(product_ids) -> dict[str, Product]:
    # Fixed lock order avoids deadlocks between overlapping carts
    products = lock_for_update(
        db.session.query(Product)
        .filter(Product.id.in_(list(product_ids)))
        .order_by(Product.id)
        .populate_existing()
    ).all()
    return {product.id: product for product in products}


def _check_lines(identity, req: CheckoutRequest, products: dict[str, Product], merged: dict[str, int]) -> None:
    for product_id in merged:
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise InvalidLineItemError(
                f"Product {product_id} not found",
                details={"product_id": product_id},
            )

        if product.department != req.department and identity.role != ROLE_ADMIN:
            raise InvalidLineItemError(
                f"Product {product.name} does not belong to department {req.department}",
                details={
                    "product_id": product_id,
                    "product_department": product.department,
                    "department": req.department,
                },
            )


def _decrement_stock(products: dict[str, Product], merged: dict[str, int]) -> None:
    """
    Conditional decrement for every product.

    The row count check is what makes this safe without a prior lock: an
    UPDATE that matches no row means someone else got there first.
    """
    for product_id, quantity in merged.items():
        product = products[product_id]

        if product.stock_quantity < quantity:
            raise _out_of_stock(product, quantity, product.stock_quantity)

        result = db.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.refresh(product)
            raise _out_of_stock(product, quantity, product.stock_quantity)


def _out_of_stock(product: Product, requested: int, available: int) -> OutOfStockError:
    return OutOfStockError(
        f"Insufficient stock for {product.name}: requested {requested}, available {available}",
        details={
            "product_id": product.id,
            "product_name": product.name,
            "requested_quantity": requested,
            "available_quantity": available,
        },
    )


def build_receipt(sale: Sale, customer: Customer | None = None) -> dict:
    """Receipt-shaped summary of a stored sale (prices from the line snapshots)."""
    if customer is None and sale.customer_id:
        customer = db.session.get(Customer, sale.customer_id)

    return {
        "saleId": sale.id,
        "status": sale.status,
        "timestamp": to_utc_z(sale.completed_at or sale.created_at),
        "department": sale.department,
        "paymentMethod": sale.payment_method,
        "cashier": sale.cashier_name,
        "customerId": sale.customer_id,
        "customerName": customer.name if customer else None,
        "lines": [line.to_dict() for line in sale.lines],
        "totalAmount": sale.total_amount_cents,
    }


def _replay(sale: Sale) -> CheckoutResult:
    """Result of an earlier request with the same key; only completed sales replay."""
    if sale.status != SALE_STATUS_COMPLETED:
        raise SaleStateError(
            f"Sale {sale.id} for this idempotency key is {sale.status}",
            details={"sale_id": sale.id, "status": sale.status},
        )
    return CheckoutResult(
        sale_id=sale.id,
        total_amount=sale.total_amount_cents,
        receipt=build_receipt(sale),
        replayed=True,
    )


# =============================================================================
# CHECKOUT
# =============================================================================

def checkout(identity, req: CheckoutRequest) -> CheckoutResult:
    """
    Turn a cart into a completed sale in one atomic unit of work.

    Raises PermissionDeniedError, CheckoutValidationError,
    InvalidLineItemError, CustomerNotFoundError, OutOfStockError,
    InsufficientFundsError (pocket money) or SaleStateError (replay of a
    voided sale). Nothing is persisted when any of them is raised.
    """
    # Routes authorize before calling; re-check for other callers (CLI, tests)
    permission_service.authorize(identity, "pos", scope_department=req.department)
    _validate_request(req)
    if req.payment_method == PAYMENT_METHOD_POCKET_MONEY:
        permission_service.authorize(identity, "pocket_money")

    if req.idempotency_key:
        existing = _find_by_idempotency_key(identity.user_id, req.idempotency_key)
        if existing:
            return _replay(existing)

    merged = _merge_lines(req.lines)

    def _op():
        begin_write_transaction()

        products = _lock_products(merged.keys())
        _check_lines(identity, req, products, merged)

        customer = None
        if req.customer_id:
            customer = db.session.get(Customer, req.customer_id)
            if not customer:
                raise CustomerNotFoundError(
                    f"Customer {req.customer_id} not found",
                    details={"customer_id": req.customer_id},
                )

        _decrement_stock(products, merged)

        now = utcnow()
        sale = Sale(
            id=generate_sale_id(now),
            customer_id=req.customer_id,
            cashier_user_id=identity.user_id,
            cashier_name=identity.display_name,
            department=req.department,
            payment_method=req.payment_method,
            status=SALE_STATUS_PENDING,
            idempotency_key=req.idempotency_key,
            notes=req.notes,
            created_at=now,
        )

        total = 0
        for line_number, line in enumerate(req.lines, start=1):
            product = products[line.product_id]
            # Price snapshot
            line_total = product.unit_price_cents * line.quantity
            total += line_total
            sale.lines.append(SaleLineItem(
                line_number=line_number,
                product_id=product.id,
                sku=product.sku,
                product_name=product.name,
                quantity=line.quantity,
                unit_price_cents=product.unit_price_cents,
                line_total_cents=line_total,
            ))

        sale.total_amount_cents = total
        sale.status = SALE_STATUS_COMPLETED
        sale.completed_at = now
        db.session.add(sale)

        if req.payment_method == PAYMENT_METHOD_ACCOUNT:
            db.session.execute(
                update(Customer)
                .where(Customer.id == customer.id)
                .values(balance_cents=Customer.balance_cents + total)
                .execution_options(synchronize_session=False)
            )
        elif req.payment_method == PAYMENT_METHOD_POCKET_MONEY:
            pocket_money_service.debit_wallet(
                customer.id,
                total,
                user_id=identity.user_id,
                sale_id=sale.id,
            )

        receipt = build_receipt(sale, customer)
        db.session.commit()
        return CheckoutResult(sale_id=sale.id, total_amount=total, receipt=receipt)

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # Lost the race against a concurrent request with the same key
        if req.idempotency_key:
            existing = _find_by_idempotency_key(identity.user_id, req.idempotency_key)
            if existing:
                return _replay(existing)
        raise


# =============================================================================
# STORED SALES
# =============================================================================

def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_sale_receipt(identity, sale_id: str) -> dict:
    """
    Stored receipt for a sale.

    Non-admins may only read sales of their own department.
    """
    sale = get_sale(sale_id)
    permission_service.authorize(identity, "pos", scope_department=sale.department)
    return build_receipt(sale)


def refunded_quantities(sale_id: str) -> dict[int, int]:
    """Quantity already refunded per sale_items.id."""
    rows = (
        db.session.query(RefundLine.sale_item_id, db.func.sum(RefundLine.quantity))
        .join(Refund, Refund.id == RefundLine.refund_id)
        .filter(Refund.sale_id == sale_id)
        .group_by(RefundLine.sale_item_id)
        .all()
    )
    return {sale_item_id: int(quantity or 0) for sale_item_id, quantity in rows}


def void_sale(identity, sale_id: str, reason: str | None = None) -> Sale:
    """
    Void a completed sale and reverse its effects.

    - Stock for every line goes back (minus anything already refunded)
    - Account sales take the unrefunded amount back off the learner balance
    - Pocket money sales put the unrefunded amount back in the wallet
    - Line items stay for the audit trail; the sale is marked voided

    Non-admins may only void sales of their own department.
    """
    reason = clean_reason(reason)

    # Department of the original sale is the scope
    sale = get_sale(sale_id)
    permission_service.authorize(identity, "void", scope_department=sale.department)

    def _op():
        begin_write_transaction()

        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id).populate_existing()
        ).first()

        if sale.status == SALE_STATUS_VOIDED:
            raise SaleStateError("Sale already voided", details={"sale_id": sale_id})
        if sale.status != SALE_STATUS_COMPLETED:
            raise SaleStateError(
                f"Only completed sales can be voided (status: {sale.status})",
                details={"sale_id": sale_id, "status": sale.status},
            )

        already_refunded = refunded_quantities(sale.id)
        reversed_amount = 0
        for line in sale.lines:
            remaining = line.quantity - already_refunded.get(line.id, 0)
            if remaining <= 0:
                continue
            db.session.execute(
                update(Product)
                .where(Product.id == line.product_id)
                .values(stock_quantity=Product.stock_quantity + remaining)
                .execution_options(synchronize_session=False)
            )
            reversed_amount += remaining * line.unit_price_cents

        if sale.payment_method == PAYMENT_METHOD_ACCOUNT and sale.customer_id and reversed_amount:
            db.session.execute(
                update(Customer)
                .where(Customer.id == sale.customer_id)
                .values(balance_cents=Customer.balance_cents - reversed_amount)
                .execution_options(synchronize_session=False)
            )
        elif sale.payment_method == PAYMENT_METHOD_POCKET_MONEY and sale.customer_id and reversed_amount:
            pocket_money_service.credit_wallet(
                sale.customer_id,
                reversed_amount,
                kind=POCKET_MONEY_VOID,
                user_id=identity.user_id,
                sale_id=sale.id,
                notes=reason,
            )

        sale.status = SALE_STATUS_VOIDED
        sale.voided_by_user_id = identity.user_id
        sale.voided_at = utcnow()
        sale.void_reason = reason

        db.session.commit()
        return sale

    return run_with_retry(_op)
