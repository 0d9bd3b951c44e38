# Overview: Service-layer operations for refund; encapsulates business logic and database work.

"""
Refunds against completed sales.

WHY: Returns must give back exactly what was paid. Amounts come from the
sale line snapshots, never from the current product price.

RULES:
- Only completed sales can be refunded
- Non-admins may only refund sales of their own department
- A line can never be refunded for more than was sold minus earlier refunds
- Stock goes back; account sales take the amount off the learner balance
  (the balance may go negative, which is credit) and pocket money sales put
  it back in the wallet
"""

from sqlalchemy import update

from ..extensions import db
from ..models import Product, Customer, Sale, Refund, RefundLine
from ..models.customers import POCKET_MONEY_REFUND
from ..models.sales import SALE_STATUS_COMPLETED
from . import permission_service, pocket_money_service
from .checkout_service import (
    PAYMENT_METHOD_ACCOUNT,
    PAYMENT_METHOD_POCKET_MONEY,
    CheckoutValidationError,
    InvalidLineItemError,
    SaleNotFoundError,
    SaleStateError,
    clean_reason,
    refunded_quantities,
)
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from steadymonitor.time_utils import utcnow


def _parse_refund_lines(raw_lines) -> list[tuple[str, int]] | None:
    """[(product_id, quantity)], or None to refund everything still refundable."""
    if raw_lines is None:
        return None
    if not isinstance(raw_lines, list) or not raw_lines:
        raise CheckoutValidationError("lines must be a non-empty list")

    parsed = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise InvalidLineItemError(f"Line {index + 1} must be an object", details={"line": index + 1})
        product_id = raw.get("productId", raw.get("product_id"))
        quantity = raw.get("quantity")
        if not product_id:
            raise InvalidLineItemError(f"Line {index + 1} is missing productId", details={"line": index + 1})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidLineItemError(
                f"Quantity for product {product_id} must be a positive integer",
                details={"line": index + 1, "product_id": product_id, "quantity": quantity},
            )
        parsed.append((str(product_id), quantity))
    return parsed


def process_refund(identity, sale_id: str, lines=None, reason: str | None = None) -> Refund:
    """
    Refund some or all of a completed sale.

    `lines` is [{productId, quantity}]; omit it to refund every unit not yet
    refunded.
    """
    if not sale_id:
        raise CheckoutValidationError("saleId is required")

    requested = _parse_refund_lines(lines)
    reason = clean_reason(reason)

    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

    # Department of the original sale is the scope
    permission_service.authorize(identity, "refunds", scope_department=sale.department)

    def _op():
        begin_write_transaction()

        locked = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id).populate_existing()
        ).first()
        if locked.status != SALE_STATUS_COMPLETED:
            raise SaleStateError(
                f"Only completed sales can be refunded (status: {locked.status})",
                details={"sale_id": sale_id, "status": locked.status},
            )

        already = refunded_quantities(locked.id)
        remaining = {line.id: line.quantity - already.get(line.id, 0) for line in locked.lines}

        if requested is None:
            wanted = [(line.product_id, remaining[line.id]) for line in locked.lines if remaining[line.id] > 0]
            if not wanted:
                raise SaleStateError("Sale has already been fully refunded", details={"sale_id": sale_id})
        else:
            wanted = requested

        refund = Refund(
            sale_id=locked.id,
            customer_id=locked.customer_id,
            reason=reason,
            processed_by_user_id=identity.user_id,
            created_at=utcnow(),
            amount_cents=0,
        )

        total = 0
        for product_id, quantity in wanted:
            sale_lines = [line for line in locked.lines if line.product_id == product_id]
            if not sale_lines:
                raise InvalidLineItemError(
                    f"Product {product_id} is not on sale {sale_id}",
                    details={"product_id": product_id},
                )

            available = sum(remaining[line.id] for line in sale_lines)
            if quantity > available:
                raise InvalidLineItemError(
                    f"Cannot refund {quantity} of {product_id}: only {available} refundable",
                    details={"product_id": product_id, "requested_quantity": quantity, "refundable_quantity": available},
                )

            # Spread the quantity over the sale lines for this product
            left = quantity
            for line in sale_lines:
                if left == 0:
                    break
                take = min(left, remaining[line.id])
                if take <= 0:
                    continue
                remaining[line.id] -= take
                left -= take
                amount = take * line.unit_price_cents
                total += amount
                refund.lines.append(RefundLine(
                    sale_item_id=line.id,
                    product_id=line.product_id,
                    quantity=take,
                    unit_price_cents=line.unit_price_cents,
                    amount_cents=amount,
                ))

            db.session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + quantity)
                .execution_options(synchronize_session=False)
            )

        refund.amount_cents = total
        db.session.add(refund)

        if locked.payment_method == PAYMENT_METHOD_ACCOUNT and locked.customer_id and total:
            db.session.execute(
                update(Customer)
                .where(Customer.id == locked.customer_id)
                .values(balance_cents=Customer.balance_cents - total)
                .execution_options(synchronize_session=False)
            )
        elif locked.payment_method == PAYMENT_METHOD_POCKET_MONEY and locked.customer_id and total:
            pocket_money_service.credit_wallet(
                locked.customer_id,
                total,
                kind=POCKET_MONEY_REFUND,
                user_id=identity.user_id,
                sale_id=locked.id,
                notes=reason,
            )

        db.session.commit()
        return refund

    return run_with_retry(_op)


def get_sale_refunds(identity, sale_id: str) -> list[Refund]:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

    permission_service.authorize(identity, "refunds", scope_department=sale.department)

    return (
        db.session.query(Refund)
        .filter(Refund.sale_id == sale_id)
        .order_by(Refund.created_at.asc(), Refund.id.asc())
        .all()
    )
