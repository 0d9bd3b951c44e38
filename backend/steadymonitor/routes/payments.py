# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

"""Learner account payment API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.payment_service import PaymentError
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission
from .pos import error_response


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
@require_permission("payments")
def record_payment_route():
    """
    Record a payment against a learner's balance.

    Body: {learnerId, amount (cents), paymentMethod?, reference?, notes?, saleId?}

    Requires: payments permission
    """
    try:
        data = request.get_json(silent=True) or {}

        payment = payment_service.record_payment(
            g.identity,
            customer_id=data.get("learnerId") or data.get("customerId"),
            amount_cents=data.get("amount"),
            method=data.get("paymentMethod") or "cash",
            reference=data.get("reference"),
            notes=data.get("notes"),
            sale_id=data.get("saleId"),
        )
        current_app.logger.info(
            "Payment %s of %d recorded for learner %s by %s",
            payment.id, payment.amount_cents, payment.customer_id, g.identity.username,
        )

        return jsonify({
            "success": True,
            "message": "Payment recorded successfully",
            "payment": payment.to_dict(),
        }), 201

    except (PaymentError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@payments_bp.get("/learner/<learner_id>")
@require_auth
@require_permission("payments")
def learner_payments_route(learner_id: str):
    try:
        payments = payment_service.get_customer_payments(learner_id)
        return jsonify({
            "success": True,
            "learnerId": learner_id,
            "count": len(payments),
            "payments": [p.to_dict() for p in payments],
        }), 200

    except PaymentError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch payments")
        return jsonify({"success": False, "message": "Internal server error"}), 500
