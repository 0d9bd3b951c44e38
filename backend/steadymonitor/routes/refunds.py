# Overview: Flask API routes for refund operations; parses input and returns JSON responses.

"""Refund API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import refund_service
from ..services.checkout_service import CheckoutError
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission
from .pos import error_response


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


@refunds_bp.post("")
@require_auth
@require_permission("refunds")
def create_refund_route():
    """
    Refund items from a completed sale at their original price.

    Body: {saleId, lines?: [{productId, quantity}], reason?}
    Omitting lines refunds everything not yet refunded.

    Requires: refunds permission, scoped to the sale's department
    (checked in the service once the sale is loaded)
    """
    try:
        data = request.get_json(silent=True) or {}

        refund = refund_service.process_refund(
            g.identity,
            data.get("saleId"),
            lines=data.get("lines"),
            reason=data.get("reason"),
        )
        current_app.logger.info(
            "Refund %s of %d on sale %s by %s",
            refund.id, refund.amount_cents, refund.sale_id, g.identity.username,
        )

        return jsonify({"success": True, "refund": refund.to_dict()}), 201

    except (CheckoutError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process refund")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@refunds_bp.get("/sale/<sale_id>")
@require_auth
@require_permission("refunds")
def sale_refunds_route(sale_id: str):
    try:
        refunds = refund_service.get_sale_refunds(g.identity, sale_id)
        return jsonify({
            "success": True,
            "saleId": sale_id,
            "count": len(refunds),
            "refunds": [r.to_dict() for r in refunds],
        }), 200

    except (CheckoutError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch refunds")
        return jsonify({"success": False, "message": "Internal server error"}), 500
