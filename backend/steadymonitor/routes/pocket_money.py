# Overview: Flask API routes for pocket money wallets; parses input and returns JSON responses.

"""Pocket money top-ups and wallet history"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import pocket_money_service
from ..services.pocket_money_service import PocketMoneyError
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission
from .pos import error_response


pocket_money_bp = Blueprint("pocket_money", __name__, url_prefix="/api/pocket-money")


@pocket_money_bp.post("/topup")
@require_auth
@require_permission("admin")
def top_up_route():
    """
    Credit a learner's pocket money wallet.

    Body: {learnerId, amount (cents), notes?}

    Requires: admin permission
    """
    try:
        data = request.get_json(silent=True) or {}

        entry = pocket_money_service.top_up(
            g.identity,
            customer_id=data.get("learnerId") or data.get("customerId"),
            amount_cents=data.get("amount"),
            notes=data.get("notes"),
        )
        current_app.logger.info(
            "Pocket money top-up of %d for learner %s by %s",
            entry.amount_cents, entry.customer_id, g.identity.username,
        )

        return jsonify({
            "success": True,
            "message": "Pocket money topped up successfully",
            "entry": entry.to_dict(),
            "balance": entry.balance_after_cents,
        }), 201

    except (PocketMoneyError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to top up pocket money")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pocket_money_bp.get("/learner/<learner_id>")
@require_auth
@require_permission("customers")
def learner_wallet_route(learner_id: str):
    try:
        customer, entries = pocket_money_service.get_wallet(learner_id)
        return jsonify({
            "success": True,
            "learnerId": learner_id,
            "balance": customer.pocket_money_cents,
            "count": len(entries),
            "entries": [e.to_dict() for e in entries],
        }), 200

    except PocketMoneyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch pocket money wallet")
        return jsonify({"success": False, "message": "Internal server error"}), 500
