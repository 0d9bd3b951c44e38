# Overview: Flask API routes for POS operations; parses input and returns JSON responses.

"""POS API routes: catalog and learner lookups, checkout, stored receipts and voids."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import catalog_service, customer_service, checkout_service
from ..services.catalog_service import CatalogError
from ..services.customer_service import CustomerError
from ..services.checkout_service import CheckoutError, CheckoutRequest
from ..services.pocket_money_service import PocketMoneyError
from ..services.permission_service import PermissionDeniedError
from ..decorators import require_auth, require_permission


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def error_response(exc):
    """JSON body and status for a service-layer error that carries a kind."""
    details = getattr(exc, "details", None) or {}
    if isinstance(exc, PermissionDeniedError):
        details = {"permission": exc.permission, "department": exc.department}
    return jsonify({
        "success": False,
        "error": exc.kind,
        "message": str(exc),
        "details": details,
    }), exc.status_code


# =============================================================================
# CATALOG
# =============================================================================

@pos_bp.get("/departments")
@require_auth
def departments_route():
    return jsonify({"success": True, "departments": catalog_service.list_departments()}), 200


@pos_bp.get("/products/<department>")
@require_auth
@require_permission("pos", scoped=True)
def products_by_department_route(department: str):
    """
    Active products of one department.

    Requires: pos permission, scoped to <department> (admin: any department)
    """
    try:
        products = catalog_service.get_products_by_department(department)
        return jsonify({
            "success": True,
            "department": department,
            "count": len(products),
            "products": [p.to_dict() for p in products],
        }), 200

    except CatalogError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to fetch products")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.get("/search")
@require_auth
@require_permission("pos")
def search_products_route():
    try:
        products = catalog_service.search_products(g.identity, request.args.get("q", ""))
        return jsonify({
            "success": True,
            "count": len(products),
            "products": [p.to_dict() for p in products],
        }), 200

    except CatalogError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Product search failed")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.get("/lookup/<identifier>")
@require_auth
@require_permission("pos")
def lookup_product_route(identifier: str):
    """Exact product lookup by SKU, then id (barcode scanner path)."""
    try:
        product = catalog_service.lookup_product(g.identity, identifier)
        if not product:
            return jsonify({"success": False, "message": "Product not found"}), 404
        return jsonify({"success": True, "product": product.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Product lookup failed")
        return jsonify({"success": False, "message": "Internal server error"}), 500


# =============================================================================
# LEARNERS
# =============================================================================

@pos_bp.get("/learners/search")
@require_auth
@require_permission("pos")
def search_learners_route():
    try:
        learners = customer_service.search_customers(request.args.get("q", ""))
        return jsonify({
            "success": True,
            "count": len(learners),
            "learners": [c.to_dict() for c in learners],
        }), 200

    except CustomerError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Learner search failed")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.get("/learners/class/<class_name>")
@require_auth
@require_permission("pos")
def learners_by_class_route(class_name: str):
    try:
        learners = customer_service.get_customers_by_class(class_name)
        return jsonify({
            "success": True,
            "class": class_name,
            "count": len(learners),
            "learners": [c.to_dict() for c in learners],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to fetch learners by class")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.get("/learners/<learner_id>")
@require_auth
@require_permission("pos")
def learner_route(learner_id: str):
    try:
        learner = customer_service.get_customer(learner_id)
        if not learner:
            return jsonify({"success": False, "message": "Learner not found"}), 404
        return jsonify({"success": True, "learner": learner.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to fetch learner")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.get("/classes")
@require_auth
@require_permission("pos")
def classes_route():
    try:
        classes = customer_service.list_classes()
        return jsonify({"success": True, "count": len(classes), "classes": classes}), 200

    except Exception:
        current_app.logger.exception("Failed to fetch classes")
        return jsonify({"success": False, "message": "Internal server error"}), 500


# =============================================================================
# CHECKOUT & SALES
# =============================================================================

@pos_bp.post("/checkout")
@require_auth
@require_permission("pos", scoped=True)
def checkout_route():
    """
    Complete a sale.

    Body: {customerId?, department, lines: [{productId, quantity}], paymentMethod, idempotencyKey?}
    paymentMethod "pocket_money" also requires the pocket_money permission.
    Header: Idempotency-Key (optional, same meaning as idempotencyKey)

    Requires: pos permission, scoped to body.department (admin: any department)
    """
    try:
        checkout_request = CheckoutRequest.from_payload(
            request.get_json(silent=True),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        result = checkout_service.checkout(g.identity, checkout_request)

        if result.replayed:
            current_app.logger.info("Checkout replayed for key %r: sale %s", checkout_request.idempotency_key, result.sale_id)
        else:
            current_app.logger.info(
                "Sale %s completed by %s (%s, %s, total=%d)",
                result.sale_id, g.identity.username, checkout_request.department,
                checkout_request.payment_method, result.total_amount,
            )

        return jsonify({"success": True, **result.to_dict()}), 200

    except (CheckoutError, PocketMoneyError, PermissionDeniedError) as e:
        current_app.logger.info("Checkout rejected for %s: %s %s", g.identity.username, e.kind, e)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({
            "success": False,
            "error": "InternalError",
            "message": "Internal server error",
        }), 500


@pos_bp.get("/sales/<sale_id>")
@require_auth
@require_permission("pos")
def sale_receipt_route(sale_id: str):
    """Stored receipt with the snapshotted prices."""
    try:
        receipt = checkout_service.get_sale_receipt(g.identity, sale_id)
        return jsonify({"success": True, "receipt": receipt}), 200

    except (CheckoutError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch sale")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@pos_bp.post("/sales/<sale_id>/void")
@require_auth
@require_permission("void")
def void_sale_route(sale_id: str):
    """
    Void a completed sale: stock back, account charge reversed.

    Requires: void permission (admin, manager), scoped to the sale's
    department (admin: any department)
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = checkout_service.void_sale(g.identity, sale_id, reason=data.get("reason"))
        current_app.logger.info("Sale %s voided by %s", sale.id, g.identity.username)
        return jsonify({"success": True, "sale": sale.to_dict()}), 200

    except (CheckoutError, PermissionDeniedError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"success": False, "message": "Internal server error"}), 500
