"""
Checkout tests.

Verifies:
- Cash and account sales (stock, sale rows, learner balance)
- All-or-nothing behavior when any line fails
- Department scoping and line validation
- Price snapshots on stored receipts
- Idempotency keys
- Voids (department scoped)
"""

import re

import pytest

from steadymonitor.extensions import db
from steadymonitor.models import Sale, SaleLineItem, Product, SecurityEvent
from steadymonitor.services import checkout_service
from steadymonitor.services.checkout_service import (
    CheckoutRequest,
    CheckoutLine,
    CheckoutValidationError,
    InvalidLineItemError,
)
from steadymonitor.services.permission_service import PermissionDeniedError
from steadymonitor.services.session_service import IdentityContext

from conftest import stock_of, balance_of


def _checkout(client, lines, department="Uniform", payment_method="cash", customer_id=None, headers=None, **extra):
    payload = {
        "department": department,
        "paymentMethod": payment_method,
        "lines": [{"productId": pid, "quantity": qty} for pid, qty in lines],
        **extra,
    }
    if customer_id is not None:
        payload["customerId"] = customer_id
    return client.post('/api/pos/checkout', json=payload, headers=headers or {})


@pytest.fixture
def alice(login_as, catalog, learners):
    return login_as("alice")


@pytest.fixture
def admin(login_as, catalog, learners):
    return login_as("admin")


@pytest.fixture
def manager(login_as, catalog, learners):
    return login_as("manager")


# =============================================================================
# SUCCESSFUL SALES
# =============================================================================


class TestCheckoutSuccess:

    def test_cash_sale(self, alice):
        resp = _checkout(alice, [("P1", 2)])

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["totalAmount"] == 1000
        assert re.fullmatch(r"SAL-\d{8}-[0-9A-F]{8}", body["saleId"])

        assert stock_of("P1") == 8
        assert balance_of("C1") == 0

        sale = db.session.get(Sale, body["saleId"])
        assert sale.status == "completed"
        assert sale.payment_method == "cash"
        assert sale.department == "Uniform"
        assert sale.total_amount_cents == 1000
        assert sale.completed_at is not None
        assert len(sale.lines) == 1

    def test_cash_sale_with_learner_leaves_balance(self, alice):
        resp = _checkout(alice, [("P1", 1)], customer_id="C2")
        assert resp.status_code == 200
        assert balance_of("C2") == 300
        assert resp.get_json()["receipt"]["customerName"] == "Baraka Mwangi"

    def test_account_sale_charges_learner(self, alice):
        resp = _checkout(alice, [("P1", 2)], payment_method="account", customer_id="C1")

        assert resp.status_code == 200
        assert resp.get_json()["totalAmount"] == 1000
        assert balance_of("C1") == 1000
        assert stock_of("P1") == 8

    def test_account_sale_adds_to_existing_balance(self, alice):
        _checkout(alice, [("P2", 1)], payment_method="account", customer_id="C2")
        assert balance_of("C2") == 550

    def test_receipt_contents(self, alice, users):
        resp = _checkout(alice, [("P1", 1), ("P2", 1)], payment_method="account", customer_id="C1")
        receipt = resp.get_json()["receipt"]

        assert receipt["saleId"] == resp.get_json()["saleId"]
        assert receipt["status"] == "completed"
        assert receipt["department"] == "Uniform"
        assert receipt["paymentMethod"] == "account"
        assert receipt["cashier"] == "Alice"
        assert receipt["customerId"] == "C1"
        assert receipt["totalAmount"] == 750
        assert receipt["timestamp"].endswith("Z")
        assert [(l["line_number"], l["product_id"], l["quantity"], l["unit_price"], l["line_total"]) for l in receipt["lines"]] == [
            (1, "P1", 1, 500, 500),
            (2, "P2", 1, 250, 250),
        ]

    def test_items_alias_and_snake_case_fields(self, alice):
        resp = alice.post('/api/pos/checkout', json={
            "department": "Uniform",
            "payment_method": "CASH",
            "items": [{"product_id": "P1", "quantity": 1}],
        })
        assert resp.status_code == 200
        assert stock_of("P1") == 9

    def test_admin_may_sell_any_department(self, admin):
        resp = _checkout(admin, [("P3", 5)], department="Stationery")
        assert resp.status_code == 200
        assert stock_of("P3") == 45

    def test_admin_may_mix_departments(self, admin):
        resp = _checkout(admin, [("P1", 1), ("P3", 1)], department="Uniform")
        assert resp.status_code == 200

    def test_repeated_product_lines_are_merged_for_stock(self, alice):
        resp = _checkout(alice, [("P1", 3), ("P1", 4)])
        assert resp.status_code == 200
        assert stock_of("P1") == 3
        assert resp.get_json()["totalAmount"] == 3500

    def test_sale_of_entire_stock(self, alice):
        assert _checkout(alice, [("P2", 1)]).status_code == 200
        assert stock_of("P2") == 0

        resp = _checkout(alice, [("P2", 1)])
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "OutOfStock"


# =============================================================================
# ATOMICITY
# =============================================================================


class TestCheckoutAtomicity:

    def test_second_line_out_of_stock_rolls_back_everything(self, alice):
        resp = _checkout(alice, [("P1", 2), ("P2", 2)])

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["success"] is False
        assert body["error"] == "OutOfStock"
        assert body["details"]["product_id"] == "P2"
        assert body["details"]["requested_quantity"] == 2
        assert body["details"]["available_quantity"] == 1

        assert stock_of("P1") == 10
        assert stock_of("P2") == 1
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleLineItem).count() == 0

    def test_account_failure_leaves_balance(self, alice):
        resp = _checkout(alice, [("P1", 1), ("P2", 5)], payment_method="account", customer_id="C1")
        assert resp.status_code == 409
        assert balance_of("C1") == 0
        assert stock_of("P1") == 10

    def test_merged_quantity_exceeding_stock(self, alice):
        resp = _checkout(alice, [("P2", 1), ("P2", 1)])
        assert resp.status_code == 409
        assert resp.get_json()["details"]["requested_quantity"] == 2
        assert stock_of("P2") == 1

    def test_unexpected_failure_rolls_back(self, alice, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("printer on fire")

        monkeypatch.setattr(checkout_service, "build_receipt", boom)

        resp = _checkout(alice, [("P1", 2)], payment_method="account", customer_id="C1")

        assert resp.status_code == 500
        body = resp.get_json()
        assert body == {"success": False, "error": "InternalError", "message": "Internal server error"}
        assert "printer" not in resp.get_data(as_text=True)

        assert stock_of("P1") == 10
        assert balance_of("C1") == 0
        assert db.session.query(Sale).count() == 0


# =============================================================================
# VALIDATION
# =============================================================================


class TestCheckoutValidation:

    def test_other_department_is_forbidden(self, alice):
        resp = _checkout(alice, [("P3", 1)], department="Stationery")

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Forbidden"
        assert stock_of("P3") == 50

    def test_product_from_other_department(self, alice):
        resp = _checkout(alice, [("P3", 1)], department="Uniform")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidLineItem"
        assert stock_of("P3") == 50

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True, None])
    def test_bad_quantities(self, alice, quantity):
        resp = alice.post('/api/pos/checkout', json={
            "department": "Uniform",
            "paymentMethod": "cash",
            "lines": [{"productId": "P1", "quantity": quantity}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidLineItem"
        assert stock_of("P1") == 10

    @pytest.mark.parametrize("product_id", ["P9", "P4", ""])
    def test_unknown_or_inactive_products(self, alice, product_id):
        resp = _checkout(alice, [("P1", 1), (product_id, 1)])
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidLineItem"
        assert stock_of("P1") == 10

    @pytest.mark.parametrize(
        "payload",
        [
            {"paymentMethod": "cash", "lines": [{"productId": "P1", "quantity": 1}]},
            {"department": "Uniform", "lines": [{"productId": "P1", "quantity": 1}]},
            {"department": "Uniform", "paymentMethod": "cash", "lines": []},
            {"department": "Uniform", "paymentMethod": "cash"},
            {"department": "Uniform", "paymentMethod": "cheque", "lines": [{"productId": "P1", "quantity": 1}]},
        ],
    )
    def test_invalid_requests(self, alice, payload):
        resp = alice.post('/api/pos/checkout', json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidRequest"

    def test_unknown_department_for_admin(self, admin):
        resp = _checkout(admin, [("P1", 1)], department="Kitchen")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidRequest"

    def test_account_sale_requires_learner(self, alice):
        resp = _checkout(alice, [("P1", 1)], payment_method="account")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidRequest"
        assert stock_of("P1") == 10

    @pytest.mark.parametrize("payment_method", ["cash", "account"])
    def test_unknown_learner(self, alice, payment_method):
        resp = _checkout(alice, [("P1", 1)], payment_method=payment_method, customer_id="C9")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "CustomerNotFound"
        assert stock_of("P1") == 10

    def test_service_rechecks_permission(self, app, users, catalog):
        bob = users["bob"]
        identity = IdentityContext(
            user_id=bob.id, username=bob.username, role=bob.role,
            department=bob.department, display_name="Bob",
        )
        req = CheckoutRequest(department="Uniform", payment_method="cash", lines=[CheckoutLine("P1", 1)])

        with pytest.raises(PermissionDeniedError):
            checkout_service.checkout(identity, req)
        assert stock_of("P1") == 10

    def test_request_parsing_errors(self):
        with pytest.raises(CheckoutValidationError):
            CheckoutRequest.from_payload(None)
        with pytest.raises(InvalidLineItemError):
            CheckoutRequest.from_payload({
                "department": "Uniform", "paymentMethod": "cash", "lines": ["P1"],
            })

    def test_header_key_used_when_body_has_none(self):
        req = CheckoutRequest.from_payload(
            {"department": "Uniform", "paymentMethod": "cash", "lines": [{"productId": "P1", "quantity": 1}]},
            idempotency_key="hdr-1",
        )
        assert req.idempotency_key == "hdr-1"

        req = CheckoutRequest.from_payload(
            {"department": "Uniform", "paymentMethod": "cash", "idempotencyKey": "body-1",
             "lines": [{"productId": "P1", "quantity": 1}]},
            idempotency_key="hdr-1",
        )
        assert req.idempotency_key == "body-1"


# =============================================================================
# SNAPSHOTS & IDEMPOTENCY
# =============================================================================


class TestStoredSales:

    def test_price_change_does_not_touch_completed_sale(self, alice):
        sale_id = _checkout(alice, [("P1", 2)]).get_json()["saleId"]

        product = db.session.get(Product, "P1")
        product.unit_price_cents = 999
        db.session.commit()

        resp = alice.get(f'/api/pos/sales/{sale_id}')
        assert resp.status_code == 200
        receipt = resp.get_json()["receipt"]
        assert receipt["totalAmount"] == 1000
        assert receipt["lines"][0]["unit_price"] == 500
        assert receipt["lines"][0]["line_total"] == 1000

        # New sales use the new price
        assert _checkout(alice, [("P1", 1)]).get_json()["totalAmount"] == 999

    def test_receipt_of_other_department_is_forbidden(self, alice, login_as):
        sale_id = _checkout(alice, [("P1", 1)]).get_json()["saleId"]

        resp = login_as("bob").get(f'/api/pos/sales/{sale_id}')
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Forbidden"

    def test_unknown_sale(self, alice):
        resp = alice.get('/api/pos/sales/SAL-20260101-00000000')
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "SaleNotFound"

    def test_idempotency_header_replays_sale(self, alice):
        headers = {"Idempotency-Key": "till-1-0001"}
        first = _checkout(alice, [("P1", 2)], headers=headers)
        second = _checkout(alice, [("P1", 2)], headers=headers)

        assert first.status_code == second.status_code == 200
        assert first.get_json()["saleId"] == second.get_json()["saleId"]
        assert first.get_json()["receipt"]["lines"] == second.get_json()["receipt"]["lines"]
        assert stock_of("P1") == 8
        assert db.session.query(Sale).count() == 1

    def test_idempotency_key_in_body(self, alice):
        first = _checkout(alice, [("P1", 1)], payment_method="account", customer_id="C1", idempotencyKey="k-1")
        second = _checkout(alice, [("P1", 1)], payment_method="account", customer_id="C1", idempotencyKey="k-1")

        assert first.get_json()["saleId"] == second.get_json()["saleId"]
        assert balance_of("C1") == 500

    def test_idempotency_keys_are_per_cashier(self, alice, manager):
        headers = {"Idempotency-Key": "shared"}
        first = _checkout(alice, [("P1", 1)], headers=headers)
        second = _checkout(manager, [("P1", 1)], headers=headers)

        assert first.get_json()["saleId"] != second.get_json()["saleId"]
        assert stock_of("P1") == 8

    def test_failed_attempt_does_not_burn_key(self, alice):
        headers = {"Idempotency-Key": "retry-me"}
        assert _checkout(alice, [("P2", 2)], headers=headers).status_code == 409
        assert _checkout(alice, [("P2", 1)], headers=headers).status_code == 200


# =============================================================================
# VOIDS
# =============================================================================


class TestVoid:

    def test_manager_voids_account_sale(self, alice, manager):
        sale_id = _checkout(alice, [("P1", 2), ("P2", 1)], payment_method="account", customer_id="C1").get_json()["saleId"]
        assert balance_of("C1") == 1250

        resp = manager.post(f'/api/pos/sales/{sale_id}/void', json={"reason": "Wrong learner"})

        assert resp.status_code == 200
        sale = resp.get_json()["sale"]
        assert sale["status"] == "voided"
        assert sale["void_reason"] == "Wrong learner"

        assert stock_of("P1") == 10
        assert stock_of("P2") == 1
        assert balance_of("C1") == 0
        # Lines are kept for the audit trail
        assert db.session.query(SaleLineItem).filter_by(sale_id=sale_id).count() == 2

    def test_void_cash_sale_leaves_balances(self, alice, manager):
        sale_id = _checkout(alice, [("P1", 1)], customer_id="C2").get_json()["saleId"]
        assert manager.post(f'/api/pos/sales/{sale_id}/void').status_code == 200
        assert balance_of("C2") == 300
        assert stock_of("P1") == 10

    def test_void_twice(self, alice, manager):
        sale_id = _checkout(alice, [("P1", 1)]).get_json()["saleId"]
        manager.post(f'/api/pos/sales/{sale_id}/void')

        resp = manager.post(f'/api/pos/sales/{sale_id}/void')
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "InvalidSaleState"
        assert stock_of("P1") == 10

    @pytest.mark.parametrize("username", ["alice", "cashier"])
    def test_void_requires_permission(self, alice, login_as, username):
        sale_id = _checkout(alice, [("P1", 1)]).get_json()["saleId"]

        resp = login_as(username).post(f'/api/pos/sales/{sale_id}/void')
        assert resp.status_code == 403
        assert stock_of("P1") == 9

    def test_void_unknown_sale(self, manager):
        resp = manager.post('/api/pos/sales/SAL-20260101-00000000/void')
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "SaleNotFound"

    def test_manager_cannot_void_other_department(self, manager, login_as):
        sale_id = _checkout(login_as("bob"), [("P3", 5)], department="Stationery").get_json()["saleId"]
        assert stock_of("P3") == 45

        resp = manager.post(f'/api/pos/sales/{sale_id}/void')

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Forbidden"
        assert resp.get_json()["details"]["department"] == "Stationery"
        assert stock_of("P3") == 45
        assert db.session.get(Sale, sale_id).status == "completed"

        event = db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED", action="void").one()
        assert event.department == "Stationery"

    def test_admin_voids_any_department(self, admin, login_as):
        sale_id = _checkout(login_as("bob"), [("P3", 5)], department="Stationery").get_json()["saleId"]

        resp = admin.post(f'/api/pos/sales/{sale_id}/void')
        assert resp.status_code == 200
        assert stock_of("P3") == 50

    @pytest.mark.parametrize("reason", [42, ["wrong"], {"text": "wrong"}, True])
    def test_non_string_reason_rejected(self, alice, manager, reason):
        sale_id = _checkout(alice, [("P1", 1)]).get_json()["saleId"]

        resp = manager.post(f'/api/pos/sales/{sale_id}/void', json={"reason": reason})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidRequest"
        assert stock_of("P1") == 9
        assert db.session.get(Sale, sale_id).status == "completed"

    def test_long_reason_is_trimmed(self, alice, manager):
        sale_id = _checkout(alice, [("P1", 1)]).get_json()["saleId"]
        resp = manager.post(f'/api/pos/sales/{sale_id}/void', json={"reason": "x" * 300})
        assert resp.status_code == 200
        assert len(resp.get_json()["sale"]["void_reason"]) == 255

    def test_key_replay_after_void_is_rejected(self, alice, manager):
        headers = {"Idempotency-Key": "till-1-0042"}
        sale_id = _checkout(alice, [("P1", 2)], headers=headers).get_json()["saleId"]
        manager.post(f'/api/pos/sales/{sale_id}/void')
        assert stock_of("P1") == 10

        resp = _checkout(alice, [("P1", 2)], headers=headers)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["success"] is False
        assert body["error"] == "InvalidSaleState"
        assert body["details"] == {"sale_id": sale_id, "status": "voided"}
        assert stock_of("P1") == 10
        assert db.session.query(Sale).count() == 1
