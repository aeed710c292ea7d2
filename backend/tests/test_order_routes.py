# Overview: Pytest coverage for the order HTTP API; auth, status codes, payload parsing and scoping.

"""
Order API Tests

Drives the order routes through the Flask test client with real session
tokens, checking the status code each error class maps to and that
out-of-scope orders answer 404.
"""

import pytest

from branchpos.models import Order, Product

from conftest import auth_headers, get_auth_token


@pytest.fixture
def cashier_headers(client, cashier_a1):
    return auth_headers(get_auth_token(client, "cashier_a1"))


@pytest.fixture
def admin_headers(client, admin_a):
    return auth_headers(get_auth_token(client, "admin_a"))


@pytest.fixture
def order_payload(store_a1, product_a, currency, cash):
    def _payload(quantity=2, price=10.0, paid=20.0, **extra):
        body = {
            "items": [{"id": product_a.id, "quantity": quantity, "price": price}],
            "store_id": store_a1.id,
            "currency_id": currency.id,
            "payment_methods": [{"payment_method_id": cash.id, "amount": paid}],
        }
        body.update(extra)
        return body
    return _payload


def _create(client, headers, body):
    response = client.post("/api/orders/", json=body, headers=headers)
    assert response.status_code == 201, response.json
    return response.json["id"]


class TestAuthentication:

    @pytest.mark.parametrize("method, path", [
        ("get", "/api/orders/"),
        ("post", "/api/orders/"),
        ("get", "/api/orders/1"),
        ("post", "/api/orders/refund"),
        ("delete", "/api/orders/1"),
        ("get", "/api/auth/me"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401

    def test_invalid_token_rejected(self, client, db_session):
        response = client.get("/api/orders/", headers=auth_headers("not-a-token"))
        assert response.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "cashier_a1"})
        assert response.status_code == 400

    def test_login_wrong_password(self, client, cashier_a1):
        response = client.post("/api/auth/login", json={"username": "cashier_a1", "password": "nope"})
        assert response.status_code == 401

    def test_login_returns_scope(self, client, cashier_a1, branch_a1):
        response = client.post("/api/auth/login", json={"username": "cashier_a1", "password": "Password123!"})

        assert response.status_code == 200
        assert response.json["token"]
        assert response.json["shop_id"] == cashier_a1.shop_id
        assert response.json["branch_id"] == branch_a1.id

    def test_me_returns_principal(self, client, cashier_headers, cashier_a1):
        response = client.get("/api/auth/me", headers=cashier_headers)

        assert response.status_code == 200
        assert response.json["principal"]["branch_id"] == cashier_a1.branch_id
        assert response.json["principal"]["is_privileged"] is False

    def test_logout_revokes_token(self, client, cashier_headers):
        assert client.post("/api/auth/logout", headers=cashier_headers).status_code == 200
        assert client.get("/api/orders/", headers=cashier_headers).status_code == 401


class TestCreateRoute:

    def test_create_order(self, client, db_session, cashier_headers, order_payload, product_a):
        response = client.post("/api/orders/", json=order_payload(), headers=cashier_headers)

        assert response.status_code == 201
        assert response.json["total"] == 20.0
        assert response.json["tax_total"] == 0.0
        assert db_session.get(Product, product_a.id).stock == 3

    def test_missing_items(self, client, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(items=[]), headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "Items are required and must be a non-empty array"

    def test_missing_store(self, client, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(store_id=None), headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "Store ID is required"

    def test_non_numeric_quantity(self, client, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(quantity="two"), headers=cashier_headers)
        assert response.status_code == 400

    def test_out_of_range_price(self, client, db_session, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(price="1e40"), headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "items[0].price is out of range"
        assert db_session.query(Order).count() == 0

    def test_out_of_range_payment(self, client, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(paid=1e40), headers=cashier_headers)
        assert response.status_code == 400

    def test_insufficient_stock(self, client, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(quantity=6, paid=60.0), headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["details"]["requested_quantity"] == 6

    def test_insufficient_payment(self, client, db_session, cashier_headers, order_payload):
        response = client.post("/api/orders/", json=order_payload(paid=5.0), headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "Payment amounts do not cover total"
        assert db_session.query(Order).count() == 0

    def test_foreign_store(self, client, cashier_headers, order_payload, store_a2):
        response = client.post("/api/orders/", json=order_payload(store_id=store_a2.id), headers=cashier_headers)
        assert response.status_code == 404

    def test_foreign_branch(self, client, cashier_headers, order_payload, branch_a2):
        response = client.post("/api/orders/", json=order_payload(branch_id=branch_a2.id), headers=cashier_headers)
        assert response.status_code == 403


class TestReadRoutes:

    def test_get_order_detail(self, client, cashier_headers, order_payload, store_a1):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.get(f"/api/orders/{order_id}", headers=cashier_headers)

        assert response.status_code == 200
        assert response.json["address"] == store_a1.address
        assert len(response.json["items"]) == 1
        assert response.json["payments"][0]["amount"] == 20.0
        assert response.json["refunds"] == []

    def test_list_orders_paginates(self, client, cashier_headers, order_payload):
        for _ in range(3):
            _create(client, cashier_headers, order_payload(quantity=1, paid=10.0))

        response = client.get("/api/orders/?page=1&limit=2", headers=cashier_headers)

        assert response.status_code == 200
        assert len(response.json["orders"]) == 2
        assert response.json["pagination"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}

    def test_list_orders_rejects_bad_status(self, client, cashier_headers):
        response = client.get("/api/orders/?status=shipped", headers=cashier_headers)
        assert response.status_code == 400

    def test_other_branch_cannot_read(self, client, cashier_headers, cashier_a2, order_payload):
        order_id = _create(client, cashier_headers, order_payload())
        other_headers = auth_headers(get_auth_token(client, "cashier_a2"))

        assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404
        assert client.get(f"/api/orders/{order_id}/items", headers=other_headers).status_code == 404
        assert client.get("/api/orders/", headers=other_headers).json["orders"] == []

    def test_other_shop_cannot_read(self, client, cashier_headers, admin_b, order_payload):
        order_id = _create(client, cashier_headers, order_payload())
        other_headers = auth_headers(get_auth_token(client, "admin_b"))

        assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404

    def test_admin_sees_whole_shop(self, client, cashier_headers, admin_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.get("/api/orders/", headers=admin_headers)

        assert [o["id"] for o in response.json["orders"]] == [order_id]

    def test_preparation_and_pending(self, client, cashier_headers, order_payload):
        online_id = _create(client, cashier_headers, order_payload(status="preparing", is_online=True))
        pending_id = _create(client, cashier_headers, order_payload(status="pending"))

        preparation = client.get("/api/orders/preparation", headers=cashier_headers).json
        pending = client.get("/api/orders/pending", headers=cashier_headers).json

        assert [o["id"] for o in preparation] == [online_id]
        assert [o["id"] for o in pending] == [pending_id]

    def test_history(self, client, cashier_headers, order_payload, currency):
        _create(client, cashier_headers, order_payload())

        response = client.get("/api/orders/history", headers=cashier_headers)

        assert response.status_code == 200
        assert response.json["currentPage"] == 1
        assert response.json["orders"][0]["currency_code"] == currency.code


class TestTransitionRoutes:

    def test_refund_exceeding_total(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.post("/api/orders/refund", json={
            "order_id": order_id, "amount": 25, "reason": "Damaged",
        }, headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "Refund amount (25.00) exceeds order total (20.00)"

    def test_refund_out_of_range_amount(self, client, db_session, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.post("/api/orders/refund", json={
            "order_id": order_id, "amount": "1e40", "reason": "Damaged",
        }, headers=cashier_headers)

        assert response.status_code == 400
        assert response.json["error"] == "amount is out of range"
        assert db_session.get(Order, order_id).is_refunded is False

    def test_refund_missing_reason(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.post("/api/orders/refund", json={"order_id": order_id, "amount": 5},
                               headers=cashier_headers)
        assert response.status_code == 400

    def test_refund(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.post("/api/orders/refund", json={
            "order_id": order_id, "amount": 20, "reason": "Wrong item",
        }, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json == {"success": True}

        detail = client.get(f"/api/orders/{order_id}", headers=cashier_headers).json
        assert detail["status"] == "cancelled"
        assert detail["is_refunded"] is True
        assert detail["refunds"][0]["amount"] == 20.0

    def test_cancel_completed_rejected(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        response = client.post(f"/api/orders/{order_id}/cancel", json={}, headers=cashier_headers)
        assert response.status_code == 400

    def test_online_order_pickup_flow(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload(status="preparing", is_online=True))

        prepared = client.post(f"/api/orders/{order_id}/complete", headers=cashier_headers)
        assert prepared.status_code == 200
        assert prepared.json["status"] == "prepared"

        picked_up = client.post(f"/api/orders/{order_id}/pickup", headers=cashier_headers)
        assert picked_up.status_code == 200
        assert picked_up.json["status"] == "completed"

        again = client.post(f"/api/orders/{order_id}/pickup", headers=cashier_headers)
        assert again.status_code == 400

    def test_delete_then_audit_log(self, client, db_session, cashier_headers, order_payload, product_a):
        order_id = _create(client, cashier_headers, order_payload(status="preparing"))

        response = client.delete(f"/api/orders/{order_id}", json={"reason": "Duplicate"}, headers=cashier_headers)
        assert response.status_code == 200

        assert client.get(f"/api/orders/{order_id}", headers=cashier_headers).status_code == 404
        assert db_session.get(Product, product_a.id).stock == 5

        logs = client.get("/api/orders/order-audit-logs", headers=cashier_headers).json
        assert [(log["order_id"], log["reason"]) for log in logs] == [(order_id, "Duplicate")]

    def test_status_update(self, client, cashier_headers, order_payload):
        order_id = _create(client, cashier_headers, order_payload())

        missing = client.put(f"/api/orders/{order_id}/status", json={}, headers=cashier_headers)
        assert missing.status_code == 400

        invalid = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=cashier_headers)
        assert invalid.status_code == 400

        ok = client.put(f"/api/orders/{order_id}/status", json={"status": "prepared"}, headers=cashier_headers)
        assert ok.status_code == 200


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json["status"] == "healthy"
