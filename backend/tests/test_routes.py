"""
API tests through the Flask test client.

Covers authentication, role permissions, status-code mapping of domain
errors and the order lifecycle end to end.
"""

import re

import pytest

from yuandi.extensions import db
from yuandi.models import CashbookEntry, Product


def _create_product(client, headers, **fields):
    body = {
        "category": "Bag",
        "name": "Tote",
        "model": "Classic 2",
        "color": "Black",
        "brand": "YD",
        "sale_price_krw": 50000,
    }
    body.update(fields)
    resp = client.post("/api/products", json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["product"]


def _create_order(client, headers, product_id, quantity=2):
    resp = client.post(
        "/api/orders",
        json={
            "customer_name": "Lee Jiwoo",
            "customer_phone": "010-0000-0000",
            "items": [{"product_id": product_id, "quantity": quantity}],
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"]


class TestAuthentication:
    def test_health_is_public(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"

    def test_missing_token(self, client):
        resp = client.get("/api/products")
        assert resp.status_code == 401

    def test_unknown_token(self, client, users):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_inactive_user_rejected(self, client, users, admin_headers):
        user, _ = users["Admin"]
        user.is_active = False
        db.session.commit()
        resp = client.get("/api/products", headers=admin_headers)
        assert resp.status_code == 401


class TestPermissions:
    def test_ship_manager_cannot_create_orders(self, client, ship_manager_headers, admin_headers):
        product = _create_product(client, admin_headers, initial_stock=5)
        resp = client.post(
            "/api/orders",
            json={"customer_name": "X", "items": [{"product_id": product["id"], "quantity": 1}]},
            headers=ship_manager_headers,
        )
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["error"] == "Permission denied"
        assert data["required_permission"] == "MANAGE_ORDERS"

    def test_ship_manager_cannot_adjust_stock(self, client, ship_manager_headers, admin_headers):
        product = _create_product(client, admin_headers, initial_stock=5)
        resp = client.post(
            "/api/inventory/adjustment",
            json={"product_id": product["id"], "delta": -1},
            headers=ship_manager_headers,
        )
        assert resp.status_code == 403

    def test_order_manager_cannot_read_cashbook(self, client, order_manager_headers):
        assert client.get("/api/cashbook", headers=order_manager_headers).status_code == 403

    def test_order_manager_cannot_change_settings(self, client, order_manager_headers):
        resp = client.put(
            "/api/settings",
            json={"inventory.low_stock_threshold_default": 3},
            headers=order_manager_headers,
        )
        assert resp.status_code == 403


class TestProductRoutes:
    def test_create_derives_sku_and_books_initial_stock(self, client, admin_headers):
        product = _create_product(client, admin_headers, initial_stock=5)

        assert re.fullmatch(r"BAG-CLASSIC2-BLACK-YD-[0-9A-F]{5}", product["sku"])
        assert product["on_hand"] == 5

        resp = client.get(f"/api/inventory/{product['id']}/movements", headers=admin_headers)
        movements = resp.get_json()["movements"]
        assert [m["movement_type"] for m in movements] == ["inbound"]

    def test_create_requires_name(self, client, admin_headers):
        resp = client.post("/api/products", json={"category": "Bag"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_negative_price_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"category": "Bag", "name": "Bad", "sale_price_krw": -1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_unknown_product_is_404(self, client, admin_headers):
        assert client.get("/api/products/999", headers=admin_headers).status_code == 404
        assert client.get("/api/inventory/999/verify", headers=admin_headers).status_code == 404

    def test_soft_delete_hides_product(self, client, admin_headers):
        product = _create_product(client, admin_headers)
        resp = client.delete(f"/api/products/{product['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["product"]["is_active"] is False

        listed = client.get("/api/products", headers=admin_headers).get_json()
        assert listed["count"] == 0
        listed = client.get("/api/products?include_inactive=true", headers=admin_headers).get_json()
        assert listed["count"] == 1


class TestInventoryRoutes:
    def test_adjustment(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=10)

        resp = client.post(
            "/api/inventory/adjustment",
            json={"product_id": product["id"], "delta": -3, "note": "Damaged"},
            headers=order_manager_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["adjustment"]["previous_stock"] == 10
        assert data["adjustment"]["new_stock"] == 7
        assert data["product"]["on_hand"] == 7

    def test_insufficient_stock_is_400(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=2)

        resp = client.post(
            "/api/inventory/adjustment",
            json={"product_id": product["id"], "delta": -5},
            headers=order_manager_headers,
        )
        assert resp.status_code == 400
        assert "Insufficient stock" in resp.get_json()["error"]
        assert db.session.get(Product, product["id"]).on_hand == 2

    @pytest.mark.parametrize("body", [
        {"delta": 0},
        {"delta": "1.5"},
        {"delta": 2, "movement_type": "disposal"},
        {"delta": -1, "movement_type": "sale"},
    ])
    def test_invalid_adjustment_is_400(self, client, order_manager_headers, body):
        product = _create_product(client, order_manager_headers, initial_stock=5)
        body = dict(body, product_id=product["id"])
        resp = client.post("/api/inventory/adjustment", json=body, headers=order_manager_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("flag", ["false", "0", 1, "yes"])
    def test_non_boolean_record_loss_is_400(self, client, admin_headers, cny_rate, flag):
        product = _create_product(client, admin_headers, initial_stock=5, cost_cny=30)

        resp = client.post(
            "/api/inventory/adjustment",
            json={"product_id": product["id"], "delta": -1, "record_loss": flag},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "record_loss" in resp.get_json()["error"]
        assert db.session.query(CashbookEntry).filter_by(category="adjustment").count() == 0
        assert db.session.get(Product, product["id"]).on_hand == 5

    def test_record_loss_true_books_expense(self, client, admin_headers, cny_rate):
        product = _create_product(client, admin_headers, initial_stock=5, cost_cny=30)

        resp = client.post(
            "/api/inventory/adjustment",
            json={"product_id": product["id"], "delta": -1, "movement_type": "disposal", "record_loss": True},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        entry = db.session.query(CashbookEntry).filter_by(category="adjustment").one()
        assert entry.amount == -30

    def test_inbound_with_rate(self, client, admin_headers, cny_rate):
        product = _create_product(client, admin_headers, cost_cny=40)

        resp = client.post(
            "/api/inventory/inbound",
            json={"product_id": product["id"], "quantity": 3, "ref_no": "PO-100"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["product"]["on_hand"] == 3

        entries = client.get("/api/cashbook", headers=admin_headers).get_json()["entries"]
        assert [(e["category"], e["amount"], e["amount_krw"]) for e in entries] == [
            ("inventory_purchase", -120, -120 * 190)
        ]

    def test_inbound_without_rate_is_400_and_writes_nothing(self, client, admin_headers):
        product = _create_product(client, admin_headers, cost_cny=40)

        resp = client.post(
            "/api/inventory/inbound",
            json={"product_id": product["id"], "quantity": 3},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "exchange rate" in resp.get_json()["error"]
        assert db.session.get(Product, product["id"]).on_hand == 0

    def test_verify_and_low_stock(self, client, admin_headers):
        product = _create_product(client, admin_headers, initial_stock=2)

        report = client.get(f"/api/inventory/{product['id']}/verify", headers=admin_headers).get_json()
        assert report["verification"]["ok"] is True
        assert report["verification"]["replayed_balance"] == 2

        low = client.get("/api/inventory/low-stock", headers=admin_headers).get_json()
        assert [p["id"] for p in low["items"]] == [product["id"]]


class TestOrderRoutes:
    def test_full_lifecycle(self, client, order_manager_headers, ship_manager_headers, admin_headers):
        product = _create_product(client, order_manager_headers, initial_stock=5)
        order = _create_order(client, order_manager_headers, product["id"], quantity=2)
        assert order["status"] == "PAID"
        assert order["final_amount"] == 100000

        resp = client.patch(
            f"/api/orders/{order['id']}/ship",
            json={"courier": "cj", "tracking_number": "6000123", "shipping_fee": 3000},
            headers=ship_manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "SHIPPED"

        resp = client.patch(f"/api/orders/{order['id']}/complete", json={}, headers=ship_manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "DONE"

        resp = client.patch(f"/api/orders/{order['id']}/cancel", json={}, headers=order_manager_headers)
        assert resp.status_code == 400
        assert "Cannot transition" in resp.get_json()["error"]

        history = client.get(f"/api/orders/{order['id']}/history", headers=order_manager_headers).get_json()
        assert [ev["action"] for ev in history["events"]] == ["create", "ship", "complete"]
        assert sorted(e["category"] for e in history["cashbook_entries"]) == ["order_payment", "shipping_cost"]

        cashbook = client.get("/api/cashbook", headers=admin_headers).get_json()
        assert cashbook["balance_krw"] == 100000 - 3000
        assert cashbook["entries"][-1]["balance_after_krw"] == 97000

    def test_create_with_insufficient_stock(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=1)
        resp = client.post(
            "/api/orders",
            json={"customer_name": "A", "items": [{"product_id": product["id"], "quantity": 2}]},
            headers=order_manager_headers,
        )
        assert resp.status_code == 400
        listed = client.get("/api/orders", headers=order_manager_headers).get_json()
        assert listed["count"] == 0

    def test_create_requires_customer_name(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=1)
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": product["id"], "quantity": 1}]},
            headers=order_manager_headers,
        )
        assert resp.status_code == 400

    def test_cancel_restocks(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=4)
        order = _create_order(client, order_manager_headers, product["id"], quantity=3)

        resp = client.patch(
            f"/api/orders/{order['id']}/cancel",
            json={"reason": "Duplicate order"},
            headers=order_manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "CANCELLED"
        product_now = client.get(f"/api/products/{product['id']}", headers=order_manager_headers).get_json()
        assert product_now["product"]["on_hand"] == 4

    def test_refund_validation(self, client, order_manager_headers):
        product = _create_product(client, order_manager_headers, initial_stock=4)
        order = _create_order(client, order_manager_headers, product["id"], quantity=1)

        resp = client.patch(f"/api/orders/{order['id']}/refund", json={}, headers=order_manager_headers)
        assert resp.status_code == 400

        resp = client.patch(
            f"/api/orders/{order['id']}/refund",
            json={"refund_reason": "Defect", "refund_amount": 0},
            headers=order_manager_headers,
        )
        assert resp.status_code == 400

        resp = client.patch(
            f"/api/orders/{order['id']}/refund",
            json={"refund_reason": "Defect", "refund_amount": 20000},
            headers=order_manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["order"]["refund_amount"] == 20000

    def test_unknown_order_is_404(self, client, order_manager_headers):
        assert client.get("/api/orders/404", headers=order_manager_headers).status_code == 404
        resp = client.patch("/api/orders/404/cancel", json={}, headers=order_manager_headers)
        assert resp.status_code == 404


class TestCashbookRoutes:
    def test_manual_entry_and_summary(self, client, admin_headers):
        resp = client.post(
            "/api/cashbook",
            json={"entry_type": "income", "category": "adjustment", "amount": 15000, "description": "Cash found"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        resp = client.post(
            "/api/cashbook",
            json={"entry_type": "expense", "category": "shipping_cost", "amount": -4000},
            headers=admin_headers,
        )
        assert resp.status_code == 201

        summary = client.get("/api/cashbook/summary", headers=admin_headers).get_json()["summary"]
        assert summary["income_krw"] == 15000
        assert summary["expense_krw"] == 4000
        assert summary["balance_krw"] == 11000

    @pytest.mark.parametrize("body", [
        {"entry_type": "income", "category": "adjustment", "amount": -100},
        {"entry_type": "expense", "category": "adjustment", "amount": 0},
        {"entry_type": "expense", "category": "salary", "amount": -100},
    ])
    def test_invalid_entry_is_400(self, client, admin_headers, body):
        resp = client.post("/api/cashbook", json=body, headers=admin_headers)
        assert resp.status_code == 400

    def test_bad_date_filter(self, client, admin_headers):
        resp = client.get("/api/cashbook?start=yesterday", headers=admin_headers)
        assert resp.status_code == 400


class TestSettingsRoutes:
    def test_settings_update_is_visible_immediately(self, client, admin_headers):
        _create_product(client, admin_headers, initial_stock=8)
        low = client.get("/api/inventory/low-stock", headers=admin_headers).get_json()
        assert low["count"] == 0

        resp = client.put(
            "/api/settings",
            json={"inventory.low_stock_threshold_default": 10},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["settings"]["inventory.low_stock_threshold_default"] == 10

        low = client.get("/api/inventory/low-stock", headers=admin_headers).get_json()
        assert low["count"] == 1

    def test_unknown_setting_is_400(self, client, admin_headers):
        resp = client.put("/api/settings", json={"no.such.key": 1}, headers=admin_headers)
        assert resp.status_code == 400

    def test_set_exchange_rate(self, client, admin_headers):
        resp = client.put(
            "/api/settings/exchange-rates",
            json={"currency": "cny", "rate": "191.25", "rate_date": "2026-01-01"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["exchange_rate"]["rate"] == "191.2500"

        settings = client.get("/api/settings", headers=admin_headers).get_json()
        assert settings["exchange_rates"][0]["rate_date"] == "2026-01-01"

    @pytest.mark.parametrize("body", [
        {"currency": "KRW", "rate": "1"},
        {"currency": "CNY", "rate": "-3"},
        {"currency": "CNY", "rate": "190", "rate_date": "01/02/2026"},
    ])
    def test_invalid_exchange_rate_is_400(self, client, admin_headers, body):
        resp = client.put("/api/settings/exchange-rates", json=body, headers=admin_headers)
        assert resp.status_code == 400
