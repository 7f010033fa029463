"""
Stock API tests.

Verifies:
- Staff only
- Short stock at checkout is a 409 InsufficientStockError
- Adjust / settings / history / attention endpoints and their error envelopes
"""

import pytest


def _adjust(client, headers, product_id, **body):
    return client.post(f"/api/stock/products/{product_id}", json=body, headers=headers)


class TestAccess:
    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/stock/attention"),
        ("POST", "/api/stock/products/1"),
        ("PATCH", "/api/stock/products/1/settings"),
        ("GET", "/api/stock/products/1/history"),
    ])
    def test_requires_actor(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401

    def test_customer_denied(self, client, db_session, customer_headers, croissant):
        resp = _adjust(client, customer_headers, croissant.id, adjustment_type="add", quantity=1, reason="restock")
        assert resp.status_code == 403


class TestCheckout:
    def test_pos_short_stock_is_409(self, client, db_session, staff_headers, active_shift, croissant):
        resp = client.post("/api/pos/orders", json={
            "items": [{"product_id": croissant.id, "quantity": 5}],
            "payment_method": "cash",
        }, headers=staff_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "InsufficientStockError"
        assert resp.json["details"] == {"product_id": croissant.id, "available": 3, "requested": 5}

    def test_cancel_gives_stock_back(self, client, db_session, staff_headers, active_shift, croissant):
        resp = client.post("/api/pos/orders", json={
            "items": [{"product_id": croissant.id, "quantity": 3}],
            "payment_method": "cash",
        }, headers=staff_headers)
        order_id = resp.json["order"]["id"]

        menu = client.get("/api/pos/products", headers=staff_headers).json["products"]
        assert menu[0]["is_sold_out"] is True
        assert menu[0]["is_available_for_purchase"] is False

        client.patch(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=staff_headers)

        history = client.get(f"/api/stock/products/{croissant.id}/history", headers=staff_headers).json
        assert [(log["reason"], log["quantity_after"]) for log in history["stock_logs"]] == [
            ("order_cancelled", 3),
            ("sale", 0),
        ]
        assert history["stock_logs"][0]["order_number"] == resp.json["order"]["order_number"]


class TestAdjust:
    def test_restock(self, client, db_session, staff_headers, croissant):
        resp = _adjust(client, staff_headers, croissant.id,
                       adjustment_type="add", quantity=12, reason="restock", notes="Morning delivery")
        assert resp.status_code == 200
        assert resp.json["product"]["stock_quantity"] == 15
        assert resp.json["product"]["is_low_stock"] is False
        log = resp.json["stock_log"]
        assert log["quantity_change"] == 12
        assert log["reason"] == "restock"
        assert log["changed_by"] == "cashier-1"
        assert log["notes"] == "Morning delivery"

    @pytest.mark.parametrize("body", [
        {"quantity": 1, "reason": "restock"},
        {"adjustment_type": "add", "reason": "restock"},
        {"adjustment_type": "add", "quantity": 1},
        {"adjustment_type": "add", "quantity": 1, "reason": "sale"},
        {"adjustment_type": "halve", "quantity": 1, "reason": "restock"},
    ])
    def test_bad_body(self, client, db_session, staff_headers, croissant, body):
        resp = _adjust(client, staff_headers, croissant.id, **body)
        assert resp.status_code == 400
        assert resp.json["code"] == "ValidationError"

    def test_untracked_product_conflicts(self, client, db_session, staff_headers, americano):
        resp = _adjust(client, staff_headers, americano.id, adjustment_type="add", quantity=1, reason="restock")
        assert resp.status_code == 409
        assert resp.json["code"] == "StateError"

    def test_unknown_product(self, client, db_session, staff_headers):
        resp = _adjust(client, staff_headers, 424242, adjustment_type="add", quantity=1, reason="restock")
        assert resp.status_code == 404


class TestSettingsAndAttention:
    def test_enable_tracking_then_attention(self, client, db_session, staff_headers, americano, croissant):
        resp = client.get("/api/stock/attention", headers=staff_headers)
        assert resp.json["products"] == []

        resp = client.patch(
            f"/api/stock/products/{americano.id}/settings",
            json={"track_stock": True, "low_stock_threshold": 10},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        product = resp.json["product"]
        assert product["track_stock"] is True
        assert product["stock_quantity"] == 0
        assert product["low_stock_threshold"] == 10
        assert product["is_sold_out"] is True

        resp = client.get("/api/stock/attention", headers=staff_headers)
        assert [p["id"] for p in resp.json["products"]] == [americano.id]

    @pytest.mark.parametrize("body", [{}, {"track_stock": "on"}, {"track_stock": True, "low_stock_threshold": -1}])
    def test_bad_settings(self, client, db_session, staff_headers, americano, body):
        resp = client.patch(f"/api/stock/products/{americano.id}/settings", json=body, headers=staff_headers)
        assert resp.status_code == 400

    def test_history_filters(self, client, db_session, staff_headers, croissant):
        _adjust(client, staff_headers, croissant.id, adjustment_type="add", quantity=2, reason="restock")
        _adjust(client, staff_headers, croissant.id, adjustment_type="remove", quantity=1, reason="expired")

        resp = client.get(f"/api/stock/products/{croissant.id}/history?reason=expired", headers=staff_headers)
        assert resp.status_code == 200
        assert [log["quantity_after"] for log in resp.json["stock_logs"]] == [4]
        assert resp.json["pagination"]["total"] == 1

        resp = client.get(f"/api/stock/products/{croissant.id}/history?reason=stolen", headers=staff_headers)
        assert resp.status_code == 400
