# Overview: Pytest coverage for the HTTP surface (status codes and JSON shapes).

"""
API Route Tests

Drives the Flask blueprints through the test client: domain errors map to
their status codes with {"error", "details"} bodies, unexpected failures
surface as a generic 500, and replays answer 200 instead of 201.
"""

from datetime import datetime
from decimal import Decimal

from boutique.services import order_service


class TestSystemRoutes:
    def test_health_degraded_without_location(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json["status"] == "degraded"
        assert response.json["checks"]["integrations"]["recommendation_provider"] == "deterministic"

    def test_health_with_location(self, client, db_session, location):
        response = client.get('/health')
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["details"]["active_locations"] == 1

    def test_cors_for_allowed_origin(self, client, db_session):
        response = client.get('/health', headers={"Origin": "http://localhost:5173"})
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

        response = client.get('/health', headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in response.headers


class TestCheckoutRoutes:
    def test_checkout_created_then_replayed(self, client, db_session, location, product, stock, cart):
        stock(product, 5)
        body = cart(
            location,
            [(product, 1)],
            payments=[{"method": "cash", "amount_cents": 2000}],
            client_token="till-9-0001",
        )

        first = client.post('/api/orders/checkout', json=body)
        assert first.status_code == 201
        order = first.json["order"]
        assert order["change_cents"] == 1000
        assert order["replayed"] is False
        assert len(order["items"]) == 1

        second = client.post('/api/orders/checkout', json=body)
        assert second.status_code == 200
        assert second.json["order"]["id"] == order["id"]
        assert second.json["order"]["replayed"] is True

    def test_token_conflict_is_409(self, client, db_session, location, product, stock, cart):
        stock(product, 5)
        client.post('/api/orders/checkout', json=cart(location, [(product, 1)], client_token="till-9-0002"))
        response = client.post('/api/orders/checkout', json=cart(location, [(product, 2)], client_token="till-9-0002"))
        assert response.status_code == 409

    def test_missing_location(self, client, db_session, product):
        response = client.post('/api/orders/checkout', json={"items": [{"product_id": product.id, "quantity": 1}]})
        assert response.status_code == 400
        assert response.json["error"] == "location_id is required"

    def test_empty_cart(self, client, db_session, location):
        response = client.post('/api/orders/checkout', json={"location_id": location.id, "items": []})
        assert response.status_code == 400
        assert response.json["error"] == "Cart must contain at least one item"

    def test_non_positive_quantity(self, client, db_session, location, product):
        response = client.post('/api/orders/checkout', json={
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": 0}],
        })
        assert response.status_code == 400
        assert response.json["error"] == "items[0].quantity must be greater than zero"

    def test_unknown_payment_method(self, client, db_session, location, product, stock, cart):
        stock(product, 5)
        body = cart(location, [(product, 1)], payments=[{"method": "cheque", "amount_cents": 1000}])
        response = client.post('/api/orders/checkout', json=body)
        assert response.status_code == 400
        assert response.json["details"]["method"] == "cheque"

    def test_location_not_configured_is_404(self, client, db_session, product):
        response = client.post('/api/orders/checkout', json={
            "location_id": 404,
            "items": [{"product_id": product.id, "quantity": 1}],
        })
        assert response.status_code == 404
        assert response.json["error"] == "location not configured"

    def test_unexpected_failure_is_generic_500(self, client, db_session, location, product, stock, cart, monkeypatch):
        stock(product, 5)

        def _explode(req):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(order_service, "checkout", _explode)
        response = client.post('/api/orders/checkout', json=cart(location, [(product, 1)]))
        assert response.status_code == 500
        assert response.json == {"error": "failed to process payment"}

    def test_invalid_json(self, client, db_session):
        response = client.post('/api/orders/checkout', data="not json", content_type="application/json")
        assert response.status_code == 400


class TestLayawayRoutes:
    def test_layaway_flow(self, client, db_session, location, product, stock, cart):
        stock(product, 5)
        body = cart(
            location,
            [(product, 2)],
            payments=[{"method": "cash", "amount_cents": 1000}],
            layaway_customer_name="Achieng Otieno",
            layaway_customer_phone="+254722222222",
            deposit_percent=50,
        )
        created = client.post('/api/orders/layaway', json=body)
        assert created.status_code == 201
        order_id = created.json["order"]["id"]

        short = client.post(f'/api/orders/{order_id}/layaway/complete', json={"method": "cash", "amount_cents": 500})
        assert short.status_code == 400
        assert short.json["error"] == "insufficient payment"

        stats = client.get('/api/orders/layaway/stats')
        assert stats.json["active_count"] == 1
        assert stats.json["outstanding_cents"] == 1000

        done = client.post(f'/api/orders/{order_id}/layaway/complete', json={"method": "mpesa", "amount_cents": 1000})
        assert done.status_code == 200
        assert done.json["order"]["status"] == "completed"

    def test_get_unknown_order(self, client, db_session):
        assert client.get('/api/orders/999').status_code == 404


class TestInventoryRoutes:
    def test_adjust_and_availability(self, client, db_session, location, product):
        response = client.post('/api/inventory/adjust', json={
            "product_id": product.id,
            "location_id": location.id,
            "quantity": 8,
            "movement_type": "initial",
        })
        assert response.status_code == 201
        assert response.json["record"]["quantity"] == 8

        availability = client.get(f'/api/inventory/availability?product_id={product.id}&location_id={location.id}')
        assert availability.json["available"] == 8

    def test_adjust_rejects_sale_movements(self, client, db_session, location, product):
        response = client.post('/api/inventory/adjust', json={
            "product_id": product.id,
            "location_id": location.id,
            "quantity": -1,
            "movement_type": "sale",
        })
        assert response.status_code == 400

    def test_adjust_rejects_fractional_quantity(self, client, db_session, location, product):
        response = client.post('/api/inventory/adjust', json={
            "product_id": product.id,
            "location_id": location.id,
            "quantity": "2.5",
        })
        assert response.status_code == 400

    def test_drift_and_reconcile(self, client, db_session, location, product, stock):
        record = stock(product, 10)
        record.quantity = 3
        db_session.commit()

        drift = client.get('/api/inventory/drift')
        assert drift.json["count"] == 1

        reconciled = client.post(f'/api/inventory/records/{record.id}/reconcile', json={})
        assert reconciled.status_code == 200
        assert reconciled.json["record"]["quantity"] == 10


class TestPricingRoutes:
    def test_resolve_variant(self, client, db_session, taxed_product, variants):
        response = client.get(
            f'/api/pricing/resolve?product_id={taxed_product.id}&variant_id={variants["exempt"].id}'
        )
        assert response.status_code == 200
        assert Decimal(response.json["tax_rate"]) == 0
        assert response.json["unit_price_cents"] == 2000


class TestAnalyticsRoutes:
    def test_date_only_upper_bound_includes_the_day(self, client, db_session, product, stock, make_checkout):
        stock(product, 5)
        make_checkout([(product, 1)], created_at=datetime(2026, 4, 10, 18, 30))

        response = client.get('/api/analytics/summary?from=2026-04-10&to=2026-04-10')
        assert response.status_code == 200
        assert response.json["order_count"] == 1
        assert response.json["revenue_cents"] == 1000

    def test_bad_date(self, client, db_session):
        response = client.get('/api/analytics/products?from=yesterday')
        assert response.status_code == 400

    def test_trend_grouping_validated(self, client, db_session):
        response = client.get('/api/analytics/trend?group_by=fortnight')
        assert response.status_code == 400


class TestReorderRoutes:
    def test_offline_recommendations(self, client, db_session, product, stock):
        stock(product, 2)
        response = client.post('/api/reorder/recommendations', json={"offline": True})
        assert response.status_code == 200
        assert response.json["success"] is True
        recommended = response.json["recommendations"]["recommendations"]["recommended"]
        assert [row["productId"] for row in recommended] == [product.id]

    def test_suppliers(self, client, db_session, supplier):
        response = client.get('/api/reorder/suppliers')
        assert response.json["suppliers"][0]["average_lead_time_days"] == 7


class TestPurchaseOrderRoutes:
    def test_create_send_receive(self, client, db_session, location, supplier, product):
        created = client.post('/api/purchase-orders', json={
            "supplier_id": supplier.id,
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": 12}],
            "expected_date": "2026-11-01",
        })
        assert created.status_code == 201
        po_id = created.json["purchase_order"]["id"]
        assert created.json["purchase_order"]["expected_date"] == "2026-11-01"

        assert client.post(f'/api/purchase-orders/{po_id}/send').json["purchase_order"]["status"] == "sent"
        received = client.post(f'/api/purchase-orders/{po_id}/receive', json={})
        assert received.json["purchase_order"]["status"] == "received"

    def test_cancel_received_is_409(self, client, db_session, location, supplier, product):
        created = client.post('/api/purchase-orders', json={
            "supplier_id": supplier.id,
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": 1}],
        })
        po_id = created.json["purchase_order"]["id"]
        client.post(f'/api/purchase-orders/{po_id}/send')
        client.post(f'/api/purchase-orders/{po_id}/receive')
        assert client.post(f'/api/purchase-orders/{po_id}/cancel').status_code == 409
