"""
Reorder intelligence tests.

Velocity, days of cover, supplier lead time and the cash snapshot are
deterministic; only ranking is delegated to a provider, and a provider
failure must degrade to "no recommendations" rather than an error.
"""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from boutique.services import inventory_service, purchasing_service, reorder_service
from boutique.services.inventory_service import ItemRef
from boutique.services.recommendation_provider import (
    DeterministicRecommendationProvider,
    HttpRecommendationProvider,
    RecommendationProvider,
    get_default_provider,
    normalize_recommendations,
)
from boutique.validation import ExternalServiceError


AS_OF = datetime(2026, 3, 31)


@pytest.fixture
def sales_history(db_session, product, taxed_product, stock, make_checkout):
    """
    product: 15 units sold in the prior window, 30 in the last 30 days,
    5 left on hand. taxed_product: 20 on hand, never sold.
    """
    stock(product, 50)
    stock(taxed_product, 20)
    make_checkout([(product, 15)], created_at=datetime(2026, 2, 15, 11, 0))
    make_checkout([(product, 30)], created_at=datetime(2026, 3, 20, 16, 0))


class TestStockMath:
    def test_no_sales_returns_sentinel(self, app):
        with app.app_context():
            assert reorder_service.days_of_stock_left(10, 0) == 999

    @pytest.mark.parametrize("available,daily,expected", [
        (10, 3.0, 3),
        (5, 2.0, 3),
        (0, 1.5, 0),
        (30, 1.0, 30),
    ])
    def test_days_of_stock_left_rounds_half_up(self, app, available, daily, expected):
        with app.app_context():
            assert reorder_service.days_of_stock_left(available, daily) == expected

    @pytest.mark.parametrize("current,prior,trend", [
        (1.0, 0.5, "up"),
        (1.0, 1.05, "stable"),
        (0.5, 1.0, "down"),
        (0.0, 0.0, "stable"),
    ])
    def test_classify_trend(self, app, current, prior, trend):
        with app.app_context():
            assert reorder_service.classify_trend(current, prior) == trend

    def test_profit_margin(self):
        assert reorder_service.profit_margin_pct(1000, 600) == pytest.approx(40.0)
        assert reorder_service.profit_margin_pct(0, 600) == 0.0


class TestVelocityAndStatus:
    def test_velocity_only_lists_products_with_sales(self, db_session, product, sales_history):
        rows = reorder_service.calculate_sales_velocity(AS_OF)

        assert [row["product_id"] for row in rows] == [product.id]
        row = rows[0]
        assert row["last_30_days_sales"] == 30
        assert row["last_60_days_sales"] == 45
        assert row["daily_average"] == pytest.approx(1.0)
        assert row["prior_daily_average"] == pytest.approx(0.5)
        assert row["trend"] == "up"
        assert row["profit_margin_pct"] == pytest.approx(40.0)

    def test_inventory_status(self, db_session, product, taxed_product, sales_history):
        rows = {row["product_id"]: row for row in reorder_service.inventory_status(AS_OF)}

        assert rows[product.id]["available"] == 5
        assert rows[product.id]["days_of_stock_left"] == 5
        assert rows[product.id]["status"] == "low_stock"

        assert rows[taxed_product.id]["days_of_stock_left"] == 999
        assert rows[taxed_product.id]["status"] == "in_stock"
        assert rows[taxed_product.id]["low_stock_threshold"] == 10

    def test_reserved_stock_is_not_available(self, db_session, location, product, sales_history):
        inventory_service.reserve(ItemRef(product.id), location.id, 5)
        row = next(r for r in reorder_service.inventory_status(AS_OF) if r["product_id"] == product.id)
        assert row["available"] == 0
        assert row["status"] == "out_of_stock"


class TestSupplierPerformance:
    def test_default_lead_time_without_history(self, db_session, supplier):
        row = reorder_service.supplier_performance()[0]
        assert row["average_lead_time_days"] == 7
        assert row["lead_time_source"] == "default"
        assert row["on_time_rate"] == 100.0
        assert row["total_orders"] == 0

    def test_nominal_lead_time(self, db_session, supplier):
        supplier.lead_time_days = 10
        db_session.commit()
        row = reorder_service.supplier_performance()[0]
        assert row["average_lead_time_days"] == 10
        assert row["lead_time_source"] == "nominal"

    def test_measured_lead_time_rounds_partial_days_up(self, db_session, location, supplier, product):
        po = purchasing_service.create_purchase_order(
            supplier.id, location.id, [{"product_id": product.id, "quantity": 10}]
        )
        purchasing_service.send_purchase_order(po.id)
        purchasing_service.receive_purchase_order(po.id)

        sent = datetime(2026, 3, 1, 9, 0)
        po.sent_at = sent
        po.received_at = sent + timedelta(days=3, hours=12)

        pending = purchasing_service.create_purchase_order(
            supplier.id, location.id, [{"product_id": product.id, "quantity": 5}]
        )
        purchasing_service.send_purchase_order(pending.id)
        db_session.commit()

        row = reorder_service.supplier_performance()[0]
        assert row["average_lead_time_days"] == 4
        assert row["lead_time_source"] == "history"
        assert row["total_orders"] == 2
        assert row["completed_orders"] == 1
        assert row["on_time_rate"] == pytest.approx(50.0)
        assert row["total_spent_cents"] == 6000


class TestFinancialSnapshot:
    def test_available_cash_is_share_of_trailing_profit(self, db_session, sales_history):
        snapshot = reorder_service.financial_snapshot(AS_OF)

        # 5 x 6.00 + 20 x 8.00 at cost
        assert snapshot["inventory_value_cents"] == 19_000
        assert snapshot["revenue_cents"] == pytest.approx(30_000)
        assert snapshot["profit_cents"] == pytest.approx(12_000)
        assert snapshot["reinvestable_fraction"] == pytest.approx(0.7)
        assert snapshot["available_cash_cents"] == pytest.approx(8_400)

    def test_no_profit_means_no_cash(self, db_session, product, stock):
        stock(product, 10)
        assert reorder_service.financial_snapshot(AS_OF)["available_cash_cents"] == 0


class TestRecommendations:
    def test_request_shape(self, db_session, product, sales_history):
        request = reorder_service.build_recommendation_request(AS_OF)

        assert set(request) == {"salesHistory", "inventory", "suppliers", "financials", "products", "metadata"}
        first = request["products"][0]
        assert first["productId"] == product.id
        assert first["stock"]["daysOfStockLeft"] == 5
        assert first["supplier"]["leadTimeDays"] == 7
        assert first["needsAttention"] is True
        assert request["metadata"]["availableBudget"] == pytest.approx(8_400)
        assert request["metadata"]["dataQuality"]["productsWithSales"] == 1

    def test_deterministic_ranking(self, db_session, product, supplier, sales_history):
        result = reorder_service.generate_recommendations(DeterministicRecommendationProvider(), as_of=AS_OF)

        assert result["success"] is True
        assert result["error"] is None
        assert result["metadata"]["provider"] == "deterministic"

        critical = result["recommendations"]["recommendations"]["critical"]
        assert [row["productId"] for row in critical] == [product.id]
        # ceil(1.0 * (7 + 30)) - 5 on hand
        assert critical[0]["recommendedQuantity"] == 32
        assert critical[0]["estimatedCost"] == 32 * 600
        assert critical[0]["urgency"] == "critical"

        allocation = result["recommendations"]["budgetAllocation"]
        assert allocation[0]["supplierId"] == supplier.id
        assert allocation[0]["allocatedBudget"] == pytest.approx(8_400)

    def test_http_provider_success(self, db_session, product, sales_history):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "recommendations": {
                    "critical": [{"productId": product.id, "recommendedQuantity": 40, "urgency": "critical"}],
                    "recommended": [],
                },
                "insights": ["Restock linen before the long weekend"],
            })

        provider = HttpRecommendationProvider(
            "https://ranker.example.test/recommend", api_key="k-123", transport=httpx.MockTransport(handler)
        )
        result = reorder_service.generate_recommendations(provider, as_of=AS_OF)

        assert result["success"] is True
        assert seen["auth"] == "Bearer k-123"
        assert seen["body"]["products"][0]["productId"] == product.id
        tiers = result["recommendations"]["recommendations"]
        assert tiers["critical"][0]["recommendedQuantity"] == 40
        assert tiers["optional"] == []
        assert result["recommendations"]["insights"] == ["Restock linen before the long weekend"]

    def test_provider_failure_degrades(self, db_session, sales_history):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="model overloaded"))
        provider = HttpRecommendationProvider("https://ranker.example.test/recommend", transport=transport)

        result = reorder_service.generate_recommendations(provider, as_of=AS_OF)

        assert result["success"] is False
        assert result["recommendations"] is None
        assert "HTTP 500" in result["error"]
        assert result["metadata"]["totalProducts"] == 2

    def test_provider_unreachable_degrades(self, db_session, sales_history):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = HttpRecommendationProvider("https://ranker.example.test/recommend", transport=httpx.MockTransport(handler))
        result = reorder_service.generate_recommendations(provider, as_of=AS_OF)
        assert result["success"] is False

    def test_malformed_response_degrades(self, db_session, sales_history):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"items": []}))
        provider = HttpRecommendationProvider("https://ranker.example.test/recommend", transport=transport)

        result = reorder_service.generate_recommendations(provider, as_of=AS_OF)
        assert result["success"] is False
        assert result["recommendations"] is None

    @pytest.mark.parametrize("body", [
        {"recommendations": {}, "insights": 5},
        {"recommendations": {}, "riskAlerts": "stock up"},
        {"recommendations": {}, "totalEstimatedCost": "lots"},
    ])
    def test_mistyped_fields_degrade(self, db_session, sales_history, body):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        provider = HttpRecommendationProvider("https://ranker.example.test/recommend", transport=transport)

        result = reorder_service.generate_recommendations(provider, as_of=AS_OF)
        assert result["success"] is False
        assert result["recommendations"] is None
        assert "must be" in result["error"]

    def test_unexpected_provider_error_degrades(self, db_session, sales_history):
        class BrokenProvider(RecommendationProvider):
            name = "broken"

            def recommend(self, request):
                raise KeyError("tiers")

        result = reorder_service.generate_recommendations(BrokenProvider(), as_of=AS_OF)
        assert result["success"] is False
        assert result["recommendations"] is None
        assert result["metadata"]["provider"] == "broken"


class TestProviderSelection:
    def test_normalize_rejects_non_object(self):
        with pytest.raises(ExternalServiceError):
            normalize_recommendations(["critical"])

    def test_normalize_fills_defaults(self):
        normalized = normalize_recommendations({"recommendations": {"optional": [{"productId": 3, "urgency": "??"}]}})
        row = normalized["recommendations"]["optional"][0]
        assert row["urgency"] == "medium"
        assert row["recommendedQuantity"] == 0
        assert normalized["totalEstimatedCost"] == 0

    def test_default_provider_follows_config(self, app, monkeypatch):
        with app.app_context():
            assert isinstance(get_default_provider(), DeterministicRecommendationProvider)
            monkeypatch.setitem(app.config, "RECOMMENDATION_PROVIDER_URL", "https://ranker.example.test")
            assert isinstance(get_default_provider(), HttpRecommendationProvider)
