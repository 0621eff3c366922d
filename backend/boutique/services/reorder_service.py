"""
Reorder intelligence: velocity, stock projection, supplier lead time and a
cash snapshot, assembled into the request a RecommendationProvider ranks.

All math here is deterministic; only the final ranking step is delegated.
A provider failure degrades to "no recommendations", never an exception.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import (
    InventoryRecord,
    Order,
    OrderItem,
    Product,
    PurchaseOrder,
    Supplier,
    RECOGNIZED_ORDER_STATUSES,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import ExternalServiceError
from .analytics_service import orders_in_window, summarize
from .pricing_service import resolve_line
from .recommendation_provider import RecommendationProvider, get_default_provider

logger = logging.getLogger(__name__)


def _cfg(key: str, default):
    return current_app.config.get(key, default)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def days_of_stock_left(available: int, daily_average: float) -> int:
    """available / daily sales, or the sentinel when nothing is selling."""
    if daily_average <= 0:
        return int(_cfg("STOCKOUT_SENTINEL_DAYS", 999))
    return _round_half_up(max(0, available) / daily_average)


def classify_trend(daily_average: float, prior_daily_average: float) -> str:
    band = float(_cfg("TREND_STABLE_BAND", 0.10))
    if daily_average > prior_daily_average * (1 + band):
        return "up"
    if daily_average < prior_daily_average * (1 - band):
        return "down"
    return "stable"


def profit_margin_pct(unit_price_cents: int, unit_cost_cents: int) -> float:
    if unit_price_cents <= 0:
        return 0.0
    return (unit_price_cents - unit_cost_cents) / unit_price_cents * 100.0


# =============================================================================
# Velocity
# =============================================================================

def _units_sold(as_of: datetime) -> dict[int, dict]:
    window = int(_cfg("VELOCITY_WINDOW_DAYS", 30))
    recent_start = as_of - timedelta(days=window)
    earliest = as_of - timedelta(days=window * 2)

    rows = (
        db.session.query(OrderItem.product_id, OrderItem.quantity, Order.created_at)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.status.in_(RECOGNIZED_ORDER_STATUSES),
            Order.created_at >= earliest,
            Order.created_at < as_of,
        )
        .all()
    )

    units: dict[int, dict] = defaultdict(lambda: {"last30": 0, "last60": 0})
    for product_id, quantity, created_at in rows:
        units[product_id]["last60"] += quantity
        if created_at >= recent_start:
            units[product_id]["last30"] += quantity
    return units


def _velocity_for(product: Product, units: dict) -> dict:
    window = int(_cfg("VELOCITY_WINDOW_DAYS", 30))
    last30 = units.get("last30", 0)
    last60 = units.get("last60", 0)
    daily = last30 / window
    prior_daily = (last60 - last30) / window
    return {
        "product_id": product.id,
        "product_name": product.name,
        "sku": product.sku,
        "last_30_days_sales": last30,
        "last_60_days_sales": last60,
        "daily_average": daily,
        "prior_daily_average": prior_daily,
        "trend": classify_trend(daily, prior_daily),
        "profit_margin_pct": profit_margin_pct(product.selling_price_cents or 0, product.cost_price_cents or 0),
    }


def _active_products() -> list[Product]:
    return db.session.query(Product).filter(Product.is_active.is_(True)).order_by(Product.id.asc()).all()


def calculate_sales_velocity(as_of: datetime | None = None) -> list[dict]:
    """Per-product velocity for active products that sold in the last 60 days."""
    as_of = as_of or utcnow()
    units = _units_sold(as_of)
    return [
        _velocity_for(product, units[product.id])
        for product in _active_products()
        if product.id in units and units[product.id]["last60"] > 0
    ]


# =============================================================================
# Stock projection
# =============================================================================

def _stock_by_product() -> dict[int, dict]:
    totals: dict[int, dict] = defaultdict(lambda: {"quantity": 0, "reserved": 0})
    for record in db.session.query(InventoryRecord).all():
        totals[record.product_id]["quantity"] += record.quantity
        totals[record.product_id]["reserved"] += record.reserved_quantity
    return totals


def _thresholds(product: Product) -> tuple[int, int]:
    threshold = product.low_stock_threshold
    if threshold is None:
        threshold = int(_cfg("DEFAULT_LOW_STOCK_THRESHOLD", 10))
    reorder_quantity = product.reorder_quantity
    if reorder_quantity is None:
        reorder_quantity = int(_cfg("DEFAULT_REORDER_QUANTITY", 50))
    return threshold, reorder_quantity


def inventory_status(as_of: datetime | None = None) -> list[dict]:
    """Stock, availability and days of cover for every active tracked product."""
    as_of = as_of or utcnow()
    units = _units_sold(as_of)
    stock = _stock_by_product()
    window = int(_cfg("VELOCITY_WINDOW_DAYS", 30))

    rows = []
    for product in _active_products():
        if not product.track_inventory:
            continue
        on_hand = stock[product.id]["quantity"]
        reserved = stock[product.id]["reserved"]
        available = max(0, on_hand - reserved)
        daily = units[product.id]["last30"] / window if product.id in units else 0.0
        threshold, reorder_quantity = _thresholds(product)

        if available <= 0:
            status = "out_of_stock"
        elif available <= threshold:
            status = "low_stock"
        else:
            status = "in_stock"

        rows.append({
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "quantity": on_hand,
            "reserved": reserved,
            "available": available,
            "daily_average": daily,
            "days_of_stock_left": days_of_stock_left(available, daily),
            "low_stock_threshold": threshold,
            "reorder_quantity": reorder_quantity,
            "status": status,
        })
    return rows


# =============================================================================
# Suppliers
# =============================================================================

def _lead_time_days(sent_at: datetime, received_at: datetime) -> int:
    return math.ceil((received_at - sent_at).total_seconds() / 86400)


def supplier_performance() -> list[dict]:
    """
    Measured lead time and completion rate per active supplier.

    Lead time is the mean of whole days (rounded up) from sent to received;
    without history it falls back to the supplier's nominal figure, then to
    DEFAULT_SUPPLIER_LEAD_TIME_DAYS.
    """
    default_lead = int(_cfg("DEFAULT_SUPPLIER_LEAD_TIME_DAYS", 7))
    suppliers = db.session.query(Supplier).filter(Supplier.is_active.is_(True)).order_by(Supplier.id.asc()).all()

    rows = []
    for supplier in suppliers:
        sent = (
            db.session.query(PurchaseOrder)
            .filter(PurchaseOrder.supplier_id == supplier.id, PurchaseOrder.sent_at.isnot(None))
            .all()
        )
        received = [po for po in sent if po.status == "received" and po.received_at is not None]

        if received:
            lead_times = [_lead_time_days(po.sent_at, po.received_at) for po in received]
            average_lead = _round_half_up(sum(lead_times) / len(lead_times))
            source = "history"
        elif supplier.lead_time_days is not None:
            average_lead = supplier.lead_time_days
            source = "nominal"
        else:
            average_lead = default_lead
            source = "default"

        rows.append({
            "supplier_id": supplier.id,
            "supplier_name": supplier.name,
            "average_lead_time_days": average_lead,
            "lead_time_source": source,
            "total_orders": len(sent),
            "completed_orders": len(received),
            "on_time_rate": len(received) / len(sent) * 100.0 if sent else 100.0,
            "total_spent_cents": sum(po.total_cents for po in received),
        })
    return rows


# =============================================================================
# Cash
# =============================================================================

def financial_snapshot(as_of: datetime | None = None) -> dict:
    """
    Inventory value at cost plus trailing-30-day recognized profit, of which
    REINVESTABLE_PROFIT_FRACTION (floored at zero) is treated as available
    for restocking.
    """
    as_of = as_of or utcnow()
    window = int(_cfg("VELOCITY_WINDOW_DAYS", 30))
    fraction = float(_cfg("REINVESTABLE_PROFIT_FRACTION", 0.7))

    inventory_value = 0
    for record in db.session.query(InventoryRecord).all():
        if record.quantity <= 0:
            continue
        unit_cost = resolve_line(record.product, record.variant).unit_cost_cents
        inventory_value += unit_cost * record.quantity

    trailing = summarize(orders_in_window(as_of - timedelta(days=window), as_of))

    return {
        "as_of": to_utc_z(as_of),
        "inventory_value_cents": inventory_value,
        "revenue_cents": trailing["revenue_cents"],
        "cost_cents": trailing["cost_cents"],
        "profit_cents": trailing["profit_cents"],
        "order_count": trailing["order_count"],
        "reinvestable_fraction": fraction,
        "available_cash_cents": max(0.0, trailing["profit_cents"] * fraction),
    }


# =============================================================================
# Recommendation orchestration
# =============================================================================

def enriched_products(as_of: datetime | None = None, *, limit: int | None = None) -> list[dict]:
    """
    One record per active tracked product combining velocity, stock cover,
    supplier lead time and pricing; most urgent first.
    """
    as_of = as_of or utcnow()
    units = _units_sold(as_of)
    stock = {row["product_id"]: row for row in inventory_status(as_of)}
    suppliers = {row["supplier_id"]: row for row in supplier_performance()}
    default_lead = int(_cfg("DEFAULT_SUPPLIER_LEAD_TIME_DAYS", 7))

    records = []
    for product in _active_products():
        if product.id not in stock:
            continue
        velocity = _velocity_for(product, units.get(product.id, {}))
        status = stock[product.id]
        supplier = suppliers.get(product.supplier_id)
        lead_time = supplier["average_lead_time_days"] if supplier else default_lead

        records.append({
            "productId": product.id,
            "name": product.name,
            "sku": product.sku,
            "category": product.category.name if product.category else None,
            "pricing": {
                "unitCostCents": product.cost_price_cents or 0,
                "unitPriceCents": product.selling_price_cents or 0,
                "profitMarginPct": velocity["profit_margin_pct"],
            },
            "velocity": {
                "last30DaysSales": velocity["last_30_days_sales"],
                "last60DaysSales": velocity["last_60_days_sales"],
                "dailyAverage": velocity["daily_average"],
                "trend": velocity["trend"],
            },
            "stock": {
                "onHand": status["quantity"],
                "reserved": status["reserved"],
                "available": status["available"],
                "daysOfStockLeft": status["days_of_stock_left"],
            },
            "supplier": {
                "id": product.supplier_id,
                "name": supplier["supplier_name"] if supplier else None,
                "leadTimeDays": lead_time,
                "onTimeRate": supplier["on_time_rate"] if supplier else None,
            },
            "lowStockThreshold": status["low_stock_threshold"],
            "reorderQuantity": status["reorder_quantity"],
            "needsAttention": (
                status["days_of_stock_left"] <= lead_time
                or status["available"] <= status["low_stock_threshold"]
            ),
        })

    records.sort(key=lambda r: (r["stock"]["daysOfStockLeft"], -r["velocity"]["dailyAverage"], r["productId"]))
    return records[:limit] if limit else records


def build_recommendation_request(as_of: datetime | None = None) -> dict:
    as_of = as_of or utcnow()
    limit = int(_cfg("RECOMMENDATION_INPUT_LIMIT", 50))

    velocity = calculate_sales_velocity(as_of)
    suppliers = supplier_performance()
    financials = financial_snapshot(as_of)
    products = enriched_products(as_of)

    return {
        "salesHistory": velocity,
        "inventory": inventory_status(as_of),
        "suppliers": suppliers,
        "financials": financials,
        "products": products[:limit],
        "metadata": {
            "generatedAt": to_utc_z(as_of),
            "totalProducts": len(products),
            "availableBudget": financials["available_cash_cents"],
            "dataQuality": {
                "productsWithSales": len(velocity),
                "productsWithoutSupplier": sum(1 for p in products if p["supplier"]["id"] is None),
                "suppliersWithHistory": sum(1 for s in suppliers if s["lead_time_source"] == "history"),
            },
        },
    }


def generate_recommendations(
    provider: RecommendationProvider | None = None,
    *,
    as_of: datetime | None = None,
) -> dict:
    """
    Prepare inputs and ask the provider for tiered recommendations.

    Returns {"success", "recommendations", "metadata", "error"}; a provider
    failure yields success=False and recommendations=None.
    """
    request = build_recommendation_request(as_of)
    provider = provider or get_default_provider()
    metadata = {**request["metadata"], "provider": provider.name}

    try:
        recommendations = provider.recommend(request)
    except ExternalServiceError as e:
        logger.warning("Reorder recommendations unavailable from %s provider: %s", provider.name, e)
        return {"success": False, "recommendations": None, "metadata": metadata, "error": str(e)}
    except Exception as e:
        logger.exception("Reorder recommendation provider %s failed unexpectedly", provider.name)
        return {"success": False, "recommendations": None, "metadata": metadata, "error": f"Provider error: {e}"}

    return {"success": True, "recommendations": recommendations, "metadata": metadata, "error": None}
