"""
Sales analytics over the order ledger.

RECOGNITION RULE (applied to every figure in this module):
- completed order: full total as revenue, full line cost as cost
- layaway order: paid amount as revenue, line cost * paid/total as cost
  (ratio 0 when total is 0)
- cancelled / refunded: excluded

Orders are attributed to the window containing their created_at, at their
current settlement state. Windows are half-open: start <= created_at < end.

Every breakdown allocates an order's recognized revenue to its lines in
proportion to line totals, so per-product, per-category, per-hour and
per-day figures all sum back to the top line for the same window.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    Product,
    PAYMENT_STATUS_REFUNDED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_LAYAWAY,
    RECOGNIZED_ORDER_STATUSES,
)
from ..validation import PAYMENT_METHODS, ValidationError


TREND_GROUPINGS = ("day", "week", "month")
UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class Recognition:
    ratio: float
    revenue_cents: float
    cost_cents: float

    @property
    def profit_cents(self) -> float:
        return self.revenue_cents - self.cost_cents


def recognition_ratio(order: Order) -> float:
    """Share of an order recognized so far, always within [0, 1]."""
    if order.status == ORDER_STATUS_COMPLETED:
        return 1.0
    if order.status == ORDER_STATUS_LAYAWAY:
        if order.total_cents <= 0:
            return 0.0
        return min(1.0, max(0.0, order.paid_cents / order.total_cents))
    return 0.0


def recognize(order: Order) -> Recognition:
    ratio = recognition_ratio(order)
    if order.status == ORDER_STATUS_COMPLETED:
        revenue = float(order.total_cents)
    elif order.status == ORDER_STATUS_LAYAWAY:
        revenue = float(min(order.paid_cents, max(order.total_cents, 0)))
    else:
        revenue = 0.0
    return Recognition(ratio=ratio, revenue_cents=revenue, cost_cents=order.cost_cents * ratio)


def allocate_lines(order: Order, recognition: Recognition | None = None) -> list[tuple[OrderItem, float, float]]:
    """
    Split an order's recognized revenue and cost across its items.

    Revenue goes by line_total weight (equal shares when every line is
    zero); the last line takes the remainder so the parts sum exactly.
    """
    recognition = recognition or recognize(order)
    items = list(order.items)
    if not items:
        return []

    weight_total = sum(item.line_total_cents for item in items)
    allocated: list[tuple[OrderItem, float, float]] = []
    revenue_left = recognition.revenue_cents
    for index, item in enumerate(items):
        if index == len(items) - 1:
            revenue = revenue_left
        elif weight_total > 0:
            revenue = recognition.revenue_cents * item.line_total_cents / weight_total
        else:
            revenue = recognition.revenue_cents / len(items)
        revenue_left -= revenue
        cost = item.unit_cost_cents * item.quantity * recognition.ratio
        allocated.append((item, revenue, cost))
    return allocated


def percent_change(current: float, previous: float) -> float:
    """Percent change vs a baseline; 0 when the baseline is not positive."""
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100.0


def _validate_window(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError("from and to are required")
    if end <= start:
        raise ValidationError("to must be after from")


def orders_in_window(start: datetime, end: datetime, *, location_id: int | None = None) -> list[Order]:
    query = (
        db.session.query(Order)
        .options(selectinload(Order.items), selectinload(Order.payments))
        .filter(
            Order.status.in_(RECOGNIZED_ORDER_STATUSES),
            Order.created_at >= start,
            Order.created_at < end,
        )
    )
    if location_id is not None:
        query = query.filter(Order.location_id == location_id)
    return query.order_by(Order.created_at.asc(), Order.id.asc()).all()


def summarize(orders: Iterable[Order]) -> dict:
    revenue = 0.0
    cost = 0.0
    count = 0
    for order in orders:
        recognition = recognize(order)
        revenue += recognition.revenue_cents
        cost += recognition.cost_cents
        count += 1
    return {
        "revenue_cents": revenue,
        "cost_cents": cost,
        "profit_cents": revenue - cost,
        "order_count": count,
        "average_order_value_cents": revenue / count if count else 0.0,
    }


def sales_summary(
    start: datetime,
    end: datetime,
    *,
    compare_start: datetime | None = None,
    compare_end: datetime | None = None,
    location_id: int | None = None,
) -> dict:
    """
    Top-line revenue, profit, order count and average order value for a
    window, plus percent change against a comparison window (defaults to
    the equally long window immediately before).
    """
    _validate_window(start, end)
    if compare_start is None or compare_end is None:
        compare_end = start
        compare_start = start - (end - start)
    _validate_window(compare_start, compare_end)

    current = summarize(orders_in_window(start, end, location_id=location_id))
    previous = summarize(orders_in_window(compare_start, compare_end, location_id=location_id))

    return {
        **current,
        "window": {"from": start.isoformat(), "to": end.isoformat()},
        "comparison": {
            **previous,
            "window": {"from": compare_start.isoformat(), "to": compare_end.isoformat()},
        },
        "changes": {
            "revenue_pct": percent_change(current["revenue_cents"], previous["revenue_cents"]),
            "profit_pct": percent_change(current["profit_cents"], previous["profit_cents"]),
            "order_count_pct": percent_change(current["order_count"], previous["order_count"]),
            "average_order_value_pct": percent_change(
                current["average_order_value_cents"], previous["average_order_value_cents"]
            ),
        },
    }


# =============================================================================
# Breakdowns
# =============================================================================

def _bucket() -> dict:
    return {"revenue_cents": 0.0, "cost_cents": 0.0, "profit_cents": 0.0, "quantity": 0, "order_ids": set()}


def _finish(bucket: dict) -> dict:
    order_ids = bucket.pop("order_ids")
    bucket["profit_cents"] = bucket["revenue_cents"] - bucket["cost_cents"]
    bucket["order_count"] = len(order_ids)
    return bucket


def _add_line(bucket: dict, order: Order, item: OrderItem, revenue: float, cost: float) -> None:
    bucket["revenue_cents"] += revenue
    bucket["cost_cents"] += cost
    bucket["quantity"] += item.quantity
    bucket["order_ids"].add(order.id)


def product_breakdown(
    start: datetime,
    end: datetime,
    *,
    location_id: int | None = None,
    limit: int | None = None,
) -> list[dict]:
    """Per-product recognized revenue/cost/profit, highest revenue first."""
    _validate_window(start, end)
    buckets: dict[int, dict] = {}
    for order in orders_in_window(start, end, location_id=location_id):
        for item, revenue, cost in allocate_lines(order):
            bucket = buckets.get(item.product_id)
            if bucket is None:
                bucket = buckets[item.product_id] = {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "sku": item.sku,
                    **_bucket(),
                }
            _add_line(bucket, order, item, revenue, cost)

    rows = sorted((_finish(b) for b in buckets.values()), key=lambda r: (-r["revenue_cents"], r["product_id"]))
    return rows[:limit] if limit else rows


def category_breakdown(start: datetime, end: datetime, *, location_id: int | None = None) -> list[dict]:
    _validate_window(start, end)
    orders = orders_in_window(start, end, location_id=location_id)

    product_ids = {item.product_id for order in orders for item in order.items}
    category_names: dict[int, str] = {}
    if product_ids:
        for product in db.session.query(Product).filter(Product.id.in_(product_ids)).all():
            category_names[product.id] = product.category.name if product.category else UNCATEGORIZED

    buckets: dict[str, dict] = defaultdict(_bucket)
    for order in orders:
        for item, revenue, cost in allocate_lines(order):
            name = category_names.get(item.product_id, UNCATEGORIZED)
            _add_line(buckets[name], order, item, revenue, cost)

    rows = [{"category": name, **_finish(bucket)} for name, bucket in buckets.items()]
    return sorted(rows, key=lambda r: -r["revenue_cents"])


def hourly_breakdown(start: datetime, end: datetime, *, location_id: int | None = None) -> list[dict]:
    """24 buckets (hour of created_at, UTC); empty hours are zero-filled."""
    _validate_window(start, end)
    buckets = [_bucket() for _ in range(24)]
    for order in orders_in_window(start, end, location_id=location_id):
        for item, revenue, cost in allocate_lines(order):
            _add_line(buckets[order.created_at.hour], order, item, revenue, cost)
    return [{"hour": hour, **_finish(bucket)} for hour, bucket in enumerate(buckets)]


def _period_key(moment: datetime, group_by: str) -> str:
    if group_by == "day":
        return moment.date().isoformat()
    if group_by == "week":
        monday = moment.date() - timedelta(days=moment.weekday())
        return monday.isoformat()
    return moment.strftime("%Y-%m")


def sales_trend(
    start: datetime,
    end: datetime,
    *,
    group_by: str = "day",
    location_id: int | None = None,
) -> list[dict]:
    """Revenue/profit per day, ISO week (keyed by Monday) or month."""
    if group_by not in TREND_GROUPINGS:
        raise ValidationError(f"group_by must be one of: {', '.join(TREND_GROUPINGS)}")
    _validate_window(start, end)

    buckets: dict[str, dict] = defaultdict(_bucket)
    for order in orders_in_window(start, end, location_id=location_id):
        key = _period_key(order.created_at, group_by)
        for item, revenue, cost in allocate_lines(order):
            _add_line(buckets[key], order, item, revenue, cost)

    return [{"period": key, **_finish(buckets[key])} for key in sorted(buckets)]


def payment_breakdown(start: datetime, end: datetime, *, location_id: int | None = None) -> dict:
    """
    Tendered amounts per payment method. This is cash-drawer data (it
    includes change handed back), not recognized revenue.
    """
    _validate_window(start, end)
    methods = {method: {"amount_cents": 0, "count": 0} for method in PAYMENT_METHODS}
    change_total = 0
    for order in orders_in_window(start, end, location_id=location_id):
        if order.payment_status == PAYMENT_STATUS_REFUNDED:
            continue
        change_total += order.change_cents
        for payment in order.payments:
            bucket = methods.setdefault(payment.method, {"amount_cents": 0, "count": 0})
            bucket["amount_cents"] += payment.amount_cents
            bucket["count"] += 1

    tendered = sum(b["amount_cents"] for b in methods.values())
    return {
        "methods": methods,
        "tendered_cents": tendered,
        "change_cents": change_total,
        "net_cents": tendered - change_total,
    }
