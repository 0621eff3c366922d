# Overview: Flask API routes for sales analytics; parses windows and returns JSON.

from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import analytics_service
from ..time_utils import parse_iso_datetime, start_of_day, utcnow
from ..validation import ValidationError


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


def _parse_bound(name: str, *, upper: bool) -> datetime | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    # A bare date as the upper bound includes that whole day
    if upper and len(raw.strip()) == 10:
        value = value + timedelta(days=1)
    return value


def _window(prefix: str = "") -> tuple[datetime | None, datetime | None]:
    return _parse_bound(f"{prefix}from", upper=False), _parse_bound(f"{prefix}to", upper=True)


def _default_window() -> tuple[datetime, datetime]:
    start, end = _window()
    end = end or utcnow()
    start = start or start_of_day(end - timedelta(days=30))
    return start, end


@analytics_bp.get("/summary")
@api_errors("build sales summary")
def summary_route():
    start, end = _default_window()
    compare_start, compare_end = _window("compare_")
    result = analytics_service.sales_summary(
        start,
        end,
        compare_start=compare_start,
        compare_end=compare_end,
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify(result), 200


@analytics_bp.get("/products")
@api_errors("build product breakdown")
def products_route():
    start, end = _default_window()
    rows = analytics_service.product_breakdown(
        start,
        end,
        location_id=request.args.get("location_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"products": rows}), 200


@analytics_bp.get("/categories")
@api_errors("build category breakdown")
def categories_route():
    start, end = _default_window()
    rows = analytics_service.category_breakdown(start, end, location_id=request.args.get("location_id", type=int))
    return jsonify({"categories": rows}), 200


@analytics_bp.get("/hourly")
@api_errors("build hourly breakdown")
def hourly_route():
    start, end = _default_window()
    rows = analytics_service.hourly_breakdown(start, end, location_id=request.args.get("location_id", type=int))
    return jsonify({"hours": rows}), 200


@analytics_bp.get("/trend")
@api_errors("build sales trend")
def trend_route():
    start, end = _default_window()
    rows = analytics_service.sales_trend(
        start,
        end,
        group_by=request.args.get("group_by", "day"),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"periods": rows}), 200


@analytics_bp.get("/payments")
@api_errors("build payment breakdown")
def payments_route():
    start, end = _default_window()
    return jsonify(analytics_service.payment_breakdown(
        start, end, location_id=request.args.get("location_id", type=int)
    )), 200
