# Overview: Flask API routes for checkout, layaway and order lookups.

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import order_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, parse_checkout_payload, parse_payment


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Invalid JSON payload")
    return data


@orders_bp.post("/checkout")
@api_errors("process checkout", fallback="failed to process payment")
def checkout_route():
    """
    Finalize a cart into a completed order.

    Replays with a known client_token return the stored order with 200
    instead of 201.
    """
    req = parse_checkout_payload(_json_body())
    result = order_service.checkout(req)
    return jsonify({"order": result.to_dict()}), 200 if result.replayed else 201


@orders_bp.post("/layaway")
@api_errors("create layaway", fallback="failed to process payment")
def create_layaway_route():
    req = parse_checkout_payload(_json_body(), layaway=True)
    result = order_service.create_layaway_order(req)
    return jsonify({"order": result.to_dict()}), 200 if result.replayed else 201


@orders_bp.post("/<int:order_id>/layaway/payments")
@api_errors("record layaway payment", fallback="failed to process payment")
def layaway_payment_route(order_id: int):
    payment = parse_payment(_json_body())
    result = order_service.record_layaway_payment(order_id, payment)
    return jsonify({"order": result.to_dict()}), 200


@orders_bp.post("/<int:order_id>/layaway/complete")
@api_errors("complete layaway", fallback="failed to process payment")
def complete_layaway_route(order_id: int):
    """Balancing payment; anything short of the balance is "insufficient payment"."""
    payment = parse_payment(_json_body())
    result = order_service.record_layaway_payment(order_id, payment, require_full=True)
    return jsonify({"order": result.to_dict()}), 200


@orders_bp.post("/<int:order_id>/cancel")
@api_errors("cancel order")
def cancel_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    result = order_service.cancel_order(order_id, data.get("reason"))
    return jsonify({"order": result.to_dict()}), 200


@orders_bp.post("/<int:order_id>/refund")
@api_errors("refund order")
def refund_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    result = order_service.refund_order(order_id, data.get("reason"))
    return jsonify({"order": result.to_dict()}), 200


@orders_bp.get("/<int:order_id>")
@api_errors("get order")
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return jsonify({"order": order.to_dict(include_lines=True)}), 200


@orders_bp.get("")
@api_errors("list orders")
def list_orders_route():
    try:
        start = parse_iso_datetime(request.args.get("from"))
        end = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        raise ValidationError("from/to must be ISO-8601 datetimes")

    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    orders, total = order_service.list_orders(
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        customer_id=request.args.get("customer_id", type=int),
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "orders": [order.to_dict() for order in orders],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@orders_bp.get("/today")
@api_errors("get today's stats")
def today_stats_route():
    return jsonify(order_service.get_today_stats(request.args.get("location_id", type=int))), 200


@orders_bp.get("/layaway/stats")
@api_errors("get layaway stats")
def layaway_stats_route():
    return jsonify(order_service.get_layaway_stats()), 200
