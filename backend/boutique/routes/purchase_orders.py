# Overview: Flask API routes for purchase orders (create, send, receive, cancel).

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import purchasing_service
from ..time_utils import parse_iso_date
from ..validation import ValidationError, parse_int


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@api_errors("create purchase order")
def create_po_route():
    data = request.get_json(silent=True) or {}
    try:
        expected = parse_iso_date(data.get("expected_date")) if data.get("expected_date") else None
    except ValueError:
        raise ValidationError("expected_date must be an ISO-8601 date")
    po = purchasing_service.create_purchase_order(
        parse_int(data.get("supplier_id"), "supplier_id", minimum=1),
        parse_int(data.get("location_id"), "location_id", minimum=1),
        data.get("items") or [],
        notes=data.get("notes"),
        expected_date=expected,
    )
    return jsonify({"purchase_order": po.to_dict(include_lines=True)}), 201


@purchase_orders_bp.get("")
@api_errors("list purchase orders")
def list_po_route():
    pos = purchasing_service.list_purchase_orders(
        supplier_id=request.args.get("supplier_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"purchase_orders": [po.to_dict() for po in pos]}), 200


@purchase_orders_bp.post("/<int:po_id>/send")
@api_errors("send purchase order")
def send_po_route(po_id: int):
    po = purchasing_service.send_purchase_order(po_id)
    return jsonify({"purchase_order": po.to_dict()}), 200


@purchase_orders_bp.post("/<int:po_id>/receive")
@api_errors("receive purchase order")
def receive_po_route(po_id: int):
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if items is not None and not isinstance(items, list):
        raise ValidationError("items must be a list")
    po = purchasing_service.receive_purchase_order(po_id, items)
    return jsonify({"purchase_order": po.to_dict(include_lines=True)}), 200


@purchase_orders_bp.post("/<int:po_id>/cancel")
@api_errors("cancel purchase order")
def cancel_po_route(po_id: int):
    po = purchasing_service.cancel_purchase_order(po_id)
    return jsonify({"purchase_order": po.to_dict()}), 200
