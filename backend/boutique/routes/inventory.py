# Overview: Flask API routes for stock availability, adjustments and reconciliation.

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import inventory_service
from ..services.inventory_service import ItemRef
from ..validation import ValidationError, parse_int, parse_optional_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _item_from_args() -> ItemRef:
    product_id = request.args.get("product_id", type=int)
    if not product_id:
        raise ValidationError("product_id is required")
    return ItemRef(product_id, request.args.get("variant_id", type=int))


@inventory_bp.get("/availability")
@api_errors("get availability")
def availability_route():
    location_id = request.args.get("location_id", type=int)
    if not location_id:
        raise ValidationError("location_id is required")
    return jsonify(inventory_service.get_availability(_item_from_args(), location_id)), 200


@inventory_bp.post("/adjust")
@api_errors("adjust inventory")
def adjust_route():
    """
    Manual stock change (count correction, damage, opening stock, return).

    Sales and purchase receipts post their own movements; they are not
    accepted here.
    """
    data = request.get_json(silent=True) or {}
    movement_type = str(data.get("movement_type") or "adjustment")
    if movement_type in ("sale", "purchase"):
        raise ValidationError(f"{movement_type} movements are posted by orders and purchase orders")

    delta = parse_int(data.get("quantity"), "quantity")
    if delta == 0:
        raise ValidationError("quantity must be non-zero")

    result = inventory_service.adjust(
        ItemRef(
            parse_int(data.get("product_id"), "product_id", minimum=1),
            parse_optional_int(data.get("variant_id"), "variant_id", minimum=1),
        ),
        parse_int(data.get("location_id"), "location_id", minimum=1),
        delta,
        movement_type,
        notes=data.get("notes"),
    )
    return jsonify(result.to_dict()), 201


@inventory_bp.get("/movements")
@api_errors("list stock movements")
def movements_route():
    item = None
    if request.args.get("product_id"):
        item = _item_from_args()
    movements = inventory_service.list_movements(
        item=item,
        location_id=request.args.get("location_id", type=int),
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id", type=int),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/low-stock")
@api_errors("list low stock")
def low_stock_route():
    rows = inventory_service.list_low_stock(request.args.get("location_id", type=int))
    return jsonify({"items": rows, "count": len(rows)}), 200


@inventory_bp.get("/drift")
@api_errors("detect inventory drift")
def drift_route():
    rows = inventory_service.find_drift(request.args.get("location_id", type=int))
    return jsonify({"records": rows, "count": len(rows)}), 200


@inventory_bp.post("/records/<int:record_id>/reconcile")
@api_errors("reconcile inventory record")
def reconcile_route(record_id: int):
    data = request.get_json(silent=True) or {}
    record = inventory_service.reconcile(
        record_id,
        parse_optional_int(data.get("counted_quantity"), "counted_quantity", minimum=0),
        notes=data.get("notes"),
    )
    return jsonify({"record": record.to_dict()}), 200
