# Overview: Flask API route exposing effective line pricing for the till.

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import inventory_service, pricing_service
from ..services.inventory_service import ItemRef
from ..validation import ValidationError


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.get("/resolve")
@api_errors("resolve pricing")
def resolve_route():
    product_id = request.args.get("product_id", type=int)
    if not product_id:
        raise ValidationError("product_id is required")
    item = ItemRef(product_id, request.args.get("variant_id", type=int))
    product, variant = inventory_service.require_item(item)
    resolved = pricing_service.resolve_line(product, variant)
    return jsonify({**item.to_dict(), **resolved.to_dict()}), 200
