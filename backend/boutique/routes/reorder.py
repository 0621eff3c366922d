# Overview: Flask API routes for reorder intelligence.

from flask import Blueprint, request, jsonify

from ..decorators import api_errors
from ..services import reorder_service
from ..services.recommendation_provider import DeterministicRecommendationProvider


reorder_bp = Blueprint("reorder", __name__, url_prefix="/api/reorder")


@reorder_bp.get("/velocity")
@api_errors("calculate sales velocity")
def velocity_route():
    return jsonify({"products": reorder_service.calculate_sales_velocity()}), 200


@reorder_bp.get("/inventory")
@api_errors("build inventory status")
def inventory_route():
    return jsonify({"products": reorder_service.inventory_status()}), 200


@reorder_bp.get("/suppliers")
@api_errors("build supplier performance")
def suppliers_route():
    return jsonify({"suppliers": reorder_service.supplier_performance()}), 200


@reorder_bp.get("/financials")
@api_errors("build financial snapshot")
def financials_route():
    return jsonify(reorder_service.financial_snapshot()), 200


@reorder_bp.post("/recommendations")
@api_errors("generate reorder recommendations")
def recommendations_route():
    """
    Tiered reorder recommendations. Always 200: when the provider fails the
    body carries success=false and an error message instead.
    """
    data = request.get_json(silent=True) or {}
    provider = DeterministicRecommendationProvider() if data.get("offline") else None
    return jsonify(reorder_service.generate_recommendations(provider)), 200
