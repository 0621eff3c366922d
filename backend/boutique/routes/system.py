# backend/boutique/routes/system.py
"""
System health endpoint.

Reports database reachability, the configured locations, and whether the
external collaborators (search mirror, recommendation provider) are wired.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryRecord, Location, Order
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Count a few core tables; any store error marks the check unhealthy."""
    start_time = time.time()
    try:
        location_count = db.session.query(Location).filter(Location.is_active.is_(True)).count()
        order_count = db.session.query(Order).count()
        flagged = db.session.query(InventoryRecord).filter(InventoryRecord.needs_reconciliation.is_(True)).count()
        elapsed_ms = (time.time() - start_time) * 1000
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy" if location_count else "degraded",
        "latency_ms": round(elapsed_ms, 2),
        "details": {
            "active_locations": location_count,
            "orders": order_count,
            "records_needing_reconciliation": flagged,
        },
    }


def check_integrations() -> dict:
    config = current_app.config
    return {
        "search_mirror": "configured" if config.get("SEARCH_MIRROR_URL") else "disabled",
        "recommendation_provider": "http" if config.get("RECOMMENDATION_PROVIDER_URL") else "deterministic",
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (no active location configured yet)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "integrations": check_integrations(),
        },
    }
    return response, http_status
