"""
Reorder recommendation providers.

The reorder engine prepares the data; a provider decides what to buy. The
HTTP provider delegates to an external ranking service, the deterministic
provider applies fixed lead-time rules and is what tests and offline runs
use. Every provider failure is raised as ExternalServiceError.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

import httpx
from flask import current_app

from ..validation import ExternalServiceError

logger = logging.getLogger(__name__)


TIERS = ("critical", "recommended", "optional")
URGENCIES = ("critical", "high", "medium", "low")

_RECOMMENDATION_FIELDS = {
    "productId": None,
    "productName": "",
    "currentStock": 0,
    "recommendedQuantity": 0,
    "estimatedCost": 0,
    "urgency": "medium",
    "reasoning": "",
    "daysUntilStockout": None,
    "supplierId": None,
    "supplierName": None,
}


class RecommendationProvider:
    """Capability interface: request dict in, normalized recommendations dict out."""
    name = "base"

    def recommend(self, request: dict) -> dict:
        raise NotImplementedError


def _string_list(payload: dict, key: str) -> list[str]:
    values = payload.get(key) or []
    if not isinstance(values, list):
        raise ExternalServiceError(f"{key} must be a list")
    return [str(value) for value in values]


def normalize_recommendations(payload: Any) -> dict:
    """
    Validate a provider response and fill optional fields.

    Shape: {"recommendations": {"critical": [...], "recommended": [...],
    "optional": [...]}, "budgetAllocation": [...], "insights": [...],
    "riskAlerts": [...], "totalEstimatedCost": number}
    """
    if not isinstance(payload, dict):
        raise ExternalServiceError("Recommendation response is not an object")
    tiers = payload.get("recommendations")
    if not isinstance(tiers, dict):
        raise ExternalServiceError("Recommendation response is missing recommendations")

    normalized_tiers = {}
    for tier in TIERS:
        entries = tiers.get(tier) or []
        if not isinstance(entries, list):
            raise ExternalServiceError(f"recommendations.{tier} must be a list")
        rows = []
        for entry in entries:
            if not isinstance(entry, dict) or entry.get("productId") is None:
                raise ExternalServiceError(f"recommendations.{tier} contains an entry without productId")
            row = {key: entry.get(key, default) for key, default in _RECOMMENDATION_FIELDS.items()}
            if row["urgency"] not in URGENCIES:
                row["urgency"] = "medium"
            rows.append(row)
        normalized_tiers[tier] = rows

    allocation = payload.get("budgetAllocation") or []
    if not isinstance(allocation, list):
        raise ExternalServiceError("budgetAllocation must be a list")

    insights = _string_list(payload, "insights")
    risk_alerts = _string_list(payload, "riskAlerts")

    total = payload.get("totalEstimatedCost")
    if total is None:
        total = sum(row["estimatedCost"] or 0 for rows in normalized_tiers.values() for row in rows)
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        raise ExternalServiceError("totalEstimatedCost must be a number")

    return {
        "recommendations": normalized_tiers,
        "budgetAllocation": [
            {
                "supplierId": row.get("supplierId"),
                "supplierName": row.get("supplierName"),
                "allocatedBudget": row.get("allocatedBudget", 0),
                "priority": row.get("priority", "medium"),
            }
            for row in allocation
            if isinstance(row, dict)
        ],
        "insights": insights,
        "riskAlerts": risk_alerts,
        "totalEstimatedCost": total,
    }


class HttpRecommendationProvider(RecommendationProvider):
    """POSTs the prepared request to an external ranking service."""
    name = "http"

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def recommend(self, request: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.url, json=request, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            raise ExternalServiceError("Recommendation provider timed out") from e
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"Recommendation provider returned HTTP {e.response.status_code}",
                details={"body": e.response.text[:200]},
            ) from e
        except httpx.RequestError as e:
            raise ExternalServiceError(f"Recommendation provider unreachable: {e}") from e
        except ValueError as e:
            raise ExternalServiceError("Recommendation provider returned invalid JSON") from e

        return normalize_recommendations(payload)


class DeterministicRecommendationProvider(RecommendationProvider):
    """
    Rule-based ranking from the prepared product records.

    - critical: stock runs out within the supplier lead time
    - recommended: runs out within twice the lead time, or already at or
      below the low-stock threshold
    - optional: trending up and under 30 days of cover

    Quantity covers lead time plus 30 days of sales, and is at least the
    product's reorder quantity. Budget goes to critical items first.
    """
    name = "deterministic"

    COVER_DAYS = 30

    def _quantity(self, product: dict) -> int:
        daily = product["velocity"]["dailyAverage"]
        lead = product["supplier"]["leadTimeDays"]
        needed = math.ceil(daily * (lead + self.COVER_DAYS)) - product["stock"]["available"]
        return max(product["reorderQuantity"], needed, 1)

    def _tier(self, product: dict) -> str | None:
        days_left = product["stock"]["daysOfStockLeft"]
        lead = product["supplier"]["leadTimeDays"]
        available = product["stock"]["available"]
        if product["velocity"]["dailyAverage"] > 0 and days_left <= lead:
            return "critical"
        if days_left <= lead * 2 or available <= product["lowStockThreshold"]:
            return "recommended"
        if product["velocity"]["trend"] == "up" and days_left <= self.COVER_DAYS:
            return "optional"
        return None

    def recommend(self, request: dict) -> dict:
        tiers: dict[str, list] = {tier: [] for tier in TIERS}
        risk_alerts = []
        for product in request.get("products", []):
            tier = self._tier(product)
            if tier is None:
                continue
            quantity = self._quantity(product)
            days_left = product["stock"]["daysOfStockLeft"]
            urgency = {"critical": "critical", "recommended": "high", "optional": "low"}[tier]
            tiers[tier].append({
                "productId": product["productId"],
                "productName": product["name"],
                "currentStock": product["stock"]["available"],
                "recommendedQuantity": quantity,
                "estimatedCost": quantity * product["pricing"]["unitCostCents"],
                "urgency": urgency,
                "reasoning": (
                    f"{days_left} days of stock left against a "
                    f"{product['supplier']['leadTimeDays']}-day lead time"
                ),
                "daysUntilStockout": days_left,
                "supplierId": product["supplier"]["id"],
                "supplierName": product["supplier"]["name"],
            })
            if tier == "critical":
                risk_alerts.append(f"{product['name']} will stock out before a reorder can arrive")

        for rows in tiers.values():
            rows.sort(key=lambda row: (row["daysUntilStockout"], row["productId"]))

        budget = float(request.get("metadata", {}).get("availableBudget", 0) or 0)
        allocation: dict[Any, dict] = {}
        for tier in TIERS:
            for row in tiers[tier]:
                key = row["supplierId"]
                slot = allocation.setdefault(key, {
                    "supplierId": key,
                    "supplierName": row["supplierName"],
                    "allocatedBudget": 0,
                    "priority": "high" if tier == "critical" else "medium" if tier == "recommended" else "low",
                })
                grant = min(budget, row["estimatedCost"])
                slot["allocatedBudget"] += grant
                budget -= grant

        total = sum(row["estimatedCost"] for rows in tiers.values() for row in rows)
        insights = [
            f"{len(tiers['critical'])} critical, {len(tiers['recommended'])} recommended "
            f"and {len(tiers['optional'])} optional reorders",
        ]
        if total > request.get("metadata", {}).get("availableBudget", 0):
            insights.append("Estimated reorder cost exceeds available reinvestable cash")

        return normalize_recommendations({
            "recommendations": tiers,
            "budgetAllocation": list(allocation.values()),
            "insights": insights,
            "riskAlerts": risk_alerts,
            "totalEstimatedCost": total,
        })


def get_default_provider() -> RecommendationProvider:
    """HTTP provider when RECOMMENDATION_PROVIDER_URL is set, else the rule-based one."""
    config = current_app.config
    url = config.get("RECOMMENDATION_PROVIDER_URL")
    if url:
        return HttpRecommendationProvider(
            url,
            api_key=config.get("RECOMMENDATION_PROVIDER_API_KEY") or None,
            timeout=float(config.get("RECOMMENDATION_PROVIDER_TIMEOUT", 30.0)),
        )
    logger.info("RECOMMENDATION_PROVIDER_URL not configured, using deterministic provider")
    return DeterministicRecommendationProvider()
