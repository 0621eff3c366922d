"""
Search index mirror.

Fire-and-forget push of product / customer / supplier / inventory documents
after a primary write has committed. Never raises: a failed push is logged
and the index catches up on the next write.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from flask import current_app

from ..models import InventoryRecord

logger = logging.getLogger(__name__)


def _settings() -> tuple[str, str, float]:
    config = current_app.config
    return (
        config.get("SEARCH_MIRROR_URL") or "",
        config.get("SEARCH_MIRROR_API_KEY") or "",
        float(config.get("SEARCH_MIRROR_TIMEOUT", 5.0)),
    )


def _send(method: str, path: str, *, json_body: Any = None, transport: Optional[httpx.BaseTransport] = None) -> bool:
    base_url, api_key, timeout = _settings()
    if not base_url:
        logger.debug("[SearchMirror] SEARCH_MIRROR_URL not configured, skipping %s", path)
        return False

    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    try:
        with httpx.Client(base_url=base_url, timeout=timeout, transport=transport) as client:
            response = client.request(method, path, json=json_body, headers=headers)
        if 200 <= response.status_code < 300:
            return True
        logger.warning(
            "[SearchMirror] %s %s failed: HTTP %s - %s",
            method, path, response.status_code, response.text[:200],
        )
        return False
    except httpx.TimeoutException:
        logger.warning("[SearchMirror] Timeout on %s %s", method, path)
        return False
    except httpx.RequestError as e:
        logger.warning("[SearchMirror] Request error on %s %s: %s", method, path, e)
        return False


def push_documents(index: str, documents: list[dict], *, transport: Optional[httpx.BaseTransport] = None) -> bool:
    """Upsert documents into an index. Returns True only on a 2xx response."""
    if not documents:
        return True
    return _send("POST", f"/indexes/{index}/documents", json_body=documents, transport=transport)


def delete_document(index: str, document_id: Any, *, transport: Optional[httpx.BaseTransport] = None) -> bool:
    return _send("DELETE", f"/indexes/{index}/documents/{document_id}", transport=transport)


def inventory_documents(records: list[InventoryRecord]) -> list[dict]:
    docs = []
    for record in records:
        docs.append({
            "id": f"{record.product_id}-{record.variant_id or 0}-{record.location_id}",
            "product_id": record.product_id,
            "variant_id": record.variant_id,
            "location_id": record.location_id,
            "quantity": record.quantity,
            "reserved_quantity": record.reserved_quantity,
            "available_quantity": record.available_quantity,
        })
    return docs


def push_inventory(records: list[InventoryRecord]) -> bool:
    return push_documents("inventory", inventory_documents(records))
