"""
Inventory ledger: per (product, variant, location) stock with an append-only
movement log.

WHY: InventoryRecord is a cached fold over StockMovement. Every quantity
change goes through adjust(), which clamps the record at zero and always
appends the requested delta to the log, so drift between the two can be
detected and corrected after the fact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import InventoryRecord, Location, Product, ProductVariant, StockMovement, MOVEMENT_TYPES
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemRef:
    """A product, or one variant of it."""
    product_id: int
    variant_id: int | None = None

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "variant_id": self.variant_id}


@dataclass
class AdjustmentResult:
    record: InventoryRecord
    movement: StockMovement
    # requested delta would have taken on-hand below zero
    clamped: bool = False
    # a deduction took more than was available on a non-backorder item
    conflict: bool = False

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "movement": self.movement.to_dict(),
            "clamped": self.clamped,
            "conflict": self.conflict,
        }


def require_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id) if location_id else None
    if location is None or not location.is_active:
        raise NotFoundError("location not configured", details={"location_id": location_id})
    return location


def require_item(item: ItemRef) -> tuple[Product, ProductVariant | None]:
    product = db.session.get(Product, item.product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": item.product_id})
    variant = None
    if item.variant_id is not None:
        variant = db.session.get(ProductVariant, item.variant_id)
        if variant is None or variant.product_id != product.id:
            raise NotFoundError("Variant not found", details=item.to_dict())
    return product, variant


def _record_query(item: ItemRef, location_id: int):
    query = db.session.query(InventoryRecord).filter(
        InventoryRecord.product_id == item.product_id,
        InventoryRecord.location_id == location_id,
    )
    if item.variant_id is None:
        return query.filter(InventoryRecord.variant_id.is_(None))
    return query.filter(InventoryRecord.variant_id == item.variant_id)


def get_record(item: ItemRef, location_id: int, *, lock: bool = False) -> InventoryRecord | None:
    query = _record_query(item, location_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _get_or_create_record(item: ItemRef, location_id: int) -> InventoryRecord:
    record = get_record(item, location_id, lock=True)
    if record is None:
        record = InventoryRecord(
            product_id=item.product_id,
            variant_id=item.variant_id,
            location_id=location_id,
            quantity=0,
            reserved_quantity=0,
        )
        db.session.add(record)
        db.session.flush()
    return record


def _holds_stock(product: Product) -> bool:
    return product.track_inventory and not product.allow_backorder


def get_availability(item: ItemRef, location_id: int) -> dict:
    """On-hand, reserved and available stock; an untouched item reads as zeros."""
    record = get_record(item, location_id)
    quantity = record.quantity if record else 0
    reserved = record.reserved_quantity if record else 0
    available = quantity - reserved
    if record is not None and _holds_stock(record.product):
        available = max(0, available)
    return {
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "location_id": location_id,
        "quantity": quantity,
        "reserved": reserved,
        "available": available,
        "needs_reconciliation": bool(record and record.needs_reconciliation),
    }


def adjust(
    item: ItemRef,
    location_id: int,
    delta: int,
    movement_type: str,
    *,
    notes: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    commit: bool = True,
) -> AdjustmentResult:
    """
    Apply a signed stock change and append its movement row.

    - creates the record on first touch
    - clamps on-hand at zero; the movement keeps the requested delta
    - a deduction that takes more than is available (on-hand less held
      stock) on a tracked, non-backorder product is still applied, but
      flags the record for reconciliation
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("quantity delta must be an integer")

    require_location(location_id)
    product, _variant = require_item(item)

    record = _get_or_create_record(item, location_id)

    remaining = record.quantity + delta
    if movement_type != "sale":
        # shrinkage past on-hand is a clamp; it conflicts only when it eats held stock
        remaining = max(0, remaining)

    conflict = False
    if delta < 0 and _holds_stock(product) and remaining < record.reserved_quantity:
        conflict = True
        record.needs_reconciliation = True
        logger.warning(
            "Inventory conflict on record %s: %s of %s with %s available",
            record.id, movement_type, -delta, record.available_quantity,
        )

    new_quantity = record.quantity + delta
    clamped = new_quantity < 0
    record.quantity = max(0, new_quantity)

    movement = StockMovement(
        product_id=item.product_id,
        variant_id=item.variant_id,
        location_id=location_id,
        movement_type=movement_type,
        quantity=delta,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
    )
    db.session.add(movement)
    db.session.flush()

    if commit:
        db.session.commit()

    return AdjustmentResult(record=record, movement=movement, clamped=clamped, conflict=conflict)


def reserve(item: ItemRef, location_id: int, quantity: int, *, commit: bool = True) -> InventoryRecord:
    """Hold stock for a layaway. On-hand is unchanged, so no movement row."""
    if quantity <= 0:
        raise ValidationError("reserve quantity must be greater than zero")
    require_location(location_id)
    record = _get_or_create_record(item, location_id)
    record.reserved_quantity += quantity
    db.session.flush()
    if commit:
        db.session.commit()
    return record


def release(item: ItemRef, location_id: int, quantity: int, *, commit: bool = True) -> InventoryRecord | None:
    """Drop a layaway hold, never below zero reserved."""
    if quantity <= 0:
        raise ValidationError("release quantity must be greater than zero")
    record = get_record(item, location_id, lock=True)
    if record is None:
        return None
    record.reserved_quantity = max(0, record.reserved_quantity - quantity)
    db.session.flush()
    if commit:
        db.session.commit()
    return record


def list_movements(
    *,
    item: ItemRef | None = None,
    location_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    query = db.session.query(StockMovement)
    if item is not None:
        query = query.filter(StockMovement.product_id == item.product_id)
        if item.variant_id is None:
            query = query.filter(StockMovement.variant_id.is_(None))
        else:
            query = query.filter(StockMovement.variant_id == item.variant_id)
    if location_id is not None:
        query = query.filter(StockMovement.location_id == location_id)
    if reference_type is not None:
        query = query.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(StockMovement.reference_id == reference_id)
    return query.order_by(StockMovement.created_at.asc(), StockMovement.id.asc()).limit(limit).all()


# =============================================================================
# Reconciliation
# =============================================================================

def ledger_quantity(item: ItemRef, location_id: int) -> int:
    """Replay the movement log with the same floor-at-zero rule adjust() applies."""
    quantity = 0
    for movement in list_movements(item=item, location_id=location_id, limit=1_000_000):
        quantity = max(0, quantity + movement.quantity)
    return quantity


def find_drift(location_id: int | None = None) -> list[dict]:
    """Records whose cached quantity disagrees with the log, or that are flagged."""
    query = db.session.query(InventoryRecord)
    if location_id is not None:
        query = query.filter(InventoryRecord.location_id == location_id)

    drift = []
    for record in query.order_by(InventoryRecord.id.asc()).all():
        expected = ledger_quantity(ItemRef(record.product_id, record.variant_id), record.location_id)
        if expected != record.quantity or record.needs_reconciliation:
            drift.append({
                "record": record.to_dict(),
                "ledger_quantity": expected,
                "difference": record.quantity - expected,
            })
    return drift


def reconcile(record_id: int, counted_quantity: int | None = None, *, notes: str | None = None) -> InventoryRecord:
    """
    Bring a record back in line with its movement log and clear the flag.

    With counted_quantity (a physical count), an adjustment movement is
    appended first so the log itself reaches the counted figure.
    """
    record = lock_for_update(db.session.query(InventoryRecord).filter_by(id=record_id)).first()
    if record is None:
        raise NotFoundError("Inventory record not found", details={"record_id": record_id})

    item = ItemRef(record.product_id, record.variant_id)
    expected = ledger_quantity(item, record.location_id)

    if counted_quantity is not None:
        if counted_quantity < 0:
            raise ValidationError("counted_quantity must be >= 0")
        if counted_quantity != expected:
            db.session.add(StockMovement(
                product_id=record.product_id,
                variant_id=record.variant_id,
                location_id=record.location_id,
                movement_type="adjustment",
                quantity=counted_quantity - expected,
                reference_type="reconciliation",
                reference_id=record.id,
                notes=notes or "Physical count",
            ))
        expected = counted_quantity

    record.quantity = expected
    record.needs_reconciliation = False
    db.session.commit()
    return record


def list_low_stock(location_id: int | None = None) -> list[dict]:
    """Tracked, active items at or below their low-stock threshold."""
    default_threshold = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 10)
    query = (
        db.session.query(InventoryRecord, Product)
        .join(Product, Product.id == InventoryRecord.product_id)
        .filter(Product.is_active.is_(True), Product.track_inventory.is_(True))
    )
    if location_id is not None:
        query = query.filter(InventoryRecord.location_id == location_id)

    rows = []
    for record, product in query.order_by(InventoryRecord.id.asc()).all():
        threshold = product.low_stock_threshold
        if threshold is None:
            threshold = default_threshold
        if record.available_quantity <= threshold:
            rows.append({
                **record.to_dict(),
                "sku": product.sku,
                "product_name": product.name,
                "low_stock_threshold": threshold,
                "out_of_stock": record.available_quantity <= 0,
            })
    return rows
