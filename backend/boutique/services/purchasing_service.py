# Overview: Purchase-order lifecycle; receipts restock through the inventory ledger.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import InventoryRecord, PurchaseOrder, PurchaseOrderItem, Supplier
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_int, parse_optional_int
from . import inventory_service, search_mirror
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import ItemRef


PO_STATUS_DRAFT = "draft"
PO_STATUS_SENT = "sent"
PO_STATUS_PARTIAL = "partial"
PO_STATUS_RECEIVED = "received"
PO_STATUS_CANCELLED = "cancelled"


def _get_po(po_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter_by(id=po_id)
    if lock:
        query = lock_for_update(query)
    po = query.first()
    if po is None:
        raise NotFoundError("Purchase order not found", details={"purchase_order_id": po_id})
    return po


def create_purchase_order(
    supplier_id: int,
    location_id: int,
    items: list[dict],
    *,
    notes: str | None = None,
    expected_date: date | None = None,
) -> PurchaseOrder:
    """Draft a PO. Unit cost defaults to the product's cost price."""
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
    inventory_service.require_location(location_id)
    if not items:
        raise ValidationError("Purchase order must contain at least one item")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        item = ItemRef(
            parse_int(raw.get("product_id"), f"items[{index}].product_id", minimum=1),
            parse_optional_int(raw.get("variant_id"), f"items[{index}].variant_id", minimum=1),
        )
        product, variant = inventory_service.require_item(item)
        quantity = parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1)
        unit_cost = parse_optional_int(raw.get("unit_cost_cents"), f"items[{index}].unit_cost_cents", minimum=0)
        if unit_cost is None:
            unit_cost = variant.cost_price_cents if variant and variant.cost_price_cents is not None else product.cost_price_cents
        lines.append((item, quantity, unit_cost))

    def _op() -> PurchaseOrder:
        po = PurchaseOrder(
            po_number=next_document_number(document_type="PURCHASE_ORDER", prefix="PO"),
            supplier_id=supplier_id,
            location_id=location_id,
            status=PO_STATUS_DRAFT,
            notes=notes,
            expected_date=expected_date,
            total_cents=sum(quantity * cost for _item, quantity, cost in lines),
        )
        db.session.add(po)
        for item, quantity, cost in lines:
            db.session.add(PurchaseOrderItem(
                purchase_order=po,
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity_ordered=quantity,
                unit_cost_cents=cost,
            ))
        db.session.commit()
        return po

    return run_with_retry(_op, label="Purchase order create")


def send_purchase_order(po_id: int) -> PurchaseOrder:
    """Mark a draft as sent; sent_at starts the supplier lead-time clock."""
    po = _get_po(po_id, lock=True)
    if po.status != PO_STATUS_DRAFT:
        raise ConflictError(f"Cannot send a purchase order with status {po.status}")
    po.status = PO_STATUS_SENT
    po.sent_at = utcnow()
    db.session.commit()
    return po


def receive_purchase_order(po_id: int, received: list[dict] | None = None) -> PurchaseOrder:
    """
    Book received quantities into stock with "purchase" movements.

    received: [{"item_id", "quantity"}]; omitted means "everything still
    outstanding". Once every line is fully received the PO is marked
    received and received_at is stamped.
    """
    def _op() -> tuple[PurchaseOrder, list[InventoryRecord]]:
        po = _get_po(po_id, lock=True)
        if po.status not in (PO_STATUS_SENT, PO_STATUS_PARTIAL):
            raise ConflictError(f"Cannot receive a purchase order with status {po.status}")

        by_id = {item.id: item for item in po.items}
        if received is None:
            plan = [(item, item.outstanding_quantity) for item in po.items if item.outstanding_quantity > 0]
        else:
            plan = []
            for index, raw in enumerate(received):
                if not isinstance(raw, dict):
                    raise ValidationError(f"items[{index}] must be an object")
                item_id = parse_int(raw.get("item_id"), f"items[{index}].item_id", minimum=1)
                if item_id not in by_id:
                    raise NotFoundError("Purchase order item not found", details={"item_id": item_id})
                quantity = parse_int(raw.get("quantity"), f"items[{index}].quantity", minimum=1)
                if quantity > by_id[item_id].outstanding_quantity:
                    raise ValidationError(
                        "Received quantity exceeds outstanding quantity",
                        details={"item_id": item_id, "outstanding": by_id[item_id].outstanding_quantity},
                    )
                plan.append((by_id[item_id], quantity))

        if not plan:
            raise ValidationError("Nothing to receive")

        records = []
        for item, quantity in plan:
            result = inventory_service.adjust(
                ItemRef(item.product_id, item.variant_id),
                po.location_id,
                quantity,
                "purchase",
                notes=f"Received on {po.po_number}",
                reference_type="purchase_order",
                reference_id=po.id,
                commit=False,
            )
            item.quantity_received += quantity
            records.append(result.record)

        if all(item.outstanding_quantity == 0 for item in po.items):
            po.status = PO_STATUS_RECEIVED
            po.received_at = utcnow()
        else:
            po.status = PO_STATUS_PARTIAL

        db.session.commit()
        return po, records

    po, records = run_with_retry(_op, label="Purchase order receipt")
    search_mirror.push_inventory(records)
    return po


def cancel_purchase_order(po_id: int) -> PurchaseOrder:
    po = _get_po(po_id, lock=True)
    if po.status not in (PO_STATUS_DRAFT, PO_STATUS_SENT):
        raise ConflictError(f"Cannot cancel a purchase order with status {po.status}")
    po.status = PO_STATUS_CANCELLED
    db.session.commit()
    return po


def list_purchase_orders(*, supplier_id: int | None = None, status: str | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()
