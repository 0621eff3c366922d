"""
Order transaction orchestrator and layaway settlement.

WRITE STRATEGY: a checkout writes the order header, items, payments, stock
deductions (with their movement rows) and customer aggregates inside ONE
database transaction: rows are flushed as they are built and committed
once at the end; any failure rolls the whole order back. Nothing is ever
half-written, so a retry after a failure starts from a clean slate.

REPLAY: the till may send a client_token with every checkout. It is a
unique column on orders and is written in the same transaction as the
order. Replaying a request with a token that already committed returns the
stored order without writing anything (no second order, no second stock
deduction). Reusing a token with a different cart is a ConflictError.
Concurrent duplicates lose on the unique constraint and are answered with
the winner's order.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import (
    Customer,
    InventoryRecord,
    Order,
    OrderItem,
    Payment,
    Product,
    ProductVariant,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_LAYAWAY,
    ORDER_STATUS_REFUNDED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    RECOGNIZED_ORDER_STATUSES,
)
from ..time_utils import start_of_day, utcnow
from ..validation import (
    BoutiqueError,
    CheckoutRequest,
    ConflictError,
    NotFoundError,
    PaymentInput,
    PaymentProcessingError,
    ValidationError,
    PAYMENT_METHODS,
)
from . import inventory_service, search_mirror
from .analytics_service import recognize
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import ItemRef
from .pricing_service import CartTotals, PricedLine, calculate_totals, resolve_line

logger = logging.getLogger(__name__)


INSUFFICIENT_PAYMENT = "insufficient payment"
FAILED_TO_PROCESS_PAYMENT = "failed to process payment"


@dataclass
class CheckoutResult:
    order: Order
    replayed: bool = False
    inventory_conflicts: list[dict] = field(default_factory=list)
    touched_records: list[InventoryRecord] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict:
        data = self.order.to_dict(include_lines=True)
        data["replayed"] = self.replayed
        data["inventory_conflicts"] = self.inventory_conflicts
        return data


@dataclass
class _PreparedLine:
    product: Product
    variant: ProductVariant | None
    item: ItemRef
    priced: PricedLine


# =============================================================================
# Helpers
# =============================================================================

def payment_status_for(paid_cents: int, total_cents: int) -> str:
    if paid_cents >= total_cents:
        return PAYMENT_STATUS_PAID
    if paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def loyalty_points_for(total_cents: int) -> int:
    """Whole points only: one per LOYALTY_POINT_UNIT_CENTS spent, never rounded up."""
    unit = current_app.config.get("LOYALTY_POINT_UNIT_CENTS", 10_000)
    return max(0, total_cents) // unit


def _request_hash(req: CheckoutRequest) -> str:
    canonical = json.dumps(req.fingerprint_payload(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _find_replay(req: CheckoutRequest | None) -> Order | None:
    if req is None or not req.client_token:
        return None
    order = db.session.query(Order).filter_by(client_token=req.client_token).first()
    if order is None:
        return None
    if order.request_hash != _request_hash(req):
        raise ConflictError(
            "client_token was already used for a different order",
            details={"order_id": order.id, "order_number": order.order_number},
        )
    return order


def _prepare_cart(req: CheckoutRequest) -> tuple[Customer | None, list[_PreparedLine], CartTotals]:
    """Every lookup and check that can fail happens here, before any write."""
    inventory_service.require_location(req.location_id)

    customer = None
    if req.customer_id is not None:
        customer = db.session.get(Customer, req.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", details={"customer_id": req.customer_id})

    resolved = []
    amounts = []
    for index, line in enumerate(req.items):
        item = ItemRef(line.product_id, line.variant_id)
        product, variant = inventory_service.require_item(item)
        if not product.is_active or (variant is not None and not variant.is_active):
            raise ValidationError("Product is not available for sale", details=item.to_dict())

        catalog = resolve_line(product, variant)
        unit_price = catalog.unit_price_cents if line.unit_price_cents is None else line.unit_price_cents
        unit_cost = catalog.unit_cost_cents if line.unit_cost_cents is None else line.unit_cost_cents
        tax_rate = catalog.tax_rate if line.tax_rate is None else line.tax_rate

        if line.discount_cents > unit_price * line.quantity:
            raise ValidationError(f"items[{index}].discount_cents exceeds the line amount")

        resolved.append((product, variant, item))
        amounts.append((line.quantity, unit_price, unit_cost, line.discount_cents, tax_rate))

    try:
        totals = calculate_totals(amounts, req.order_discount_cents)
    except ValueError:
        raise ValidationError("order_discount_cents exceeds the subtotal")

    prepared = [
        _PreparedLine(product=product, variant=variant, item=item, priced=priced)
        for (product, variant, item), priced in zip(resolved, totals.lines)
    ]
    return customer, prepared, totals


def _check_stock(location_id: int, prepared: list[_PreparedLine]) -> None:
    needed: dict[ItemRef, int] = {}
    for line in prepared:
        if line.product.track_inventory and not line.product.allow_backorder:
            needed[line.item] = needed.get(line.item, 0) + line.priced.quantity

    insufficient = []
    for item, quantity in needed.items():
        available = inventory_service.get_availability(item, location_id)["available"]
        if available < quantity:
            insufficient.append({**item.to_dict(), "requested_quantity": quantity, "available": available})

    if insufficient:
        raise ValidationError("Insufficient stock", details={"items": insufficient})


def _validate_payments(payments: list[PaymentInput], amount_due_cents: int) -> None:
    """Only cash may exceed what is owed (the excess is change)."""
    non_cash = sum(p.amount_cents for p in payments if p.method != "cash")
    if non_cash > amount_due_cents:
        raise ValidationError(
            "Non-cash payments exceed the amount due",
            details={"non_cash_cents": non_cash, "amount_due_cents": amount_due_cents},
        )


def _write_order(
    req: CheckoutRequest,
    customer: Customer | None,
    prepared: list[_PreparedLine],
    totals: CartTotals,
    *,
    status: str,
    now: datetime,
) -> Order:
    paid = sum(p.amount_cents for p in req.payments)
    is_complete = status == ORDER_STATUS_COMPLETED

    order = Order(
        order_number=next_document_number(document_type="ORDER", prefix="ORD"),
        client_token=req.client_token,
        request_hash=_request_hash(req) if req.client_token else None,
        customer_id=customer.id if customer else None,
        location_id=req.location_id,
        status=status,
        payment_status=payment_status_for(paid, totals.total_cents),
        subtotal_cents=totals.subtotal_cents,
        discount_cents=totals.discount_cents,
        tax_cents=totals.tax_cents,
        total_cents=totals.total_cents,
        paid_cents=paid,
        change_cents=max(0, paid - totals.total_cents) if is_complete else 0,
        notes=req.notes,
        created_at=now,
        completed_at=now if is_complete else None,
    )
    if req.layaway is not None:
        order.layaway_customer_name = req.layaway.customer_name
        order.layaway_customer_phone = req.layaway.customer_phone
        order.layaway_due_date = req.layaway.due_date
        order.layaway_deposit_percent = req.layaway.deposit_percent
    db.session.add(order)
    db.session.flush()

    for line in prepared:
        db.session.add(OrderItem(
            order=order,
            product=line.product,
            variant_id=line.variant.id if line.variant else None,
            product_name=line.product.name,
            variant_name=line.variant.name if line.variant else None,
            sku=line.variant.sku if line.variant else line.product.sku,
            quantity=line.priced.quantity,
            unit_price_cents=line.priced.unit_price_cents,
            unit_cost_cents=line.priced.unit_cost_cents,
            discount_cents=line.priced.discount_cents,
            tax_rate=line.priced.tax_rate,
            tax_cents=line.priced.tax_cents,
            line_total_cents=line.priced.line_total_cents,
            created_at=now,
        ))

    for payment in req.payments:
        db.session.add(Payment(
            order=order,
            method=payment.method,
            amount_cents=payment.amount_cents,
            reference=payment.reference,
            processed_at=now,
        ))
    db.session.flush()
    return order


def _deduct_stock(order: Order) -> tuple[list[dict], list[InventoryRecord]]:
    conflicts = []
    records = []
    for item in order.items:
        if not item.product.track_inventory:
            continue
        result = inventory_service.adjust(
            ItemRef(item.product_id, item.variant_id),
            order.location_id,
            -item.quantity,
            "sale",
            notes=f"Order {order.order_number}",
            reference_type="order",
            reference_id=order.id,
            commit=False,
        )
        records.append(result.record)
        if result.conflict:
            conflicts.append({
                "record_id": result.record.id,
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "location_id": order.location_id,
            })
    return conflicts, records


def _credit_customer(customer: Customer | None, total_cents: int, now: datetime) -> None:
    if customer is None:
        return
    customer.total_spent_cents += total_cents
    customer.total_orders += 1
    customer.loyalty_points += loyalty_points_for(total_cents)
    customer.last_order_at = now


def _sum_payments(order_id: int) -> int:
    return (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id)
        .scalar()
    )


def _run_order_write(op, req: CheckoutRequest | None = None) -> CheckoutResult:
    """
    Run an order write with retry, then push touched stock to the search mirror.

    Store failures never reach the caller raw: they roll back and surface
    as "failed to process payment".
    """
    try:
        result = run_with_retry(op, label="Order write")
    except BoutiqueError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        existing = _find_replay(req)
        if existing is not None:
            logger.info("Concurrent replay of client_token %s resolved to order %s", req.client_token, existing.id)
            return CheckoutResult(order=existing, replayed=True)
        logger.exception("Order write failed on an integrity error")
        raise PaymentProcessingError(FAILED_TO_PROCESS_PAYMENT)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Order write failed")
        raise PaymentProcessingError(FAILED_TO_PROCESS_PAYMENT)

    if result.touched_records:
        search_mirror.push_inventory(result.touched_records)
    return result


# =============================================================================
# Checkout
# =============================================================================

def checkout(req: CheckoutRequest) -> CheckoutResult:
    """
    Turn a cart into a completed order.

    Payments may sum to less than the total (payment_status partial or
    pending); cash may exceed it (change_cents). Stock is deducted per line
    with a "sale" movement; an attached customer gets total_spent,
    total_orders and loyalty points bumped.
    """
    replay = _find_replay(req)
    if replay is not None:
        logger.info("Checkout replay for client_token %s -> order %s", req.client_token, replay.id)
        return CheckoutResult(order=replay, replayed=True)

    def _op() -> CheckoutResult:
        customer, prepared, totals = _prepare_cart(req)
        _check_stock(req.location_id, prepared)
        _validate_payments(req.payments, totals.total_cents)

        now = utcnow()
        order = _write_order(req, customer, prepared, totals, status=ORDER_STATUS_COMPLETED, now=now)
        conflicts, records = _deduct_stock(order)
        _credit_customer(customer, order.total_cents, now)

        db.session.commit()
        return CheckoutResult(order=order, inventory_conflicts=conflicts, touched_records=records)

    return _run_order_write(_op, req)


# =============================================================================
# Layaway
# =============================================================================

def create_layaway_order(req: CheckoutRequest) -> CheckoutResult:
    """
    Open a layaway: deposit now, balance later.

    The deposit must be positive and below the total, and at least the
    chosen deposit percent of the total. Stock is reserved rather than
    deducted, and customer aggregates wait until the layaway completes.
    """
    if req.layaway is None:
        raise ValidationError("Layaway terms are required")

    replay = _find_replay(req)
    if replay is not None:
        return CheckoutResult(order=replay, replayed=True)

    def _op() -> CheckoutResult:
        customer, prepared, totals = _prepare_cart(req)

        terms = req.layaway
        name = terms.customer_name or (customer.full_name if customer else "")
        phone = terms.customer_phone or (customer.phone if customer else "") or ""
        if not name or not phone:
            raise ValidationError("Layaway requires customer name and phone")

        _check_stock(req.location_id, prepared)
        _validate_payments(req.payments, totals.total_cents)

        deposit = sum(p.amount_cents for p in req.payments)
        total = totals.total_cents
        if deposit <= 0:
            raise ValidationError(INSUFFICIENT_PAYMENT, details={"reason": "a deposit is required"})
        if deposit >= total:
            raise ValidationError("Deposit covers the full total; use checkout instead")
        if terms.deposit_percent:
            required = -(-total * terms.deposit_percent // 100)
            if deposit < required:
                raise ValidationError(
                    INSUFFICIENT_PAYMENT,
                    details={"required_deposit_cents": required, "deposit_cents": deposit},
                )

        now = utcnow()
        order = _write_order(req, customer, prepared, totals, status=ORDER_STATUS_LAYAWAY, now=now)
        order.layaway_customer_name = name
        order.layaway_customer_phone = phone

        records = []
        for line in prepared:
            if line.product.track_inventory:
                records.append(inventory_service.reserve(
                    line.item, req.location_id, line.priced.quantity, commit=False
                ))

        db.session.commit()
        return CheckoutResult(order=order, touched_records=records)

    return _run_order_write(_op, req)


def _settle_layaway(order: Order, now: datetime) -> tuple[list[dict], list[InventoryRecord]]:
    for item in order.items:
        if item.product.track_inventory:
            inventory_service.release(
                ItemRef(item.product_id, item.variant_id), order.location_id, item.quantity, commit=False
            )
    conflicts, records = _deduct_stock(order)

    order.status = ORDER_STATUS_COMPLETED
    order.payment_status = PAYMENT_STATUS_PAID
    order.completed_at = now
    order.change_cents = max(0, order.paid_cents - order.total_cents)
    _credit_customer(order.customer, order.total_cents, now)
    return conflicts, records


def record_layaway_payment(order_id: int, payment: PaymentInput, *, require_full: bool = False) -> CheckoutResult:
    """
    Add an installment to a layaway; settles the order once paid >= total.

    require_full: the completion flow, which rejects anything below the
    outstanding balance with "insufficient payment".
    """
    def _op() -> CheckoutResult:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        if order.status != ORDER_STATUS_LAYAWAY:
            raise ConflictError(f"Cannot take a layaway payment on a {order.status} order")

        balance = order.balance_cents
        if require_full and payment.amount_cents < balance:
            raise ValidationError(
                INSUFFICIENT_PAYMENT,
                details={"balance_cents": balance, "amount_cents": payment.amount_cents},
            )
        _validate_payments([payment], balance)

        now = utcnow()
        db.session.add(Payment(
            order_id=order.id,
            method=payment.method,
            amount_cents=payment.amount_cents,
            reference=payment.reference,
            processed_at=now,
        ))
        db.session.flush()
        order.paid_cents = _sum_payments(order.id)

        conflicts: list[dict] = []
        records: list[InventoryRecord] = []
        if order.paid_cents >= order.total_cents:
            conflicts, records = _settle_layaway(order, now)
        else:
            order.payment_status = PAYMENT_STATUS_PARTIAL

        db.session.commit()
        return CheckoutResult(order=order, inventory_conflicts=conflicts, touched_records=records)

    return _run_order_write(_op)


# =============================================================================
# Cancellation / refund
# =============================================================================

def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    if order.status in (ORDER_STATUS_CANCELLED, ORDER_STATUS_REFUNDED):
        raise ConflictError(f"Order is already {order.status}")
    return order


def cancel_order(order_id: int, reason: str | None = None) -> CheckoutResult:
    """Cancel an open layaway and release its reserved stock."""
    def _op() -> CheckoutResult:
        order = _locked_order(order_id)
        if order.status != ORDER_STATUS_LAYAWAY:
            raise ConflictError("Completed orders must be refunded, not cancelled")

        records = []
        for item in order.items:
            if item.product.track_inventory:
                record = inventory_service.release(
                    ItemRef(item.product_id, item.variant_id), order.location_id, item.quantity, commit=False
                )
                if record is not None:
                    records.append(record)

        order.status = ORDER_STATUS_CANCELLED
        order.status_reason = reason
        db.session.commit()
        return CheckoutResult(order=order, touched_records=records)

    return _run_order_write(_op)


def refund_order(order_id: int, reason: str | None = None) -> CheckoutResult:
    """Refund a completed order and put its stock back with "return" movements."""
    def _op() -> CheckoutResult:
        order = _locked_order(order_id)
        if order.status != ORDER_STATUS_COMPLETED:
            raise ConflictError("Only completed orders can be refunded")

        records = []
        for item in order.items:
            if item.product.track_inventory:
                result = inventory_service.adjust(
                    ItemRef(item.product_id, item.variant_id),
                    order.location_id,
                    item.quantity,
                    "return",
                    notes=f"Refund of order {order.order_number}",
                    reference_type="order",
                    reference_id=order.id,
                    commit=False,
                )
                records.append(result.record)

        order.status = ORDER_STATUS_REFUNDED
        order.payment_status = PAYMENT_STATUS_REFUNDED
        for payment in order.payments:
            payment.status = PAYMENT_STATUS_REFUNDED
        order.status_reason = reason
        db.session.commit()
        return CheckoutResult(order=order, touched_records=records)

    return _run_order_write(_op)


# =============================================================================
# Queries
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at < end)

    total = query.count()
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return orders, total


def get_today_stats(location_id: int | None = None, *, now: datetime | None = None) -> dict:
    """Till summary for the current (UTC) day."""
    now = now or utcnow()
    query = db.session.query(Order).filter(
        Order.status.in_(RECOGNIZED_ORDER_STATUSES),
        Order.created_at >= start_of_day(now),
        Order.created_at <= now,
    )
    if location_id is not None:
        query = query.filter(Order.location_id == location_id)

    by_method = {method: 0 for method in PAYMENT_METHODS}
    revenue = 0.0
    items_sold = 0
    orders = query.all()
    for order in orders:
        revenue += recognize(order).revenue_cents
        items_sold += sum(item.quantity for item in order.items)
        for payment in order.payments:
            by_method[payment.method] = by_method.get(payment.method, 0) + payment.amount_cents

    return {
        "date": now.date().isoformat(),
        "order_count": len(orders),
        "revenue_cents": revenue,
        "items_sold": items_sold,
        "payments_by_method": by_method,
    }


def get_layaway_stats(*, today: date | None = None) -> dict:
    today = today or utcnow().date()
    active = db.session.query(Order).filter(Order.status == ORDER_STATUS_LAYAWAY).all()
    return {
        "active_count": len(active),
        "outstanding_cents": sum(order.balance_cents for order in active),
        "deposits_cents": sum(order.paid_cents for order in active),
        "overdue_count": sum(
            1 for order in active if order.layaway_due_date is not None and order.layaway_due_date < today
        ),
    }
