from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from .time_utils import parse_iso_date


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

PAYMENT_METHODS = ("cash", "mpesa", "card", "bank_transfer", "credit")


class BoutiqueError(ValueError):
    """Base for errors surfaced to API callers with a status code."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(BoutiqueError):
    """400-level input problem."""


class NotFoundError(BoutiqueError):
    """404-level missing location/product/order/supplier."""
    status_code = 404


class ConflictError(BoutiqueError):
    """409-level business rule conflict (illegal transition, reused idempotency token)."""
    status_code = 409


class PaymentProcessingError(BoutiqueError):
    """Unexpected store failure while writing an order; the caller sees a generic message."""
    status_code = 500


class ExternalServiceError(BoutiqueError):
    """Search mirror / recommendation provider failure. Never escalated past the caller."""
    status_code = 502


# =============================================================================
# Scalar coercion
# =============================================================================

def parse_int(value: Any, field_name: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer parsing: rejects floats, bools, decimals and scientific notation.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field_name} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    else:
        raise ValidationError(f"{field_name} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field_name} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field_name} cannot exceed {maximum}")
    return result


def parse_optional_int(value: Any, field_name: str, **kwargs) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field_name, **kwargs)


def parse_tax_rate(value: Any, field_name: str = "tax_rate") -> Decimal | None:
    """None stays None (inherit); any number, zero included, is an explicit rate."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number")
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError(f"{field_name} must be a fraction between 0 and 1")
    return rate


def _optional_str(value: Any, max_len: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_len]


# =============================================================================
# Checkout payloads
# =============================================================================

@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    variant_id: int | None = None
    unit_price_cents: int | None = None
    unit_cost_cents: int | None = None
    discount_cents: int = 0
    tax_rate: Decimal | None = None


@dataclass(frozen=True)
class PaymentInput:
    method: str
    amount_cents: int
    reference: str | None = None


@dataclass(frozen=True)
class LayawayTerms:
    customer_name: str
    customer_phone: str
    due_date: date | None = None
    deposit_percent: int | None = None


@dataclass(frozen=True)
class CheckoutRequest:
    location_id: int
    items: list[CartLine]
    payments: list[PaymentInput] = field(default_factory=list)
    customer_id: int | None = None
    order_discount_cents: int = 0
    client_token: str | None = None
    notes: str | None = None
    layaway: LayawayTerms | None = None

    def fingerprint_payload(self) -> dict:
        """Canonical form used to detect a client token replayed with a different cart."""
        return {
            "location_id": self.location_id,
            "customer_id": self.customer_id,
            "order_discount_cents": self.order_discount_cents,
            "items": [
                [
                    line.product_id,
                    line.variant_id,
                    line.quantity,
                    line.unit_price_cents,
                    line.unit_cost_cents,
                    line.discount_cents,
                    None if line.tax_rate is None else str(line.tax_rate),
                ]
                for line in self.items
            ],
            "payments": [[p.method, p.amount_cents, p.reference] for p in self.payments],
            "layaway": None if self.layaway is None else [
                self.layaway.customer_name,
                self.layaway.customer_phone,
                self.layaway.deposit_percent,
            ],
        }


def parse_payment(raw: Any, index: int | None = None) -> PaymentInput:
    label = "payment" if index is None else f"payments[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")
    method = str(raw.get("method") or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"{label}.method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"method": raw.get("method")},
        )
    amount = parse_int(raw.get("amount_cents"), f"{label}.amount_cents", minimum=1, maximum=MAX_AMOUNT_CENTS)
    return PaymentInput(method=method, amount_cents=amount, reference=_optional_str(raw.get("reference"), 128))


def _parse_line(raw: Any, index: int) -> CartLine:
    label = f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")
    quantity = parse_int(raw.get("quantity"), f"{label}.quantity")
    if quantity <= 0:
        raise ValidationError(f"{label}.quantity must be greater than zero")
    return CartLine(
        product_id=parse_int(raw.get("product_id"), f"{label}.product_id", minimum=1),
        variant_id=parse_optional_int(raw.get("variant_id"), f"{label}.variant_id", minimum=1),
        quantity=quantity,
        unit_price_cents=parse_optional_int(
            raw.get("unit_price_cents"), f"{label}.unit_price_cents", minimum=0, maximum=MAX_AMOUNT_CENTS
        ),
        unit_cost_cents=parse_optional_int(
            raw.get("unit_cost_cents"), f"{label}.unit_cost_cents", minimum=0, maximum=MAX_AMOUNT_CENTS
        ),
        discount_cents=parse_optional_int(raw.get("discount_cents"), f"{label}.discount_cents", minimum=0) or 0,
        tax_rate=parse_tax_rate(raw.get("tax_rate"), f"{label}.tax_rate"),
    )


def parse_checkout_payload(payload: Any, *, layaway: bool = False) -> CheckoutRequest:
    """
    Validate + normalize a checkout (or layaway) JSON body.

    Rejects malformed carts before anything touches the database:
    missing location, empty cart, non-positive quantities, unknown payment
    methods and non-positive payment amounts.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if payload.get("location_id") in (None, ""):
        raise ValidationError("location_id is required")
    location_id = parse_int(payload.get("location_id"), "location_id", minimum=1)

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Cart must contain at least one item")
    items = [_parse_line(raw, i) for i, raw in enumerate(raw_items)]

    raw_payments = payload.get("payments") or []
    if not isinstance(raw_payments, list):
        raise ValidationError("payments must be a list")
    payments = [parse_payment(raw, i) for i, raw in enumerate(raw_payments)]

    terms = None
    if layaway:
        name = _optional_str(payload.get("layaway_customer_name"), 255)
        phone = _optional_str(payload.get("layaway_customer_phone"), 32)
        deposit_percent = parse_optional_int(payload.get("deposit_percent"), "deposit_percent", minimum=1, maximum=99)
        due_raw = payload.get("due_date")
        try:
            due_date = parse_iso_date(due_raw) if due_raw else None
        except ValueError:
            raise ValidationError("due_date must be an ISO-8601 date")
        terms = LayawayTerms(
            customer_name=name or "",
            customer_phone=phone or "",
            due_date=due_date,
            deposit_percent=deposit_percent,
        )

    token = _optional_str(payload.get("client_token"), 64)

    return CheckoutRequest(
        location_id=location_id,
        items=items,
        payments=payments,
        customer_id=parse_optional_int(payload.get("customer_id"), "customer_id", minimum=1),
        order_discount_cents=parse_optional_int(
            payload.get("order_discount_cents"), "order_discount_cents", minimum=0
        ) or 0,
        client_token=token,
        notes=_optional_str(payload.get("notes"), 2000),
        layaway=terms,
    )
