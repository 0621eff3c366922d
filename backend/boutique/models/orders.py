from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_LAYAWAY = "layaway"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_REFUNDED = "refunded"

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_REFUNDED = "refunded"

# Orders that count towards revenue, velocity and loyalty.
RECOGNIZED_ORDER_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_LAYAWAY)


class Order(db.Model):
    """
    Order header produced by checkout.

    WHY: One row per finalized cart. client_token is the idempotency key
    supplied by the till; replaying a checkout with the same token returns
    this row instead of writing a second order.

    LIFECYCLE:
    - completed: paid (or accepted) direct sale, stock deducted
    - layaway: deposit taken, stock reserved, balance outstanding
    - cancelled / refunded: terminal

    MONEY: all *_cents columns; paid_cents always equals the sum of the
    order's payments.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    client_token = db.Column(db.String(64), nullable=True, unique=True)
    # Fingerprint of the cart that produced this order (detects token reuse)
    request_hash = db.Column(db.String(64), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Layaway
    layaway_customer_name = db.Column(db.String(255), nullable=True)
    layaway_customer_phone = db.Column(db.String(32), nullable=True)
    layaway_due_date = db.Column(db.Date, nullable=True)
    layaway_deposit_percent = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    status_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    location = db.relationship("Location")
    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")
    payments = db.relationship("Payment", back_populates="order", lazy=True, order_by="Payment.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_cents(self) -> int:
        return max(0, self.total_cents - self.paid_cents)

    @property
    def cost_cents(self) -> int:
        return sum(item.unit_cost_cents * item.quantity for item in self.items)

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "client_token": self.client_token,
            "customer_id": self.customer_id,
            "location_id": self.location_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "change_cents": self.change_cents,
            "balance_cents": self.balance_cents,
            "layaway_customer_name": self.layaway_customer_name,
            "layaway_customer_phone": self.layaway_customer_phone,
            "layaway_due_date": self.layaway_due_date.isoformat() if self.layaway_due_date else None,
            "layaway_deposit_percent": self.layaway_deposit_percent,
            "notes": self.notes,
            "status_reason": self.status_reason,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class OrderItem(db.Model):
    """
    Immutable line snapshot taken at sale time.

    Name, sku, price, cost and tax are copied from the catalog so that
    later price changes never move historical analytics.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_name = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_name": self.variant_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "discount_cents": self.discount_cents,
            "tax_rate": str(self.tax_rate),
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    One settlement event on an order.

    TENDER TYPES: cash, mpesa, card, bank_transfer, credit. Only the
    method/amount/reference triple is recorded; gateway protocols are
    handled outside this system.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed")
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "status": self.status,
            "processed_at": to_utc_z(self.processed_at),
        }


class DocumentSequence(db.Model):
    """Per-document-type counter used to allocate human-readable numbers."""
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
