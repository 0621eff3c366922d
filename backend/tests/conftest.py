"""
Pytest fixtures for boutique backend tests.

Provides the in-memory database, a small catalog (location, category,
supplier, products and variants), stock seeding and checkout helpers.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from boutique import create_app
from boutique.config import TestingConfig
from boutique.extensions import db
from boutique.models import Category, Customer, Location, Product, ProductVariant, Supplier
from boutique.services import inventory_service, order_service
from boutique.services.inventory_service import ItemRef
from boutique.validation import parse_checkout_payload


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location(db_session):
    loc = Location(name="Main Store", is_default=True, is_active=True)
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def category(db_session):
    cat = Category(name="Dresses", slug="dresses")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier with no nominal lead time (falls back to the configured default)."""
    sup = Supplier(name="Nairobi Textiles", contact_person="Amina", phone="+254700000001")
    db_session.add(sup)
    db_session.commit()
    return sup


@pytest.fixture(scope='function')
def product(db_session, category, supplier):
    """Untaxed tracked product: price 10.00, cost 6.00."""
    prod = Product(
        sku="DRS-001",
        name="Linen Wrap Dress",
        category_id=category.id,
        supplier_id=supplier.id,
        cost_price_cents=600,
        selling_price_cents=1000,
        tax_rate=Decimal("0"),
        low_stock_threshold=5,
        reorder_quantity=20,
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def taxed_product(db_session, category, supplier):
    """Product taxed at 16%: price 20.00, cost 8.00."""
    prod = Product(
        sku="DRS-002",
        name="Silk Slip Dress",
        category_id=category.id,
        supplier_id=supplier.id,
        cost_price_cents=800,
        selling_price_cents=2000,
        tax_rate=Decimal("0.16"),
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def uncategorized_product(db_session):
    prod = Product(
        sku="ACC-001",
        name="Beaded Belt",
        cost_price_cents=200,
        selling_price_cents=500,
        tax_rate=Decimal("0"),
    )
    db_session.add(prod)
    db_session.commit()
    return prod


@pytest.fixture(scope='function')
def variants(db_session, taxed_product):
    """
    Three variants of taxed_product:
    - exempt: explicit 0% tax, inherits price/cost
    - inherit: every pricing column NULL
    - premium: own price and cost
    """
    exempt = ProductVariant(product_id=taxed_product.id, sku="DRS-002-S", name="Small", tax_rate=Decimal("0"))
    inherit = ProductVariant(product_id=taxed_product.id, sku="DRS-002-M", name="Medium")
    premium = ProductVariant(
        product_id=taxed_product.id,
        sku="DRS-002-XL",
        name="Extra Large",
        selling_price_cents=2500,
        cost_price_cents=1000,
    )
    db_session.add_all([exempt, inherit, premium])
    db_session.commit()
    return {"exempt": exempt, "inherit": inherit, "premium": premium}


@pytest.fixture(scope='function')
def customer(db_session):
    cust = Customer(first_name="Wanjiru", last_name="Kamau", email="wanjiru@example.com", phone="+254711111111")
    db_session.add(cust)
    db_session.commit()
    return cust


@pytest.fixture(scope='function')
def stock(db_session, location):
    """Seed opening stock: stock(product, 10) or stock(product, 5, variant=v)."""
    def _stock(prod, quantity, *, variant=None, location_id=None):
        item = ItemRef(prod.id, variant.id if variant else None)
        return inventory_service.adjust(item, location_id or location.id, quantity, "initial").record
    return _stock


@pytest.fixture(scope='function')
def backdate(db_session):
    """Move an order (and its lines) to a fixed point in time."""
    def _backdate(order, created_at: datetime):
        order.created_at = created_at
        if order.completed_at is not None:
            order.completed_at = created_at
        for item in order.items:
            item.created_at = created_at
        db_session.commit()
        return order
    return _backdate


@pytest.fixture(scope='function')
def make_checkout(db_session, location, backdate):
    """
    Run a checkout from (product, quantity) pairs.

    No payments unless given; created_at moves the order in time.
    """
    def _checkout(lines, *, payments=None, created_at=None, **extra):
        payload = cart_payload(location, lines, payments=payments or [], **extra)
        result = order_service.checkout(parse_checkout_payload(payload))
        if created_at is not None:
            backdate(result.order, created_at)
        return result
    return _checkout


def cart_payload(location, lines, **extra) -> dict:
    """JSON body for a checkout/layaway request from (product, quantity) pairs."""
    return {
        "location_id": location.id,
        "items": [{"product_id": prod.id, "quantity": quantity} for prod, quantity in lines],
        **extra,
    }


@pytest.fixture(scope='function')
def cart():
    return cart_payload
