# Overview: Flask CLI command groups for bootstrap, reconciliation and reorder runs.

# backend/boutique/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed-demo
#   Idempotent demo data: default location, category, supplier and three products with opening stock.
#
# Inventory reconciliation:
# - python -m flask inventory drift [--location-id 1]
#   List records whose quantity disagrees with the stock-movement log, or that a sale flagged.
# - python -m flask inventory reconcile --record-id 7 [--counted 12]
#   Reset a record to its log-derived quantity (or to a physical count) and clear the flag.
#
# Reorder intelligence:
# - python -m flask reorder recommend [--offline]
#   Build reorder inputs and print the provider's recommendations as JSON.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Location, Product, Supplier
from .services import inventory_service, reorder_service
from .services.inventory_service import ItemRef
from .services.recommendation_provider import DeterministicRecommendationProvider
from .validation import BoutiqueError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the configured database."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Seed a default location, category, supplier and products (idempotent)."""
    location = db.session.query(Location).filter_by(is_default=True).first()
    if location is None:
        location = Location(name="Main Store", is_default=True, is_active=True)
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created default location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    category = db.session.query(Category).filter_by(slug="dresses").first()
    if category is None:
        category = Category(name="Dresses", slug="dresses")
        db.session.add(category)

    supplier = db.session.query(Supplier).filter_by(name="Demo Textiles").first()
    if supplier is None:
        supplier = Supplier(name="Demo Textiles", lead_time_days=7)
        db.session.add(supplier)
    db.session.commit()

    demo_products = [
        ("DRS-001", "Linen Wrap Dress", 2500, 6500, 20),
        ("DRS-002", "Silk Slip Dress", 4000, 9900, 8),
        ("DRS-003", "Cotton Shirt Dress", 1800, 4500, 30),
    ]
    for sku, name, cost, price, opening in demo_products:
        if db.session.query(Product).filter_by(sku=sku).first():
            click.echo(f"WARN  Product '{sku}' already exists, skipping...")
            continue
        product = Product(
            sku=sku,
            name=name,
            cost_price_cents=cost,
            selling_price_cents=price,
            category_id=category.id,
            supplier_id=supplier.id,
        )
        db.session.add(product)
        db.session.commit()
        inventory_service.adjust(ItemRef(product.id), location.id, opening, "initial", notes="Demo opening stock")
        click.echo(f"PASS Created product {sku} with {opening} units")


@click.group('inventory')
def inventory_group():
    """Inventory inspection and reconciliation."""


@inventory_group.command('drift')
@click.option('--location-id', type=int, default=None, help='Limit to one location')
@with_appcontext
def inventory_drift(location_id):
    """List records that disagree with the movement log or are flagged."""
    rows = inventory_service.find_drift(location_id)
    if not rows:
        click.echo("PASS No inventory drift detected")
        return
    for row in rows:
        record = row["record"]
        click.echo(
            f"DRIFT record={record['id']} product={record['product_id']} variant={record['variant_id']} "
            f"location={record['location_id']} quantity={record['quantity']} "
            f"ledger={row['ledger_quantity']} flagged={record['needs_reconciliation']}"
        )
    click.echo(f"\n{len(rows)} record(s) need attention")


@inventory_group.command('reconcile')
@click.option('--record-id', type=int, required=True, help='Inventory record ID')
@click.option('--counted', type=int, default=None, help='Physical count to reconcile to')
@with_appcontext
def inventory_reconcile(record_id, counted):
    """Reset a record from its movement log (or a physical count)."""
    try:
        record = inventory_service.reconcile(record_id, counted)
    except BoutiqueError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Record {record.id} reconciled to quantity {record.quantity}")


@click.group('reorder')
def reorder_group():
    """Reorder intelligence."""


@reorder_group.command('recommend')
@click.option('--offline', is_flag=True, help='Use the deterministic provider instead of the configured one')
@with_appcontext
def reorder_recommend(offline):
    """Print reorder recommendations as JSON."""
    provider = DeterministicRecommendationProvider() if offline else None
    result = reorder_service.generate_recommendations(provider)
    click.echo(json.dumps(result, indent=2, default=str))
    if not result["success"]:
        click.echo(f"WARN  No recommendations: {result['error']}", err=True)


def register_commands(app):
    """Register CLI command groups with the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reorder_group)
