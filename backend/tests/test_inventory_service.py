"""
Inventory ledger tests.

Every change goes through adjust(): the record is clamped at zero while
the movement keeps the requested delta, and over-sells are flagged so
find_drift()/reconcile() can correct them afterwards.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from boutique.models import InventoryRecord, Location, StockMovement
from boutique.services import inventory_service
from boutique.services.inventory_service import ItemRef
from boutique.validation import NotFoundError, ValidationError


class TestAdjust:
    def test_first_touch_creates_record(self, db_session, location, product):
        result = inventory_service.adjust(ItemRef(product.id), location.id, 12, "initial")

        assert result.record.quantity == 12
        assert result.record.reserved_quantity == 0
        assert result.movement.quantity == 12
        assert result.movement.movement_type == "initial"
        assert db_session.query(InventoryRecord).count() == 1

    def test_quantity_floored_at_zero(self, db_session, location, product, stock):
        stock(product, 3)
        result = inventory_service.adjust(ItemRef(product.id), location.id, -5, "damage")

        assert result.record.quantity == 0
        assert result.clamped is True
        # The log keeps the requested delta
        assert result.movement.quantity == -5

    def test_every_adjust_appends_a_movement(self, db_session, location, product, stock):
        stock(product, 10)
        inventory_service.adjust(ItemRef(product.id), location.id, -2, "damage", notes="Torn hem")
        inventory_service.adjust(ItemRef(product.id), location.id, 1, "return")

        movements = inventory_service.list_movements(item=ItemRef(product.id), location_id=location.id)
        assert [m.movement_type for m in movements] == ["initial", "damage", "return"]
        assert [m.quantity for m in movements] == [10, -2, 1]
        assert movements[1].notes == "Torn hem"

    def test_variants_are_stocked_separately(self, db_session, location, taxed_product, variants, stock):
        stock(taxed_product, 4, variant=variants["exempt"])
        stock(taxed_product, 7, variant=variants["inherit"])

        small = inventory_service.get_availability(ItemRef(taxed_product.id, variants["exempt"].id), location.id)
        medium = inventory_service.get_availability(ItemRef(taxed_product.id, variants["inherit"].id), location.id)
        base = inventory_service.get_availability(ItemRef(taxed_product.id), location.id)

        assert small["quantity"] == 4
        assert medium["quantity"] == 7
        assert base["quantity"] == 0

    def test_unknown_location_rejected(self, db_session, product):
        with pytest.raises(NotFoundError) as exc:
            inventory_service.adjust(ItemRef(product.id), 9999, 5, "initial")
        assert exc.value.message == "location not configured"
        assert db_session.query(StockMovement).count() == 0

    def test_inactive_location_rejected(self, db_session, product):
        closed = Location(name="Closed Pop-up", is_active=False)
        db_session.add(closed)
        db_session.commit()

        with pytest.raises(NotFoundError):
            inventory_service.adjust(ItemRef(product.id), closed.id, 5, "initial")

    def test_unknown_product_rejected(self, db_session, location):
        with pytest.raises(NotFoundError):
            inventory_service.adjust(ItemRef(424242), location.id, 5, "initial")

    def test_variant_of_other_product_rejected(self, db_session, location, product, variants):
        with pytest.raises(NotFoundError):
            inventory_service.adjust(ItemRef(product.id, variants["exempt"].id), location.id, 5, "initial")

    def test_unknown_movement_type_rejected(self, db_session, location, product):
        with pytest.raises(ValidationError):
            inventory_service.adjust(ItemRef(product.id), location.id, 5, "theft")

    def test_oversell_flags_record(self, db_session, location, product, stock):
        """A sale beyond available stock still applies but marks the record."""
        stock(product, 2)
        result = inventory_service.adjust(ItemRef(product.id), location.id, -3, "sale")

        assert result.conflict is True
        assert result.record.needs_reconciliation is True
        assert result.record.quantity == 0

    def test_backorder_product_never_flags(self, db_session, location, product, stock):
        product.allow_backorder = True
        db_session.commit()
        stock(product, 1)

        result = inventory_service.adjust(ItemRef(product.id), location.id, -3, "sale")
        assert result.conflict is False
        assert result.record.needs_reconciliation is False


class TestReservations:
    def test_reserve_reduces_available_not_on_hand(self, db_session, location, product, stock):
        stock(product, 10)
        inventory_service.reserve(ItemRef(product.id), location.id, 4)

        availability = inventory_service.get_availability(ItemRef(product.id), location.id)
        assert availability["quantity"] == 10
        assert availability["reserved"] == 4
        assert availability["available"] == 6

    def test_release_never_goes_negative(self, db_session, location, product, stock):
        stock(product, 10)
        inventory_service.reserve(ItemRef(product.id), location.id, 2)
        record = inventory_service.release(ItemRef(product.id), location.id, 5)
        assert record.reserved_quantity == 0

    def test_damage_into_held_stock_flags_record(self, db_session, location, product, stock):
        stock(product, 5)
        inventory_service.reserve(ItemRef(product.id), location.id, 3)

        result = inventory_service.adjust(ItemRef(product.id), location.id, -4, "damage")
        assert result.conflict is True
        assert result.clamped is False

        availability = inventory_service.get_availability(ItemRef(product.id), location.id)
        assert availability["quantity"] == 1
        assert availability["reserved"] == 3
        assert availability["available"] == 0
        assert availability["needs_reconciliation"] is True

    def test_damage_within_free_stock_does_not_flag(self, db_session, location, product, stock):
        stock(product, 5)
        inventory_service.reserve(ItemRef(product.id), location.id, 3)

        result = inventory_service.adjust(ItemRef(product.id), location.id, -2, "damage")
        assert result.conflict is False
        assert inventory_service.get_availability(ItemRef(product.id), location.id)["available"] == 0

    def test_release_without_record_is_noop(self, db_session, location, product):
        assert inventory_service.release(ItemRef(product.id), location.id, 1) is None

    def test_untouched_item_reads_as_zero(self, db_session, location, product):
        availability = inventory_service.get_availability(ItemRef(product.id), location.id)
        assert availability == {
            "product_id": product.id,
            "variant_id": None,
            "location_id": location.id,
            "quantity": 0,
            "reserved": 0,
            "available": 0,
            "needs_reconciliation": False,
        }


class TestRecordIdentity:
    def test_one_base_record_per_product_and_location(self, db_session, location, product):
        db_session.add(InventoryRecord(product_id=product.id, location_id=location.id, quantity=1))
        db_session.commit()

        db_session.add(InventoryRecord(product_id=product.id, location_id=location.id, quantity=2))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

        assert db_session.query(InventoryRecord).count() == 1

    def test_variant_records_sit_beside_the_base_record(self, db_session, location, taxed_product, variants):
        db_session.add_all([
            InventoryRecord(product_id=taxed_product.id, location_id=location.id, quantity=1),
            InventoryRecord(
                product_id=taxed_product.id, variant_id=variants["exempt"].id, location_id=location.id, quantity=1
            ),
        ])
        db_session.commit()
        assert db_session.query(InventoryRecord).count() == 2


class TestReconciliation:
    def test_consistent_ledger_has_no_drift(self, db_session, location, product, stock):
        stock(product, 10)
        inventory_service.adjust(ItemRef(product.id), location.id, -4, "damage")
        assert inventory_service.find_drift() == []

    def test_ledger_replay_matches_clamped_record(self, db_session, location, product, stock):
        stock(product, 2)
        inventory_service.adjust(ItemRef(product.id), location.id, -5, "damage")
        inventory_service.adjust(ItemRef(product.id), location.id, 3, "return")

        assert inventory_service.ledger_quantity(ItemRef(product.id), location.id) == 3
        assert inventory_service.find_drift() == []

    def test_direct_edit_detected_and_reconciled(self, db_session, location, product, stock):
        record = stock(product, 10)
        record.quantity = 4
        db_session.commit()

        drift = inventory_service.find_drift(location.id)
        assert len(drift) == 1
        assert drift[0]["ledger_quantity"] == 10
        assert drift[0]["difference"] == -6

        reconciled = inventory_service.reconcile(record.id)
        assert reconciled.quantity == 10
        assert inventory_service.find_drift() == []

    def test_flagged_record_listed_until_reconciled(self, db_session, location, product, stock):
        record = stock(product, 1)
        inventory_service.adjust(ItemRef(product.id), location.id, -2, "sale")

        assert [row["record"]["id"] for row in inventory_service.find_drift()] == [record.id]

        reconciled = inventory_service.reconcile(record.id)
        assert reconciled.needs_reconciliation is False
        assert inventory_service.find_drift() == []

    def test_physical_count_appends_adjustment(self, db_session, location, product, stock):
        record = stock(product, 10)
        reconciled = inventory_service.reconcile(record.id, 7, notes="Quarterly count")

        assert reconciled.quantity == 7
        last = inventory_service.list_movements(item=ItemRef(product.id))[-1]
        assert last.movement_type == "adjustment"
        assert last.quantity == -3
        assert last.reference_type == "reconciliation"
        assert inventory_service.ledger_quantity(ItemRef(product.id), location.id) == 7

    def test_reconcile_unknown_record(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.reconcile(31337)


class TestLowStock:
    def test_threshold_from_product(self, db_session, location, product, stock):
        stock(product, 5)
        rows = inventory_service.list_low_stock(location.id)
        assert [row["product_id"] for row in rows] == [product.id]
        assert rows[0]["low_stock_threshold"] == 5
        assert rows[0]["out_of_stock"] is False

    def test_default_threshold_applies(self, db_session, location, taxed_product, stock):
        stock(taxed_product, 11)
        assert inventory_service.list_low_stock() == []

        inventory_service.adjust(ItemRef(taxed_product.id), location.id, -1, "damage")
        rows = inventory_service.list_low_stock()
        assert rows[0]["low_stock_threshold"] == 10
