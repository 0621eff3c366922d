"""
Purchase order lifecycle tests: draft -> sent -> partial -> received.
"""

import pytest

from boutique.models import StockMovement
from boutique.services import inventory_service, purchasing_service
from boutique.services.inventory_service import ItemRef
from boutique.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def draft_po(db_session, location, supplier, product, taxed_product):
    return purchasing_service.create_purchase_order(
        supplier.id,
        location.id,
        [
            {"product_id": product.id, "quantity": 10},
            {"product_id": taxed_product.id, "quantity": 4, "unit_cost_cents": 750},
        ],
        notes="Spring restock",
    )


class TestCreate:
    def test_draft_totals_and_numbering(self, db_session, draft_po):
        assert draft_po.po_number == "PO-000001"
        assert draft_po.status == "draft"
        # 10 x 6.00 (catalog cost) + 4 x 7.50 (quoted)
        assert draft_po.total_cents == 9000
        assert [item.unit_cost_cents for item in draft_po.items] == [600, 750]

    def test_unknown_supplier(self, db_session, location, product):
        with pytest.raises(NotFoundError):
            purchasing_service.create_purchase_order(999, location.id, [{"product_id": product.id, "quantity": 1}])

    def test_empty_order_rejected(self, db_session, location, supplier):
        with pytest.raises(ValidationError):
            purchasing_service.create_purchase_order(supplier.id, location.id, [])

    def test_zero_quantity_rejected(self, db_session, location, supplier, product):
        with pytest.raises(ValidationError):
            purchasing_service.create_purchase_order(
                supplier.id, location.id, [{"product_id": product.id, "quantity": 0}]
            )


class TestReceive:
    def test_draft_cannot_be_received(self, db_session, draft_po):
        with pytest.raises(ConflictError):
            purchasing_service.receive_purchase_order(draft_po.id)

    def test_partial_then_full_receipt(self, db_session, location, product, taxed_product, draft_po):
        purchasing_service.send_purchase_order(draft_po.id)
        first_line = draft_po.items[0]

        po = purchasing_service.receive_purchase_order(draft_po.id, [{"item_id": first_line.id, "quantity": 6}])
        assert po.status == "partial"
        assert po.received_at is None
        assert inventory_service.get_availability(ItemRef(product.id), location.id)["quantity"] == 6

        po = purchasing_service.receive_purchase_order(draft_po.id)
        assert po.status == "received"
        assert po.received_at is not None
        assert inventory_service.get_availability(ItemRef(product.id), location.id)["quantity"] == 10
        assert inventory_service.get_availability(ItemRef(taxed_product.id), location.id)["quantity"] == 4

        movements = db_session.query(StockMovement).filter_by(reference_type="purchase_order").all()
        assert {m.movement_type for m in movements} == {"purchase"}
        assert sum(m.quantity for m in movements) == 14

    def test_over_receipt_rejected(self, db_session, draft_po):
        purchasing_service.send_purchase_order(draft_po.id)
        with pytest.raises(ValidationError):
            purchasing_service.receive_purchase_order(
                draft_po.id, [{"item_id": draft_po.items[1].id, "quantity": 5}]
            )

    def test_unknown_line_rejected(self, db_session, draft_po):
        purchasing_service.send_purchase_order(draft_po.id)
        with pytest.raises(NotFoundError):
            purchasing_service.receive_purchase_order(draft_po.id, [{"item_id": 4242, "quantity": 1}])


class TestTransitions:
    def test_send_stamps_sent_at(self, db_session, draft_po):
        po = purchasing_service.send_purchase_order(draft_po.id)
        assert po.status == "sent"
        assert po.sent_at is not None

        with pytest.raises(ConflictError):
            purchasing_service.send_purchase_order(draft_po.id)

    def test_cancel_sent_order(self, db_session, draft_po):
        purchasing_service.send_purchase_order(draft_po.id)
        assert purchasing_service.cancel_purchase_order(draft_po.id).status == "cancelled"

    def test_received_order_cannot_be_cancelled(self, db_session, draft_po):
        purchasing_service.send_purchase_order(draft_po.id)
        purchasing_service.receive_purchase_order(draft_po.id)
        with pytest.raises(ConflictError):
            purchasing_service.cancel_purchase_order(draft_po.id)

    def test_list_by_status(self, db_session, draft_po):
        assert [po.id for po in purchasing_service.list_purchase_orders(status="draft")] == [draft_po.id]
        assert purchasing_service.list_purchase_orders(status="sent") == []
