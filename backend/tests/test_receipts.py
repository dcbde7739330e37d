# Overview: Pytest coverage for the goods receipt lifecycle.

import pytest

from fieldstock.errors import DuplicateIdentity, NotFoundError, StateConflict, ValidationError
from fieldstock.extensions import db
from fieldstock.models import InventoryUnit, Receipt
from fieldstock.models.workflows import RECEIPT_STATUS_CANCELLED, RECEIPT_STATUS_COMPLETED, RECEIPT_STATUS_DRAFT
from fieldstock.services import ledger_service, receipt_service
from fieldstock.services.ledger_service import Location

from conftest import receive


def _draft(ctx, area, items, **extra):
    payload = {"stock_area_id": area.id, "items": items, **extra}
    return receipt_service.submit_receipt(ctx, payload)["receipt"]


class TestSubmitReceipt:

    def test_draft_creates_no_units(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 10}])

        assert receipt["status"] == RECEIPT_STATUS_DRAFT
        assert receipt["slip_number"].startswith("GRN-")
        assert db.session.query(InventoryUnit).count() == 0

    def test_complete_on_submit(self, ctx, main_store, cable, router):
        result = receipt_service.submit_receipt(
            ctx,
            {
                "stock_area_id": main_store.id,
                "items": [
                    {"material_id": cable.id, "quantity": 5, "price": "12.50"},
                    {"material_id": router.id, "serial_number": "SN-1", "mac_id": "AA:BB"},
                ],
                "invoice_number": "INV-1",
                "documents": ["files/inv-1.pdf"],
            },
            complete=True,
        )

        assert result["receipt"]["status"] == RECEIPT_STATUS_COMPLETED
        assert len(result["unit_ids"]) == 6
        assert result["receipt"]["lines"][0]["price"] == "12.50"
        assert result["receipt"]["documents"] == ["files/inv-1.pdf"]
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 5

    def test_serialized_line_requires_quantity_one(self, ctx, main_store, router):
        with pytest.raises(ValidationError):
            _draft(ctx, main_store, [{"material_id": router.id, "serial_number": "SN-1", "quantity": 2}])

    def test_missing_items_rejected(self, ctx, main_store):
        with pytest.raises(ValidationError):
            _draft(ctx, main_store, [])

    def test_inactive_material_rejected(self, ctx, main_store, cable):
        cable.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError):
            _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}])

    def test_invalid_date_rejected(self, ctx, main_store, cable):
        with pytest.raises(ValidationError):
            _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}], receipt_date="yesterday")

    def test_provided_slip_number_used(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}], slip_number="GRN-MANUAL-1")
        assert receipt["slip_number"] == "GRN-MANUAL-1"

    def test_taken_slip_number_rejected(self, ctx, main_store, cable):
        _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}], slip_number="GRN-MANUAL-1")

        with pytest.raises(ValidationError):
            _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}], slip_number="GRN-MANUAL-1")
        assert db.session.query(Receipt).count() == 1


class TestCompleteReceipt:

    def test_complete_is_idempotent(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 4}])

        first = receipt_service.complete_receipt(ctx, receipt["id"])
        second = receipt_service.complete_receipt(ctx, receipt["id"])

        assert first["created"] is True
        assert second["created"] is False
        assert second["unit_ids"] == first["unit_ids"]
        assert db.session.query(InventoryUnit).count() == 4

    def test_complete_fills_partially_materialized_line(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 4}])
        line_id = receipt["lines"][0]["id"]
        ledger_service.create_units(
            ctx, material_id=cable.id, stock_area_id=main_store.id, count=1, receipt_line_id=line_id
        )
        db.session.commit()

        result = receipt_service.complete_receipt(ctx, receipt["id"])

        assert len(result["unit_ids"]) == 4
        assert db.session.query(InventoryUnit).count() == 4

    def test_duplicate_serial_rolls_back_completion(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-1"])
        receipt = _draft(ctx, main_store, [{"material_id": router.id, "serial_number": "SN-1"}])

        with pytest.raises(DuplicateIdentity):
            receipt_service.complete_receipt(ctx, receipt["id"])

        assert receipt_service.get_receipt(ctx, receipt["id"])["status"] == RECEIPT_STATUS_DRAFT
        assert db.session.query(InventoryUnit).count() == 1

    def test_cancelled_receipt_cannot_complete(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}])
        receipt_service.cancel_receipt(ctx, receipt["id"])

        with pytest.raises(StateConflict):
            receipt_service.complete_receipt(ctx, receipt["id"])

    def test_unknown_receipt(self, ctx):
        with pytest.raises(NotFoundError):
            receipt_service.complete_receipt(ctx, 4242)


class TestCancelReceipt:

    def test_cancel_draft(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}])

        cancelled = receipt_service.cancel_receipt(ctx, receipt["id"])
        again = receipt_service.cancel_receipt(ctx, receipt["id"])

        assert cancelled["status"] == RECEIPT_STATUS_CANCELLED
        assert again["status"] == RECEIPT_STATUS_CANCELLED

    def test_completed_receipt_cannot_cancel(self, ctx, main_store, cable):
        receipt = _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}])
        receipt_service.complete_receipt(ctx, receipt["id"])

        with pytest.raises(StateConflict):
            receipt_service.cancel_receipt(ctx, receipt["id"])

    def test_list_by_status(self, ctx, main_store, cable):
        _draft(ctx, main_store, [{"material_id": cable.id, "quantity": 1}])
        receive(ctx, main_store, cable, quantity=1)

        assert len(receipt_service.list_receipts(ctx)) == 2
        assert len(receipt_service.list_receipts(ctx, status="completed")) == 1
