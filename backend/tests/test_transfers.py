# Overview: Pytest coverage for stock transfers between areas and to technicians.

import pytest

from fieldstock.errors import InsufficientStock, NotFoundError, StateConflict, ValidationError
from fieldstock.extensions import db
from fieldstock.models import InventoryUnit, Transfer
from fieldstock.models.ledger import LOCATION_PERSON, STATUS_AVAILABLE, STATUS_IN_TRANSIT
from fieldstock.models.workflows import DESTINATION_PERSON
from fieldstock.services import ledger_service, transfer_service
from fieldstock.services.ledger_service import Location

from conftest import receive


def _to_person(user, **extra):
    return {"type": "PERSON", "user_id": user.id, **extra}


def _to_area(area):
    return {"type": "WAREHOUSE", "stock_area_id": area.id}


class TestSubmitTransfer:

    def test_transfer_to_technician(self, ctx, main_store, cable, technician):
        receipt_ids = receive(ctx, main_store, cable, quantity=10)

        result = transfer_service.submit_transfer(ctx, {
            "from_stock_area_id": main_store.id,
            "destination": _to_person(technician),
            "ticket_id": "TKT-100",
            "items": [{"material_id": cable.id, "quantity": 3}],
        })

        assert result["unit_ids"] == receipt_ids[:3]
        transfer = result["transfer"]
        assert transfer["transfer_number"].startswith("ST-")
        assert transfer["destination_type"] == DESTINATION_PERSON
        assert transfer["to_stock_area_id"] == main_store.id
        assert transfer["lines"][0]["unit_ids"] == receipt_ids[:3]

        for unit_id in result["unit_ids"]:
            unit = db.session.get(InventoryUnit, unit_id)
            assert unit.location_type == LOCATION_PERSON
            assert unit.location_id == technician.id
            assert unit.status == STATUS_IN_TRANSIT
            assert unit.ticket_id == "TKT-100"
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 7

    def test_transfer_between_areas(self, ctx, main_store, branch_store, cable):
        receive(ctx, main_store, cable, quantity=5)

        transfer_service.submit_transfer(ctx, {
            "from_stock_area_id": main_store.id,
            "destination": _to_area(branch_store),
            "items": [{"material_id": cable.id, "quantity": 2}],
        })

        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 3
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(branch_store.id)) == 2

    def test_ticket_not_stamped_on_warehouse_stock(self, ctx, main_store, branch_store, cable):
        receive(ctx, main_store, cable, quantity=2)

        result = transfer_service.submit_transfer(ctx, {
            "from_stock_area_id": main_store.id,
            "destination": _to_area(branch_store),
            "ticket_id": "TKT-200",
            "items": [{"material_id": cable.id, "quantity": 2}],
        })

        assert result["transfer"]["ticket_id"] == "TKT-200"
        for unit_id in result["unit_ids"]:
            unit = db.session.get(InventoryUnit, unit_id)
            assert unit.status == STATUS_AVAILABLE
            assert unit.ticket_id is None

    def test_serialized_transfer(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1", "SN-2", "SN-3"])

        result = transfer_service.submit_transfer(ctx, {
            "from_stock_area_id": main_store.id,
            "destination": _to_person(technician),
            "items": [{"material_id": router.id, "serial_numbers": ["SN-3", "SN-1"]}],
        })

        serials = {db.session.get(InventoryUnit, i).serial_number for i in result["unit_ids"]}
        assert serials == {"SN-1", "SN-3"}
        assert result["transfer"]["lines"][0]["quantity"] == 2

    def test_bulk_line_skips_serialized_units(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])

        with pytest.raises(InsufficientStock):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(technician),
                "items": [{"material_id": router.id, "quantity": 1}],
            })

    def test_insufficient_stock_rolls_back_every_line(self, ctx, main_store, cable, router, technician):
        receive(ctx, main_store, cable, quantity=5)
        receive(ctx, main_store, router, serials=["SN-1"])

        with pytest.raises(InsufficientStock) as exc:
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(technician),
                "items": [
                    {"material_id": router.id, "serial_numbers": ["SN-1"]},
                    {"material_id": cable.id, "quantity": 6},
                ],
            })

        assert exc.value.details["available"] == 5
        assert exc.value.details["requested"] == 6
        assert db.session.query(Transfer).count() == 0
        assert ledger_service.find_by_serial(ctx, "SN-1").status == STATUS_AVAILABLE
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 5

    def test_unknown_serial_not_found(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])

        with pytest.raises(NotFoundError):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(technician),
                "items": [{"material_id": router.id, "serial_numbers": ["SN-404"]}],
            })

    def test_serial_in_other_area_conflicts(self, ctx, main_store, branch_store, router, technician):
        receive(ctx, branch_store, router, serials=["SN-1"])

        with pytest.raises(StateConflict):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(technician),
                "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
            })

    def test_quantity_must_match_serials(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1", "SN-2"])

        with pytest.raises(ValidationError):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(technician),
                "items": [{"material_id": router.id, "quantity": 1, "serial_numbers": ["SN-1", "SN-2"]}],
            })


class TestDestination:

    def test_same_area_rejected(self, ctx, main_store, cable):
        receive(ctx, main_store, cable, quantity=1)

        with pytest.raises(ValidationError):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_area(main_store),
                "items": [{"material_id": cable.id, "quantity": 1}],
            })

    def test_person_destination_requires_user(self, ctx, main_store, cable):
        receive(ctx, main_store, cable, quantity=1)

        with pytest.raises(ValidationError):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": {"type": "PERSON"},
                "items": [{"material_id": cable.id, "quantity": 1}],
            })

    def test_unknown_destination_type(self, ctx, main_store, cable):
        with pytest.raises(ValidationError):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": {"type": "TRUCK"},
                "items": [{"material_id": cable.id, "quantity": 1}],
            })

    def test_person_destination_may_name_area(self, ctx, main_store, branch_store, cable, technician):
        receive(ctx, main_store, cable, quantity=1)

        result = transfer_service.submit_transfer(ctx, {
            "from_stock_area_id": main_store.id,
            "destination": _to_person(technician, stock_area_id=branch_store.id),
            "items": [{"material_id": cable.id, "quantity": 1}],
        })

        assert result["transfer"]["to_stock_area_id"] == branch_store.id
        assert result["transfer"]["to_user_id"] == technician.id


class TestListTransfers:

    def test_filter_by_technician(self, ctx, main_store, branch_store, cable, technician, other_technician):
        receive(ctx, main_store, cable, quantity=5)
        for user in (technician, other_technician):
            transfer_service.submit_transfer(ctx, {
                "from_stock_area_id": main_store.id,
                "destination": _to_person(user),
                "items": [{"material_id": cable.id, "quantity": 1}],
            })

        assert len(transfer_service.list_transfers(ctx)) == 2
        mine = transfer_service.list_transfers(ctx, to_user_id=technician.id)
        assert len(mine) == 1
        assert transfer_service.get_transfer(ctx, mine[0]["id"])["to_user_id"] == technician.id
