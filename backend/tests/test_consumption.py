# Overview: Pytest coverage for consumption against technician and warehouse stock.

import pytest
from sqlalchemy import update

from fieldstock.errors import InsufficientStock, NotFoundError, StateConflict, ValidationError
from fieldstock.extensions import db
from fieldstock.models import Consumption, InventoryUnit
from fieldstock.models.ledger import (
    LOCATION_CONSUMED,
    LOCATION_WAREHOUSE,
    STATUS_AVAILABLE,
    STATUS_CONSUMED,
    STATUS_IN_TRANSIT,
)
from fieldstock.services import consumption_service, ledger_service, transfer_service
from fieldstock.services.ledger_service import Location

from conftest import receive


def _issue(ctx, area, technician, material, *, quantity=None, serials=None, ticket_id=None):
    item = {"material_id": material.id}
    if serials:
        item["serial_numbers"] = serials
    else:
        item["quantity"] = quantity
    return transfer_service.submit_transfer(ctx, {
        "from_stock_area_id": area.id,
        "destination": {"type": "PERSON", "user_id": technician.id},
        "ticket_id": ticket_id,
        "items": [item],
    })["unit_ids"]


class TestBulkConsumption:

    def test_person_stock_first_then_warehouse(self, ctx, main_store, cable, technician):
        receive(ctx, main_store, cable, quantity=7)
        held = _issue(ctx, main_store, technician, cable, quantity=2)

        result = consumption_service.submit_consumption(ctx, {
            "from_user_id": technician.id,
            "stock_area_id": main_store.id,
            "ticket_id": "TKT-5",
            "items": [{"material_id": cable.id, "quantity": 3}],
        })

        assert set(held) <= set(result["unit_ids"])
        assert len(result["unit_ids"]) == 3
        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["consumed"] == 3
        assert counts["person"] == 0
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 4

    def test_consumed_units_keep_ticket(self, ctx, main_store, cable, technician):
        receive(ctx, main_store, cable, quantity=1)
        unit_id = _issue(ctx, main_store, technician, cable, quantity=1, ticket_id="TKT-1")[0]

        consumption_service.submit_consumption(ctx, {
            "from_user_id": technician.id,
            "items": [{"material_id": cable.id, "quantity": 1}],
        })

        unit = db.session.get(InventoryUnit, unit_id)
        assert unit.status == STATUS_CONSUMED
        assert unit.location_type == LOCATION_CONSUMED
        assert unit.location_id is None
        assert unit.ticket_id == "TKT-1"

    def test_warehouse_only_consumption(self, ctx, main_store, branch_store, cable):
        receive(ctx, main_store, cable, quantity=2)
        receive(ctx, branch_store, cable, quantity=2)

        result = consumption_service.submit_consumption(ctx, {
            "stock_area_id": branch_store.id,
            "external_system_ref_id": "WO-77",
            "customer_data": {"name": "ACME", "address": "1 Main St"},
            "items": [{"material_id": cable.id, "quantity": 2}],
        })

        assert result["consumption"]["customer_data"]["name"] == "ACME"
        assert result["consumption"]["consumption_number"].startswith("CN-")
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(branch_store.id)) == 0
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 2

    def test_insufficient_rolls_back(self, ctx, main_store, cable, technician):
        receive(ctx, main_store, cable, quantity=2)
        _issue(ctx, main_store, technician, cable, quantity=1)

        with pytest.raises(InsufficientStock) as exc:
            consumption_service.submit_consumption(ctx, {
                "from_user_id": technician.id,
                "stock_area_id": main_store.id,
                "items": [{"material_id": cable.id, "quantity": 3}],
            })

        assert exc.value.details["available"] == 2
        assert db.session.query(Consumption).count() == 0
        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["consumed"] == 0
        assert counts["person"] == 1

    def test_customer_data_must_be_object(self, ctx, main_store, cable):
        receive(ctx, main_store, cable, quantity=1)

        with pytest.raises(ValidationError):
            consumption_service.submit_consumption(ctx, {
                "stock_area_id": main_store.id,
                "customer_data": "ACME",
                "items": [{"material_id": cable.id, "quantity": 1}],
            })


class TestSerializedConsumption:

    def test_consume_technician_serial(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        _issue(ctx, main_store, technician, router, serials=["SN-1"], ticket_id="TKT-9")

        result = consumption_service.submit_consumption(ctx, {
            "from_user_id": technician.id,
            "ticket_id": "TKT-9",
            "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
        })

        assert result["consumption"]["lines"][0]["serial_numbers"] == ["SN-1"]
        assert ledger_service.find_by_serial(ctx, "SN-1").status == STATUS_CONSUMED

    def test_serial_on_other_ticket_conflicts(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        _issue(ctx, main_store, technician, router, serials=["SN-1"], ticket_id="TKT-9")

        with pytest.raises(StateConflict):
            consumption_service.submit_consumption(ctx, {
                "from_user_id": technician.id,
                "ticket_id": "TKT-10",
                "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
            })
        assert ledger_service.find_by_serial(ctx, "SN-1").status == STATUS_IN_TRANSIT

    def test_serial_held_by_other_technician_conflicts(self, ctx, main_store, router, technician, other_technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        _issue(ctx, main_store, other_technician, router, serials=["SN-1"])

        with pytest.raises(StateConflict):
            consumption_service.submit_consumption(ctx, {
                "from_user_id": technician.id,
                "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
            })

    def test_consumed_serial_cannot_be_consumed_again(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-1"])
        payload = {
            "stock_area_id": main_store.id,
            "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
        }
        consumption_service.submit_consumption(ctx, payload)

        with pytest.raises(StateConflict):
            consumption_service.submit_consumption(ctx, payload)

    def test_unknown_serial(self, ctx, main_store, router):
        with pytest.raises(NotFoundError):
            consumption_service.submit_consumption(ctx, {
                "items": [{"material_id": router.id, "serial_numbers": ["SN-404"]}],
            })

    def test_warehouse_serial_without_source(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-1"])

        result = consumption_service.submit_consumption(ctx, {
            "items": [{"material_id": router.id, "serial_number": "SN-1"}],
        })

        assert len(result["unit_ids"]) == 1
        assert ledger_service.find_by_serial(ctx, "SN-1", statuses=[STATUS_AVAILABLE]) is None

    def test_serial_moved_off_named_source_is_not_consumed(self, ctx, main_store, branch_store, router, technician,
                                                            monkeypatch):
        receive(ctx, main_store, router, serials=["SN-1"])
        unit_id = _issue(ctx, main_store, technician, router, serials=["SN-1"])[0]
        real_resolve = consumption_service._resolve_serial

        def resolve_then_relocate(*args, **kwargs):
            unit = real_resolve(*args, **kwargs)
            # Another writer puts the unit back on a shelf after it was validated
            db.session.execute(
                update(InventoryUnit)
                .where(InventoryUnit.id == unit.id)
                .values(location_type=LOCATION_WAREHOUSE, location_id=branch_store.id, status=STATUS_AVAILABLE)
                .execution_options(synchronize_session=False)
            )
            return unit

        monkeypatch.setattr(consumption_service, "_resolve_serial", resolve_then_relocate)

        with pytest.raises(StateConflict):
            consumption_service.submit_consumption(ctx, {
                "from_user_id": technician.id,
                "items": [{"material_id": router.id, "serial_numbers": ["SN-1"]}],
            })

        assert db.session.query(Consumption).count() == 0
        assert db.session.get(InventoryUnit, unit_id, populate_existing=True).status != STATUS_CONSUMED


class TestListConsumptions:

    def test_filter_by_ticket(self, ctx, main_store, cable):
        receive(ctx, main_store, cable, quantity=2)
        for ticket in ("TKT-1", "TKT-2"):
            consumption_service.submit_consumption(ctx, {
                "stock_area_id": main_store.id,
                "ticket_id": ticket,
                "items": [{"material_id": cable.id, "quantity": 1}],
            })

        found = consumption_service.list_consumptions(ctx, ticket_id="TKT-2")
        assert len(found) == 1
        assert consumption_service.get_consumption(ctx, found[0]["id"])["ticket_id"] == "TKT-2"
