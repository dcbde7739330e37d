# Overview: Pytest coverage for the unit ledger state machine and conditional transitions.

import pytest
from sqlalchemy import update

from fieldstock.errors import DuplicateIdentity, NotFoundError, StaleState, StateConflict, ValidationError
from fieldstock.extensions import db
from fieldstock.models import InventoryUnit
from fieldstock.models.ledger import (
    LOCATION_CONSUMED,
    LOCATION_PERSON,
    LOCATION_WAREHOUSE,
    STATUS_ALLOCATED,
    STATUS_AVAILABLE,
    STATUS_CONSUMED,
    STATUS_FAULTY,
    STATUS_IN_TRANSIT,
)
from fieldstock.services import ledger_service
from fieldstock.services.ledger_service import Location, UnitState
from fieldstock.services.tenant_service import OrgContext

from conftest import receive


class TestCreateUnits:

    def test_bulk_units_start_available_in_area(self, ctx, main_store, cable):
        ids = ledger_service.create_units(ctx, material_id=cable.id, stock_area_id=main_store.id, count=3)
        db.session.commit()

        units = db.session.query(InventoryUnit).filter(InventoryUnit.id.in_(ids)).all()
        assert len(units) == 3
        for unit in units:
            assert unit.location_type == LOCATION_WAREHOUSE
            assert unit.location_id == main_store.id
            assert unit.status == STATUS_AVAILABLE
            assert unit.org_id == ctx.org_id
            assert unit.serial_number is None

    def test_serialized_units_carry_identity(self, ctx, main_store, router):
        ids = ledger_service.create_units(
            ctx,
            material_id=router.id,
            stock_area_id=main_store.id,
            serial_numbers=["SN-1", "SN-2"],
            mac_ids=["AA:01", None],
        )
        db.session.commit()

        first = db.session.get(InventoryUnit, ids[0])
        assert first.serial_number == "SN-1"
        assert first.mac_id == "AA:01"
        assert first.is_serialized

    def test_duplicate_serial_in_batch_rejected(self, ctx, main_store, router):
        with pytest.raises(DuplicateIdentity):
            ledger_service.create_units(
                ctx, material_id=router.id, stock_area_id=main_store.id, serial_numbers=["SN-1", "SN-1"]
            )

    def test_duplicate_serial_against_active_unit_rejected(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-9"])

        with pytest.raises(DuplicateIdentity) as exc:
            ledger_service.create_units(
                ctx, material_id=router.id, stock_area_id=main_store.id, serial_numbers=["SN-9"]
            )
        assert exc.value.details["identity"] == "SN-9"

    def test_duplicate_serial_rejected_across_organizations(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-GLOBAL"])
        other_org = OrgContext(org_id=2, user_id=ctx.user_id)

        with pytest.raises(DuplicateIdentity):
            ledger_service.create_units(
                other_org, material_id=router.id, stock_area_id=main_store.id, serial_numbers=["SN-GLOBAL"]
            )

    def test_duplicate_mac_rejected(self, ctx, main_store, router):
        ledger_service.create_units(
            ctx, material_id=router.id, stock_area_id=main_store.id, serial_numbers=["SN-A"], mac_ids=["MAC-1"]
        )
        with pytest.raises(DuplicateIdentity):
            ledger_service.create_units(
                ctx, material_id=router.id, stock_area_id=main_store.id, serial_numbers=["SN-B"], mac_ids=["MAC-1"]
            )

    def test_zero_count_rejected(self, ctx, main_store, cable):
        with pytest.raises(ValidationError):
            ledger_service.create_units(ctx, material_id=cable.id, stock_area_id=main_store.id, count=0)


class TestTransitions:

    def test_warehouse_to_person_in_transit(self, ctx, main_store, cable, technician):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        unit = ledger_service.get_unit(ctx, unit_id)

        moved = ledger_service.transition_unit(
            ctx, unit_id, UnitState.of(unit), Location.person(technician.id), STATUS_IN_TRANSIT, ticket_id="TKT-1"
        )
        db.session.commit()

        assert moved.location_type == LOCATION_PERSON
        assert moved.location_id == technician.id
        assert moved.status == STATUS_IN_TRANSIT
        assert moved.ticket_id == "TKT-1"
        assert moved.version_id == 2

    def test_consumed_unit_has_no_location(self, ctx, main_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        unit = ledger_service.get_unit(ctx, unit_id)

        moved = ledger_service.transition_unit(
            ctx, unit_id, UnitState.of(unit), Location.consumed(), STATUS_CONSUMED
        )

        assert moved.location_type == LOCATION_CONSUMED
        assert moved.location_id is None

    def test_consumed_is_terminal(self, ctx, main_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        unit = ledger_service.get_unit(ctx, unit_id)
        ledger_service.transition_unit(ctx, unit_id, UnitState.of(unit), Location.consumed(), STATUS_CONSUMED)

        consumed = UnitState(Location.consumed(), STATUS_CONSUMED)
        with pytest.raises(StateConflict):
            ledger_service.transition_unit(
                ctx, unit_id, consumed, Location.warehouse(main_store.id), STATUS_AVAILABLE
            )

    def test_invalid_state_combination_rejected(self, ctx, main_store, cable, technician):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        unit = ledger_service.get_unit(ctx, unit_id)

        with pytest.raises(StateConflict):
            ledger_service.transition_unit(
                ctx, unit_id, UnitState.of(unit), Location.person(technician.id), STATUS_FAULTY
            )

    def test_reserve_and_release(self, ctx, main_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        available = UnitState(Location.warehouse(main_store.id), STATUS_AVAILABLE)
        allocated = UnitState(Location.warehouse(main_store.id), STATUS_ALLOCATED)

        ledger_service.transition_unit(ctx, unit_id, available, Location.warehouse(main_store.id), STATUS_ALLOCATED)
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 0

        ledger_service.transition_unit(ctx, unit_id, allocated, Location.warehouse(main_store.id), STATUS_AVAILABLE)
        assert ledger_service.count_available(ctx, cable.id, Location.warehouse(main_store.id)) == 1

    def test_stale_expected_state_detected(self, ctx, main_store, branch_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        stale = UnitState.of(ledger_service.get_unit(ctx, unit_id))

        # Another writer moves the unit first
        db.session.execute(
            update(InventoryUnit)
            .where(InventoryUnit.id == unit_id)
            .values(location_id=branch_store.id)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(StaleState):
            ledger_service.transition_unit(ctx, unit_id, stale, Location.consumed(), STATUS_CONSUMED)

        unit = db.session.get(InventoryUnit, unit_id, populate_existing=True)
        assert unit.status == STATUS_AVAILABLE
        assert unit.location_id == branch_store.id

    def test_unknown_unit_not_found(self, ctx, main_store):
        expected = UnitState(Location.warehouse(main_store.id), STATUS_AVAILABLE)
        with pytest.raises(NotFoundError):
            ledger_service.transition_unit(ctx, 99999, expected, Location.consumed(), STATUS_CONSUMED)

    def test_unit_of_other_org_not_found(self, ctx, main_store, cable):
        unit_id = receive(ctx, main_store, cable, quantity=1)[0]
        expected = UnitState(Location.warehouse(main_store.id), STATUS_AVAILABLE)

        with pytest.raises(NotFoundError):
            ledger_service.transition_unit(
                OrgContext(org_id=2, user_id=ctx.user_id), unit_id, expected, Location.consumed(), STATUS_CONSUMED
            )


class TestQueries:

    def test_find_available_is_fifo(self, ctx, main_store, cable):
        first = receive(ctx, main_store, cable, quantity=2)
        receive(ctx, main_store, cable, quantity=2)

        units = ledger_service.find_available(ctx, cable.id, Location.warehouse(main_store.id), limit=2)
        assert [u.id for u in units] == first

    def test_find_available_any_area(self, ctx, main_store, branch_store, cable):
        receive(ctx, main_store, cable, quantity=1)
        receive(ctx, branch_store, cable, quantity=2)

        units = ledger_service.get_available_units(ctx, cable.id)
        assert len(units) == 3
        assert len(ledger_service.get_available_units(ctx, cable.id, branch_store.id)) == 2

    def test_find_by_serial(self, ctx, main_store, router):
        receive(ctx, main_store, router, serials=["SN-77"])

        unit = ledger_service.find_by_serial(ctx, "SN-77")
        assert unit is not None
        assert ledger_service.find_by_serial(ctx, "SN-77", Location.person(None)) is None
        assert ledger_service.find_by_serial(ctx, "missing") is None

    def test_conservation_counts(self, ctx, main_store, cable, technician):
        ids = receive(ctx, main_store, cable, quantity=4)
        units = [ledger_service.get_unit(ctx, i) for i in ids]
        ledger_service.transition_unit(
            ctx, ids[0], UnitState.of(units[0]), Location.person(technician.id), STATUS_IN_TRANSIT
        )
        ledger_service.transition_unit(ctx, ids[1], UnitState.of(units[1]), Location.consumed(), STATUS_CONSUMED)
        db.session.commit()

        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["created"] == 4
        assert counts["warehouse"] == 2
        assert counts["person"] == 1
        assert counts["consumed"] == 1
        assert counts["faulty"] == 0
        assert counts["received"] == 4
        assert counts["unaccounted"] == 0
        assert counts["balanced"] is True

    def test_conservation_detects_lost_unit(self, ctx, main_store, cable):
        ids = receive(ctx, main_store, cable, quantity=3)
        db.session.execute(
            InventoryUnit.__table__.delete().where(InventoryUnit.id == ids[0])
        )

        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["received"] == 3
        assert counts["created"] == 2
        assert counts["balanced"] is False
        db.session.rollback()

    def test_conservation_detects_unit_in_invalid_state(self, ctx, main_store, cable):
        ids = receive(ctx, main_store, cable, quantity=2)
        db.session.execute(
            update(InventoryUnit)
            .where(InventoryUnit.id == ids[0])
            .values(status=STATUS_IN_TRANSIT)
            .execution_options(synchronize_session=False)
        )

        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["created"] == 2
        assert counts["unaccounted"] == 1
        assert counts["warehouse"] == 1
        assert counts["balanced"] is False
        db.session.rollback()

    def test_person_stock_grouped_by_ticket(self, ctx, main_store, cable, technician):
        ids = receive(ctx, main_store, cable, quantity=3)
        for unit_id, ticket in zip(ids, ["TKT-1", "TKT-1", "TKT-2"]):
            unit = ledger_service.get_unit(ctx, unit_id)
            ledger_service.transition_unit(
                ctx, unit_id, UnitState.of(unit), Location.person(technician.id), STATUS_IN_TRANSIT, ticket_id=ticket
            )
        db.session.commit()

        stock = ledger_service.list_person_stock(ctx, technician.id)
        assert stock["total"] == 3
        tickets = {t["ticket_id"]: t["unit_count"] for t in stock["tickets"]}
        assert tickets == {"TKT-1": 2, "TKT-2": 1}

        only_two = ledger_service.list_person_stock(ctx, technician.id, ticket_id="TKT-2")
        assert only_two["total"] == 1
