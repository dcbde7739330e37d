# Overview: Pytest coverage for allocation retries when candidates are lost to other writers.

import pytest
from sqlalchemy import update

from fieldstock.errors import InsufficientStock, StateConflict
from fieldstock.extensions import db
from fieldstock.models import InventoryUnit
from fieldstock.models.ledger import LOCATION_CONSUMED, STATUS_AVAILABLE, STATUS_CONSUMED, STATUS_IN_TRANSIT
from fieldstock.services import allocation_service, ledger_service, transfer_service
from fieldstock.services.ledger_service import Location

from conftest import receive


def _steal(unit_id):
    """Consume a unit behind the allocator's back, as a concurrent writer would."""
    db.session.execute(
        update(InventoryUnit)
        .where(InventoryUnit.id == unit_id)
        .values(location_type=LOCATION_CONSUMED, location_id=None, status=STATUS_CONSUMED)
        .execution_options(synchronize_session=False)
    )


@pytest.fixture
def racing_find_available(monkeypatch):
    """Patch candidate selection so the first candidate of selected calls is stolen."""
    real_find_available = ledger_service.find_available
    calls = []

    def install(steal_on):
        def wrapper(*args, **kwargs):
            candidates = real_find_available(*args, **kwargs)
            calls.append([u.id for u in candidates])
            if candidates and steal_on(len(calls)):
                _steal(candidates[0].id)
            return candidates

        monkeypatch.setattr(ledger_service, "find_available", wrapper)
        return calls

    return install


@pytest.fixture(params=[allocation_service.STRATEGY_OPTIMISTIC, allocation_service.STRATEGY_SKIP_LOCKED])
def strategy(request, app, monkeypatch):
    """Run the test once per allocation strategy."""
    monkeypatch.setitem(app.config, "ALLOCATION_STRATEGY", request.param)
    return request.param


def _transfer(ctx, area, technician, material, quantity):
    return transfer_service.submit_transfer(ctx, {
        "from_stock_area_id": area.id,
        "destination": {"type": "PERSON", "user_id": technician.id},
        "items": [{"material_id": material.id, "quantity": quantity}],
    })


class TestAllocationRetry:

    def test_lost_candidate_is_replaced(self, strategy, ctx, main_store, cable, technician, racing_find_available):
        ids = receive(ctx, main_store, cable, quantity=5)
        calls = racing_find_available(lambda n: n == 1)

        result = _transfer(ctx, main_store, technician, cable, 2)

        assert len(calls) == 2
        assert result["unit_ids"] == [ids[1], ids[2]]
        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["person"] == 2
        assert counts["consumed"] == 1
        assert counts["warehouse"] == 2

    def test_retry_budget_exhausted(self, strategy, app, ctx, main_store, cable, technician, racing_find_available):
        receive(ctx, main_store, cable, quantity=5)
        calls = racing_find_available(lambda n: True)

        with pytest.raises(InsufficientStock):
            _transfer(ctx, main_store, technician, cable, 2)

        assert len(calls) == app.config["ALLOCATION_MAX_ATTEMPTS"]
        # Stolen moves happened in the failed transaction and were rolled back too
        counts = ledger_service.conservation_counts(ctx, cable.id)
        assert counts["warehouse"] == 5
        assert counts["consumed"] == 0

    def test_partial_allocation_returns_what_moved(self, ctx, main_store, cable, technician):
        receive(ctx, main_store, cable, quantity=2)

        moved = allocation_service.allocate(
            ctx,
            material_id=cable.id,
            source=Location.warehouse(main_store.id),
            quantity=5,
            destination=Location.person(technician.id),
            new_status=STATUS_IN_TRANSIT,
            partial=True,
        )
        db.session.rollback()

        assert len(moved) == 2

    def test_zero_quantity_moves_nothing(self, ctx, main_store, cable, technician):
        moved = allocation_service.allocate(
            ctx,
            material_id=cable.id,
            source=Location.warehouse(main_store.id),
            quantity=0,
            destination=Location.person(technician.id),
            new_status=STATUS_IN_TRANSIT,
        )
        assert moved == []

    def test_skip_locked_selects_with_row_locks(self, app, ctx, main_store, cable, technician, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOCATION_STRATEGY", allocation_service.STRATEGY_SKIP_LOCKED)
        receive(ctx, main_store, cable, quantity=3)
        real_lock = ledger_service.lock_for_update
        locked = []

        def spy(query, **kwargs):
            locked.append(kwargs)
            return real_lock(query, **kwargs)

        monkeypatch.setattr(ledger_service, "lock_for_update", spy)

        result = _transfer(ctx, main_store, technician, cable, 2)

        assert locked == [{"skip_locked": True}]
        assert len(result["unit_ids"]) == 2

    def test_optimistic_selects_without_locks(self, ctx, main_store, cable, technician, monkeypatch):
        receive(ctx, main_store, cable, quantity=3)
        locked = []
        monkeypatch.setattr(ledger_service, "lock_for_update", lambda query, **kwargs: locked.append(kwargs))

        _transfer(ctx, main_store, technician, cable, 2)

        assert locked == []

    def test_unknown_strategy_rejected(self, app, ctx, main_store, cable, technician, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOCATION_STRATEGY", "first_come")

        with pytest.raises(ValueError):
            allocation_service.allocate(
                ctx,
                material_id=cable.id,
                source=Location.warehouse(main_store.id),
                quantity=1,
                destination=Location.person(technician.id),
                new_status=STATUS_IN_TRANSIT,
            )


class TestMoveUnits:

    def test_named_unit_taken_by_other_writer(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        unit = ledger_service.find_by_serial(ctx, "SN-1")
        _steal(unit.id)

        with pytest.raises(StateConflict):
            allocation_service.move_units(
                ctx,
                [unit],
                destination=Location.person(technician.id),
                new_status=STATUS_IN_TRANSIT,
                still_eligible=lambda u: u.status != STATUS_CONSUMED,
            )
        db.session.rollback()

    def test_named_unit_moved_but_still_eligible_is_retried(self, ctx, main_store, branch_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        unit = ledger_service.find_by_serial(ctx, "SN-1")
        db.session.execute(
            update(InventoryUnit)
            .where(InventoryUnit.id == unit.id)
            .values(location_id=branch_store.id)
            .execution_options(synchronize_session=False)
        )

        moved = allocation_service.move_units(
            ctx,
            [unit],
            destination=Location.person(technician.id),
            new_status=STATUS_IN_TRANSIT,
            still_eligible=lambda u: u.status == STATUS_AVAILABLE,
        )

        assert moved[0].status == STATUS_IN_TRANSIT
        assert moved[0].location_id == technician.id
        db.session.rollback()

    def test_named_unit_ticket_change_is_not_a_conflict(self, ctx, main_store, router, technician):
        receive(ctx, main_store, router, serials=["SN-1"])
        unit = ledger_service.find_by_serial(ctx, "SN-1")
        db.session.execute(
            update(InventoryUnit)
            .where(InventoryUnit.id == unit.id)
            .values(ticket_id="TKT-NEW")
            .execution_options(synchronize_session=False)
        )

        moved = allocation_service.move_units(
            ctx,
            [unit],
            destination=Location.person(technician.id),
            new_status=STATUS_IN_TRANSIT,
        )

        assert moved[0].status == STATUS_IN_TRANSIT
        assert moved[0].ticket_id == "TKT-NEW"
        db.session.rollback()
