# backend/fieldstock/services/allocation_service.py
"""
Allocation Coordinator: select ledger units for a demand and move them.

WHY: Concurrent transfers and consumptions compete for the same bulk units of
a material at a location. Units are picked oldest first and each one is moved
with ledger_service.transition_unit, which only succeeds if the unit is still
in the state it was read in. A lost race shows up as StaleState on that unit;
the coordinator then re-selects a fresh candidate set for the remainder.

STRATEGIES (ALLOCATION_STRATEGY):
- optimistic: plain SELECT, verify on UPDATE, bounded re-selection
- skip_locked: SELECT ... FOR UPDATE SKIP LOCKED so concurrent callers pick
  disjoint candidates; the conditional UPDATE still verifies every move

RESERVATIONS: reserve / reserve_units move AVAILABLE@WAREHOUSE units to
ALLOCATED in place; release moves them back. Reserved units drop out of every
candidate set since selection only takes AVAILABLE units.

INVARIANT: a unit moves at most once per committed state, so the total moved
out of AVAILABLE by competing workflows never exceeds what was available.
Callers run inside run_in_transaction; a failure here rolls back every move
already made for the workflow.
"""
from __future__ import annotations

from typing import Callable, Optional

from flask import current_app

from fieldstock.extensions import db
from fieldstock.errors import InsufficientStock, StaleState, StateConflict
from fieldstock.models import InventoryUnit
from fieldstock.models.ledger import STATUS_ALLOCATED, STATUS_AVAILABLE
from fieldstock.services import ledger_service
from fieldstock.services.ledger_service import KEEP_TICKET, Location, UnitState
from fieldstock.services.tenant_service import OrgContext


STRATEGY_OPTIMISTIC = "optimistic"
STRATEGY_SKIP_LOCKED = "skip_locked"


def _strategy() -> str:
    strategy = current_app.config.get("ALLOCATION_STRATEGY", STRATEGY_OPTIMISTIC)
    if strategy not in (STRATEGY_OPTIMISTIC, STRATEGY_SKIP_LOCKED):
        raise ValueError(f"Unknown ALLOCATION_STRATEGY: {strategy}")
    return strategy


def _max_attempts() -> int:
    return max(1, int(current_app.config.get("ALLOCATION_MAX_ATTEMPTS", 3)))


def insufficient(available: int, requested: int, **details) -> InsufficientStock:
    return InsufficientStock(
        f"Insufficient stock. Available: {available}, Requested: {requested}",
        available=available,
        requested=requested,
        **details,
    )


def allocate(
    ctx: OrgContext,
    *,
    material_id: int,
    source: Location,
    quantity: int,
    destination: Location,
    new_status: str,
    ticket_id=KEEP_TICKET,
    bulk_only: bool = True,
    statuses=None,
    exclude_ids=(),
    partial: bool = False,
) -> list[InventoryUnit]:
    """
    Move `quantity` units of a material from `source` to `destination`.

    Args:
        source: where to pick from; an id of None means any area / technician
        statuses: candidate statuses (ledger_service.find_available defaults)
        exclude_ids: units already claimed by the same workflow
        partial: take what is available instead of failing (used when the
            caller chains several sources and checks the total itself)

    Returns:
        The moved units, oldest first.

    Raises:
        InsufficientStock: fewer candidates than requested, or the retry
            budget ran out while competing writers kept winning candidates
    """
    if quantity < 1:
        return []

    skip_locked = _strategy() == STRATEGY_SKIP_LOCKED
    attempts = _max_attempts()
    moved: list[InventoryUnit] = []
    excluded = set(exclude_ids)

    for attempt in range(1, attempts + 1):
        remaining = quantity - len(moved)
        candidates = ledger_service.find_available(
            ctx,
            material_id,
            source,
            limit=remaining,
            statuses=statuses,
            bulk_only=bulk_only,
            exclude_ids=excluded,
            skip_locked=skip_locked,
        )
        if len(candidates) < remaining and not partial:
            raise insufficient(
                len(moved) + len(candidates),
                quantity,
                material_id=material_id,
                source=str(source),
            )
        if not candidates:
            return moved

        lost = 0
        for unit in candidates:
            excluded.add(unit.id)
            try:
                moved.append(
                    ledger_service.transition_unit(
                        ctx,
                        unit.id,
                        UnitState.of(unit),
                        destination,
                        new_status,
                        ticket_id=ticket_id,
                    )
                )
            except StaleState:
                lost += 1

        if not lost:
            return moved

        current_app.logger.warning(
            "Allocation of material %s from %s lost %d candidate(s) to concurrent writers "
            "(attempt %d/%d)",
            material_id, source, lost, attempt, attempts,
        )

    if partial:
        return moved
    raise insufficient(len(moved), quantity, material_id=material_id, source=str(source))


def move_units(
    ctx: OrgContext,
    units: list[InventoryUnit],
    *,
    destination: Location,
    new_status: str,
    ticket_id=KEEP_TICKET,
    still_eligible: Optional[Callable[[InventoryUnit], bool]] = None,
) -> list[InventoryUnit]:
    """
    Move explicitly chosen units (serial numbers, return lines).

    On StaleState the unit is re-read; if it still passes `still_eligible`
    (for example only its ticket changed) the move is retried, otherwise the
    workflow fails with StateConflict. There is no substitute for a named unit.
    """
    attempts = _max_attempts()
    moved = []
    for unit in units:
        expected = UnitState.of(unit)
        for attempt in range(1, attempts + 1):
            try:
                moved.append(
                    ledger_service.transition_unit(
                        ctx, unit.id, expected, destination, new_status, ticket_id=ticket_id
                    )
                )
                break
            except StaleState:
                current_app.logger.warning(
                    "Unit %s changed while moving to %s (attempt %d/%d)",
                    unit.id, destination, attempt, attempts,
                )
                fresh = ledger_service.get_unit(ctx, unit.id)
                db.session.refresh(fresh)
                if still_eligible is None or not still_eligible(fresh):
                    raise StateConflict(
                        f"Unit {fresh.serial_number or fresh.id} is now {UnitState.of(fresh)}",
                        unit_id=fresh.id,
                    )
                expected = UnitState.of(fresh)
        else:
            raise StateConflict(
                f"Unit {unit.serial_number or unit.id} kept changing; giving up",
                unit_id=unit.id,
            )
    return moved


def reserve(
    ctx: OrgContext,
    *,
    material_id: int,
    stock_area_id: int,
    quantity: int,
    exclude_ids=(),
) -> list[InventoryUnit]:
    """Reserve `quantity` AVAILABLE units in a stock area as ALLOCATED, oldest first."""
    area = Location.warehouse(stock_area_id)
    return allocate(
        ctx,
        material_id=material_id,
        source=area,
        quantity=quantity,
        destination=area,
        new_status=STATUS_ALLOCATED,
        bulk_only=False,
        statuses=(STATUS_AVAILABLE,),
        exclude_ids=exclude_ids,
    )


def reserve_units(ctx: OrgContext, units: list[InventoryUnit]) -> list[InventoryUnit]:
    """Reserve explicitly named units where they stand."""
    return [
        move_units(ctx, [unit], destination=Location.warehouse(unit.location_id), new_status=STATUS_ALLOCATED)[0]
        for unit in units
    ]


def release(ctx: OrgContext, units: list[InventoryUnit]) -> list[InventoryUnit]:
    """Put reserved units back on the shelf as AVAILABLE."""
    return [
        move_units(ctx, [unit], destination=Location.warehouse(unit.location_id), new_status=STATUS_AVAILABLE)[0]
        for unit in units
    ]
