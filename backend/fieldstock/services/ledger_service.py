# backend/fieldstock/services/ledger_service.py
"""
Unit Ledger: the authoritative table of physical and bulk inventory units.

WHY: Every other component mutates inventory only through this module. A
unit's (location, status) pair changes through transition_unit, a single
conditional UPDATE that names the state the caller last observed. If another
transaction moved the unit in between, zero rows match and the caller gets
StaleState instead of silently overwriting the other writer's move.

STATE MACHINE (status@location):
- (none)                 -> AVAILABLE@WAREHOUSE      receipt line completed
- AVAILABLE@WAREHOUSE    -> AVAILABLE@WAREHOUSE      transfer between areas
- AVAILABLE@WAREHOUSE    -> IN_TRANSIT@PERSON        transfer to a technician
- AVAILABLE@WAREHOUSE    -> ALLOCATED@WAREHOUSE      reserved for a material request (and back)
- ALLOCATED@WAREHOUSE    -> AVAILABLE@WAREHOUSE      reserved unit transferred to another area
- ALLOCATED@WAREHOUSE    -> IN_TRANSIT@PERSON        reserved unit transferred to a technician
- AVAILABLE@WAREHOUSE,
  IN_TRANSIT@PERSON,
  AVAILABLE@PERSON       -> CONSUMED                 consumption (terminal)
- IN_TRANSIT@PERSON,
  AVAILABLE@PERSON       -> AVAILABLE@WAREHOUSE      return approved
                         -> FAULTY@WAREHOUSE         return approved as FAULTY
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from fieldstock.extensions import db
from fieldstock.errors import DuplicateIdentity, NotFoundError, StaleState, StateConflict, ValidationError
from fieldstock.models import InventoryUnit, Receipt, ReceiptLine
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
from fieldstock.models.workflows import RECEIPT_STATUS_COMPLETED
from fieldstock.services.concurrency import lock_for_update
from fieldstock.services.tenant_service import OrgContext, org_clause, org_tag, scoped
from fieldstock.time_utils import utcnow


@dataclass(frozen=True)
class Location:
    """
    Tagged location of a unit: WAREHOUSE(area_id), PERSON(user_id) or CONSUMED.

    As a search filter, a WAREHOUSE or PERSON location with id None matches
    any area or any technician.
    """

    type: str
    id: Optional[int] = None

    @classmethod
    def warehouse(cls, stock_area_id: Optional[int]) -> "Location":
        return cls(LOCATION_WAREHOUSE, stock_area_id)

    @classmethod
    def person(cls, user_id: Optional[int]) -> "Location":
        return cls(LOCATION_PERSON, user_id)

    @classmethod
    def consumed(cls) -> "Location":
        return cls(LOCATION_CONSUMED, None)

    def __str__(self) -> str:
        if self.type == LOCATION_CONSUMED:
            return LOCATION_CONSUMED
        return f"{self.type}({self.id if self.id is not None else '*'})"


@dataclass(frozen=True)
class UnitState:
    location: Location
    status: str

    @classmethod
    def of(cls, unit: InventoryUnit) -> "UnitState":
        return cls(Location(unit.location_type, unit.location_id), unit.status)

    def __str__(self) -> str:
        return f"{self.status}@{self.location}"


VALID_STATES = {
    LOCATION_WAREHOUSE: frozenset({STATUS_AVAILABLE, STATUS_ALLOCATED, STATUS_FAULTY}),
    LOCATION_PERSON: frozenset({STATUS_IN_TRANSIT, STATUS_AVAILABLE}),
    LOCATION_CONSUMED: frozenset({STATUS_CONSUMED}),
}

_W, _P, _C = LOCATION_WAREHOUSE, LOCATION_PERSON, LOCATION_CONSUMED

ALLOWED_TRANSITIONS = frozenset({
    ((_W, STATUS_AVAILABLE), (_W, STATUS_AVAILABLE)),
    ((_W, STATUS_AVAILABLE), (_P, STATUS_IN_TRANSIT)),
    ((_W, STATUS_AVAILABLE), (_W, STATUS_ALLOCATED)),
    ((_W, STATUS_ALLOCATED), (_W, STATUS_AVAILABLE)),
    ((_W, STATUS_ALLOCATED), (_P, STATUS_IN_TRANSIT)),
    ((_W, STATUS_AVAILABLE), (_C, STATUS_CONSUMED)),
    ((_P, STATUS_IN_TRANSIT), (_C, STATUS_CONSUMED)),
    ((_P, STATUS_AVAILABLE), (_C, STATUS_CONSUMED)),
    ((_P, STATUS_IN_TRANSIT), (_W, STATUS_AVAILABLE)),
    ((_P, STATUS_IN_TRANSIT), (_W, STATUS_FAULTY)),
    ((_P, STATUS_AVAILABLE), (_W, STATUS_AVAILABLE)),
    ((_P, STATUS_AVAILABLE), (_W, STATUS_FAULTY)),
})

# Statuses a technician is holding
PERSON_STOCK_STATUSES = (STATUS_AVAILABLE, STATUS_IN_TRANSIT)

# Marker for "leave ticket_id as it is"
KEEP_TICKET = object()


def is_valid_state(location_type: str, status: str) -> bool:
    return status in VALID_STATES.get(location_type, ())


def _check_transition(expected: UnitState, new_location: Location, new_status: str) -> None:
    if not is_valid_state(new_location.type, new_status):
        raise StateConflict(f"Invalid unit state {new_status}@{new_location.type}")
    if new_location.type == LOCATION_CONSUMED:
        if new_location.id is not None:
            raise StateConflict("Consumed units have no location id")
    elif new_location.id is None:
        raise ValidationError(f"{new_location.type} location requires an id")
    edge = ((expected.location.type, expected.status), (new_location.type, new_status))
    if edge not in ALLOWED_TRANSITIONS:
        raise StateConflict(f"Transition {expected} -> {new_status}@{new_location} is not allowed")


def _location_criteria(location: Location):
    criteria = [InventoryUnit.location_type == location.type]
    if location.type == LOCATION_CONSUMED:
        criteria.append(InventoryUnit.location_id.is_(None))
    elif location.id is not None:
        criteria.append(InventoryUnit.location_id == location.id)
    return criteria


def _active_units(ctx: OrgContext):
    return scoped(db.session.query(InventoryUnit), InventoryUnit, ctx).filter(InventoryUnit.is_active.is_(True))


def _identity_owner(column, value: str) -> Optional[InventoryUnit]:
    # Identities are unique among all active units, across organizations
    return (
        db.session.query(InventoryUnit)
        .filter(column == value, InventoryUnit.is_active.is_(True))
        .first()
    )


def create_units(
    ctx: OrgContext,
    *,
    material_id: int,
    stock_area_id: int,
    count: int = 0,
    serial_numbers: Optional[Sequence[str]] = None,
    mac_ids: Optional[Sequence[Optional[str]]] = None,
    receipt_line_id: Optional[int] = None,
) -> list[int]:
    """
    Materialize new units as AVAILABLE@WAREHOUSE(stock_area_id).

    Serialized: one unit per entry of serial_numbers (mac_ids, when given, is
    parallel to it). Bulk: `count` anonymous units.

    Raises:
        DuplicateIdentity: a serial number or MAC id belongs to an active unit
        ValidationError: bad count or mismatched identity lists
    """
    serial_numbers = list(serial_numbers or [])
    if serial_numbers:
        mac_ids = list(mac_ids) if mac_ids is not None else [None] * len(serial_numbers)
        if len(mac_ids) != len(serial_numbers):
            raise ValidationError("mac_ids must match serial_numbers one to one")
        identities = list(zip(serial_numbers, mac_ids))
    elif mac_ids:
        identities = [(None, mac) for mac in mac_ids]
    else:
        if count is None or count < 1:
            raise ValidationError("Unit count must be at least 1")
        identities = [(None, None)] * count

    seen = set()
    for serial, mac in identities:
        for label, column, value in (
            ("Serial number", InventoryUnit.serial_number, serial),
            ("MAC id", InventoryUnit.mac_id, mac),
        ):
            if not value:
                continue
            if (label, value) in seen:
                raise DuplicateIdentity(f"{label} {value} appears more than once", identity=value)
            seen.add((label, value))
            owner = _identity_owner(column, value)
            if owner is not None:
                raise DuplicateIdentity(
                    f"{label} {value} already exists on unit {owner.id}",
                    identity=value,
                    unit_id=owner.id,
                )

    units = [
        InventoryUnit(
            org_id=org_tag(ctx),
            material_id=material_id,
            serial_number=serial or None,
            mac_id=mac or None,
            location_type=LOCATION_WAREHOUSE,
            location_id=stock_area_id,
            status=STATUS_AVAILABLE,
            receipt_line_id=receipt_line_id,
        )
        for serial, mac in identities
    ]
    db.session.add_all(units)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # A concurrent writer committed the same identity after our check
        raise DuplicateIdentity("Serial number or MAC id already exists") from exc
    return [u.id for u in units]


def transition_unit(
    ctx: OrgContext,
    unit_id: int,
    expected: UnitState,
    new_location: Location,
    new_status: str,
    ticket_id=KEEP_TICKET,
) -> InventoryUnit:
    """
    Move one unit from `expected` to `new_status@new_location`.

    ticket_id: KEEP_TICKET leaves the unit's ticket untouched, None clears it,
    a string sets it.

    Raises:
        StateConflict: the edge is not part of the state machine
        NotFoundError: no such active unit in the caller's organization
        StaleState: the unit is no longer in `expected`
    """
    _check_transition(expected, new_location, new_status)

    criteria = [
        InventoryUnit.id == unit_id,
        InventoryUnit.is_active.is_(True),
        InventoryUnit.status == expected.status,
        *_location_criteria(expected.location),
    ]
    clause = org_clause(InventoryUnit, ctx)
    if clause is not None:
        criteria.append(clause)

    values = {
        "location_type": new_location.type,
        "location_id": new_location.id,
        "status": new_status,
        "version_id": InventoryUnit.version_id + 1,
        "updated_at": utcnow(),
    }
    if ticket_id is not KEEP_TICKET:
        values["ticket_id"] = ticket_id

    stmt = (
        update(InventoryUnit)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        if _active_units(ctx).filter(InventoryUnit.id == unit_id).count() == 0:
            raise NotFoundError(f"Unit {unit_id} not found", unit_id=unit_id)
        raise StaleState(f"Unit {unit_id} is no longer {expected}", unit_id=unit_id)

    return db.session.get(InventoryUnit, unit_id, populate_existing=True)


def find_available(
    ctx: OrgContext,
    material_id: int,
    location: Location,
    *,
    limit: Optional[int] = None,
    statuses: Optional[Iterable[str]] = None,
    bulk_only: bool = False,
    exclude_ids: Iterable[int] = (),
    skip_locked: bool = False,
) -> list[InventoryUnit]:
    """
    Candidate units of a material at a location, oldest first (FIFO).

    Default statuses are AVAILABLE for a warehouse and the held statuses
    (AVAILABLE, IN_TRANSIT) for a technician. bulk_only excludes units that
    carry a serial number or MAC id.
    """
    if statuses is None:
        statuses = PERSON_STOCK_STATUSES if location.type == LOCATION_PERSON else (STATUS_AVAILABLE,)

    query = (
        _active_units(ctx)
        .filter(InventoryUnit.material_id == material_id, *_location_criteria(location))
        .filter(InventoryUnit.status.in_(list(statuses)))
    )
    if bulk_only:
        query = query.filter(InventoryUnit.serial_number.is_(None), InventoryUnit.mac_id.is_(None))
    exclude_ids = list(exclude_ids)
    if exclude_ids:
        query = query.filter(InventoryUnit.id.notin_(exclude_ids))

    query = query.order_by(InventoryUnit.created_at.asc(), InventoryUnit.id.asc())
    if limit is not None:
        query = query.limit(limit)
    if skip_locked:
        query = lock_for_update(query, skip_locked=True)

    # Candidates must reflect committed state, not stale identity-map copies
    return query.populate_existing().all()


def count_available(ctx: OrgContext, material_id: int, location: Location, *, bulk_only: bool = False) -> int:
    query = _active_units(ctx).filter(
        InventoryUnit.material_id == material_id,
        InventoryUnit.status == STATUS_AVAILABLE,
        *_location_criteria(location),
    )
    if bulk_only:
        query = query.filter(InventoryUnit.serial_number.is_(None), InventoryUnit.mac_id.is_(None))
    return query.count()


def get_available_units(
    ctx: OrgContext,
    material_id: int,
    stock_area_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[InventoryUnit]:
    """AVAILABLE units of a material in a stock area (any area when None), FIFO."""
    if limit is not None and limit < 1:
        raise ValidationError("limit must be positive")
    return find_available(ctx, material_id, Location.warehouse(stock_area_id), limit=limit)


def find_by_serial(
    ctx: OrgContext,
    serial_number: str,
    location: Optional[Location] = None,
    *,
    material_id: Optional[int] = None,
    statuses: Optional[Iterable[str]] = None,
) -> Optional[InventoryUnit]:
    """Active unit with this serial number, optionally constrained to a location."""
    if not serial_number:
        raise ValidationError("serial_number is required")
    query = _active_units(ctx).filter(InventoryUnit.serial_number == serial_number)
    if location is not None:
        query = query.filter(*_location_criteria(location))
    if material_id is not None:
        query = query.filter(InventoryUnit.material_id == material_id)
    if statuses is not None:
        query = query.filter(InventoryUnit.status.in_(list(statuses)))
    return query.populate_existing().first()


def resolve_serial_at(ctx: OrgContext, serial: str, material_id: int, source: Location, statuses) -> InventoryUnit:
    """The unit carrying `serial`, required to be in one of `statuses` at `source`."""
    unit = find_by_serial(ctx, serial, material_id=material_id)
    if unit is None:
        raise NotFoundError(f"Serial number {serial} not found for material {material_id}", serial_number=serial)
    matches_location = unit.location_type == source.type and (
        source.id is None or unit.location_id == source.id
    )
    if not matches_location or unit.status not in statuses:
        raise StateConflict(
            f"Serial number {serial} is {unit.status}@{unit.location_type}({unit.location_id}), "
            f"not available at {source}",
            serial_number=serial,
        )
    return unit


def get_unit(ctx: OrgContext, unit_id: int) -> InventoryUnit:
    unit = _active_units(ctx).filter(InventoryUnit.id == unit_id).first()
    if unit is None:
        raise NotFoundError(f"Unit {unit_id} not found", unit_id=unit_id)
    return unit


def list_person_stock(
    ctx: OrgContext,
    user_id: int,
    *,
    ticket_id: Optional[str] = None,
    material_id: Optional[int] = None,
    statuses: Iterable[str] = PERSON_STOCK_STATUSES,
) -> dict:
    """
    Units held by a technician, with a per-ticket summary.

    Returns:
        {"user_id", "total", "units": [...], "tickets": [{"ticket_id", "unit_count",
         "materials": {material_id: count}}]}
    """
    query = _active_units(ctx).filter(
        InventoryUnit.location_type == LOCATION_PERSON,
        InventoryUnit.location_id == user_id,
        InventoryUnit.status.in_(list(statuses)),
    )
    if ticket_id is not None:
        query = query.filter(InventoryUnit.ticket_id == ticket_id)
    if material_id is not None:
        query = query.filter(InventoryUnit.material_id == material_id)
    units = query.order_by(InventoryUnit.created_at.asc(), InventoryUnit.id.asc()).all()

    tickets: "OrderedDict[Optional[str], dict]" = OrderedDict()
    for unit in units:
        entry = tickets.setdefault(
            unit.ticket_id,
            {"ticket_id": unit.ticket_id, "unit_count": 0, "materials": {}},
        )
        entry["unit_count"] += 1
        entry["materials"][unit.material_id] = entry["materials"].get(unit.material_id, 0) + 1

    return {
        "user_id": user_id,
        "total": len(units),
        "units": [u.to_dict() for u in units],
        "tickets": list(tickets.values()),
    }


def conservation_counts(ctx: OrgContext, material_id: int) -> dict:
    """
    Where every unit ever received for a material is now.

    `received` comes from COMPLETED receipt lines, `created` from the ledger
    rows themselves. balanced requires both to agree and every row to sit in a
    valid (location, status) pair:
        received == created == warehouse + person + consumed + faulty
    `warehouse` excludes FAULTY units, which are reported on their own, and
    includes ALLOCATED ones. Rows in any other pair are `unaccounted`.
    """
    rows = (
        scoped(
            db.session.query(InventoryUnit.location_type, InventoryUnit.status, func.count(InventoryUnit.id)),
            InventoryUnit,
            ctx,
        )
        .filter(InventoryUnit.material_id == material_id)
        .group_by(InventoryUnit.location_type, InventoryUnit.status)
        .all()
    )
    counts = {"warehouse": 0, "person": 0, "consumed": 0, "faulty": 0, "unaccounted": 0}
    for location_type, status, n in rows:
        if not is_valid_state(location_type, status):
            counts["unaccounted"] += n
        elif status == STATUS_FAULTY:
            counts["faulty"] += n
        elif location_type == LOCATION_WAREHOUSE:
            counts["warehouse"] += n
        elif location_type == LOCATION_PERSON:
            counts["person"] += n
        else:
            counts["consumed"] += n

    counts["created"] = (
        scoped(db.session.query(InventoryUnit), InventoryUnit, ctx)
        .filter(InventoryUnit.material_id == material_id)
        .count()
    )
    received_query = (
        db.session.query(func.coalesce(func.sum(ReceiptLine.quantity), 0))
        .select_from(ReceiptLine)
        .join(Receipt, Receipt.id == ReceiptLine.receipt_id)
        .filter(ReceiptLine.material_id == material_id, Receipt.status == RECEIPT_STATUS_COMPLETED)
    )
    received = scoped(received_query, Receipt, ctx).scalar()
    counts["received"] = int(received or 0)
    counts["material_id"] = material_id
    accounted = counts["warehouse"] + counts["person"] + counts["consumed"] + counts["faulty"]
    counts["balanced"] = counts["received"] == counts["created"] == accounted
    return counts


def units_on_hand_by_material(ctx: OrgContext, material_id: Optional[int] = None) -> dict[int, int]:
    """Count of active units not CONSUMED, per material (used to reconcile stock levels)."""
    query = (
        _active_units(ctx)
        .with_entities(InventoryUnit.material_id, func.count(InventoryUnit.id))
        .filter(InventoryUnit.status != STATUS_CONSUMED)
    )
    if material_id is not None:
        query = query.filter(InventoryUnit.material_id == material_id)
    return {mid: n for mid, n in query.group_by(InventoryUnit.material_id).all()}
