# backend/fieldstock/services/consumption_service.py
"""
Consumption workflow: material used up against a ticket or installation.

SOURCES (bulk lines):
1. the technician's own stock (from_user_id), oldest first
2. then the given stock area, or any stock area when none is given

Serialized lines name their units; each must sit where the request says
(technician stock, the stock area, or anywhere not yet consumed). Units end
CONSUMED with their location cleared and the ticket kept for traceability.
All lines succeed or the whole consumption is rolled back.
"""
from __future__ import annotations

from typing import Optional

from flask import current_app

from fieldstock.extensions import db
from fieldstock.errors import NotFoundError, StateConflict, ValidationError
from fieldstock.models import Consumption, ConsumptionLine
from fieldstock.models.ledger import (
    LOCATION_PERSON,
    LOCATION_WAREHOUSE,
    STATUS_AVAILABLE,
    STATUS_CONSUMED,
    STATUS_IN_TRANSIT,
)
from fieldstock.models.workflows import CONSUMPTION_STATUS_COMPLETED
from fieldstock.services import allocation_service, ledger_service, reference_service
from fieldstock.services.concurrency import run_in_transaction
from fieldstock.services.ledger_service import KEEP_TICKET, PERSON_STOCK_STATUSES, Location
from fieldstock.services.payloads import business_date, clean_str, positive_int, require_body, require_items, serial_list
from fieldstock.services.slip_service import PREFIX_CONSUMPTION, claim_slip_number
from fieldstock.services.tenant_service import OrgContext, org_tag, scoped


# (location_type, status) pairs a unit can be consumed from
CONSUMABLE_STATES = frozenset({
    (LOCATION_WAREHOUSE, STATUS_AVAILABLE),
    (LOCATION_PERSON, STATUS_IN_TRANSIT),
    (LOCATION_PERSON, STATUS_AVAILABLE),
})


def _serial_at_source(
    unit,
    *,
    user_id: Optional[int],
    stock_area_id: Optional[int],
    ticket_id: Optional[str],
) -> Optional[str]:
    """Return why `unit` cannot be consumed from the named source, or None."""
    serial = unit.serial_number
    state = (unit.location_type, unit.status)
    if user_id is not None:
        if unit.location_type != LOCATION_PERSON or unit.location_id != user_id or state not in CONSUMABLE_STATES:
            return f"Serial number {serial} is not in stock of user {user_id}"
        if ticket_id and unit.ticket_id and unit.ticket_id != ticket_id:
            return f"Serial number {serial} is assigned to ticket {unit.ticket_id}, not {ticket_id}"
    elif stock_area_id is not None:
        if state != (LOCATION_WAREHOUSE, STATUS_AVAILABLE) or unit.location_id != stock_area_id:
            return f"Serial number {serial} is not available in stock area {stock_area_id}"
    elif state not in CONSUMABLE_STATES:
        return f"Serial number {serial} is {unit.status} and cannot be consumed"
    return None


def _resolve_serial(
    ctx: OrgContext,
    serial: str,
    material_id: int,
    *,
    user_id: Optional[int],
    stock_area_id: Optional[int],
    ticket_id: Optional[str],
):
    unit = ledger_service.find_by_serial(ctx, serial, material_id=material_id)
    if unit is None:
        raise NotFoundError(f"Serial number {serial} not found for material {material_id}", serial_number=serial)

    problem = _serial_at_source(unit, user_id=user_id, stock_area_id=stock_area_id, ticket_id=ticket_id)
    if problem:
        raise StateConflict(problem, serial_number=serial)
    return unit


def _consume_bulk(
    ctx: OrgContext,
    material_id: int,
    quantity: int,
    *,
    user_id: Optional[int],
    stock_area_id: Optional[int],
    ticket,
    claimed: set,
):
    """Person stock first, then the stock area (or any area); all or nothing."""
    sources = []
    if user_id is not None:
        sources.append((Location.person(user_id), PERSON_STOCK_STATUSES))
    sources.append((Location.warehouse(stock_area_id), (STATUS_AVAILABLE,)))

    moved = []
    for source, statuses in sources:
        if len(moved) == quantity:
            break
        moved.extend(
            allocation_service.allocate(
                ctx,
                material_id=material_id,
                source=source,
                quantity=quantity - len(moved),
                destination=Location.consumed(),
                new_status=STATUS_CONSUMED,
                ticket_id=ticket,
                statuses=statuses,
                exclude_ids=claimed,
                partial=True,
            )
        )
    if len(moved) < quantity:
        raise allocation_service.insufficient(len(moved), quantity, material_id=material_id)
    return moved


def submit_consumption(ctx: OrgContext, payload: dict) -> dict:
    """
    Record a consumption and move its units to CONSUMED.

    Payload:
        items: list of {material_id, quantity?, serial_numbers?, remarks?},
        from_user_id?, stock_area_id?, ticket_id?, external_system_ref_id?,
        customer_data? (object), consumption_date?, remarks?, consumption_number?

    Returns:
        {"consumption": {...}, "unit_ids": [...]}
    """
    def _op():
        require_body(payload)
        items = require_items(payload)

        user_id = None
        if payload.get("from_user_id") is not None:
            user_id = reference_service.get_active_user(ctx, payload["from_user_id"]).id
        stock_area_id = None
        if payload.get("stock_area_id") is not None:
            stock_area_id = reference_service.get_active_stock_area(ctx, payload["stock_area_id"]).id

        customer_data = payload.get("customer_data")
        if customer_data is not None and not isinstance(customer_data, dict):
            raise ValidationError("customer_data must be an object")

        ticket_id = clean_str(payload.get("ticket_id"))
        consumption = Consumption(
            org_id=org_tag(ctx),
            consumption_number=claim_slip_number(
                ctx, PREFIX_CONSUMPTION, Consumption.consumption_number, payload.get("consumption_number")
            ),
            external_system_ref_id=clean_str(payload.get("external_system_ref_id")),
            ticket_id=ticket_id,
            customer_data=customer_data,
            consumption_date=business_date(payload.get("consumption_date"), "consumption_date"),
            stock_area_id=stock_area_id,
            from_user_id=user_id,
            status=CONSUMPTION_STATUS_COMPLETED,
            remarks=payload.get("remarks"),
            created_by_user_id=ctx.user_id,
        )
        db.session.add(consumption)

        unit_ticket = ticket_id if ticket_id else KEEP_TICKET
        claimed: set = set()
        unit_ids = []
        for index, item in enumerate(items, start=1):
            material = reference_service.get_active_material(ctx, item.get("material_id"))
            serials = serial_list(item, index)

            if serials:
                units = [
                    _resolve_serial(
                        ctx, serial, material.id,
                        user_id=user_id, stock_area_id=stock_area_id, ticket_id=ticket_id,
                    )
                    for serial in serials
                ]
                moved = allocation_service.move_units(
                    ctx,
                    units,
                    destination=Location.consumed(),
                    new_status=STATUS_CONSUMED,
                    ticket_id=unit_ticket,
                    still_eligible=lambda u: _serial_at_source(
                        u, user_id=user_id, stock_area_id=stock_area_id, ticket_id=ticket_id
                    ) is None,
                )
                quantity = len(serials)
            else:
                quantity = positive_int(item.get("quantity"), f"Item {index} quantity")
                moved = _consume_bulk(
                    ctx, material.id, quantity,
                    user_id=user_id, stock_area_id=stock_area_id, ticket=unit_ticket, claimed=claimed,
                )

            claimed.update(u.id for u in moved)
            consumption.lines.append(
                ConsumptionLine(
                    line_number=index,
                    material_id=material.id,
                    quantity=quantity,
                    serial_numbers=serials or None,
                    remarks=item.get("remarks"),
                    units=moved,
                )
            )
            unit_ids.extend(u.id for u in moved)

        db.session.flush()
        current_app.logger.info(
            "Consumption %s: %d unit(s) consumed (ticket %s)",
            consumption.consumption_number, len(unit_ids), ticket_id,
        )
        return {"consumption": consumption.to_dict(), "unit_ids": unit_ids}

    return run_in_transaction(_op)


def get_consumption(ctx: OrgContext, consumption_id: int) -> dict:
    consumption = (
        scoped(db.session.query(Consumption), Consumption, ctx)
        .filter(Consumption.id == consumption_id)
        .first()
    )
    if consumption is None:
        raise NotFoundError(f"Consumption {consumption_id} not found", consumption_id=consumption_id)
    return consumption.to_dict()


def list_consumptions(
    ctx: OrgContext,
    *,
    ticket_id: Optional[str] = None,
    stock_area_id: Optional[int] = None,
    from_user_id: Optional[int] = None,
) -> list[dict]:
    query = scoped(db.session.query(Consumption), Consumption, ctx).filter(Consumption.is_active.is_(True))
    if ticket_id:
        query = query.filter(Consumption.ticket_id == ticket_id)
    if stock_area_id is not None:
        query = query.filter(Consumption.stock_area_id == stock_area_id)
    if from_user_id is not None:
        query = query.filter(Consumption.from_user_id == from_user_id)
    return [c.to_dict() for c in query.order_by(Consumption.id.desc()).all()]
