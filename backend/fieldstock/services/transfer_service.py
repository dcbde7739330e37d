# backend/fieldstock/services/transfer_service.py
"""
Stock transfer workflow: warehouse to warehouse, or warehouse to technician.

WHY: A transfer is the only way stock leaves a stock area without being
consumed. The header, its lines and every unit move commit together; if any
line cannot be filled in full, nothing moves (no partial transfers).

DESTINATION is a tagged value:
    {"type": "WAREHOUSE", "stock_area_id": n}
    {"type": "PERSON", "user_id": n, "stock_area_id": optional}

For a PERSON destination the stored to_stock_area_id is the area the
technician's stock is attributed to, defaulting to the source area.
Units land as AVAILABLE@WAREHOUSE(area) or IN_TRANSIT@PERSON(user).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from fieldstock.extensions import db
from fieldstock.errors import NotFoundError, StateConflict, ValidationError
from fieldstock.models import Transfer, TransferLine
from fieldstock.models.ledger import STATUS_ALLOCATED, STATUS_AVAILABLE, STATUS_IN_TRANSIT
from fieldstock.models.workflows import (
    DESTINATION_PERSON,
    DESTINATION_WAREHOUSE,
    TRANSFER_STATUS_COMPLETED,
)
from fieldstock.services import allocation_service, reference_service, request_service
from fieldstock.services.concurrency import run_in_transaction
from fieldstock.services.ledger_service import KEEP_TICKET, Location, resolve_serial_at
from fieldstock.services.payloads import business_date, clean_str, positive_int, require_body, require_items, serial_list
from fieldstock.services.slip_service import PREFIX_TRANSFER, claim_slip_number
from fieldstock.services.tenant_service import OrgContext, org_tag, scoped


@dataclass(frozen=True)
class Destination:
    type: str
    stock_area_id: int
    user_id: Optional[int] = None

    @property
    def location(self) -> Location:
        if self.type == DESTINATION_PERSON:
            return Location.person(self.user_id)
        return Location.warehouse(self.stock_area_id)

    @property
    def unit_status(self) -> str:
        return STATUS_IN_TRANSIT if self.type == DESTINATION_PERSON else STATUS_AVAILABLE


def resolve_destination(ctx: OrgContext, raw, source_area_id: int) -> Destination:
    """Validate a tagged destination against reference data."""
    if not isinstance(raw, dict):
        raise ValidationError("destination is required")
    kind = str(raw.get("type") or "").upper()

    if kind == DESTINATION_WAREHOUSE:
        area = reference_service.get_active_stock_area(ctx, raw.get("stock_area_id"))
        if area.id == source_area_id:
            raise ValidationError("Source and destination stock areas must be different")
        return Destination(DESTINATION_WAREHOUSE, area.id)

    if kind == DESTINATION_PERSON:
        user = reference_service.get_active_user(ctx, raw.get("user_id"))
        area_id = source_area_id
        if raw.get("stock_area_id") is not None:
            area_id = reference_service.get_active_stock_area(ctx, raw.get("stock_area_id")).id
        return Destination(DESTINATION_PERSON, area_id, user.id)

    raise ValidationError("destination.type must be WAREHOUSE or PERSON")


def _line_units(ctx, item, index, material, source, destination, unit_ticket, request):
    """Resolve and move the units of one line; reserved units of `request` go first."""
    serials = serial_list(item, index)
    reserved_ids = request_service.reserved_unit_ids(request) if request is not None else set()

    if serials:
        if item.get("quantity") is not None and positive_int(item["quantity"], "quantity") != len(serials):
            raise ValidationError(f"Item {index}: quantity does not match serial numbers")
        statuses = (STATUS_AVAILABLE, STATUS_ALLOCATED) if request is not None else (STATUS_AVAILABLE,)
        units = [resolve_serial_at(ctx, serial, material.id, source, statuses) for serial in serials]
        for unit in units:
            if unit.status == STATUS_ALLOCATED and unit.id not in reserved_ids:
                raise StateConflict(
                    f"Serial number {unit.serial_number} is reserved for another request",
                    serial_number=unit.serial_number,
                )
        moved = allocation_service.move_units(
            ctx,
            units,
            destination=destination.location,
            new_status=destination.unit_status,
            ticket_id=unit_ticket,
        )
        return serials, len(serials), moved

    quantity = positive_int(item.get("quantity"), f"Item {index} quantity")
    moved = []
    if request is not None:
        reserved = request_service.take_reserved_units(request, material.id, source.id, quantity)
        moved = allocation_service.move_units(
            ctx,
            reserved,
            destination=destination.location,
            new_status=destination.unit_status,
            ticket_id=unit_ticket,
        )
    moved += allocation_service.allocate(
        ctx,
        material_id=material.id,
        source=source,
        quantity=quantity - len(moved),
        destination=destination.location,
        new_status=destination.unit_status,
        ticket_id=unit_ticket,
        bulk_only=True,
    )
    return serials, quantity, moved


def submit_transfer(ctx: OrgContext, payload: dict) -> dict:
    """
    Create a transfer and move its units.

    Payload:
        from_stock_area_id, destination (tagged), items: list of
        {material_id, quantity?, serial_numbers?, remarks?},
        material_request_id?, ticket_id?, transfer_date?, remarks?, transfer_number?

    With material_request_id the request must be APPROVED; units reserved for
    it in the source area move before any free stock, and the request is
    FULFILLED once every approved unit has been transferred.

    Returns:
        {"transfer": {...}, "unit_ids": [...]}
    """
    def _op():
        require_body(payload)
        source_area = reference_service.get_active_stock_area(ctx, payload.get("from_stock_area_id"))
        destination = resolve_destination(ctx, payload.get("destination"), source_area.id)
        items = require_items(payload)

        request = None
        if payload.get("material_request_id") is not None:
            request = request_service.get_transferable_request(ctx, payload["material_request_id"])

        ticket_id = clean_str(payload.get("ticket_id")) or (request.ticket_id if request is not None else None)
        transfer = Transfer(
            org_id=org_tag(ctx),
            transfer_number=claim_slip_number(
                ctx, PREFIX_TRANSFER, Transfer.transfer_number, payload.get("transfer_number")
            ),
            from_stock_area_id=source_area.id,
            to_stock_area_id=destination.stock_area_id,
            destination_type=destination.type,
            to_user_id=destination.user_id,
            material_request_id=request.id if request is not None else None,
            ticket_id=ticket_id,
            transfer_date=business_date(payload.get("transfer_date"), "transfer_date"),
            status=TRANSFER_STATUS_COMPLETED,
            remarks=payload.get("remarks"),
            created_by_user_id=ctx.user_id,
        )
        db.session.add(transfer)

        source = Location.warehouse(source_area.id)
        # Tickets only attach to units handed to a technician
        unit_ticket = ticket_id if ticket_id and destination.type == DESTINATION_PERSON else KEEP_TICKET
        unit_ids = []
        moved_units = []
        for index, item in enumerate(items, start=1):
            material = reference_service.get_active_material(ctx, item.get("material_id"))
            serials, quantity, moved = _line_units(
                ctx, item, index, material, source, destination, unit_ticket, request
            )
            transfer.lines.append(
                TransferLine(
                    line_number=index,
                    material_id=material.id,
                    quantity=quantity,
                    serial_numbers=serials or None,
                    remarks=item.get("remarks"),
                    units=moved,
                )
            )
            unit_ids.extend(u.id for u in moved)
            moved_units.extend(moved)

        db.session.flush()
        if request is not None:
            request_service.mark_transferred(ctx, request, moved_units, transfer.id)
            db.session.flush()
        current_app.logger.info(
            "Transfer %s: %d unit(s) from stock area %s to %s",
            transfer.transfer_number, len(unit_ids), source_area.id, destination.location,
        )
        return {"transfer": transfer.to_dict(), "unit_ids": unit_ids}

    return run_in_transaction(_op)


def get_transfer(ctx: OrgContext, transfer_id: int) -> dict:
    transfer = scoped(db.session.query(Transfer), Transfer, ctx).filter(Transfer.id == transfer_id).first()
    if transfer is None:
        raise NotFoundError(f"Transfer {transfer_id} not found", transfer_id=transfer_id)
    return transfer.to_dict()


def list_transfers(
    ctx: OrgContext,
    *,
    status: Optional[str] = None,
    from_stock_area_id: Optional[int] = None,
    to_user_id: Optional[int] = None,
) -> list[dict]:
    query = scoped(db.session.query(Transfer), Transfer, ctx).filter(Transfer.is_active.is_(True))
    if status:
        query = query.filter(Transfer.status == status.upper())
    if from_stock_area_id is not None:
        query = query.filter(Transfer.from_stock_area_id == from_stock_area_id)
    if to_user_id is not None:
        query = query.filter(Transfer.to_user_id == to_user_id)
    return [t.to_dict() for t in query.order_by(Transfer.id.desc()).all()]
