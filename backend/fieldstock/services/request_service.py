# backend/fieldstock/services/request_service.py
"""
Material request workflow: request, approve, reserve, transfer.

LIFECYCLE:
1. SUBMITTED: a technician (or someone on their behalf) asks for quantities
2. APPROVED: approved quantities are fixed per line (at most the requested
   quantity); units can now be reserved in a stock area
3. REJECTED: closed; the ledger is never touched
4. FULFILLED: set by the transfer that moves the last approved unit

RESERVATIONS:
- allocate_request moves AVAILABLE@WAREHOUSE units to ALLOCATED@WAREHOUSE and
  records one MaterialAllocation per unit; a line never holds more live
  allocations (ALLOCATED + TRANSFERRED) than its approved quantity
- reserved units are invisible to every other workflow because candidate
  selection only ever takes AVAILABLE units
- cancel_allocation releases one reserved unit back to AVAILABLE
- a transfer naming the request moves its reserved units first
  (take_reserved_units / mark_transferred are called by transfer_service)
"""
from __future__ import annotations

from typing import Optional

from flask import current_app

from fieldstock.extensions import db
from fieldstock.errors import NotFoundError, StateConflict, ValidationError
from fieldstock.models import InventoryUnit, MaterialAllocation, MaterialRequest, MaterialRequestLine
from fieldstock.models.ledger import LOCATION_WAREHOUSE, STATUS_ALLOCATED, STATUS_AVAILABLE
from fieldstock.models.requests import (
    ALLOCATION_STATUS_ALLOCATED,
    ALLOCATION_STATUS_CANCELLED,
    ALLOCATION_STATUS_TRANSFERRED,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_FULFILLED,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_SUBMITTED,
)
from fieldstock.services import allocation_service, reference_service
from fieldstock.services.concurrency import lock_for_update, run_in_transaction
from fieldstock.services.ledger_service import Location, resolve_serial_at
from fieldstock.services.payloads import (
    business_date,
    clean_str,
    optional_int,
    positive_int,
    require_body,
    require_items,
    serial_list,
)
from fieldstock.services.slip_service import PREFIX_REQUEST, claim_slip_number
from fieldstock.services.tenant_service import OrgContext, org_tag, scoped
from fieldstock.time_utils import utcnow


def submit_request(ctx: OrgContext, payload: dict) -> dict:
    """
    Create a SUBMITTED material request.

    Payload:
        items: list of {material_id, quantity, remarks?},
        requestor_user_id? (defaults to the caller), from_stock_area_id?,
        ticket_id?, service_area?, request_date?, remarks?, request_number?
    """
    def _op():
        require_body(payload)
        items = require_items(payload)

        requestor = reference_service.get_active_user(ctx, payload.get("requestor_user_id", ctx.user_id))
        area_id = None
        if payload.get("from_stock_area_id") is not None:
            area_id = reference_service.get_active_stock_area(ctx, payload["from_stock_area_id"]).id

        request = MaterialRequest(
            org_id=org_tag(ctx),
            request_number=claim_slip_number(
                ctx, PREFIX_REQUEST, MaterialRequest.request_number, payload.get("request_number")
            ),
            request_date=business_date(payload.get("request_date"), "request_date"),
            requestor_user_id=requestor.id,
            from_stock_area_id=area_id,
            ticket_id=clean_str(payload.get("ticket_id")),
            service_area=clean_str(payload.get("service_area")),
            remarks=payload.get("remarks"),
            status=REQUEST_STATUS_SUBMITTED,
            created_by_user_id=ctx.user_id,
        )
        for index, item in enumerate(items, start=1):
            material = reference_service.get_active_material(ctx, item.get("material_id"))
            request.lines.append(
                MaterialRequestLine(
                    line_number=index,
                    material_id=material.id,
                    requested_quantity=positive_int(item.get("quantity"), f"Item {index} quantity"),
                    remarks=item.get("remarks"),
                )
            )

        db.session.add(request)
        db.session.flush()
        current_app.logger.info(
            "Material request %s submitted for user %s (%d line(s))",
            request.request_number, requestor.id, len(request.lines),
        )
        return request.to_dict()

    return run_in_transaction(_op)


def _get_request(ctx: OrgContext, request_id: int, *, lock: bool = False) -> MaterialRequest:
    query = scoped(db.session.query(MaterialRequest), MaterialRequest, ctx).filter(
        MaterialRequest.id == request_id,
        MaterialRequest.is_active.is_(True),
    )
    if lock:
        query = lock_for_update(query)
    request = query.first()
    if request is None:
        raise NotFoundError(f"Material request {request_id} not found", request_id=request_id)
    return request


def _require_status(request: MaterialRequest, *statuses: str) -> None:
    if request.status not in statuses:
        raise StateConflict(
            f"Material request {request.request_number} is {request.status}",
            request_id=request.id,
            status=request.status,
        )


def approve_request(ctx: OrgContext, request_id: int, payload: Optional[dict] = None) -> dict:
    """
    Approve a SUBMITTED request.

    Payload (optional):
        items: list of {line_id, approved_quantity}; lines not listed are
        approved at their requested quantity. remarks?
    """
    payload = payload or {}

    def _op():
        request = _get_request(ctx, request_id, lock=True)
        _require_status(request, REQUEST_STATUS_SUBMITTED)

        overrides = {}
        for index, item in enumerate(payload.get("items") or [], start=1):
            if not isinstance(item, dict):
                raise ValidationError(f"Item {index} must be an object")
            line_id = optional_int(item.get("line_id"), f"Item {index} line_id")
            quantity = optional_int(item.get("approved_quantity"), f"Item {index} approved_quantity")
            if line_id is None or quantity is None:
                raise ValidationError(f"Item {index}: line_id and approved_quantity are required")
            overrides[line_id] = quantity

        unknown = set(overrides) - {line.id for line in request.lines}
        if unknown:
            raise ValidationError(f"Unknown request line(s) {sorted(unknown)}", line_ids=sorted(unknown))

        for line in request.lines:
            approved = overrides.get(line.id, line.requested_quantity)
            if approved < 0 or approved > line.requested_quantity:
                raise ValidationError(
                    f"Line {line.line_number}: approved quantity must be between 0 and "
                    f"{line.requested_quantity}",
                    line_id=line.id,
                )
            line.approved_quantity = approved

        request.status = REQUEST_STATUS_APPROVED
        request.decided_by_user_id = ctx.user_id
        request.decided_at = utcnow()
        request.decision_remarks = payload.get("remarks")
        db.session.flush()
        current_app.logger.info("Material request %s approved", request.request_number)
        return request.to_dict()

    return run_in_transaction(_op)


def reject_request(ctx: OrgContext, request_id: int, *, remarks: Optional[str] = None) -> dict:
    """Mark a SUBMITTED request REJECTED."""
    def _op():
        request = _get_request(ctx, request_id, lock=True)
        _require_status(request, REQUEST_STATUS_SUBMITTED)
        request.status = REQUEST_STATUS_REJECTED
        request.decided_by_user_id = ctx.user_id
        request.decided_at = utcnow()
        request.decision_remarks = remarks
        db.session.flush()
        current_app.logger.info("Material request %s rejected", request.request_number)
        return request.to_dict()

    return run_in_transaction(_op)


def _line_for(request: MaterialRequest, item: dict, index: int) -> MaterialRequestLine:
    line_id = optional_int(item.get("line_id"), f"Item {index} line_id")
    for line in request.lines:
        if line.id == line_id:
            return line
    raise ValidationError(f"Item {index}: line {line_id} is not part of request {request.request_number}")


def allocate_request(ctx: OrgContext, request_id: int, payload: Optional[dict] = None) -> dict:
    """
    Reserve units for an APPROVED request.

    Payload (optional):
        stock_area_id? (defaults to the request's from_stock_area_id),
        items?: list of {line_id, quantity? | serial_numbers?}; without items
        every line is topped up to its approved quantity.

    Raises:
        ValidationError: no stock area, or a line would exceed its approved quantity
        InsufficientStock: not enough AVAILABLE units in the area (nothing is reserved)
    """
    payload = payload or {}

    def _op():
        request = _get_request(ctx, request_id, lock=True)
        _require_status(request, REQUEST_STATUS_APPROVED)

        area_id = payload.get("stock_area_id", request.from_stock_area_id)
        if area_id is None:
            raise ValidationError("stock_area_id is required when the request names no source area")
        area = reference_service.get_active_stock_area(ctx, area_id)

        if payload.get("items"):
            wanted = []
            for index, item in enumerate(require_items(payload), start=1):
                line = _line_for(request, item, index)
                serials = serial_list(item, index)
                quantity = len(serials) if serials else positive_int(item.get("quantity"), f"Item {index} quantity")
                wanted.append((line, quantity, serials))
        else:
            wanted = [
                (line, line.approved_quantity - line.live_allocations, [])
                for line in request.lines
                if line.approved_quantity - line.live_allocations > 0
            ]

        allocations = []
        for line, quantity, serials in wanted:
            outstanding = line.approved_quantity - line.live_allocations
            if quantity > outstanding:
                raise ValidationError(
                    f"Line {line.line_number}: allocation exceeds approved quantity. "
                    f"Approved: {line.approved_quantity}, already allocated: {line.live_allocations}, "
                    f"requested: {quantity}",
                    line_id=line.id,
                )
            if serials:
                units = [
                    resolve_serial_at(ctx, serial, line.material_id, Location.warehouse(area.id), (STATUS_AVAILABLE,))
                    for serial in serials
                ]
                reserved = allocation_service.reserve_units(ctx, units)
            else:
                reserved = allocation_service.reserve(
                    ctx, material_id=line.material_id, stock_area_id=area.id, quantity=quantity
                )
            for unit in reserved:
                allocation = MaterialAllocation(
                    unit=unit,
                    status=ALLOCATION_STATUS_ALLOCATED,
                    allocated_by_user_id=ctx.user_id,
                )
                request.allocations.append(allocation)
                line.allocations.append(allocation)
                allocations.append(allocation)

        db.session.flush()
        current_app.logger.info(
            "Material request %s: %d unit(s) reserved in stock area %s",
            request.request_number, len(allocations), area.id,
        )
        return {"request": request.to_dict(), "unit_ids": [a.unit_id for a in allocations]}

    return run_in_transaction(_op)


def cancel_allocation(ctx: OrgContext, request_id: int, allocation_id: int) -> dict:
    """Release one reserved unit back to AVAILABLE; transferred allocations cannot be cancelled."""
    def _op():
        request = _get_request(ctx, request_id, lock=True)
        allocation = next((a for a in request.allocations if a.id == allocation_id), None)
        if allocation is None:
            raise NotFoundError(f"Allocation {allocation_id} not found", allocation_id=allocation_id)
        if allocation.status != ALLOCATION_STATUS_ALLOCATED:
            raise StateConflict(
                f"Allocation {allocation_id} is {allocation.status} and cannot be cancelled",
                allocation_id=allocation_id,
                status=allocation.status,
            )

        allocation_service.release(ctx, [allocation.unit])
        allocation.status = ALLOCATION_STATUS_CANCELLED
        allocation.released_by_user_id = ctx.user_id
        allocation.released_at = utcnow()
        db.session.flush()
        current_app.logger.info(
            "Material request %s: allocation %s released (unit %s)",
            request.request_number, allocation.id, allocation.unit_id,
        )
        return request.to_dict()

    return run_in_transaction(_op)


def get_transferable_request(ctx: OrgContext, request_id) -> MaterialRequest:
    """An APPROVED request a transfer may be raised against."""
    request = _get_request(ctx, optional_int(request_id, "material_request_id"), lock=True)
    _require_status(request, REQUEST_STATUS_APPROVED)
    return request


def take_reserved_units(
    request: MaterialRequest,
    material_id: int,
    source_area_id: int,
    limit: int,
) -> list[InventoryUnit]:
    """Units reserved for `request` of a material, still ALLOCATED in the source area."""
    return [
        allocation.unit
        for allocation in request.allocations
        if allocation.status == ALLOCATION_STATUS_ALLOCATED
        and allocation.unit.material_id == material_id
        and allocation.unit.location_type == LOCATION_WAREHOUSE
        and allocation.unit.location_id == source_area_id
        and allocation.unit.status == STATUS_ALLOCATED
    ][:limit]


def reserved_unit_ids(request: MaterialRequest) -> set[int]:
    return {a.unit_id for a in request.allocations if a.status == ALLOCATION_STATUS_ALLOCATED}


def mark_transferred(ctx: OrgContext, request: MaterialRequest, units, transfer_id: int) -> None:
    """
    Record the units a transfer moved against `request`.

    Reserved units flip to TRANSFERRED; free units fill any line of the same
    material that still has approved quantity outstanding. The request is
    FULFILLED once every line has transferred its approved quantity.
    """
    reserved = {a.unit_id: a for a in request.allocations if a.status == ALLOCATION_STATUS_ALLOCATED}
    for unit in units:
        allocation = reserved.get(unit.id)
        if allocation is not None:
            allocation.status = ALLOCATION_STATUS_TRANSFERRED
            allocation.transfer_id = transfer_id
            continue
        line = next(
            (
                line for line in request.lines
                if line.material_id == unit.material_id and line.live_allocations < (line.approved_quantity or 0)
            ),
            None,
        )
        if line is None:
            continue
        allocation = MaterialAllocation(
            unit=unit,
            status=ALLOCATION_STATUS_TRANSFERRED,
            transfer_id=transfer_id,
            allocated_by_user_id=ctx.user_id,
        )
        request.allocations.append(allocation)
        line.allocations.append(allocation)

    fulfilled = all(
        sum(1 for a in line.allocations if a.status == ALLOCATION_STATUS_TRANSFERRED) >= (line.approved_quantity or 0)
        for line in request.lines
    )
    if fulfilled:
        request.status = REQUEST_STATUS_FULFILLED
        current_app.logger.info("Material request %s fulfilled", request.request_number)


def get_request(ctx: OrgContext, request_id: int) -> dict:
    return _get_request(ctx, request_id).to_dict()


def list_requests(
    ctx: OrgContext,
    *,
    status: Optional[str] = None,
    requestor_user_id: Optional[int] = None,
    ticket_id: Optional[str] = None,
) -> list[dict]:
    query = scoped(db.session.query(MaterialRequest), MaterialRequest, ctx).filter(
        MaterialRequest.is_active.is_(True)
    )
    if status:
        query = query.filter(MaterialRequest.status == status.upper())
    if requestor_user_id is not None:
        query = query.filter(MaterialRequest.requestor_user_id == requestor_user_id)
    if ticket_id:
        query = query.filter(MaterialRequest.ticket_id == ticket_id)
    return [r.to_dict() for r in query.order_by(MaterialRequest.id.desc()).all()]
