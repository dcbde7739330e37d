# backend/fieldstock/services/return_service.py
"""
Return-to-warehouse workflow.

LIFECYCLE:
1. PENDING: lines pin the exact units the technician is handing back; the
   ledger is untouched
2. APPROVED: every pinned unit moves to the target stock area, as FAULTY when
   the reason is FAULTY and AVAILABLE otherwise; tickets are cleared
3. REJECTED: only the return's own status changes; units stay with the technician

A unit can be pinned by at most one PENDING return at a time.
"""
from __future__ import annotations

from typing import Optional

from flask import current_app

from fieldstock.extensions import db
from fieldstock.errors import InsufficientStock, NotFoundError, StateConflict, ValidationError
from fieldstock.models import Consumption, InventoryUnit, ReturnLine, ReturnRecord
from fieldstock.models.ledger import LOCATION_PERSON, STATUS_AVAILABLE, STATUS_FAULTY
from fieldstock.models.workflows import (
    RETURN_REASON_FAULTY,
    RETURN_REASONS,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
)
from fieldstock.services import allocation_service, ledger_service, reference_service
from fieldstock.services.concurrency import lock_for_update, run_in_transaction
from fieldstock.services.ledger_service import PERSON_STOCK_STATUSES, Location
from fieldstock.services.payloads import business_date, clean_str, optional_int, positive_int, require_body, require_items, serial_list
from fieldstock.services.slip_service import PREFIX_RETURN, claim_slip_number
from fieldstock.services.tenant_service import OrgContext, org_tag, scoped
from fieldstock.time_utils import utcnow


def _pending_unit_ids(unit_ids) -> set[int]:
    unit_ids = list(unit_ids)
    if not unit_ids:
        return set()
    rows = (
        db.session.query(ReturnLine.unit_id)
        .join(ReturnRecord, ReturnRecord.id == ReturnLine.return_id)
        .filter(ReturnRecord.status == RETURN_STATUS_PENDING, ReturnLine.unit_id.in_(unit_ids))
        .all()
    )
    return {row[0] for row in rows}


def _pending_units_of(technician_id: int):
    return (
        db.session.query(ReturnLine.unit_id)
        .join(ReturnRecord, ReturnRecord.id == ReturnLine.return_id)
        .filter(
            ReturnRecord.status == RETURN_STATUS_PENDING,
            ReturnRecord.technician_id == technician_id,
        )
    )


def _held_by(unit: InventoryUnit, technician_id: int) -> bool:
    return (
        unit.location_type == LOCATION_PERSON
        and unit.location_id == technician_id
        and unit.status in PERSON_STOCK_STATUSES
    )


def _explicit_units(ctx: OrgContext, item: dict, index: int, material_id: int, technician_id: int):
    units = []
    unit_id = optional_int(item.get("unit_id"), f"Item {index} unit_id")
    if unit_id is not None:
        units.append(ledger_service.get_unit(ctx, unit_id))
    for serial in serial_list(item, index):
        unit = ledger_service.find_by_serial(ctx, serial)
        if unit is None:
            raise NotFoundError(f"Serial number {serial} not found", serial_number=serial)
        units.append(unit)

    for unit in units:
        label = unit.serial_number or unit.id
        if unit.material_id != material_id:
            raise ValidationError(f"Item {index}: unit {label} is not material {material_id}")
        if not _held_by(unit, technician_id):
            raise StateConflict(
                f"Unit {label} is not held by technician {technician_id} "
                f"({unit.status}@{unit.location_type})",
                unit_id=unit.id,
            )
    return units


def submit_return(ctx: OrgContext, payload: dict) -> dict:
    """
    Create a PENDING return for units a technician holds.

    Payload:
        reason (UNUSED | FAULTY | CANCELLED), items: list of
        {material_id, unit_id? | serial_numbers? | quantity, remarks?},
        technician_id? (defaults to the caller), consumption_id?, ticket_id?,
        return_date?, remarks?, return_number?
    """
    def _op():
        require_body(payload)
        items = require_items(payload)

        technician_id = payload.get("technician_id", ctx.user_id)
        technician = reference_service.get_active_user(ctx, technician_id)

        reason = str(payload.get("reason") or "").upper()
        if reason not in RETURN_REASONS:
            raise ValidationError(f"reason must be one of {', '.join(RETURN_REASONS)}")

        consumption_id = optional_int(payload.get("consumption_id"), "consumption_id")
        if consumption_id is not None:
            exists = (
                scoped(db.session.query(Consumption.id), Consumption, ctx)
                .filter(Consumption.id == consumption_id)
                .first()
            )
            if exists is None:
                raise ValidationError(f"Consumption {consumption_id} not found")

        record = ReturnRecord(
            org_id=org_tag(ctx),
            return_number=claim_slip_number(ctx, PREFIX_RETURN, ReturnRecord.return_number, payload.get("return_number")),
            consumption_id=consumption_id,
            ticket_id=clean_str(payload.get("ticket_id")),
            technician_id=technician.id,
            return_date=business_date(payload.get("return_date"), "return_date"),
            reason=reason,
            remarks=payload.get("remarks"),
            status=RETURN_STATUS_PENDING,
            created_by_user_id=ctx.user_id,
        )

        claimed: set[int] = set()
        line_number = 0
        for index, item in enumerate(items, start=1):
            material = reference_service.get_active_material(ctx, item.get("material_id"))
            if item.get("unit_id") is not None or item.get("serial_numbers") or item.get("serial_number"):
                units = _explicit_units(ctx, item, index, material.id, technician.id)
                busy = _pending_unit_ids(u.id for u in units) | (claimed & {u.id for u in units})
                if busy:
                    raise StateConflict(
                        f"Unit(s) {sorted(busy)} already on a pending return",
                        unit_ids=sorted(busy),
                    )
            else:
                quantity = positive_int(item.get("quantity"), f"Item {index} quantity")
                excluded = claimed | {row[0] for row in _pending_units_of(technician.id).all()}
                units = ledger_service.find_available(
                    ctx,
                    material.id,
                    Location.person(technician.id),
                    limit=quantity,
                    bulk_only=True,
                    exclude_ids=excluded,
                )
                if len(units) < quantity:
                    raise InsufficientStock(
                        f"Technician {technician.id} holds {len(units)} returnable unit(s) of "
                        f"material {material.id}, requested {quantity}",
                        available=len(units),
                        requested=quantity,
                    )

            for unit in units:
                claimed.add(unit.id)
                line_number += 1
                record.lines.append(
                    ReturnLine(
                        line_number=line_number,
                        material_id=material.id,
                        unit_id=unit.id,
                        serial_number=unit.serial_number,
                        mac_id=unit.mac_id,
                        quantity=1,
                        remarks=item.get("remarks"),
                    )
                )

        db.session.add(record)
        db.session.flush()
        current_app.logger.info(
            "Return %s pending: %d unit(s) from technician %s (%s)",
            record.return_number, len(record.lines), technician.id, reason,
        )
        return record.to_dict()

    return run_in_transaction(_op)


def _get_return(ctx: OrgContext, return_id: int, *, lock: bool = False) -> ReturnRecord:
    query = scoped(db.session.query(ReturnRecord), ReturnRecord, ctx).filter(ReturnRecord.id == return_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError(f"Return {return_id} not found", return_id=return_id)
    return record


def approve_return(
    ctx: OrgContext,
    return_id: int,
    *,
    stock_area_id: Optional[int] = None,
    remarks: Optional[str] = None,
) -> dict:
    """
    Move every unit of a PENDING return into a stock area.

    Without stock_area_id the organization's default stock area is used.

    Raises:
        StateConflict: return is not PENDING, or a unit left the technician
    """
    def _op():
        record = _get_return(ctx, return_id, lock=True)
        if record.status != RETURN_STATUS_PENDING:
            raise StateConflict(f"Return {record.return_number} is already {record.status}")

        if stock_area_id is not None:
            area = reference_service.get_active_stock_area(ctx, stock_area_id)
        else:
            area = reference_service.get_default_stock_area(ctx)

        units = [ledger_service.get_unit(ctx, line.unit_id) for line in record.lines]
        for unit in units:
            if not _held_by(unit, record.technician_id):
                raise StateConflict(
                    f"Unit {unit.serial_number or unit.id} is no longer held by technician "
                    f"{record.technician_id}",
                    unit_id=unit.id,
                )

        new_status = STATUS_FAULTY if record.reason == RETURN_REASON_FAULTY else STATUS_AVAILABLE
        moved = allocation_service.move_units(
            ctx,
            units,
            destination=Location.warehouse(area.id),
            new_status=new_status,
            ticket_id=None,
            still_eligible=lambda u: _held_by(u, record.technician_id),
        )

        record.status = RETURN_STATUS_APPROVED
        record.target_stock_area_id = area.id
        record.decided_by_user_id = ctx.user_id
        record.decided_at = utcnow()
        record.decision_remarks = remarks
        db.session.flush()

        current_app.logger.info(
            "Return %s approved: %d unit(s) to stock area %s as %s",
            record.return_number, len(moved), area.id, new_status,
        )
        return {"return": record.to_dict(), "unit_ids": [u.id for u in moved]}

    return run_in_transaction(_op)


def reject_return(ctx: OrgContext, return_id: int, *, remarks: Optional[str] = None) -> dict:
    """Mark a PENDING return REJECTED; the ledger is not touched."""
    def _op():
        record = _get_return(ctx, return_id, lock=True)
        if record.status != RETURN_STATUS_PENDING:
            raise StateConflict(f"Return {record.return_number} is already {record.status}")
        record.status = RETURN_STATUS_REJECTED
        record.decided_by_user_id = ctx.user_id
        record.decided_at = utcnow()
        record.decision_remarks = remarks
        db.session.flush()
        current_app.logger.info("Return %s rejected", record.return_number)
        return {"return": record.to_dict(), "unit_ids": []}

    return run_in_transaction(_op)


def get_return(ctx: OrgContext, return_id: int) -> dict:
    return _get_return(ctx, return_id).to_dict()


def list_returns(
    ctx: OrgContext,
    *,
    status: Optional[str] = None,
    technician_id: Optional[int] = None,
) -> list[dict]:
    query = scoped(db.session.query(ReturnRecord), ReturnRecord, ctx).filter(ReturnRecord.is_active.is_(True))
    if status:
        query = query.filter(ReturnRecord.status == status.upper())
    if technician_id is not None:
        query = query.filter(ReturnRecord.technician_id == technician_id)
    return [r.to_dict() for r in query.order_by(ReturnRecord.id.desc()).all()]
