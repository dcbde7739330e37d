# backend/fieldstock/services/receipt_service.py
"""
Goods receipt (inward) workflow.

LIFECYCLE:
1. DRAFT: header and lines recorded; no ledger units exist yet
2. COMPLETED: every line materialized as AVAILABLE units in the receipt's area
3. CANCELLED: draft abandoned; never touched the ledger

Completion is idempotent per line: units already created with a line as their
provenance are counted first, so re-running completion (or completing a
receipt that was half-materialized by an earlier import) never duplicates
units.
"""
from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func

from fieldstock.extensions import db
from fieldstock.errors import NotFoundError, StateConflict, ValidationError
from fieldstock.models import InventoryUnit, Receipt, ReceiptLine
from fieldstock.models.workflows import (
    RECEIPT_STATUS_CANCELLED,
    RECEIPT_STATUS_COMPLETED,
    RECEIPT_STATUS_DRAFT,
)
from fieldstock.services import ledger_service, reference_service
from fieldstock.services.concurrency import lock_for_update, run_in_transaction
from fieldstock.services.payloads import business_date, clean_str, parse_price, positive_int, require_body, require_items
from fieldstock.services.slip_service import PREFIX_RECEIPT, claim_slip_number
from fieldstock.services.tenant_service import OrgContext, org_tag, scoped
from fieldstock.time_utils import utcnow


def _build_lines(ctx: OrgContext, items: list[dict]) -> list[ReceiptLine]:
    lines = []
    for index, item in enumerate(items, start=1):
        material = reference_service.get_active_material(ctx, item.get("material_id"))
        serial = clean_str(item.get("serial_number"))
        mac = clean_str(item.get("mac_id"))
        quantity = positive_int(item.get("quantity", 1), f"Item {index} quantity")
        if (serial or mac) and quantity != 1:
            raise ValidationError(f"Item {index}: a serialized line must have quantity 1")
        lines.append(
            ReceiptLine(
                line_number=index,
                material_id=material.id,
                quantity=quantity,
                price=parse_price(item.get("price")),
                serial_number=serial,
                mac_id=mac,
                remarks=item.get("remarks"),
            )
        )
    return lines


def _get_receipt(ctx: OrgContext, receipt_id: int, *, lock: bool = False) -> Receipt:
    query = scoped(db.session.query(Receipt), Receipt, ctx).filter(
        Receipt.id == receipt_id, Receipt.is_active.is_(True)
    )
    if lock:
        query = lock_for_update(query)
    receipt = query.first()
    if receipt is None:
        raise NotFoundError(f"Receipt {receipt_id} not found", receipt_id=receipt_id)
    return receipt


def _materialize(ctx: OrgContext, receipt: Receipt) -> list[int]:
    """Create whatever units each line still lacks; returns all of the receipt's unit ids."""
    for line in receipt.lines:
        reference_service.get_active_material(ctx, line.material_id)

        existing = (
            db.session.query(func.count(InventoryUnit.id))
            .filter(InventoryUnit.receipt_line_id == line.id)
            .scalar()
        )
        if line.is_serialized:
            if existing:
                continue
            ledger_service.create_units(
                ctx,
                material_id=line.material_id,
                stock_area_id=receipt.stock_area_id,
                serial_numbers=[line.serial_number] if line.serial_number else None,
                mac_ids=[line.mac_id],
                receipt_line_id=line.id,
            )
        elif existing < line.quantity:
            ledger_service.create_units(
                ctx,
                material_id=line.material_id,
                stock_area_id=receipt.stock_area_id,
                count=line.quantity - existing,
                receipt_line_id=line.id,
            )

    return receipt_unit_ids(receipt)


def receipt_unit_ids(receipt: Receipt) -> list[int]:
    line_ids = [line.id for line in receipt.lines]
    if not line_ids:
        return []
    rows = (
        db.session.query(InventoryUnit.id)
        .filter(InventoryUnit.receipt_line_id.in_(line_ids))
        .order_by(InventoryUnit.id.asc())
        .all()
    )
    return [row[0] for row in rows]


def submit_receipt(ctx: OrgContext, payload: dict, *, complete: bool = False) -> dict:
    """
    Record a receipt as DRAFT (or DRAFT then COMPLETED in one transaction).

    Payload:
        stock_area_id (required), items (required, list of
        {material_id, quantity, serial_number?, mac_id?, price?, remarks?}),
        slip_number?, receipt_date?, invoice_number?, party_name?,
        purchase_order?, vehicle_number?, remark?, documents? (list of file refs)

    Returns:
        {"receipt": {...}, "unit_ids": [...]}
    """
    def _op():
        require_body(payload)
        area = reference_service.get_active_stock_area(ctx, payload.get("stock_area_id"))
        lines = _build_lines(ctx, require_items(payload))

        documents = payload.get("documents") or []
        if not isinstance(documents, list) or not all(isinstance(d, str) for d in documents):
            raise ValidationError("documents must be a list of file references")

        slip_number = claim_slip_number(ctx, PREFIX_RECEIPT, Receipt.slip_number, payload.get("slip_number"))

        receipt = Receipt(
            org_id=org_tag(ctx),
            slip_number=slip_number,
            stock_area_id=area.id,
            receipt_date=business_date(payload.get("receipt_date"), "receipt_date"),
            invoice_number=clean_str(payload.get("invoice_number")),
            party_name=clean_str(payload.get("party_name")),
            purchase_order=clean_str(payload.get("purchase_order")),
            vehicle_number=clean_str(payload.get("vehicle_number")),
            remark=payload.get("remark"),
            documents=documents,
            status=RECEIPT_STATUS_DRAFT,
            created_by_user_id=ctx.user_id,
            lines=lines,
        )
        db.session.add(receipt)
        db.session.flush()

        unit_ids = []
        if complete:
            unit_ids = _materialize(ctx, receipt)
            receipt.status = RECEIPT_STATUS_COMPLETED
            receipt.completed_by_user_id = ctx.user_id
            receipt.completed_at = utcnow()
            db.session.flush()

        current_app.logger.info(
            "Receipt %s recorded as %s (%d line(s), %d unit(s))",
            receipt.slip_number, receipt.status, len(lines), len(unit_ids),
        )
        return {"receipt": receipt.to_dict(), "unit_ids": unit_ids}

    return run_in_transaction(_op)


def complete_receipt(ctx: OrgContext, receipt_id: int) -> dict:
    """
    Materialize a receipt's lines as ledger units and mark it COMPLETED.

    Completing an already COMPLETED receipt returns the same unit ids and
    creates nothing.

    Raises:
        NotFoundError: unknown receipt
        StateConflict: receipt is CANCELLED
        ValidationError: no lines, or a line's material is inactive
        DuplicateIdentity: a serial number is already on an active unit
    """
    def _op():
        receipt = _get_receipt(ctx, receipt_id, lock=True)
        if receipt.status == RECEIPT_STATUS_CANCELLED:
            raise StateConflict(f"Receipt {receipt.slip_number} is cancelled")
        if receipt.status == RECEIPT_STATUS_COMPLETED:
            return {"receipt": receipt.to_dict(), "unit_ids": receipt_unit_ids(receipt), "created": False}
        if not receipt.lines:
            raise ValidationError(f"Receipt {receipt.slip_number} has no items")

        reference_service.get_active_stock_area(ctx, receipt.stock_area_id)
        unit_ids = _materialize(ctx, receipt)

        receipt.status = RECEIPT_STATUS_COMPLETED
        receipt.completed_by_user_id = ctx.user_id
        receipt.completed_at = utcnow()
        db.session.flush()

        current_app.logger.info(
            "Receipt %s completed: %d unit(s) in stock area %s",
            receipt.slip_number, len(unit_ids), receipt.stock_area_id,
        )
        return {"receipt": receipt.to_dict(), "unit_ids": unit_ids, "created": True}

    return run_in_transaction(_op)


def cancel_receipt(ctx: OrgContext, receipt_id: int) -> dict:
    def _op():
        receipt = _get_receipt(ctx, receipt_id, lock=True)
        if receipt.status == RECEIPT_STATUS_CANCELLED:
            return receipt.to_dict()
        if receipt.status != RECEIPT_STATUS_DRAFT:
            raise StateConflict(f"Cannot cancel receipt in {receipt.status} status")
        receipt.status = RECEIPT_STATUS_CANCELLED
        receipt.cancelled_by_user_id = ctx.user_id
        receipt.cancelled_at = utcnow()
        db.session.flush()
        current_app.logger.info("Receipt %s cancelled", receipt.slip_number)
        return receipt.to_dict()

    return run_in_transaction(_op)


def get_receipt(ctx: OrgContext, receipt_id: int) -> dict:
    receipt = _get_receipt(ctx, receipt_id)
    data = receipt.to_dict()
    data["unit_ids"] = receipt_unit_ids(receipt)
    return data


def list_receipts(ctx: OrgContext, *, status: Optional[str] = None, stock_area_id: Optional[int] = None) -> list[dict]:
    query = scoped(db.session.query(Receipt), Receipt, ctx).filter(Receipt.is_active.is_(True))
    if status:
        query = query.filter(Receipt.status == status.upper())
    if stock_area_id is not None:
        query = query.filter(Receipt.stock_area_id == stock_area_id)
    return [r.to_dict() for r in query.order_by(Receipt.id.desc()).all()]
