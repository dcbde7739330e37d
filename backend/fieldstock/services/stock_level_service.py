# backend/fieldstock/services/stock_level_service.py
"""
Stock Level Aggregator: on-hand quantity derived from movement history.

WHY: Dashboards need quantities per (material, stock area) without counting
ledger rows one by one. The aggregator sums four independent streams of
workflow lines and never reads the ledger, which also makes it a cross-check
of the ledger (see reconcile_stock_levels):

    current_stock = inward - transferred_out + transferred_in - consumed

RECEIPT STATUSES:
Only COMPLETED receipts create ledger units. Historical reports also counted
DRAFT receipts as stock; STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS (or the
include_draft_receipts argument) restores that, and every report states which
statuses it counted.

DEGRADATION:
A failing stream or material lookup is logged and reported under "warnings";
the rest of the report is still returned.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from fieldstock.extensions import db
from fieldstock.models import (
    Consumption,
    ConsumptionLine,
    Material,
    Receipt,
    ReceiptLine,
    Transfer,
    TransferLine,
)
from fieldstock.models.workflows import (
    CONSUMPTION_STATUS_COMPLETED,
    RECEIPT_STATUS_COMPLETED,
    RECEIPT_STATUS_DRAFT,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_IN_TRANSIT,
)
from fieldstock.services import ledger_service, reference_service
from fieldstock.services.tenant_service import OrgContext, scoped


TRANSFER_STATUSES_COUNTED = (TRANSFER_STATUS_COMPLETED, TRANSFER_STATUS_IN_TRANSIT)


def receipt_statuses(include_draft_receipts: Optional[bool] = None) -> tuple[str, ...]:
    if include_draft_receipts is None:
        include_draft_receipts = current_app.config.get("STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS", False)
    if include_draft_receipts:
        return (RECEIPT_STATUS_COMPLETED, RECEIPT_STATUS_DRAFT)
    return (RECEIPT_STATUS_COMPLETED,)


def _date_range(query, column, date_from: Optional[date], date_to: Optional[date]):
    if date_from is not None:
        query = query.filter(column >= date_from)
    if date_to is not None:
        query = query.filter(column <= date_to)
    return query


def _inward_query(ctx, statuses, material_id, stock_area_id, date_from, date_to):
    query = scoped(
        db.session.query(ReceiptLine.material_id, Receipt.stock_area_id, func.coalesce(func.sum(ReceiptLine.quantity), 0))
        .join(Receipt, Receipt.id == ReceiptLine.receipt_id),
        Receipt,
        ctx,
    ).filter(Receipt.is_active.is_(True), Receipt.status.in_(statuses))
    if material_id is not None:
        query = query.filter(ReceiptLine.material_id == material_id)
    if stock_area_id is not None:
        query = query.filter(Receipt.stock_area_id == stock_area_id)
    query = _date_range(query, Receipt.receipt_date, date_from, date_to)
    return query.group_by(ReceiptLine.material_id, Receipt.stock_area_id)


def _transfer_query(ctx, area_column, material_id, stock_area_id, date_from, date_to):
    query = scoped(
        db.session.query(TransferLine.material_id, area_column, func.coalesce(func.sum(TransferLine.quantity), 0))
        .join(Transfer, Transfer.id == TransferLine.transfer_id),
        Transfer,
        ctx,
    ).filter(Transfer.is_active.is_(True), Transfer.status.in_(TRANSFER_STATUSES_COUNTED))
    if material_id is not None:
        query = query.filter(TransferLine.material_id == material_id)
    if stock_area_id is not None:
        query = query.filter(area_column == stock_area_id)
    query = _date_range(query, Transfer.transfer_date, date_from, date_to)
    return query.group_by(TransferLine.material_id, area_column)


def _consumption_query(ctx, material_id, stock_area_id, date_from, date_to):
    query = scoped(
        db.session.query(
            ConsumptionLine.material_id,
            Consumption.stock_area_id,
            func.coalesce(func.sum(ConsumptionLine.quantity), 0),
        ).join(Consumption, Consumption.id == ConsumptionLine.consumption_id),
        Consumption,
        ctx,
    ).filter(Consumption.is_active.is_(True), Consumption.status == CONSUMPTION_STATUS_COMPLETED)
    if material_id is not None:
        query = query.filter(ConsumptionLine.material_id == material_id)
    if stock_area_id is not None:
        query = query.filter(Consumption.stock_area_id == stock_area_id)
    query = _date_range(query, Consumption.consumption_date, date_from, date_to)
    return query.group_by(ConsumptionLine.material_id, Consumption.stock_area_id)


def _collect(name: str, build: Callable, warnings: list) -> dict[tuple, int]:
    """Run one stream; rows keyed by (material_id, stock_area_id)."""
    try:
        return {(mid, area): int(total or 0) for mid, area, total in build().all()}
    except SQLAlchemyError as exc:
        current_app.logger.warning("Stock level stream %s failed: %s", name, exc)
        warnings.append(f"{name} totals unavailable")
        return {}


def _material_summary(material: Optional[Material]) -> Optional[dict]:
    if material is None:
        return None
    return {
        "material_id": material.id,
        "name": material.name,
        "product_code": material.product_code,
        "material_type": material.material_type,
        "uom": material.uom,
        "is_active": material.is_active,
    }


def get_stock_levels(
    ctx: OrgContext,
    *,
    material_id: Optional[int] = None,
    stock_area_id: Optional[int] = None,
    material_type: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_draft_receipts: Optional[bool] = None,
) -> dict:
    """
    Per (material, stock area) stock derived from receipts, transfers and consumption.

    Returns:
        {"stock_levels": [...], "summary": {...}, "receipt_statuses_counted": [...],
         "filters": {...}, "warnings": [...]}
    """
    statuses = receipt_statuses(include_draft_receipts)
    warnings: list[str] = []
    filters = (material_id, stock_area_id, date_from, date_to)

    inward = _collect("inward", lambda: _inward_query(ctx, statuses, *filters), warnings)
    transferred_out = _collect(
        "transfer_out", lambda: _transfer_query(ctx, Transfer.from_stock_area_id, *filters), warnings
    )
    transferred_in = _collect(
        "transfer_in", lambda: _transfer_query(ctx, Transfer.to_stock_area_id, *filters), warnings
    )
    consumed = _collect("consumption", lambda: _consumption_query(ctx, *filters), warnings)

    keys = set(inward) | set(transferred_out) | set(transferred_in) | set(consumed)

    materials: dict[int, Material] = {}
    try:
        materials = reference_service.materials_by_id(ctx, (k[0] for k in keys))
    except SQLAlchemyError as exc:
        current_app.logger.warning("Stock level material lookup failed: %s", exc)
        warnings.append("material details unavailable")

    levels = []
    for mid, area in sorted(keys, key=lambda k: (k[0], k[1] if k[1] is not None else -1)):
        material = materials.get(mid)
        if material_type and (material is None or material.material_type != material_type):
            continue
        key = (mid, area)
        total_inward = inward.get(key, 0)
        total_out = transferred_out.get(key, 0)
        total_in = transferred_in.get(key, 0)
        total_consumed = consumed.get(key, 0)
        levels.append({
            "material_id": mid,
            "stock_area_id": area,
            "total_inward": total_inward,
            "total_transferred_out": total_out,
            "total_transferred_in": total_in,
            "total_consumed": total_consumed,
            "current_stock": total_inward - total_out + total_in - total_consumed,
            "material": _material_summary(material),
        })

    return {
        "stock_levels": levels,
        "summary": {
            "total_materials": len({row["material_id"] for row in levels}),
            "total_rows": len(levels),
            "total_stock": sum(row["current_stock"] for row in levels),
            "low_stock_count": sum(1 for row in levels if row["current_stock"] <= 0),
        },
        "receipt_statuses_counted": list(statuses),
        "filters": {
            "material_id": material_id,
            "stock_area_id": stock_area_id,
            "material_type": material_type,
            "date_from": date_from.isoformat() if date_from else None,
            "date_to": date_to.isoformat() if date_to else None,
        },
        "warnings": warnings,
    }


def get_stock_level(ctx: OrgContext, material_id: int, *, stock_area_id: Optional[int] = None, **kwargs) -> dict:
    """Totals for one material, summed over stock areas (or for one area)."""
    report = get_stock_levels(ctx, material_id=material_id, stock_area_id=stock_area_id, **kwargs)
    totals = {
        "total_inward": 0,
        "total_transferred_out": 0,
        "total_transferred_in": 0,
        "total_consumed": 0,
        "current_stock": 0,
    }
    for row in report["stock_levels"]:
        for field in totals:
            totals[field] += row[field]
    material = reference_service.materials_by_id(ctx, [material_id]).get(material_id)
    return {
        "material_id": material_id,
        "stock_area_id": stock_area_id,
        "material": _material_summary(material),
        **totals,
        "receipt_statuses_counted": report["receipt_statuses_counted"],
        "warnings": report["warnings"],
    }


def reconcile_stock_levels(ctx: OrgContext, *, material_id: Optional[int] = None) -> dict:
    """
    Compare per-material aggregated stock (COMPLETED receipts) with ledger units not CONSUMED.

    Per-area figures are not compared: transfers to a technician stay
    attributed to an area in the movement history while the ledger holds them
    as person stock.
    """
    report = get_stock_levels(ctx, material_id=material_id, include_draft_receipts=False)
    aggregated: dict[int, int] = {}
    for row in report["stock_levels"]:
        aggregated[row["material_id"]] = aggregated.get(row["material_id"], 0) + row["current_stock"]

    ledger = ledger_service.units_on_hand_by_material(ctx, material_id)

    rows = []
    for mid in sorted(set(aggregated) | set(ledger)):
        agg, held = aggregated.get(mid, 0), ledger.get(mid, 0)
        rows.append({
            "material_id": mid,
            "aggregated_stock": agg,
            "ledger_units": held,
            "difference": agg - held,
        })
    discrepancies = [row for row in rows if row["difference"]]
    if discrepancies:
        current_app.logger.warning(
            "Stock level reconciliation found %d discrepant material(s)", len(discrepancies)
        )
    return {
        "materials": rows,
        "discrepancies": discrepancies,
        "consistent": not discrepancies and not report["warnings"],
        "warnings": report["warnings"],
    }
