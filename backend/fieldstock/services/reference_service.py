# Overview: Reference data lookups (materials, stock areas, technicians) used by every workflow.

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DuplicateIdentity, NotFoundError, ValidationError
from ..models import Material, StockArea, User
from .tenant_service import OrgContext, org_tag, scoped


def _get_active(model, ctx: OrgContext, record_id, label: str):
    if record_id is None:
        raise ValidationError(f"{label} is required")
    try:
        record_id = int(record_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label} id: {record_id}")
    record = scoped(db.session.query(model), model, ctx).filter(model.id == record_id).first()
    if record is None:
        raise ValidationError(f"{label} {record_id} not found")
    if not record.is_active:
        raise ValidationError(f"{label} {record_id} is inactive")
    return record


def get_active_material(ctx: OrgContext, material_id) -> Material:
    return _get_active(Material, ctx, material_id, "Material")


def get_active_stock_area(ctx: OrgContext, stock_area_id) -> StockArea:
    return _get_active(StockArea, ctx, stock_area_id, "Stock area")


def get_active_user(ctx: OrgContext, user_id) -> User:
    return _get_active(User, ctx, user_id, "User")


def get_default_stock_area(ctx: OrgContext) -> StockArea:
    """First active stock area of the organization (lowest id)."""
    area = (
        scoped(db.session.query(StockArea), StockArea, ctx)
        .filter(StockArea.is_active.is_(True))
        .order_by(StockArea.id.asc())
        .first()
    )
    if area is None:
        raise ValidationError("No active stock area configured")
    return area


def materials_by_id(ctx: OrgContext, material_ids) -> dict[int, Material]:
    """Materials keyed by id, active or not (reports still show retired materials)."""
    ids = list(set(material_ids))
    if not ids:
        return {}
    rows = scoped(db.session.query(Material), Material, ctx).filter(Material.id.in_(ids)).all()
    return {m.id: m for m in rows}


def list_materials(ctx: OrgContext, *, active_only: bool = True) -> list[Material]:
    query = scoped(db.session.query(Material), Material, ctx)
    if active_only:
        query = query.filter(Material.is_active.is_(True))
    return query.order_by(Material.product_code.asc()).all()


def list_stock_areas(ctx: OrgContext, *, active_only: bool = True) -> list[StockArea]:
    query = scoped(db.session.query(StockArea), StockArea, ctx)
    if active_only:
        query = query.filter(StockArea.is_active.is_(True))
    return query.order_by(StockArea.id.asc()).all()


def _add(record, message: str):
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise DuplicateIdentity(message) from exc
    return record


def create_material(
    ctx: OrgContext,
    *,
    product_code: str,
    name: str,
    material_type: Optional[str] = None,
    uom: str = "PIECE",
    description: Optional[str] = None,
) -> Material:
    if not product_code or not name:
        raise ValidationError("product_code and name are required")
    return _add(
        Material(
            org_id=org_tag(ctx),
            product_code=product_code.strip(),
            name=name.strip(),
            material_type=material_type,
            uom=uom or "PIECE",
            description=description,
        ),
        f"Material code {product_code} already exists",
    )


def create_stock_area(ctx: OrgContext, *, name: str, location_code: Optional[str] = None) -> StockArea:
    if not name:
        raise ValidationError("name is required")
    return _add(
        StockArea(org_id=org_tag(ctx), name=name.strip(), location_code=location_code),
        f"Stock area {name} already exists",
    )


def create_user(ctx: OrgContext, *, name: str, email: Optional[str] = None) -> User:
    if not name:
        raise ValidationError("name is required")
    return _add(User(org_id=org_tag(ctx), name=name.strip(), email=email), f"User {name} already exists")


def deactivate_material(ctx: OrgContext, material_id: int) -> Material:
    """Soft-delete: ledger rows keep referencing the material."""
    material = scoped(db.session.query(Material), Material, ctx).filter(Material.id == material_id).first()
    if material is None:
        raise NotFoundError(f"Material {material_id} not found")
    material.is_active = False
    db.session.flush()
    return material


def deactivate_stock_area(ctx: OrgContext, stock_area_id: int) -> StockArea:
    area = scoped(db.session.query(StockArea), StockArea, ctx).filter(StockArea.id == stock_area_id).first()
    if area is None:
        raise NotFoundError(f"Stock area {stock_area_id} not found")
    area.is_active = False
    db.session.flush()
    return area
