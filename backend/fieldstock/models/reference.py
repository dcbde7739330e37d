from __future__ import annotations

from ..extensions import db
from fieldstock.time_utils import to_utc_z


class Material(db.Model):
    """
    Catalog entry for anything the ledger can hold (ONT, router, drop cable, connector).

    Product codes are unique within an organization. Materials are never deleted:
    ledger rows keep pointing at them for audit and valuation, so retiring a material
    clears is_active instead.
    """
    __tablename__ = "materials"
    __table_args__ = (
        db.UniqueConstraint("org_id", "product_code", name="uq_materials_org_code"),
        db.Index("ix_materials_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)

    product_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    material_type = db.Column(db.String(64), nullable=True, index=True)
    uom = db.Column(db.String(16), nullable=False, default="PIECE")
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Material id={self.id} code={self.product_code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_code": self.product_code,
            "name": self.name,
            "material_type": self.material_type,
            "uom": self.uom,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockArea(db.Model):
    """Warehouse or store room units can sit in."""
    __tablename__ = "stock_areas"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_stock_areas_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    location_code = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<StockArea id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "location_code": self.location_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Field technician or back-office user.

    Only the identity matters here: a PERSON location in the ledger points at a user id.
    Authentication lives with the upstream identity service.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
        }
