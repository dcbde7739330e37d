from __future__ import annotations

from ..extensions import db
from fieldstock.time_utils import to_utc_z, utcnow


# Location types
LOCATION_WAREHOUSE = "WAREHOUSE"
LOCATION_PERSON = "PERSON"
LOCATION_CONSUMED = "CONSUMED"

LOCATION_TYPES = (LOCATION_WAREHOUSE, LOCATION_PERSON, LOCATION_CONSUMED)

# Unit statuses
STATUS_AVAILABLE = "AVAILABLE"
STATUS_ALLOCATED = "ALLOCATED"
STATUS_IN_TRANSIT = "IN_TRANSIT"
STATUS_FAULTY = "FAULTY"
STATUS_CONSUMED = "CONSUMED"

UNIT_STATUSES = (
    STATUS_AVAILABLE,
    STATUS_ALLOCATED,
    STATUS_IN_TRANSIT,
    STATUS_FAULTY,
    STATUS_CONSUMED,
)


class InventoryUnit(db.Model):
    """
    One ledger row per physical unit.

    A serialized item is one row carrying its serial number and/or MAC id.
    A bulk receipt of N pieces is N rows without identity, so allocation always
    works on whole rows and "quantity" is a row count.

    INVARIANTS:
    - Serial numbers and MAC ids are unique among active rows (partial unique indexes).
    - (location_type, status) is one of the combinations in
      services.ledger_service.VALID_STATES; CONSUMED rows have location_id NULL.
    - Rows are never deleted. Location and status only change through
      ledger_service.transition_unit, a conditional UPDATE on the expected prior state.
    """
    __tablename__ = "inventory_units"
    __table_args__ = (
        db.Index(
            "uq_units_serial_active",
            "serial_number",
            unique=True,
            sqlite_where=db.text("serial_number IS NOT NULL AND is_active"),
            postgresql_where=db.text("serial_number IS NOT NULL AND is_active"),
        ),
        db.Index(
            "uq_units_mac_active",
            "mac_id",
            unique=True,
            sqlite_where=db.text("mac_id IS NOT NULL AND is_active"),
            postgresql_where=db.text("mac_id IS NOT NULL AND is_active"),
        ),
        db.Index("ix_units_location", "location_type", "location_id"),
        # FIFO candidate scan: material at a location in a status, oldest first
        db.Index(
            "ix_units_material_location_status_created",
            "material_id", "location_type", "location_id", "status", "created_at",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)

    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)

    serial_number = db.Column(db.String(100), nullable=True)
    mac_id = db.Column(db.String(100), nullable=True)

    location_type = db.Column(db.String(16), nullable=False, default=LOCATION_WAREHOUSE)
    # Stock area id for WAREHOUSE, user id for PERSON, NULL for CONSUMED
    location_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_AVAILABLE, index=True)

    ticket_id = db.Column(db.String(100), nullable=True, index=True)

    receipt_line_id = db.Column(db.Integer, db.ForeignKey("receipt_lines.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Bumped by every conditional transition
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
    )

    material = db.relationship("Material")

    @property
    def is_serialized(self) -> bool:
        return bool(self.serial_number or self.mac_id)

    def __repr__(self) -> str:
        return (
            f"<InventoryUnit id={self.id} material_id={self.material_id} "
            f"{self.status}@{self.location_type}({self.location_id})>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "material_id": self.material_id,
            "serial_number": self.serial_number,
            "mac_id": self.mac_id,
            "location_type": self.location_type,
            "location_id": self.location_id,
            "status": self.status,
            "ticket_id": self.ticket_id,
            "receipt_line_id": self.receipt_line_id,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
