from __future__ import annotations

from ..extensions import db
from fieldstock.time_utils import to_iso_date, to_utc_z


# =============================================================================
# MATERIAL REQUESTS
# =============================================================================

REQUEST_STATUS_SUBMITTED = "SUBMITTED"
REQUEST_STATUS_APPROVED = "APPROVED"
REQUEST_STATUS_REJECTED = "REJECTED"
REQUEST_STATUS_FULFILLED = "FULFILLED"

ALLOCATION_STATUS_ALLOCATED = "ALLOCATED"
ALLOCATION_STATUS_TRANSFERRED = "TRANSFERRED"
ALLOCATION_STATUS_CANCELLED = "CANCELLED"

# Allocations that count against a line's approved quantity
LIVE_ALLOCATION_STATUSES = (ALLOCATION_STATUS_ALLOCATED, ALLOCATION_STATUS_TRANSFERRED)


class MaterialRequest(db.Model):
    """
    Material request (MR) raised for a technician or a ticket.

    LIFECYCLE:
    1. SUBMITTED: lines carry requested quantities, nothing is reserved
    2. APPROVED: approved quantities fixed; units may be reserved (ALLOCATED)
       in the source stock area and transferred against the request
    3. REJECTED: closed without touching the ledger
    4. FULFILLED: every approved unit has left on a transfer

    INVARIANT: for each line, live allocations never exceed approved_quantity.
    """
    __tablename__ = "material_requests"
    __table_args__ = (
        db.UniqueConstraint("org_id", "request_number", name="uq_material_requests_org_number"),
        db.Index("ix_material_requests_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    request_number = db.Column(db.String(64), nullable=False)

    request_date = db.Column(db.Date, nullable=False)
    requestor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    from_stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=True, index=True)
    ticket_id = db.Column(db.String(100), nullable=True, index=True)
    service_area = db.Column(db.String(100), nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_SUBMITTED)
    decided_by_user_id = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_remarks = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "MaterialRequestLine",
        backref="request",
        order_by="MaterialRequestLine.line_number",
        cascade="all, delete-orphan",
    )
    allocations = db.relationship(
        "MaterialAllocation",
        backref="request",
        order_by="MaterialAllocation.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "request_number": self.request_number,
            "request_date": to_iso_date(self.request_date),
            "requestor_user_id": self.requestor_user_id,
            "from_stock_area_id": self.from_stock_area_id,
            "ticket_id": self.ticket_id,
            "service_area": self.service_area,
            "remarks": self.remarks,
            "status": self.status,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": to_utc_z(self.decided_at),
            "decision_remarks": self.decision_remarks,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
            "allocations": [a.to_dict() for a in self.allocations],
        }


class MaterialRequestLine(db.Model):
    __tablename__ = "material_request_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("material_requests.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    requested_quantity = db.Column(db.Integer, nullable=False)
    approved_quantity = db.Column(db.Integer, nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    allocations = db.relationship("MaterialAllocation", backref="line", order_by="MaterialAllocation.id")

    @property
    def live_allocations(self) -> int:
        return sum(1 for a in self.allocations if a.status in LIVE_ALLOCATION_STATUSES)

    def to_dict(self) -> dict:
        counts = {ALLOCATION_STATUS_ALLOCATED: 0, ALLOCATION_STATUS_TRANSFERRED: 0}
        for allocation in self.allocations:
            if allocation.status in counts:
                counts[allocation.status] += 1
        return {
            "id": self.id,
            "line_number": self.line_number,
            "material_id": self.material_id,
            "requested_quantity": self.requested_quantity,
            "approved_quantity": self.approved_quantity,
            "allocated_quantity": counts[ALLOCATION_STATUS_ALLOCATED],
            "transferred_quantity": counts[ALLOCATION_STATUS_TRANSFERRED],
            "remarks": self.remarks,
        }


class MaterialAllocation(db.Model):
    """
    One unit reserved for a request line.

    ALLOCATED while the unit sits ALLOCATED@WAREHOUSE, TRANSFERRED once a
    transfer against the request moved it, CANCELLED when released.
    """
    __tablename__ = "material_allocations"
    __table_args__ = (
        db.Index("ix_material_allocations_unit_status", "unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("material_requests.id"), nullable=False, index=True)
    request_line_id = db.Column(db.Integer, db.ForeignKey("material_request_lines.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ALLOCATION_STATUS_ALLOCATED)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=True, index=True)

    allocated_by_user_id = db.Column(db.Integer, nullable=True)
    allocated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_by_user_id = db.Column(db.Integer, nullable=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    unit = db.relationship("InventoryUnit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_line_id": self.request_line_id,
            "unit_id": self.unit_id,
            "serial_number": self.unit.serial_number if self.unit is not None else None,
            "status": self.status,
            "transfer_id": self.transfer_id,
            "allocated_by_user_id": self.allocated_by_user_id,
            "allocated_at": to_utc_z(self.allocated_at),
            "released_at": to_utc_z(self.released_at),
        }
