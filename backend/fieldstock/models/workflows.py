from __future__ import annotations

from ..extensions import db
from fieldstock.time_utils import to_iso_date, to_utc_z


# =============================================================================
# RECEIPTS (goods inward)
# =============================================================================

RECEIPT_STATUS_DRAFT = "DRAFT"
RECEIPT_STATUS_COMPLETED = "COMPLETED"
RECEIPT_STATUS_CANCELLED = "CANCELLED"


class Receipt(db.Model):
    """
    Goods receipt note (GRN) into one stock area.

    LIFECYCLE:
    1. DRAFT: header and lines recorded, no ledger rows exist yet
    2. COMPLETED: every line materialized as AVAILABLE units in the stock area
    3. CANCELLED: abandoned while DRAFT
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "slip_number", name="uq_receipts_org_slip"),
        db.Index("ix_receipts_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)

    slip_number = db.Column(db.String(64), nullable=False)
    stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=False, index=True)

    receipt_date = db.Column(db.Date, nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)
    party_name = db.Column(db.String(255), nullable=True)
    purchase_order = db.Column(db.String(64), nullable=True)
    vehicle_number = db.Column(db.String(32), nullable=True)
    remark = db.Column(db.Text, nullable=True)
    # File references handed over by the document store
    documents = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RECEIPT_STATUS_DRAFT)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    completed_by_user_id = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock_area = db.relationship("StockArea")
    lines = db.relationship(
        "ReceiptLine",
        backref="receipt",
        order_by="ReceiptLine.line_number",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "slip_number": self.slip_number,
            "stock_area_id": self.stock_area_id,
            "receipt_date": to_iso_date(self.receipt_date),
            "invoice_number": self.invoice_number,
            "party_name": self.party_name,
            "purchase_order": self.purchase_order,
            "vehicle_number": self.vehicle_number,
            "remark": self.remark,
            "documents": self.documents or [],
            "status": self.status,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReceiptLine(db.Model):
    __tablename__ = "receipt_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    serial_number = db.Column(db.String(100), nullable=True)
    mac_id = db.Column(db.String(100), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    material = db.relationship("Material")

    @property
    def is_serialized(self) -> bool:
        return bool(self.serial_number or self.mac_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "line_number": self.line_number,
            "material_id": self.material_id,
            "quantity": self.quantity,
            "price": str(self.price) if self.price is not None else None,
            "serial_number": self.serial_number,
            "mac_id": self.mac_id,
            "remarks": self.remarks,
        }


# =============================================================================
# TRANSFERS
# =============================================================================

TRANSFER_STATUS_COMPLETED = "COMPLETED"
# Legacy status still produced by imported history; counted by stock levels
TRANSFER_STATUS_IN_TRANSIT = "IN_TRANSIT"

DESTINATION_WAREHOUSE = "WAREHOUSE"
DESTINATION_PERSON = "PERSON"


transfer_line_units = db.Table(
    "transfer_line_units",
    db.Column("transfer_line_id", db.Integer, db.ForeignKey("transfer_lines.id"), primary_key=True),
    db.Column("unit_id", db.Integer, db.ForeignKey("inventory_units.id"), primary_key=True),
)


class Transfer(db.Model):
    """
    Stock transfer slip (ST) out of a stock area, to another area or to a technician.

    to_stock_area_id is always populated. For a PERSON destination it names the area
    the technician's stock is attributed to (the source area unless given).
    """
    __tablename__ = "transfers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "transfer_number", name="uq_transfers_org_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    transfer_number = db.Column(db.String(64), nullable=False)

    from_stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=False, index=True)
    to_stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=False, index=True)
    destination_type = db.Column(db.String(16), nullable=False, default=DESTINATION_WAREHOUSE)
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    material_request_id = db.Column(db.Integer, db.ForeignKey("material_requests.id"), nullable=True, index=True)

    ticket_id = db.Column(db.String(100), nullable=True, index=True)
    transfer_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_COMPLETED)
    remarks = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "TransferLine",
        backref="transfer",
        order_by="TransferLine.line_number",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "transfer_number": self.transfer_number,
            "from_stock_area_id": self.from_stock_area_id,
            "to_stock_area_id": self.to_stock_area_id,
            "destination_type": self.destination_type,
            "to_user_id": self.to_user_id,
            "material_request_id": self.material_request_id,
            "ticket_id": self.ticket_id,
            "transfer_date": to_iso_date(self.transfer_date),
            "status": self.status,
            "remarks": self.remarks,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class TransferLine(db.Model):
    __tablename__ = "transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    serial_numbers = db.Column(db.JSON, nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    units = db.relationship("InventoryUnit", secondary=transfer_line_units, order_by="InventoryUnit.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "material_id": self.material_id,
            "quantity": self.quantity,
            "serial_numbers": self.serial_numbers or [],
            "remarks": self.remarks,
            "unit_ids": [u.id for u in self.units],
        }


# =============================================================================
# CONSUMPTION
# =============================================================================

CONSUMPTION_STATUS_COMPLETED = "COMPLETED"


consumption_line_units = db.Table(
    "consumption_line_units",
    db.Column("consumption_line_id", db.Integer, db.ForeignKey("consumption_lines.id"), primary_key=True),
    db.Column("unit_id", db.Integer, db.ForeignKey("inventory_units.id"), primary_key=True),
)


class Consumption(db.Model):
    """Material used up against a service ticket or customer installation."""
    __tablename__ = "consumptions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "consumption_number", name="uq_consumptions_org_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    consumption_number = db.Column(db.String(64), nullable=False)

    external_system_ref_id = db.Column(db.String(100), nullable=True, index=True)
    ticket_id = db.Column(db.String(100), nullable=True, index=True)
    customer_data = db.Column(db.JSON, nullable=True)
    consumption_date = db.Column(db.Date, nullable=False)
    stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=True, index=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=CONSUMPTION_STATUS_COMPLETED)
    remarks = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "ConsumptionLine",
        backref="consumption",
        order_by="ConsumptionLine.line_number",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "consumption_number": self.consumption_number,
            "external_system_ref_id": self.external_system_ref_id,
            "ticket_id": self.ticket_id,
            "customer_data": self.customer_data,
            "consumption_date": to_iso_date(self.consumption_date),
            "stock_area_id": self.stock_area_id,
            "from_user_id": self.from_user_id,
            "status": self.status,
            "remarks": self.remarks,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ConsumptionLine(db.Model):
    __tablename__ = "consumption_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    consumption_id = db.Column(db.Integer, db.ForeignKey("consumptions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    serial_numbers = db.Column(db.JSON, nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    units = db.relationship("InventoryUnit", secondary=consumption_line_units, order_by="InventoryUnit.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "material_id": self.material_id,
            "quantity": self.quantity,
            "serial_numbers": self.serial_numbers or [],
            "remarks": self.remarks,
            "unit_ids": [u.id for u in self.units],
        }


# =============================================================================
# RETURNS (technician back to warehouse)
# =============================================================================

RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_APPROVED = "APPROVED"
RETURN_STATUS_REJECTED = "REJECTED"

RETURN_REASON_UNUSED = "UNUSED"
RETURN_REASON_FAULTY = "FAULTY"
RETURN_REASON_CANCELLED = "CANCELLED"

RETURN_REASONS = (RETURN_REASON_UNUSED, RETURN_REASON_FAULTY, RETURN_REASON_CANCELLED)


class ReturnRecord(db.Model):
    """
    Technician hands units back to a warehouse.

    LIFECYCLE:
    1. PENDING: lines reference the exact units held by the technician
    2. APPROVED: units moved to the target stock area (FAULTY when reason is FAULTY)
    3. REJECTED: units stay with the technician
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("org_id", "return_number", name="uq_returns_org_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, nullable=True, index=True)
    return_number = db.Column(db.String(64), nullable=False)

    consumption_id = db.Column(db.Integer, db.ForeignKey("consumptions.id"), nullable=True)
    ticket_id = db.Column(db.String(100), nullable=True, index=True)
    technician_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    return_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(16), nullable=False)
    remarks = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)
    target_stock_area_id = db.Column(db.Integer, db.ForeignKey("stock_areas.id"), nullable=True)
    decided_by_user_id = db.Column(db.Integer, nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decision_remarks = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "ReturnLine",
        backref="return_record",
        order_by="ReturnLine.line_number",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "return_number": self.return_number,
            "consumption_id": self.consumption_id,
            "ticket_id": self.ticket_id,
            "technician_id": self.technician_id,
            "return_date": to_iso_date(self.return_date),
            "reason": self.reason,
            "remarks": self.remarks,
            "status": self.status,
            "target_stock_area_id": self.target_stock_area_id,
            "decided_by_user_id": self.decided_by_user_id,
            "decided_at": to_utc_z(self.decided_at),
            "decision_remarks": self.decision_remarks,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    """One returned unit (bulk quantities expand to one line per unit)."""
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False)
    unit_id = db.Column(db.Integer, db.ForeignKey("inventory_units.id"), nullable=False, index=True)
    serial_number = db.Column(db.String(100), nullable=True)
    mac_id = db.Column(db.String(100), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    remarks = db.Column(db.String(255), nullable=True)

    unit = db.relationship("InventoryUnit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "material_id": self.material_id,
            "unit_id": self.unit_id,
            "serial_number": self.serial_number,
            "mac_id": self.mac_id,
            "quantity": self.quantity,
            "remarks": self.remarks,
        }
