"""Inventory ledger: reference data, unit ledger, workflow records, slip sequences

Revision ID: 20260301_ledger
Revises:
Create Date: 2026-03-01

This migration adds:
1. Reference data (materials, stock_areas, users)
2. Workflow records (receipts, material requests, transfers, consumptions, returns) and their lines
3. InventoryUnit ledger with partial unique indexes on serial number / MAC id
4. Unit link tables for transfer and consumption lines
5. DocumentSequence counters for slip numbers
6. MaterialAllocation reservations of units against request lines
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260301_ledger'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False)
        for name in names
    ]


def upgrade():
    # ==========================================================================
    # 1. REFERENCE DATA
    # ==========================================================================
    op.create_table('materials',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('material_type', sa.String(length=64), nullable=True),
        sa.Column('uom', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'product_code', name='uq_materials_org_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('materials', schema=None) as batch_op:
        batch_op.create_index('ix_materials_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_materials_material_type', ['material_type'], unique=False)
        batch_op.create_index('ix_materials_org_active', ['org_id', 'is_active'], unique=False)

    op.create_table('stock_areas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('location_code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_stock_areas_org_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_areas_org_id', 'stock_areas', ['org_id'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_org_id', 'users', ['org_id'], unique=False)

    # ==========================================================================
    # 2. RECEIPTS
    # ==========================================================================
    op.create_table('receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('slip_number', sa.String(length=64), nullable=False),
        sa.Column('stock_area_id', sa.Integer(), nullable=False),
        sa.Column('receipt_date', sa.Date(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('party_name', sa.String(length=255), nullable=True),
        sa.Column('purchase_order', sa.String(length=64), nullable=True),
        sa.Column('vehicle_number', sa.String(length=32), nullable=True),
        sa.Column('remark', sa.Text(), nullable=True),
        sa.Column('documents', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['stock_area_id'], ['stock_areas.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'slip_number', name='uq_receipts_org_slip'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('receipts', schema=None) as batch_op:
        batch_op.create_index('ix_receipts_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_receipts_stock_area_id', ['stock_area_id'], unique=False)
        batch_op.create_index('ix_receipts_org_status', ['org_id', 'status'], unique=False)

    op.create_table('receipt_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('mac_id', sa.String(length=100), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['receipt_id'], ['receipts.id'], ),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('receipt_lines', schema=None) as batch_op:
        batch_op.create_index('ix_receipt_lines_receipt_id', ['receipt_id'], unique=False)
        batch_op.create_index('ix_receipt_lines_material_id', ['material_id'], unique=False)

    # ==========================================================================
    # 3. UNIT LEDGER
    # ==========================================================================
    op.create_table('inventory_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('mac_id', sa.String(length=100), nullable=True),
        sa.Column('location_type', sa.String(length=16), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('ticket_id', sa.String(length=100), nullable=True),
        sa.Column('receipt_line_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.ForeignKeyConstraint(['receipt_line_id'], ['receipt_lines.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_units', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_units_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_inventory_units_material_id', ['material_id'], unique=False)
        batch_op.create_index('ix_inventory_units_status', ['status'], unique=False)
        batch_op.create_index('ix_inventory_units_ticket_id', ['ticket_id'], unique=False)
        batch_op.create_index('ix_inventory_units_receipt_line_id', ['receipt_line_id'], unique=False)
        batch_op.create_index('ix_units_location', ['location_type', 'location_id'], unique=False)
        batch_op.create_index(
            'ix_units_material_location_status_created',
            ['material_id', 'location_type', 'location_id', 'status', 'created_at'],
            unique=False,
        )
    op.create_index(
        'uq_units_serial_active', 'inventory_units', ['serial_number'], unique=True,
        sqlite_where=sa.text('serial_number IS NOT NULL AND is_active'),
        postgresql_where=sa.text('serial_number IS NOT NULL AND is_active'),
    )
    op.create_index(
        'uq_units_mac_active', 'inventory_units', ['mac_id'], unique=True,
        sqlite_where=sa.text('mac_id IS NOT NULL AND is_active'),
        postgresql_where=sa.text('mac_id IS NOT NULL AND is_active'),
    )

    # ==========================================================================
    # 4. MATERIAL REQUESTS
    # ==========================================================================
    op.create_table('material_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('request_number', sa.String(length=64), nullable=False),
        sa.Column('request_date', sa.Date(), nullable=False),
        sa.Column('requestor_user_id', sa.Integer(), nullable=False),
        sa.Column('from_stock_area_id', sa.Integer(), nullable=True),
        sa.Column('ticket_id', sa.String(length=100), nullable=True),
        sa.Column('service_area', sa.String(length=100), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('decided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_remarks', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['requestor_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['from_stock_area_id'], ['stock_areas.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'request_number', name='uq_material_requests_org_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('material_requests', schema=None) as batch_op:
        batch_op.create_index('ix_material_requests_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_material_requests_org_status', ['org_id', 'status'], unique=False)
        batch_op.create_index('ix_material_requests_requestor_user_id', ['requestor_user_id'], unique=False)
        batch_op.create_index('ix_material_requests_from_stock_area_id', ['from_stock_area_id'], unique=False)
        batch_op.create_index('ix_material_requests_ticket_id', ['ticket_id'], unique=False)

    op.create_table('material_request_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('requested_quantity', sa.Integer(), nullable=False),
        sa.Column('approved_quantity', sa.Integer(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['request_id'], ['material_requests.id'], ),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('material_request_lines', schema=None) as batch_op:
        batch_op.create_index('ix_material_request_lines_request_id', ['request_id'], unique=False)
        batch_op.create_index('ix_material_request_lines_material_id', ['material_id'], unique=False)

    # ==========================================================================
    # 5. TRANSFERS
    # ==========================================================================
    op.create_table('transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('transfer_number', sa.String(length=64), nullable=False),
        sa.Column('from_stock_area_id', sa.Integer(), nullable=False),
        sa.Column('to_stock_area_id', sa.Integer(), nullable=False),
        sa.Column('destination_type', sa.String(length=16), nullable=False),
        sa.Column('to_user_id', sa.Integer(), nullable=True),
        sa.Column('material_request_id', sa.Integer(), nullable=True),
        sa.Column('ticket_id', sa.String(length=100), nullable=True),
        sa.Column('transfer_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['from_stock_area_id'], ['stock_areas.id'], ),
        sa.ForeignKeyConstraint(['to_stock_area_id'], ['stock_areas.id'], ),
        sa.ForeignKeyConstraint(['to_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['material_request_id'], ['material_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'transfer_number', name='uq_transfers_org_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transfers', schema=None) as batch_op:
        batch_op.create_index('ix_transfers_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_transfers_from_stock_area_id', ['from_stock_area_id'], unique=False)
        batch_op.create_index('ix_transfers_to_stock_area_id', ['to_stock_area_id'], unique=False)
        batch_op.create_index('ix_transfers_to_user_id', ['to_user_id'], unique=False)
        batch_op.create_index('ix_transfers_material_request_id', ['material_request_id'], unique=False)
        batch_op.create_index('ix_transfers_ticket_id', ['ticket_id'], unique=False)

    op.create_table('transfer_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('serial_numbers', sa.JSON(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['transfer_id'], ['transfers.id'], ),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transfer_lines', schema=None) as batch_op:
        batch_op.create_index('ix_transfer_lines_transfer_id', ['transfer_id'], unique=False)
        batch_op.create_index('ix_transfer_lines_material_id', ['material_id'], unique=False)

    op.create_table('transfer_line_units',
        sa.Column('transfer_line_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transfer_line_id'], ['transfer_lines.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['inventory_units.id'], ),
        sa.PrimaryKeyConstraint('transfer_line_id', 'unit_id')
    )

    op.create_table('material_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('request_line_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=True),
        sa.Column('allocated_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('allocated_at'),
        sa.Column('released_by_user_id', sa.Integer(), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['request_id'], ['material_requests.id'], ),
        sa.ForeignKeyConstraint(['request_line_id'], ['material_request_lines.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['inventory_units.id'], ),
        sa.ForeignKeyConstraint(['transfer_id'], ['transfers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('material_allocations', schema=None) as batch_op:
        batch_op.create_index('ix_material_allocations_request_id', ['request_id'], unique=False)
        batch_op.create_index('ix_material_allocations_request_line_id', ['request_line_id'], unique=False)
        batch_op.create_index('ix_material_allocations_unit_status', ['unit_id', 'status'], unique=False)
        batch_op.create_index('ix_material_allocations_transfer_id', ['transfer_id'], unique=False)

    # ==========================================================================
    # 6. CONSUMPTION
    # ==========================================================================
    op.create_table('consumptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('consumption_number', sa.String(length=64), nullable=False),
        sa.Column('external_system_ref_id', sa.String(length=100), nullable=True),
        sa.Column('ticket_id', sa.String(length=100), nullable=True),
        sa.Column('customer_data', sa.JSON(), nullable=True),
        sa.Column('consumption_date', sa.Date(), nullable=False),
        sa.Column('stock_area_id', sa.Integer(), nullable=True),
        sa.Column('from_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['stock_area_id'], ['stock_areas.id'], ),
        sa.ForeignKeyConstraint(['from_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'consumption_number', name='uq_consumptions_org_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('consumptions', schema=None) as batch_op:
        batch_op.create_index('ix_consumptions_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_consumptions_external_system_ref_id', ['external_system_ref_id'], unique=False)
        batch_op.create_index('ix_consumptions_ticket_id', ['ticket_id'], unique=False)
        batch_op.create_index('ix_consumptions_stock_area_id', ['stock_area_id'], unique=False)
        batch_op.create_index('ix_consumptions_from_user_id', ['from_user_id'], unique=False)

    op.create_table('consumption_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('consumption_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('serial_numbers', sa.JSON(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['consumption_id'], ['consumptions.id'], ),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('consumption_lines', schema=None) as batch_op:
        batch_op.create_index('ix_consumption_lines_consumption_id', ['consumption_id'], unique=False)
        batch_op.create_index('ix_consumption_lines_material_id', ['material_id'], unique=False)

    op.create_table('consumption_line_units',
        sa.Column('consumption_line_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['consumption_line_id'], ['consumption_lines.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['inventory_units.id'], ),
        sa.PrimaryKeyConstraint('consumption_line_id', 'unit_id')
    )

    # ==========================================================================
    # 7. RETURNS
    # ==========================================================================
    op.create_table('returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=True),
        sa.Column('return_number', sa.String(length=64), nullable=False),
        sa.Column('consumption_id', sa.Integer(), nullable=True),
        sa.Column('ticket_id', sa.String(length=100), nullable=True),
        sa.Column('technician_id', sa.Integer(), nullable=False),
        sa.Column('return_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(length=16), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('target_stock_area_id', sa.Integer(), nullable=True),
        sa.Column('decided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_remarks', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['consumption_id'], ['consumptions.id'], ),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['target_stock_area_id'], ['stock_areas.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'return_number', name='uq_returns_org_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('returns', schema=None) as batch_op:
        batch_op.create_index('ix_returns_org_id', ['org_id'], unique=False)
        batch_op.create_index('ix_returns_ticket_id', ['ticket_id'], unique=False)
        batch_op.create_index('ix_returns_technician_id', ['technician_id'], unique=False)
        batch_op.create_index('ix_returns_status', ['status'], unique=False)

    op.create_table('return_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('material_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('mac_id', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id'], ),
        sa.ForeignKeyConstraint(['material_id'], ['materials.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['inventory_units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('return_lines', schema=None) as batch_op:
        batch_op.create_index('ix_return_lines_return_id', ['return_id'], unique=False)
        batch_op.create_index('ix_return_lines_unit_id', ['unit_id'], unique=False)

    # ==========================================================================
    # 8. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_key', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('document_type', sa.String(length=16), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_key', 'document_type', 'period', name='uq_doc_sequences_org_type_period'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('return_lines')
    op.drop_table('returns')
    op.drop_table('consumption_line_units')
    op.drop_table('consumption_lines')
    op.drop_table('consumptions')
    op.drop_table('material_allocations')
    op.drop_table('transfer_line_units')
    op.drop_table('transfer_lines')
    op.drop_table('transfers')
    op.drop_table('material_request_lines')
    op.drop_table('material_requests')
    op.drop_index('uq_units_mac_active', table_name='inventory_units')
    op.drop_index('uq_units_serial_active', table_name='inventory_units')
    op.drop_table('inventory_units')
    op.drop_table('receipt_lines')
    op.drop_table('receipts')
    op.drop_table('users')
    op.drop_table('stock_areas')
    op.drop_table('materials')
