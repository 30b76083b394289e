"""Initial schema: catalog, locations, ledgers, transactions, transfers, audits

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Catalog (products, set_items)
2. Locations (locations, location_courses, location_stock ledger cells)
3. Recipients (students, student_received_items, staff_members)
4. Transactions (transactions, transaction_items, transaction_set_components)
5. Transfers and audits (stock_transfers, stock_transfer_items, audit_logs)
6. Document sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('catalog', sa.String(length=16), nullable=False, server_default='STATIONERY'),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('central_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_set', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('central_stock >= 0', name='ck_products_central_stock_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_catalog', 'products', ['catalog'])
    op.create_index('ix_products_catalog_name', 'products', ['catalog', 'name'])

    op.create_table('set_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('set_product_id', sa.Integer(), nullable=False),
        sa.Column('component_product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('price_snapshot_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity >= 1', name='ck_set_items_quantity_positive'),
        sa.ForeignKeyConstraint(['set_product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('set_product_id', 'component_product_id', name='uq_set_items_set_component'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_set_items_set_product_id', 'set_items', ['set_product_id'])
    op.create_index('ix_set_items_component_product_id', 'set_items', ['component_product_id'])

    # ==========================================================================
    # 2. LOCATIONS AND LEDGER CELLS
    # ==========================================================================
    op.create_table('locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_locations_active', 'locations', ['is_active'])

    op.create_table('location_courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('course', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'course', name='uq_location_courses_location_course'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_location_courses_location_id', 'location_courses', ['location_id'])
    op.create_index('ix_location_courses_course', 'location_courses', ['course'])

    op.create_table('location_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('catalog', sa.String(length=16), nullable=False, server_default='STATIONERY'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity >= 0', name='ck_location_stock_quantity_nonneg'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'catalog', 'product_id', name='uq_location_stock_cell'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_location_stock_location_catalog', 'location_stock', ['location_id', 'catalog'])
    op.create_index('ix_location_stock_product_id', 'location_stock', ['product_id'])

    # ==========================================================================
    # 3. RECIPIENTS
    # ==========================================================================
    op.create_table('students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('course', sa.String(length=64), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('branch', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_code'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_students_course', 'students', ['course'])

    op.create_table('student_received_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('item_key', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'item_key', name='uq_student_received_items'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_student_received_items_student_id', 'student_received_items', ['student_id'])

    op.create_table('staff_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('assigned_location_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['assigned_location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_staff_members_assigned_location_id', 'staff_members', ['assigned_location_id'])

    # ==========================================================================
    # 4. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='PURCHASE'),
        sa.Column('catalog', sa.String(length=16), nullable=False, server_default='STATIONERY'),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('counterparty_location_id', sa.Integer(), nullable=True),
        sa.Column('student_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stock_deducted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('include_in_revenue', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['counterparty_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff_members.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transactions_kind', 'transactions', ['kind'])
    op.create_index('ix_transactions_location_id', 'transactions', ['location_id'])
    op.create_index('ix_transactions_student_id', 'transactions', ['student_id'])
    op.create_index('ix_transactions_kind_date', 'transactions', ['kind', 'transaction_date'])
    op.create_index('ix_transactions_location_date', 'transactions', ['location_id', 'transaction_date'])

    op.create_table('transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('is_set', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='fulfilled'),
        sa.Column('quantity_deducted', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity >= 1', name='ck_transaction_items_quantity_positive'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    op.create_table('transaction_set_components',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('component_product_id', sa.Integer(), nullable=False),
        sa.Column('name_snapshot', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('taken', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('shortage', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['item_id'], ['transaction_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transaction_set_components_item_id', 'transaction_set_components', ['item_id'])

    # ==========================================================================
    # 5. TRANSFERS AND AUDITS
    # ==========================================================================
    op.create_table('stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('deduct_from_central', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('include_in_revenue', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=120), nullable=False, server_default='System'),
        sa.Column('linked_transaction_id', sa.Integer(), nullable=True),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['linked_transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_transfers_from_location_id', 'stock_transfers', ['from_location_id'])
    op.create_index('ix_stock_transfers_to_location_id', 'stock_transfers', ['to_location_id'])
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_status_created', 'stock_transfers', ['status', 'created_at'])

    op.create_table('stock_transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='ck_stock_transfer_items_quantity_positive'),
        sa.ForeignKeyConstraint(['transfer_id'], ['stock_transfers.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_stock_transfer_items_product'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_transfer_items_transfer_id', 'stock_transfer_items', ['transfer_id'])
    op.create_index('ix_stock_transfer_items_product_id', 'stock_transfer_items', ['product_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('catalog', sa.String(length=16), nullable=False, server_default='STATIONERY'),
        sa.Column('before_quantity', sa.Integer(), nullable=False),
        sa.Column('after_quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=120), nullable=False, server_default='System'),
        sa.Column('approved_by', sa.String(length=120), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('before_quantity >= 0', name='ck_audit_logs_before_nonneg'),
        sa.CheckConstraint('after_quantity >= 0', name='ck_audit_logs_after_nonneg'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_logs_product_id', 'audit_logs', ['product_id'])
    op.create_index('ix_audit_logs_location_id', 'audit_logs', ['location_id'])
    op.create_index('ix_audit_logs_status', 'audit_logs', ['status'])
    op.create_index('ix_audit_logs_status_created', 'audit_logs', ['status', 'created_at'])

    # ==========================================================================
    # 6. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type'),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('audit_logs')
    op.drop_table('stock_transfer_items')
    op.drop_table('stock_transfers')
    op.drop_table('transaction_set_components')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('staff_members')
    op.drop_table('student_received_items')
    op.drop_table('students')
    op.drop_table('location_stock')
    op.drop_table('location_courses')
    op.drop_table('locations')
    op.drop_table('set_items')
    op.drop_table('products')
