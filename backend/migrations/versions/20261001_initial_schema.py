"""Initial schema: organizations, orders, trips, memo numbering, ledger, trip wages

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration adds:
1. Organization (tenant root)
2. Order and Trip (trip lifecycle; trips keep order_id without a foreign key)
3. FiscalCounter and DeliveryMemo (per-org, per-fiscal-year memo numbering)
4. LedgerEntry (client and employee ledgers)
5. TripWage, AttendanceRecord, AttendanceDay (crew pay and attendance)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
    ]


def upgrade():
    # ==========================================================================
    # 1. ORGANIZATIONS
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    # ==========================================================================
    # 2. ORDERS AND TRIPS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=False),
        sa.Column('client_phone', sa.String(length=32), nullable=True),
        sa.Column('payment_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('estimated_trips', sa.Integer(), nullable=False),
        sa.Column('total_scheduled_trips', sa.Integer(), nullable=False),
        sa.Column('scheduled_trips', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_organization_id', 'orders', ['organization_id'])
    op.create_index('ix_orders_client_id', 'orders', ['client_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_org_status', 'orders', ['organization_id', 'status'])

    op.create_table('trips',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=True),
        sa.Column('client_phone', sa.String(length=32), nullable=True),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('vehicle_number', sa.String(length=32), nullable=True),
        sa.Column('driver_id', sa.Integer(), nullable=True),
        sa.Column('driver_name', sa.String(length=255), nullable=True),
        sa.Column('driver_phone', sa.String(length=32), nullable=True),
        sa.Column('scheduled_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('slot', sa.Integer(), nullable=True),
        sa.Column('slot_name', sa.String(length=64), nullable=True),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=True),
        sa.Column('gst_cents', sa.Integer(), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=True),
        sa.Column('payment_type', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('dm_id', sa.String(length=64), nullable=True),
        sa.Column('dm_number', sa.Integer(), nullable=True),
        sa.Column('dm_source', sa.String(length=16), nullable=True),
        sa.Column('dispatch_dm_id', sa.String(length=64), nullable=True),
        sa.Column('dispatch_dm_number', sa.Integer(), nullable=True),
        sa.Column('return_dm_id', sa.String(length=64), nullable=True),
        sa.Column('return_dm_number', sa.Integer(), nullable=True),
        sa.Column('credit_entry_id', sa.Integer(), nullable=True),
        sa.Column('return_entry_id', sa.Integer(), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dispatched_by', sa.String(length=64), nullable=True),
        sa.Column('dispatched_by_role', sa.String(length=32), nullable=True),
        sa.Column('initial_reading', sa.Float(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_by', sa.String(length=64), nullable=True),
        sa.Column('delivered_by_role', sa.String(length=32), nullable=True),
        sa.Column('delivery_photo_url', sa.String(length=512), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_by', sa.String(length=64), nullable=True),
        sa.Column('returned_by_role', sa.String(length=32), nullable=True),
        sa.Column('final_reading', sa.Float(), nullable=True),
        sa.Column('paid_on_return_cents', sa.Integer(), nullable=True),
        sa.Column('status_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_updated_by', sa.String(length=64), nullable=True),
        sa.Column('status_updated_by_role', sa.String(length=32), nullable=True),
        sa.Column('order_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('order_deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_deleted_by', sa.String(length=64), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_trips_organization_id', 'trips', ['organization_id'])
    op.create_index('ix_trips_order_id', 'trips', ['order_id'])
    op.create_index('ix_trips_status', 'trips', ['status'])
    op.create_index('ix_trips_dm_id', 'trips', ['dm_id'])
    op.create_index('ix_trips_vehicle_slot', 'trips', ['scheduled_date', 'vehicle_id', 'slot'])
    op.create_index('ix_trips_org_status', 'trips', ['organization_id', 'status'])

    # ==========================================================================
    # 3. MEMO NUMBERING
    # ==========================================================================
    op.create_table('fiscal_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('financial_year', sa.String(length=16), nullable=False),
        sa.Column('start_number', sa.Integer(), nullable=False),
        sa.Column('current_number', sa.Integer(), nullable=False),
        sa.Column('fy_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fy_end', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'financial_year', name='uq_fiscal_counters_org_fy'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_fiscal_counters_organization_id', 'fiscal_counters', ['organization_id'])
    op.create_index('ix_fiscal_counters_financial_year', 'fiscal_counters', ['financial_year'])

    op.create_table('delivery_memos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dm_id', sa.String(length=64), nullable=False),
        sa.Column('dm_number', sa.Integer(), nullable=False),
        sa.Column('financial_year', sa.String(length=16), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(length=255), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=False),
        sa.Column('scheduled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('vehicle_id', sa.Integer(), nullable=True),
        sa.Column('vehicle_number', sa.String(length=32), nullable=False),
        sa.Column('slot', sa.Integer(), nullable=False),
        sa.Column('slot_name', sa.String(length=64), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=True),
        sa.Column('driver_name', sa.String(length=255), nullable=True),
        sa.Column('driver_phone', sa.String(length=32), nullable=True),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('gst_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('trip_status', sa.String(length=16), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('generated_by', sa.String(length=64), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_by', sa.String(length=64), nullable=True),
        sa.Column('delivered_by_role', sa.String(length=32), nullable=True),
        sa.Column('delivery_photo_url', sa.String(length=512), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_by', sa.String(length=64), nullable=True),
        sa.Column('returned_by_role', sa.String(length=32), nullable=True),
        sa.Column('initial_reading', sa.Float(), nullable=True),
        sa.Column('final_reading', sa.Float(), nullable=True),
        sa.Column('distance_travelled', sa.Float(), nullable=True),
        sa.Column('paid_on_return_cents', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=64), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'financial_year', 'dm_number', name='uq_delivery_memos_org_fy_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_delivery_memos_dm_id', 'delivery_memos', ['dm_id'])
    op.create_index('ix_delivery_memos_organization_id', 'delivery_memos', ['organization_id'])
    op.create_index('ix_delivery_memos_trip_id', 'delivery_memos', ['trip_id'])
    op.create_index('ix_delivery_memos_status', 'delivery_memos', ['status'])
    op.create_index('ix_delivery_memos_trip_source_status', 'delivery_memos', ['trip_id', 'source', 'status'])

    # ==========================================================================
    # 4. LEDGER
    # ==========================================================================
    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('ledger_type', sa.String(length=16), nullable=False),
        sa.Column('party_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=8), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('financial_year', sa.String(length=16), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('trip_wage_id', sa.Integer(), nullable=True),
        sa.Column('dm_id', sa.String(length=64), nullable=True),
        sa.Column('task_type', sa.String(length=32), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('(CURRENT_TIMESTAMP)')),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=64), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_entries_organization_id', 'ledger_entries', ['organization_id'])
    op.create_index('ix_ledger_entries_category', 'ledger_entries', ['category'])
    op.create_index('ix_ledger_entries_status', 'ledger_entries', ['status'])
    op.create_index('ix_ledger_entries_financial_year', 'ledger_entries', ['financial_year'])
    op.create_index('ix_ledger_entries_trip_id', 'ledger_entries', ['trip_id'])
    op.create_index('ix_ledger_entries_trip_wage_id', 'ledger_entries', ['trip_wage_id'])
    op.create_index('ix_ledger_entries_party', 'ledger_entries', ['organization_id', 'ledger_type', 'party_id'])
    op.create_index('ix_ledger_entries_key_status', 'ledger_entries', ['idempotency_key', 'status'])
    op.create_index(
        'uq_ledger_entries_live_key', 'ledger_entries', ['idempotency_key'], unique=True,
        sqlite_where=sa.text("status != 'CANCELLED'"),
        postgresql_where=sa.text("status != 'CANCELLED'"),
    )

    # ==========================================================================
    # 5. TRIP WAGES AND ATTENDANCE
    # ==========================================================================
    op.create_table('trip_wages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('delivery_memo_id', sa.Integer(), nullable=True),
        sa.Column('dm_id', sa.String(length=64), nullable=True),
        sa.Column('trip_id', sa.Integer(), nullable=True),
        sa.Column('loading_employee_ids', sa.JSON(), nullable=False),
        sa.Column('unloading_employee_ids', sa.JSON(), nullable=False),
        sa.Column('total_wage_cents', sa.Integer(), nullable=True),
        sa.Column('loading_wages_cents', sa.Integer(), nullable=True),
        sa.Column('unloading_wages_cents', sa.Integer(), nullable=True),
        sa.Column('loading_wage_per_employee_cents', sa.Integer(), nullable=True),
        sa.Column('unloading_wage_per_employee_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('wage_entry_ids', sa.JSON(), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', sa.String(length=64), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['delivery_memo_id'], ['delivery_memos.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_trip_wages_organization_id', 'trip_wages', ['organization_id'])
    op.create_index('ix_trip_wages_delivery_memo_id', 'trip_wages', ['delivery_memo_id'])
    op.create_index('ix_trip_wages_trip_id', 'trip_wages', ['trip_id'])
    op.create_index('ix_trip_wages_status', 'trip_wages', ['status'])

    op.create_table('attendance_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('financial_year', sa.String(length=16), nullable=False),
        sa.Column('year_month', sa.String(length=7), nullable=False),
        sa.Column('total_days_present', sa.Integer(), nullable=False),
        sa.Column('total_trips_worked', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'organization_id', 'employee_id', 'financial_year', 'year_month',
            name='uq_attendance_records_employee_month',
        ),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_attendance_records_organization_id', 'attendance_records', ['organization_id'])
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'])

    op.create_table('attendance_days',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('is_present', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('number_of_trips', sa.Integer(), nullable=False),
        sa.Column('trip_wage_ids', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['record_id'], ['attendance_records.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('record_id', 'date', name='uq_attendance_days_record_date'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_attendance_days_record_id', 'attendance_days', ['record_id'])


def downgrade():
    op.drop_table('attendance_days')
    op.drop_table('attendance_records')
    op.drop_table('trip_wages')
    op.drop_table('ledger_entries')
    op.drop_table('delivery_memos')
    op.drop_table('fiscal_counters')
    op.drop_table('trips')
    op.drop_table('orders')
    op.drop_table('organizations')
