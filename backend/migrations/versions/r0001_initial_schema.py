"""initial reconciliation schema

Revision ID: r0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema:
- stations / station_days: station registry and per-date prices
- meter_readings: nozzle meters (shift_number 0 = day-level ledger)
- gauge_readings: tank fill percentages (gas stations)
- shifts: OPEN -> CLOSED -> LOCKED lifecycle
- transactions: sale journal with soft delete
- gas_supplies: immutable deliveries and corrections
- audit_log: append-only field-level change log
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'r0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # stations
    # ============================================================================
    op.create_table(
        'stations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('station_type', sa.String(length=16), nullable=False),
        sa.Column('max_shifts', sa.Integer(), nullable=False),
        sa.Column('nozzle_count', sa.Integer(), nullable=False),
        sa.Column('tank_count', sa.Integer(), nullable=False),
        sa.Column('tank_capacity_liters', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stations_code', 'stations', ['code'], unique=True)

    # ============================================================================
    # station_days: unit of record, status derived from meters
    # ============================================================================
    op.create_table(
        'station_days',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('retail_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('wholesale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('special_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('gas_price', sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('station_id', 'business_date', name='uq_station_days_station_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_station_days_station_id', 'station_days', ['station_id'])
    op.create_index('ix_station_days_business_date', 'station_days', ['business_date'])

    # ============================================================================
    # meter_readings
    # ============================================================================
    op.create_table(
        'meter_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_day_id', sa.Integer(), nullable=False),
        sa.Column('shift_number', sa.Integer(), nullable=False),
        sa.Column('nozzle_number', sa.Integer(), nullable=False),
        sa.Column('start_reading', sa.Numeric(14, 2), nullable=False),
        sa.Column('end_reading', sa.Numeric(14, 2), nullable=True),
        sa.Column('start_photo_ref', sa.String(length=512), nullable=True),
        sa.Column('end_photo_ref', sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_day_id'], ['station_days.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('station_day_id', 'shift_number', 'nozzle_number',
                            name='uq_meter_readings_day_shift_nozzle'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_meter_readings_station_day_id', 'meter_readings', ['station_day_id'])

    # ============================================================================
    # gauge_readings
    # ============================================================================
    op.create_table(
        'gauge_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_day_id', sa.Integer(), nullable=False),
        sa.Column('tank_number', sa.Integer(), nullable=False),
        sa.Column('start_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('end_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('start_photo_ref', sa.String(length=512), nullable=True),
        sa.Column('end_photo_ref', sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['station_day_id'], ['station_days.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('station_day_id', 'tank_number', name='uq_gauge_readings_day_tank'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_gauge_readings_station_day_id', 'gauge_readings', ['station_day_id'])

    # ============================================================================
    # shifts
    # ============================================================================
    op.create_table(
        'shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_day_id', sa.Integer(), nullable=False),
        sa.Column('shift_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('staff_name', sa.String(length=128), nullable=True),
        sa.Column('opened_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by', sa.String(length=64), nullable=True),
        sa.Column('total_liters_sold', sa.Numeric(14, 2), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_by', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['station_day_id'], ['station_days.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('station_day_id', 'shift_number', name='uq_shifts_day_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shifts_station_day_id', 'shifts', ['station_day_id'])
    op.create_index('ix_shifts_status', 'shifts', ['status'])

    # ============================================================================
    # transactions: sale journal (soft delete)
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=True),
        sa.Column('license_plate', sa.String(length=32), nullable=True),
        sa.Column('owner_id', sa.String(length=64), nullable=True),
        sa.Column('payment_type', sa.String(length=32), nullable=False),
        sa.Column('nozzle_number', sa.Integer(), nullable=True),
        sa.Column('product_type', sa.String(length=32), nullable=True),
        sa.Column('liters', sa.Numeric(12, 2), nullable=False),
        sa.Column('price_per_liter', sa.Numeric(10, 2), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('bill_book_no', sa.String(length=32), nullable=True),
        sa.Column('bill_no', sa.String(length=32), nullable=True),
        sa.Column('transfer_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('recorded_by', sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id']),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_station_id', 'transactions', ['station_id'])
    op.create_index('ix_transactions_occurred_at', 'transactions', ['occurred_at'])
    op.create_index('ix_transactions_shift_id', 'transactions', ['shift_id'])
    op.create_index('ix_transactions_station_date', 'transactions', ['station_id', 'business_date'])
    op.create_index('ix_transactions_station_bill', 'transactions', ['station_id', 'bill_book_no', 'bill_no'])

    # ============================================================================
    # gas_supplies: immutable; corrections are new rows
    # ============================================================================
    op.create_table(
        'gas_supplies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('liters_received', sa.Numeric(12, 2), nullable=False),
        sa.Column('kilograms_received', sa.Numeric(12, 2), nullable=True),
        sa.Column('supplier', sa.String(length=128), nullable=True),
        sa.Column('invoice_no', sa.String(length=64), nullable=True),
        sa.Column('correction_of_id', sa.Integer(), nullable=True),
        sa.Column('recorded_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id']),
        sa.ForeignKeyConstraint(['correction_of_id'], ['gas_supplies.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_gas_supplies_station_id', 'gas_supplies', ['station_id'])
    op.create_index('ix_gas_supplies_station_date', 'gas_supplies', ['station_id', 'business_date'])

    # ============================================================================
    # audit_log: append-only
    # ============================================================================
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('actor_name', sa.String(length=128), nullable=True),
        sa.Column('actor_role', sa.String(length=16), nullable=False),
        sa.Column('changes', sa.JSON(), nullable=False),
        sa.Column('is_post_close', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_log_occurred_at', 'audit_log', ['occurred_at'])
    op.create_index('ix_audit_log_station_date', 'audit_log', ['station_id', 'business_date'])
    op.create_index('ix_audit_log_entity', 'audit_log', ['entity_type', 'entity_id'])


def downgrade():
    op.drop_table('audit_log')
    op.drop_table('gas_supplies')
    op.drop_table('transactions')
    op.drop_table('shifts')
    op.drop_table('gauge_readings')
    op.drop_table('meter_readings')
    op.drop_table('station_days')
    op.drop_table('stations')
