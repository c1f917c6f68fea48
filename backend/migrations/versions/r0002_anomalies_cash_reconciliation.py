"""sales anomalies and shift cash reconciliation

Revision ID: r0002_anomalies
Revises: r0001_initial
Create Date: 2026-10-19 12:00:00.000000

Adds:
- nozzle_anomalies: per-shift nozzle sales vs trailing average, reviewable
- daily_anomalies: per-day meter vs transaction liters gap, reviewable
- shift_reconciliations: cash-up per shift with GREEN/YELLOW/RED status
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'r0002_anomalies'
down_revision = 'r0001_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'nozzle_anomalies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('nozzle_number', sa.Integer(), nullable=False),
        sa.Column('sold_liters', sa.Numeric(14, 2), nullable=False),
        sa.Column('average_liters', sa.Numeric(14, 2), nullable=False),
        sa.Column('percent_diff', sa.Numeric(10, 2), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_id', 'nozzle_number', name='uq_nozzle_anomalies_shift_nozzle'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_nozzle_anomalies_shift_id', 'nozzle_anomalies', ['shift_id'])
    op.create_index('ix_nozzle_anomalies_reviewed_at', 'nozzle_anomalies', ['reviewed_at'])

    op.create_table(
        'daily_anomalies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('station_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('meter_liters', sa.Numeric(14, 2), nullable=False),
        sa.Column('transaction_liters', sa.Numeric(14, 2), nullable=False),
        sa.Column('difference', sa.Numeric(14, 2), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['station_id'], ['stations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('station_id', 'business_date', name='uq_daily_anomalies_station_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_daily_anomalies_station_id', 'daily_anomalies', ['station_id'])
    op.create_index('ix_daily_anomalies_reviewed_at', 'daily_anomalies', ['reviewed_at'])

    op.create_table(
        'shift_reconciliations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('price_per_liter', sa.Numeric(10, 2), nullable=True),
        sa.Column('expected_fuel_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('cash_received', sa.Numeric(14, 2), nullable=False),
        sa.Column('credit_received', sa.Numeric(14, 2), nullable=False),
        sa.Column('transfer_received', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_received', sa.Numeric(14, 2), nullable=False),
        sa.Column('variance', sa.Numeric(14, 2), nullable=False),
        sa.Column('variance_status', sa.String(length=8), nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('calculated_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_id', name='uq_shift_reconciliations_shift'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('shift_reconciliations')
    op.drop_table('daily_anomalies')
    op.drop_table('nozzle_anomalies')
