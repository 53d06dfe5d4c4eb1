"""Fuel station core: vessels, calibration, shifts, readings, payments, cash

Revision ID: 20261019_fuel_core
Revises:
Create Date: 2026-10-19

This migration adds:
1. Points of sale and products
2. Vessels, calibration points and computed fills
3. Dispensers and hoses
4. Shifts, shift closures, meter readings and product sales
5. Payment methods and per-closure allocations
6. Cash registers and cash movements
7. Shift change audit log
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_fuel_core'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. POINTS OF SALE / PRODUCTS
    # ==========================================================================
    op.create_table('points_of_sale',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='LITERS'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_fuel', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. VESSELS / CALIBRATION
    # ==========================================================================
    op.create_table('vessels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('point_of_sale_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='TANK'),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('plate', sa.String(length=32), nullable=True),
        sa.Column('capacity', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('minimum_level', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('current_height', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('current_volume', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='LITERS'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['point_of_sale_id'], ['points_of_sale.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plate'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('vessels', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_vessels_point_of_sale_id'), ['point_of_sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_vessels_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_vessels_is_active'), ['is_active'], unique=False)

    op.create_table('calibration_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vessel_id', sa.Integer(), nullable=False),
        sa.Column('height', sa.Numeric(10, 2), nullable=False),
        sa.Column('volume', sa.Numeric(14, 2), nullable=False),
        sa.ForeignKeyConstraint(['vessel_id'], ['vessels.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('vessel_id', 'height', name='uq_calibration_points_vessel_height'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('calibration_points', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_calibration_points_vessel_id'), ['vessel_id'], unique=False)

    op.create_table('vessel_fills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vessel_id', sa.Integer(), nullable=False),
        sa.Column('previous_height', sa.Numeric(10, 2), nullable=False),
        sa.Column('new_height', sa.Numeric(10, 2), nullable=False),
        sa.Column('volume_delta', sa.Numeric(14, 2), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['vessel_id'], ['vessels.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('vessel_fills', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_vessel_fills_vessel_id'), ['vessel_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_vessel_fills_created_at'), ['created_at'], unique=False)

    # ==========================================================================
    # 3. DISPENSERS / HOSES
    # ==========================================================================
    op.create_table('dispensers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('point_of_sale_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=True),
        sa.ForeignKeyConstraint(['point_of_sale_id'], ['points_of_sale.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('point_of_sale_id', 'number', name='uq_dispensers_pos_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('dispensers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_dispensers_point_of_sale_id'), ['point_of_sale_id'], unique=False)

    op.create_table('hoses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dispenser_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('last_reading', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['dispenser_id'], ['dispensers.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dispenser_id', 'number', name='uq_hoses_dispenser_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('hoses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_hoses_dispenser_id'), ['dispenser_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_hoses_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 4. SHIFTS / CLOSURES / READINGS / PRODUCT SALES
    # ==========================================================================
    op.create_table('shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('point_of_sale_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['point_of_sale_id'], ['points_of_sale.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('point_of_sale_id', 'start_date', 'start_time', name='uq_shifts_pos_start'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shifts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shifts_point_of_sale_id'), ['point_of_sale_id'], unique=False)
        batch_op.create_index('ix_shifts_pos_chain', ['point_of_sale_id', 'start_date', 'start_time'], unique=False)

    op.create_table('shift_closures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('point_of_sale_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('total_liters', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_gallons', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total_value_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cash_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_card_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_transfer_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_fleet_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_voucher_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_other_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('dispenser_summary', sa.JSON(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.ForeignKeyConstraint(['point_of_sale_id'], ['points_of_sale.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shift_closures', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shift_closures_point_of_sale_id'), ['point_of_sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_shift_closures_status'), ['status'], unique=False)

    op.create_table('meter_readings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_closure_id', sa.Integer(), nullable=False),
        sa.Column('hose_id', sa.Integer(), nullable=False),
        sa.Column('previous_reading', sa.Numeric(14, 3), nullable=False),
        sa.Column('current_reading', sa.Numeric(14, 3), nullable=False),
        sa.Column('quantity_sold', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('sale_value_cents', sa.Integer(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('recorded_by_user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['shift_closure_id'], ['shift_closures.id'], ),
        sa.ForeignKeyConstraint(['hose_id'], ['hoses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_closure_id', 'hose_id', name='uq_meter_readings_closure_hose'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('meter_readings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_meter_readings_shift_closure_id'), ['shift_closure_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_meter_readings_hose_id'), ['hose_id'], unique=False)

    op.create_table('payment_methods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False, server_default='OTHER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    op.create_table('product_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_closure_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('payment_method_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('sold_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['shift_closure_id'], ['shift_closures.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_sales_shift_closure_id'), ['shift_closure_id'], unique=False)

    # ==========================================================================
    # 5. PAYMENT ALLOCATIONS
    # ==========================================================================
    op.create_table('payment_method_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_closure_id', sa.Integer(), nullable=False),
        sa.Column('payment_method_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('percentage', sa.Numeric(7, 2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['shift_closure_id'], ['shift_closures.id'], ),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_closure_id', 'payment_method_id', name='uq_allocations_closure_method'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_method_allocations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_method_allocations_shift_closure_id'), ['shift_closure_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_method_allocations_payment_method_id'), ['payment_method_id'], unique=False)

    # ==========================================================================
    # 6. CASH
    # ==========================================================================
    op.create_table('cash_registers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('point_of_sale_id', sa.Integer(), nullable=False),
        sa.Column('opening_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_movement_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['point_of_sale_id'], ['points_of_sale.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('point_of_sale_id'),
        sqlite_autoincrement=True
    )

    op.create_table('cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_closure_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('concept', sa.String(length=255), nullable=False),
        sa.Column('is_sales_cash', sa.Boolean(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['shift_closure_id'], ['shift_closures.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_movements_shift_closure_id'), ['shift_closure_id'], unique=False)
        batch_op.create_index('ix_cash_movements_closure_direction', ['shift_closure_id', 'direction'], unique=False)

    # ==========================================================================
    # 7. AUDIT
    # ==========================================================================
    op.create_table('shift_change_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('change_kind', sa.String(length=32), nullable=False),
        sa.Column('old_payload', sa.JSON(), nullable=True),
        sa.Column('new_payload', sa.JSON(), nullable=True),
        sa.Column('description', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shift_change_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shift_change_logs_shift_id'), ['shift_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_shift_change_logs_change_kind'), ['change_kind'], unique=False)
        batch_op.create_index('ix_shift_change_logs_shift_created', ['shift_id', 'created_at'], unique=False)


def downgrade():
    for table in (
        'shift_change_logs',
        'cash_movements',
        'cash_registers',
        'payment_method_allocations',
        'product_sales',
        'payment_methods',
        'meter_readings',
        'shift_closures',
        'shifts',
        'hoses',
        'dispensers',
        'vessel_fills',
        'calibration_points',
        'vessels',
        'products',
        'points_of_sale',
    ):
        op.drop_table(table)
