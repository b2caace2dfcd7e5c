"""Initial schema: reference data, stock ledger, purchasing, sales and analytics outputs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _fk(name, table, nullable=False, ondelete='CASCADE'):
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(f'{table}.id', ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    # Reference data
    op.create_table(
        'suppliers',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'ingredients',
        _id(),
        _fk('supplier_id', 'suppliers', nullable=True, ondelete='SET NULL'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('unit', sa.String(50), nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 4)),
        sa.Column('min_stock_level', sa.Numeric(10, 3)),
        sa.Column('max_stock_level', sa.Numeric(10, 3)),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'menu_items',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100)),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'recipe_lines',
        _id(),
        _fk('menu_item_id', 'menu_items'),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('quantity', sa.Numeric(10, 4), nullable=False),
        sa.Column('unit', sa.String(50), nullable=False),
    )

    # Stock ledger
    op.create_table(
        'stock_change_events',
        _id(),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('quantity_delta', sa.Numeric(12, 3), nullable=False),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('actor_id', sa.String(100), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_stock_events_ingredient_created', 'stock_change_events', ['ingredient_id', 'created_at'])
    op.create_index('idx_stock_events_created', 'stock_change_events', ['created_at'])

    op.create_table(
        'current_stock',
        _id(),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('expiry_date', sa.Date()),
        sa.Column('last_updated', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('ingredient_id', name='uq_current_stock_ingredient'),
        sa.CheckConstraint('quantity >= 0', name='ck_current_stock_non_negative'),
    )

    # Purchasing & sales
    op.create_table(
        'purchase_orders',
        _id(),
        _fk('supplier_id', 'suppliers'),
        sa.Column('po_number', sa.String(50)),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_purchase_orders_status_created', 'purchase_orders', ['status', 'created_at'])

    op.create_table(
        'purchase_order_items',
        _id(),
        _fk('order_id', 'purchase_orders'),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Numeric(10, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(10, 4), nullable=False),
    )

    op.create_table(
        'sale_orders',
        _id(),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_sale_orders_status_created', 'sale_orders', ['status', 'created_at'])

    op.create_table(
        'sale_order_items',
        _id(),
        _fk('order_id', 'sale_orders'),
        _fk('menu_item_id', 'menu_items'),
        sa.Column('quantity', sa.Integer(), nullable=False),
    )

    # Analytics outputs
    op.create_table(
        'ingredient_forecasts',
        _id(),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('forecast_date', sa.Date(), nullable=False),
        sa.Column('forecast_quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('confidence', sa.Integer(), nullable=False),
        sa.Column('model_version', sa.String(50), nullable=False),
        sa.Column('factors', postgresql.JSONB()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('ingredient_id', 'forecast_date', name='uq_ingredient_forecast_date'),
    )

    op.create_table(
        'anomalies',
        _id(),
        _fk('ingredient_id', 'ingredients', nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('details', postgresql.JSONB()),
        sa.Column('recommendation', sa.Text()),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime()),
        sa.Column('dedup_key', sa.String(120)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('dedup_key', name='uq_anomalies_dedup_key'),
    )
    op.create_index('idx_anomalies_resolved_created', 'anomalies', ['resolved', 'created_at'])

    op.create_table(
        'waste_predictions',
        _id(),
        _fk('ingredient_id', 'ingredients'),
        sa.Column('predicted_waste', sa.Numeric(12, 3), nullable=False),
        sa.Column('predicted_usage', sa.Numeric(12, 3), nullable=False),
        sa.Column('waste_percent', sa.Numeric(6, 2), nullable=False),
        sa.Column('risk_level', sa.String(20), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=False),
        sa.Column('days_until_expiry', sa.Integer(), nullable=False),
        sa.Column('recommendation', sa.Text()),
        sa.Column('dedup_key', sa.String(120)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('dedup_key', name='uq_waste_predictions_dedup_key'),
    )


def downgrade() -> None:
    op.drop_table('waste_predictions')
    op.drop_table('anomalies')
    op.drop_table('ingredient_forecasts')
    op.drop_table('sale_order_items')
    op.drop_table('sale_orders')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('current_stock')
    op.drop_table('stock_change_events')
    op.drop_table('recipe_lines')
    op.drop_table('menu_items')
    op.drop_table('ingredients')
    op.drop_table('suppliers')
