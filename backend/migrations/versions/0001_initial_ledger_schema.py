"""initial ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the trade ledger schema:
- customers: customer master (no balance column, balance is derived)
- inventory_items: items with live on-hand quantity and pricing
- sales / sale_items: committed sales with frozen line prices
- inventory_transactions: append-only stock movements
- customer_transactions: append-only signed money movements
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone', name='uq_customers_phone'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('base_price_cents', sa.Integer(), nullable=True),
        sa.Column('sell_price_cents', sa.Integer(), nullable=True),
        sa.Column('limit_price_cents', sa.Integer(), nullable=True),
        sa.Column('low_stock_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_name', 'inventory_items', ['name'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_type', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('paid_cents >= 0', name='ck_sales_paid_non_negative'),
        sa.CheckConstraint('discount_cents >= 0', name='ck_sales_discount_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_payment_type', 'sales', ['payment_type'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_customer_created', 'sales', ['customer_id', 'created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_item_id', 'sale_items', ['item_id'])

    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_transactions_quantity_positive'),
        sa.CheckConstraint("kind IN ('STOCK_IN', 'STOCK_OUT')", name='ck_inventory_transactions_kind'),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_transactions_item_id', 'inventory_transactions', ['item_id'])
    op.create_index('ix_inventory_transactions_kind', 'inventory_transactions', ['kind'])
    op.create_index('ix_inventory_transactions_sale_id', 'inventory_transactions', ['sale_id'])
    op.create_index('ix_inventory_transactions_occurred_at', 'inventory_transactions', ['occurred_at'])
    op.create_index('ix_invtx_item_occurred', 'inventory_transactions', ['item_id', 'occurred_at'])

    op.create_table(
        'customer_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('payment_type', sa.String(length=16), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_transactions_customer_id', 'customer_transactions', ['customer_id'])
    op.create_index('ix_customer_transactions_kind', 'customer_transactions', ['kind'])
    op.create_index('ix_customer_transactions_sale_id', 'customer_transactions', ['sale_id'])
    op.create_index('ix_customer_transactions_occurred_at', 'customer_transactions', ['occurred_at'])
    op.create_index('ix_customer_txns_customer_occurred', 'customer_transactions',
                    ['customer_id', 'occurred_at'])


def downgrade():
    op.drop_table('customer_transactions')
    op.drop_table('inventory_transactions')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('inventory_items')
    op.drop_table('customers')
