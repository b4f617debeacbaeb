"""Initial ledger schema: products, customers, sales, sale items, installments

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. products and customers (string UUID ids, optimistic version_id)
2. sales with item snapshots and installment schedules
3. diagnostic_probes (scratch rows for the storage diagnostics run)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('size', sa.String(length=32), nullable=False),
        sa.Column('color', sa.String(length=64), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
    )
    op.create_index('ix_products_name', 'products', ['name'], unique=False)

    op.create_table('customers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_name', 'customers', ['name'], unique=False)

    # ==========================================================================
    # 2. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('customer_id', sa.String(length=36), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sales_date', 'sales', ['date'], unique=False)
    op.create_index('ix_sales_customer_name', 'sales', ['customer_name'], unique=False)
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'], unique=False)
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'], unique=False)

    op.create_table('installments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sale_id', sa.String(length=36), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', 'number', name='uq_installments_sale_number'),
    )
    op.create_index('ix_installments_sale_id', 'installments', ['sale_id'], unique=False)
    op.create_index('ix_installments_due_date', 'installments', ['due_date'], unique=False)

    # ==========================================================================
    # 3. DIAGNOSTICS
    # ==========================================================================
    op.create_table('diagnostic_probes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('note', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('diagnostic_probes')
    op.drop_index('ix_installments_due_date', table_name='installments')
    op.drop_index('ix_installments_sale_id', table_name='installments')
    op.drop_table('installments')
    op.drop_index('ix_sale_items_product_id', table_name='sale_items')
    op.drop_index('ix_sale_items_sale_id', table_name='sale_items')
    op.drop_table('sale_items')
    op.drop_index('ix_sales_customer_id', table_name='sales')
    op.drop_index('ix_sales_customer_name', table_name='sales')
    op.drop_index('ix_sales_date', table_name='sales')
    op.drop_table('sales')
    op.drop_index('ix_customers_name', table_name='customers')
    op.drop_table('customers')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
