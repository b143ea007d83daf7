"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2024-06-11 00:00:00.000000

Creates the back-office schema from scratch:
- products / stock_movements: stock ledger with movement history
- sellers / customers / customer_products: commission and customer lines
- bills / bill_items / incomes / document_sequences: invoicing
- parcels / parcel_items: courier dispatch
- sales / returns: commission records and returned goods
- purchase_batches / purchase_batch_items: supplier deliveries
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    """
    Create all tables.

    Money columns are integer cents. products.stock carries a CHECK so the
    database itself refuses a negative count.
    """

    # ============================================================================
    # products: catalog + canonical stock count
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=False),
        sa.Column('original_price_cents', sa.Integer(), nullable=False),
        sa.Column('wholesale_price_cents', sa.Integer(), nullable=True),
        sa.Column('retail_price_cents', sa.Integer(), nullable=True),
        sa.Column('website_price_cents', sa.Integer(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('low_stock_alert', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('model', name='uq_products_model'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_nonnegative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_name', 'products', ['category', 'name'])

    # ============================================================================
    # sellers: commission balances (version_id for optimistic locking)
    # ============================================================================
    op.create_table(
        'sellers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('basic_salary_cents', sa.Integer(), nullable=False),
        sa.Column('commission_rate_cents', sa.Integer(), nullable=False),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('total_commission_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sellers_total_commission', 'sellers', ['total_commission_cents'])

    # ============================================================================
    # document_sequences: atomic bill counter
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_doc_sequences_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    # ============================================================================
    # purchase_batches: supplier deliveries
    # ============================================================================
    op.create_table(
        'purchase_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('supplier_name', sa.String(length=255), nullable=False),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_batches_purchase_date', 'purchase_batches', ['purchase_date', 'created_at'])

    # ============================================================================
    # stock_movements: append-only stock history
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('source_type', sa.String(length=32), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])
    op.create_index('ix_stock_movements_source', 'stock_movements', ['source_type', 'source_id'])

    # ============================================================================
    # customers + customer_products
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('custom_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('seller_id', sa.Integer(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('product', sa.String(length=255), nullable=True),
        sa.Column('legacy_product_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], ),
        sa.ForeignKeyConstraint(['legacy_product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_type', 'customers', ['type'])
    op.create_index('ix_customers_seller_id', 'customers', ['seller_id'])
    op.create_index('ix_customers_type_seller', 'customers', ['type', 'seller_id'])
    op.create_index('ix_customers_created', 'customers', ['created_at'])

    op.create_table(
        'customer_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('model', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'product_id', name='uq_customer_products_customer_product'),
        sa.CheckConstraint('quantity >= 1', name='ck_customer_products_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_products_customer_id', 'customer_products', ['customer_id'])
    op.create_index('ix_customer_products_product_id', 'customer_products', ['product_id'])

    # ============================================================================
    # bills + bill_items + incomes
    # ============================================================================
    op.create_table(
        'bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_number', sa.String(length=32), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('customer_snapshot', sa.JSON(), nullable=True),
        sa.Column('customer_ref_id', sa.Integer(), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount', sa.Integer(), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('previous_remaining_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('stock_held', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_number', name='uq_bills_bill_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bills_seller_id', 'bills', ['seller_id'])
    op.create_index('ix_bills_customer_ref_id', 'bills', ['customer_ref_id'])
    op.create_index('ix_bills_status', 'bills', ['status'])
    op.create_index('ix_bills_created_at', 'bills', ['created_at'])
    op.create_index('ix_bills_customer_created', 'bills', ['customer_ref_id', 'created_at'])
    op.create_index('ix_bills_status_created', 'bills', ['status', 'created_at'])

    op.create_table(
        'bill_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('model', sa.String(length=128), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=False),
        sa.Column('selected_price_type', sa.String(length=32), nullable=False),
        sa.Column('selected_price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 1', name='ck_bill_items_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bill_items_bill_id', 'bill_items', ['bill_id'])
    op.create_index('ix_bill_items_product_id', 'bill_items', ['product_id'])

    op.create_table(
        'incomes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('expected_amount_cents', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('from_name', sa.String(length=255), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_incomes_bill_id', 'incomes', ['bill_id'])
    op.create_index('ix_incomes_date', 'incomes', ['date'])

    # ============================================================================
    # parcels + parcel_items
    # ============================================================================
    op.create_table(
        'parcels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tracking_number', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('cod_amount_cents', sa.Integer(), nullable=False),
        sa.Column('parcel_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('stock_released', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tracking_number', name='uq_parcels_tracking_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_parcels_status', 'parcels', ['status'])
    op.create_index('ix_parcels_created_at', 'parcels', ['created_at'])
    op.create_index('ix_parcels_status_payment', 'parcels', ['status', 'payment_status'])

    op.create_table(
        'parcel_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parcel_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['parcel_id'], ['parcels.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('parcel_id', 'product_id', name='uq_parcel_items_parcel_product'),
        sa.CheckConstraint('quantity >= 1', name='ck_parcel_items_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_parcel_items_parcel_id', 'parcel_items', ['parcel_id'])
    op.create_index('ix_parcel_items_product_id', 'parcel_items', ['product_id'])

    # ============================================================================
    # sales: commission records (source_type/source_id correlate to the writer)
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('seller_name', sa.String(length=255), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('is_customer_commission_sale', sa.Boolean(), nullable=True),
        sa.Column('source_type', sa.String(length=16), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['seller_id'], ['sellers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_seller_id', 'sales', ['seller_id'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_source', 'sales', ['source_type', 'source_id'])
    op.create_index('ix_sales_seller_customer', 'sales', ['seller_id', 'customer_id'])
    op.create_index('ix_sales_customer_product_created', 'sales', ['customer_id', 'product_id', 'created_at'])

    # ============================================================================
    # returns
    # ============================================================================
    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('tracking_id', sa.String(length=64), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 1', name='ck_returns_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_returns_product_id', 'returns', ['product_id'])
    op.create_index('ix_returns_created_at', 'returns', ['created_at'])
    op.create_index('ix_returns_tracking_id', 'returns', ['tracking_id'])

    # ============================================================================
    # purchase_batch_items
    # ============================================================================
    op.create_table(
        'purchase_batch_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['purchase_batches.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 1', name='ck_purchase_batch_items_quantity'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_purchase_batch_items_unit_price'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_batch_items_batch_id', 'purchase_batch_items', ['batch_id'])
    op.create_index('ix_purchase_batch_items_product_id', 'purchase_batch_items', ['product_id'])


def downgrade():
    for table in (
        'purchase_batch_items',
        'returns',
        'sales',
        'parcel_items',
        'parcels',
        'incomes',
        'bill_items',
        'bills',
        'customer_products',
        'customers',
        'stock_movements',
        'purchase_batches',
        'document_sequences',
        'sellers',
        'products',
    ):
        op.drop_table(table)
