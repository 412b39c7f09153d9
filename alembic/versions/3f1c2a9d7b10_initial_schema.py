"""Initial schema: venues, users, orders, payouts, products, integrations

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3f1c2a9d7b10'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'venues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_venues_slug', 'venues', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'USER', name='userrole'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'user_venues',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'venue_id'),
    )

    op.create_table(
        'shopify_stores',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('store_domain', sa.String(), nullable=False),
        sa.Column('access_token', sa.String(), nullable=False),
        sa.Column('nickname', sa.String(), nullable=True),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shopify_stores_store_domain', 'shopify_stores', ['store_domain'], unique=True)
    op.create_index('ix_shopify_stores_venue_id', 'shopify_stores', ['venue_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('external_id', sa.String(), nullable=True),
        sa.Column('order_number', sa.String(), nullable=False),
        sa.Column('shopify_order_number', sa.String(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('financial_status', sa.String(), nullable=True),
        sa.Column('fulfillment_status', sa.String(), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('original_amount', sa.Float(), nullable=True),
        sa.Column('exchange_rate', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=False),
        sa.Column('shipping_city', sa.String(), nullable=True),
        sa.Column('shipping_country', sa.String(), nullable=True),
        sa.Column('tags', sa.String(), nullable=False),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('shopify_store_id', sa.Integer(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['shopify_store_id'], ['shopify_stores.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id'),
        sa.UniqueConstraint('order_number'),
    )
    op.create_index('ix_orders_processed_at', 'orders', ['processed_at'])
    op.create_index('ix_orders_venue_id', 'orders', ['venue_id'])

    op.create_table(
        'order_line_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('shopify_product_id', sa.String(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_line_items_order_id', 'order_line_items', ['order_id'])

    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('from_currency', sa.String(length=3), nullable=False),
        sa.Column('to_currency', sa.String(length=3), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('from_currency', 'to_currency', name='uq_exchange_rates_pair'),
    )

    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('account', sa.String(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=False),
        sa.Column('notes', sa.String(), nullable=True),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('mercury_transaction_id', sa.String(), nullable=True),
        sa.Column('synced_to_mercury', sa.Boolean(), nullable=False),
        sa.Column('synced_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mercury_transaction_id'),
    )
    op.create_index('ix_payouts_processed_at', 'payouts', ['processed_at'])
    op.create_index('ix_payouts_venue_id', 'payouts', ['venue_id'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('shopify_product_id', sa.String(), nullable=True),
        sa.Column('local_price', sa.Float(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', 'venue_id', name='uq_products_sku_venue'),
    )
    op.create_index('ix_products_shopify_product_id', 'products', ['shopify_product_id'])
    op.create_index('ix_products_venue_id', 'products', ['venue_id'])

    op.create_table(
        'mercury_settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('api_key_encrypted', sa.String(), nullable=False),
        sa.Column('account_id', sa.String(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'shopify_import_queue',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shopify_order_id', sa.String(), nullable=False),
        sa.Column('store_domain', sa.String(), nullable=False),
        sa.Column('order_number', sa.String(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('financial_status', sa.String(), nullable=True),
        sa.Column('order_data', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shopify_order_id'),
    )
    op.create_index('ix_shopify_import_queue_store_domain', 'shopify_import_queue', ['store_domain'])


def downgrade() -> None:
    op.drop_table('shopify_import_queue')
    op.drop_table('mercury_settings')
    op.drop_table('products')
    op.drop_table('payouts')
    op.drop_table('exchange_rates')
    op.drop_table('order_line_items')
    op.drop_table('orders')
    op.drop_table('shopify_stores')
    op.drop_table('user_venues')
    op.drop_table('users')
    op.drop_table('venues')
    sa.Enum(name='userrole').drop(op.get_bind(), checkfirst=True)
