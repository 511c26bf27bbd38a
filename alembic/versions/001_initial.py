"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Canonical products
    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('caliber', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('grain_weight', sa.Integer(), nullable=True),
        sa.Column('round_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Retailers
    op.create_table(
        'retailers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('visibility_status', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # Merchant relationships
    op.create_table(
        'merchant_retailers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.String(length=36), nullable=False),
        sa.Column('retailer_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('listing_status', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.UniqueConstraint('merchant_id', 'retailer_id', name='uq_merchant_retailer')
    )

    # Source listings
    op.create_table(
        'source_products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('retailer_id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], )
    )

    # Listing -> product links
    op.create_table(
        'product_links',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('source_product_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['source_product_id'], ['source_products.id'], ),
        sa.UniqueConstraint('source_product_id', name='uq_product_link_source')
    )

    # Ingestion runs
    op.create_table(
        'affiliate_feed_runs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ignored_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # Price observations
    op.create_table(
        'prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_product_id', sa.String(length=36), nullable=False),
        sa.Column('retailer_id', sa.String(length=36), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('in_stock', sa.Boolean(), nullable=False),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('affiliate_feed_run_id', sa.String(length=36), nullable=True),
        sa.Column('observed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['source_product_id'], ['source_products.id'], ),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.ForeignKeyConstraint(['affiliate_feed_run_id'], ['affiliate_feed_runs.id'], )
    )

    op.create_index('ix_prices_source_observed', 'prices', ['source_product_id', 'observed_at'])
    op.create_index('ix_prices_observed', 'prices', ['observed_at'])
    op.create_index('ix_products_caliber', 'products', ['caliber'])


def downgrade() -> None:
    op.drop_index('ix_products_caliber', table_name='products')
    op.drop_index('ix_prices_observed', table_name='prices')
    op.drop_index('ix_prices_source_observed', table_name='prices')
    op.drop_table('prices')
    op.drop_table('affiliate_feed_runs')
    op.drop_table('product_links')
    op.drop_table('source_products')
    op.drop_table('merchant_retailers')
    op.drop_table('retailers')
    op.drop_table('products')
