"""Create earnings engine schema

Revision ID: 001_earnings
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_earnings'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True):
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False)
        )
    return columns


def upgrade():
    """Create users, brands, commissions, affiliates, orders, referrals, payouts and audit tables"""

    # ====================
    # USERS
    # ====================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('role', sa.String(30), server_default='USER', nullable=False),
        sa.Column('referred_by_email', sa.String(255), nullable=True),
        sa.Column('total_earnings', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('payout_locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referred_by_email', 'users', ['referred_by_email'])

    # ====================
    # BRANDS & ACCESS
    # ====================
    op.create_table(
        'brands',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('genre_id', UUID(as_uuid=True), nullable=True),
        sa.Column('total_sales', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_earnings', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('is_approved', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('is_hidden', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('is_deleted', sa.Boolean, server_default=sa.false(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_brands_slug', 'brands', ['slug'], unique=True)
    op.create_index('ix_brands_genre_id', 'brands', ['genre_id'])

    op.create_table(
        'brand_access',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('brand_id', UUID(as_uuid=True), sa.ForeignKey('brands.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('brand_id', 'user_email', name='uq_brand_access_user'),
    )
    op.create_index('ix_brand_access_brand_id', 'brand_access', ['brand_id'])
    op.create_index('ix_brand_access_user_email', 'brand_access', ['user_email'])
    # At most one owner per brand
    op.create_index(
        'uq_brand_access_single_owner',
        'brand_access',
        ['brand_id'],
        unique=True,
        postgresql_where=sa.text("role = 'OWNER'"),
    )

    # ====================
    # COMMISSIONS
    # ====================
    op.create_table(
        'brand_commissions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('brand_id', UUID(as_uuid=True), sa.ForeignKey('brands.id', ondelete='CASCADE'), nullable=False),
        sa.Column('base_rate', sa.Numeric(6, 4), server_default='0.5', nullable=False),
        sa.Column('min_rate', sa.Numeric(6, 4), nullable=True),
        sa.Column('max_rate', sa.Numeric(6, 4), nullable=True),
        sa.Column('is_automatic', sa.Boolean, server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('base_rate >= 0 AND base_rate <= 1', name='ck_brand_commission_base_rate'),
    )
    op.create_index('ix_brand_commissions_brand_id', 'brand_commissions', ['brand_id'], unique=True)

    op.create_table(
        'commission_tiers',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column(
            'brand_commission_id',
            UUID(as_uuid=True),
            sa.ForeignKey('brand_commissions.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('min_sales', sa.Numeric(14, 2), nullable=False),
        sa.Column('rate', sa.Numeric(6, 4), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('brand_commission_id', 'min_sales', name='uq_commission_tier_threshold'),
        sa.CheckConstraint('rate >= 0 AND rate <= 1', name='ck_commission_tier_rate'),
    )
    op.create_index('ix_commission_tiers_brand_commission_id', 'commission_tiers', ['brand_commission_id'])

    op.create_table(
        'genre_commissions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('genre_id', UUID(as_uuid=True), nullable=False),
        sa.Column('base_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_genre_commissions_genre_id', 'genre_commissions', ['genre_id'], unique=True)

    # ====================
    # AFFILIATES
    # ====================
    op.create_table(
        'affiliates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('brand_id', UUID(as_uuid=True), sa.ForeignKey('brands.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('referral_code', sa.String(50), nullable=False),
        sa.Column('commission_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('click_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('total_sales', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_due', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('total_paid', sa.Numeric(14, 2), server_default='0', nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('brand_id', 'referral_code', name='uq_affiliate_brand_code'),
    )
    op.create_index('ix_affiliates_brand_id', 'affiliates', ['brand_id'])
    op.create_index('ix_affiliates_user_id', 'affiliates', ['user_id'])
    op.create_index('ix_affiliates_referral_code', 'affiliates', ['referral_code'])

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('external_order_id', sa.String(100), nullable=False),
        sa.Column('brand_id', UUID(as_uuid=True), sa.ForeignKey('brands.id'), nullable=False),
        sa.Column('customer_ref', sa.String(255), nullable=True),
        sa.Column('earning_account_email', sa.String(255), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('brand_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('brand_earnings', sa.Numeric(14, 2), nullable=False),
        sa.Column('platform_share', sa.Numeric(14, 2), nullable=False),
        sa.Column('affiliate_id', UUID(as_uuid=True), sa.ForeignKey('affiliates.id'), nullable=True),
        sa.Column('affiliate_due', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('referrer_email', sa.String(255), nullable=True),
        sa.Column('referral_earnings', sa.Numeric(14, 2), server_default='0', nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint('platform_share + brand_earnings = total_amount', name='ck_orders_conservation'),
    )
    op.create_index('ix_orders_external_order_id', 'orders', ['external_order_id'], unique=True)
    op.create_index('ix_orders_brand_id', 'orders', ['brand_id'])
    op.create_index('ix_orders_affiliate_id', 'orders', ['affiliate_id'])
    op.create_index('ix_orders_referrer_email', 'orders', ['referrer_email'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    # ====================
    # PLATFORM REFERRALS
    # ====================
    op.create_table(
        'platform_referrals',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('referrer_email', sa.String(255), nullable=False),
        sa.Column('referred_email', sa.String(255), nullable=False),
        sa.Column('referral_link_id', sa.String(50), nullable=True),
        sa.Column('earnings', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        *_timestamps(updated=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_platform_referrals_referrer_email', 'platform_referrals', ['referrer_email'])
    op.create_index('ix_platform_referrals_referred_email', 'platform_referrals', ['referred_email'], unique=True)

    # ====================
    # PAYOUTS
    # ====================
    op.create_table(
        'payment_methods',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('account_ref', sa.String(100), nullable=False),
        sa.Column('is_default', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('user_id', 'provider', name='uq_payment_method_provider'),
    )
    op.create_index('ix_payment_methods_user_id', 'payment_methods', ['user_id'])

    op.create_table(
        'payout_records',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('brand_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('referral_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('affiliate_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('affiliate_allocations', sa.JSON, nullable=True),
        sa.Column('status', sa.String(20), server_default='PROCESSING', nullable=False),
        sa.Column('idempotency_key', sa.String(64), nullable=False),
        sa.Column('provider', sa.String(30), nullable=False),
        sa.Column('destination', sa.String(100), nullable=False),
        sa.Column('transfer_id', sa.String(100), nullable=True),
        sa.Column('failure_reason', sa.Text, nullable=True),
        *_timestamps(updated=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('idempotency_key', name='uq_payout_records_idempotency_key'),
    )
    op.create_index('ix_payout_records_user_id', 'payout_records', ['user_id'])
    op.create_index('ix_payout_records_status', 'payout_records', ['status'])

    # ====================
    # AUDIT
    # ====================
    op.create_table(
        'activity_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('brand_id', UUID(as_uuid=True), nullable=True),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('payload', sa.JSON, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_activity_logs_actor_email', 'activity_logs', ['actor_email'])
    op.create_index('ix_activity_logs_event_type', 'activity_logs', ['event_type'])
    op.create_index('ix_activity_logs_brand_id', 'activity_logs', ['brand_id'])
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])


def downgrade():
    """Drop all earnings engine tables"""
    for table in (
        'activity_logs',
        'payout_records',
        'payment_methods',
        'platform_referrals',
        'orders',
        'affiliates',
        'genre_commissions',
        'commission_tiers',
        'brand_commissions',
        'brand_access',
        'brands',
        'users',
    ):
        op.drop_table(table)
