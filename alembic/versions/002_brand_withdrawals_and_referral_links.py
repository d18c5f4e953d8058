"""Brand withdrawals, affiliate review and referral links

Revision ID: 002_withdrawals_links
Revises: 001_earnings
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '002_withdrawals_links'
down_revision = '001_earnings'
branch_labels = None
depends_on = None


def upgrade():
    """Track payouts per brand, add affiliate review fields and platform referral links"""

    # ====================
    # BRAND WITHDRAWALS
    # ====================
    op.add_column(
        'brands',
        sa.Column('total_withdrawn', sa.Numeric(14, 2), server_default='0', nullable=False),
    )
    op.add_column('payout_records', sa.Column('brand_allocations', sa.JSON, nullable=True))

    # ====================
    # AFFILIATE REVIEW
    # ====================
    op.add_column('affiliates', sa.Column('reviewed_by_email', sa.String(255), nullable=True))
    op.add_column('affiliates', sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('affiliates', sa.Column('status_reason', sa.Text, nullable=True))
    op.add_column(
        'affiliates',
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_unique_constraint('uq_affiliate_brand_user', 'affiliates', ['brand_id', 'user_id'])

    # ====================
    # PLATFORM REFERRAL LINKS
    # ====================
    op.create_table(
        'platform_referral_links',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_email', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_platform_referral_links_owner_email', 'platform_referral_links', ['owner_email'])
    op.create_index('ix_platform_referral_links_code', 'platform_referral_links', ['code'], unique=True)


def downgrade():
    op.drop_table('platform_referral_links')
    op.drop_constraint('uq_affiliate_brand_user', 'affiliates', type_='unique')
    for column in ('updated_at', 'status_reason', 'reviewed_at', 'reviewed_by_email'):
        op.drop_column('affiliates', column)
    op.drop_column('payout_records', 'brand_allocations')
    op.drop_column('brands', 'total_withdrawn')
