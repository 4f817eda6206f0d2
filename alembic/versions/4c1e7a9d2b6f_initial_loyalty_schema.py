"""initial_loyalty_schema

Revision ID: 4c1e7a9d2b6f
Revises:
Create Date: 2026-10-17 09:12:44.201377

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4c1e7a9d2b6f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - Create offers, progress, wallet pass and session tables."""

    # 1. Create offers table
    op.create_table(
        'offers',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('public_id', sa.String(length=64), nullable=False),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('branch', sa.String(length=255), nullable=True, server_default=sa.text("'All Branches'")),
        sa.Column('stamps_required', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        sa.Column('barcode_preference', sa.String(length=20), nullable=True, server_default=sa.text("'QR_CODE'")),
        sa.Column('loyalty_tiers', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('background_color', sa.String(length=7), nullable=True),
        sa.Column('customers', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('redeemed', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('public_id', name='offers_public_id_key'),
        sa.CheckConstraint('stamps_required >= 1', name='check_stamps_required_positive'),
        sa.CheckConstraint(
            "status IN ('active', 'paused', 'expired')",
            name='check_offer_status'
        ),
        sa.CheckConstraint(
            "barcode_preference IN ('QR_CODE', 'PDF417')",
            name='check_barcode_preference'
        )
    )

    op.create_index('idx_offers_business', 'offers', ['business_id', 'created_at'])

    # 2. Create customer_progress table (one card per customer per offer)
    op.create_table(
        'customer_progress',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('offer_id', sa.String(length=64), nullable=False),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('current_stamps', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_stamps', sa.Integer(), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.text('FALSE')),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('rewards_claimed', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_scan_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('first_scan_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('total_scans', sa.Integer(), nullable=False, server_default=sa.text('0')),

        # Last redemption audit
        sa.Column('last_claimed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_claimed_by', sa.String(length=64), nullable=True),
        sa.Column('last_claim_notes', sa.Text(), nullable=True),

        sa.Column('scheduled_expiration_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.public_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('customer_id', 'offer_id', name='unique_customer_offer_progress'),
        sa.CheckConstraint('max_stamps >= 1', name='check_max_stamps_positive'),
        sa.CheckConstraint(
            'current_stamps >= 0 AND current_stamps <= max_stamps',
            name='check_current_stamps_range'
        ),
        sa.CheckConstraint('rewards_claimed >= 0', name='check_rewards_claimed_non_negative'),
        sa.CheckConstraint(
            'is_completed = (current_stamps = max_stamps)',
            name='check_completed_matches_stamps'
        )
    )

    op.create_index('idx_progress_offer', 'customer_progress', ['offer_id'])
    op.create_index('idx_progress_business', 'customer_progress', ['business_id'])

    # 3. Create wallet_passes table (registry of passes a customer holds)
    op.create_table(
        'wallet_passes',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('progress_id', sa.BigInteger(), nullable=True),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('offer_id', sa.String(length=64), nullable=False),
        sa.Column('wallet_type', sa.String(length=10), nullable=False),
        sa.Column('wallet_serial', sa.String(length=255), nullable=True),
        sa.Column('wallet_object_id', sa.String(length=255), nullable=True),
        sa.Column('authentication_token', sa.String(length=64), nullable=True),
        sa.Column('pass_status', sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        sa.Column('last_updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_updated_tag', sa.String(length=32), nullable=True),
        sa.Column('notification_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_notification_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            'notification_history',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column('pass_data', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb")),
        sa.Column('scheduled_expiration_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['progress_id'], ['customer_progress.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('customer_id', 'offer_id', 'wallet_type', name='unique_customer_offer_wallet'),
        sa.CheckConstraint("wallet_type IN ('apple', 'google')", name='check_wallet_type'),
        sa.CheckConstraint(
            "pass_status IN ('active', 'expired', 'revoked', 'deleted')",
            name='check_pass_status'
        )
    )

    # Partial index for the dispatcher's "passes this customer holds" lookup
    op.create_index(
        'idx_wallet_passes_active',
        'wallet_passes',
        ['customer_id', 'offer_id'],
        postgresql_where=sa.text("pass_status = 'active'")
    )
    op.create_index('idx_wallet_passes_serial', 'wallet_passes', ['wallet_serial'])

    # 4. Create apple_devices and apple_device_registrations (PassKit web service)
    op.create_table(
        'apple_devices',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('device_library_identifier', sa.String(length=255), nullable=False),
        sa.Column('push_token', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_library_identifier', name='apple_devices_library_identifier_key')
    )

    op.create_index('idx_apple_devices_push_token', 'apple_devices', ['push_token'])

    op.create_table(
        'apple_device_registrations',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('device_id', sa.BigInteger(), nullable=False),
        sa.Column('pass_type_identifier', sa.String(length=255), nullable=False),
        sa.Column('serial_number', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['device_id'], ['apple_devices.id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'device_id', 'pass_type_identifier', 'serial_number',
            name='unique_device_pass_registration'
        )
    )

    op.create_index('idx_apple_registrations_serial', 'apple_device_registrations', ['serial_number'])

    # 5. Create business_sessions table (scanner authentication)
    op.create_table(
        'business_sessions',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('session_token', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('TRUE')),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_token', name='business_sessions_token_key')
    )

    op.create_index('idx_business_sessions_lookup', 'business_sessions', ['business_id', 'session_token'])


def downgrade() -> None:
    """Downgrade schema - Drop all loyalty tables."""
    op.drop_index('idx_business_sessions_lookup', table_name='business_sessions')
    op.drop_table('business_sessions')

    op.drop_index('idx_apple_registrations_serial', table_name='apple_device_registrations')
    op.drop_table('apple_device_registrations')

    op.drop_index('idx_apple_devices_push_token', table_name='apple_devices')
    op.drop_table('apple_devices')

    op.drop_index('idx_wallet_passes_serial', table_name='wallet_passes')
    op.drop_index('idx_wallet_passes_active', table_name='wallet_passes')
    op.drop_table('wallet_passes')

    op.drop_index('idx_progress_business', table_name='customer_progress')
    op.drop_index('idx_progress_offer', table_name='customer_progress')
    op.drop_table('customer_progress')

    op.drop_index('idx_offers_business', table_name='offers')
    op.drop_table('offers')
