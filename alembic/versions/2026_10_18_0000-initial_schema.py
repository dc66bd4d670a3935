"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create networks, tokens, settings and payments tables."""

    # ========================================================================
    # Create networks table
    # ========================================================================
    op.create_table(
        'networks',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('ssid', sa.String(64), nullable=False),
        sa.Column('token_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('token_duration', sa.String(16), nullable=False, server_default='12'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.UniqueConstraint('name', name='uq_networks_name'),
        sa.UniqueConstraint('ssid', name='uq_networks_ssid'),
        sa.CheckConstraint('token_price >= 0', name='ck_networks_price_non_negative'),
    )
    op.create_index('idx_networks_is_active', 'networks', ['is_active'])

    # ========================================================================
    # Create tokens table
    # ========================================================================
    op.create_table(
        'tokens',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('code', sa.String(8), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=False),
        sa.Column('network_id', UUID(as_uuid=True), sa.ForeignKey('networks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('network_name', sa.String(100), nullable=True),
        sa.Column('duration_hours', sa.Numeric(8, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sms_delivered', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('sms_error', sa.Text(), nullable=True),

        # Constraints
        sa.UniqueConstraint('code', name='uq_tokens_code'),
        sa.CheckConstraint('expires_at > created_at', name='ck_tokens_expiry_after_creation'),
        sa.CheckConstraint('amount >= 0', name='ck_tokens_amount_non_negative'),
    )
    op.create_index('idx_tokens_expires_at', 'tokens', ['expires_at'])
    op.create_index('idx_tokens_created_at', 'tokens', ['created_at'])
    op.create_index('idx_tokens_network_id', 'tokens', ['network_id'])

    # ========================================================================
    # Create settings table
    # ========================================================================
    op.create_table(
        'settings',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    # ========================================================================
    # Create payments table
    # ========================================================================
    op.create_table(
        'payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('reference', sa.String(32), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('provider_payment_id', sa.String(255), nullable=True),
        sa.Column('poll_url', sa.String(500), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=False),
        sa.Column('network_id', UUID(as_uuid=True), sa.ForeignKey('networks.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('network_name', sa.String(100), nullable=True),
        sa.Column('duration_hours', sa.Numeric(8, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('token_id', UUID(as_uuid=True), sa.ForeignKey('tokens.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.UniqueConstraint('reference', name='uq_payments_reference'),
        sa.CheckConstraint("status IN ('pending', 'paid', 'failed')", name='ck_payments_status'),
    )
    op.create_index(
        'idx_payments_provider_payment_id',
        'payments',
        ['provider_payment_id'],
        postgresql_where=sa.text('provider_payment_id IS NOT NULL'),
    )
    op.create_index('idx_payments_status', 'payments', ['status'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('payments')
    op.drop_table('settings')
    op.drop_table('tokens')
    op.drop_table('networks')
