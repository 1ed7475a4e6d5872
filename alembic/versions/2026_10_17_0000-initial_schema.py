"""initial schema

Revision ID: 2026_10_17_0000
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_17_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create user_accounts table
    # ========================================================================
    op.create_table(
        'user_accounts',
        sa.Column('user_id', sa.String(128), primary_key=True),
        sa.Column('credits', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.CheckConstraint('credits >= 0', name='ck_credits_non_negative'),
    )

    # ========================================================================
    # Create content_items table
    # ========================================================================
    op.create_table(
        'content_items',
        sa.Column('id', sa.String(128), nullable=False),
        sa.Column('content_type', sa.String(20), nullable=False),
        sa.Column('owner_id', sa.String(128), nullable=True),
        sa.Column('owner_username', sa.String(255), nullable=True),
        sa.Column('remix_price', sa.Integer(), nullable=True),
        sa.Column('prompt_text', sa.Text(), nullable=False),
        sa.Column('media_url', sa.String(2048), nullable=True),
        sa.Column('thumbnail_url', sa.String(2048), nullable=True),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('allow_remix', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id', 'content_type', name='pk_content_items'),
        sa.CheckConstraint('remix_price IS NULL OR remix_price >= 0', name='ck_remix_price'),
    )
    op.create_index(
        'idx_content_items_remixable', 'content_items', ['content_type', 'is_public', 'allow_remix']
    )
    op.create_index('idx_content_items_created_at', 'content_items', ['created_at'])

    # ========================================================================
    # Create purchase_records table
    # ========================================================================
    op.create_table(
        'purchase_records',
        sa.Column('id', sa.String(800), primary_key=True),
        sa.Column('buyer_id', sa.String(128), nullable=False),
        sa.Column('seller_id', sa.String(128), nullable=True),
        sa.Column('content_id', sa.String(128), nullable=False),
        sa.Column('content_type', sa.String(20), nullable=False),
        sa.Column('credits_paid', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('prompt_text_snapshot', sa.Text(), nullable=False),
        sa.Column('media_url', sa.String(2048), nullable=True),
        sa.Column('thumbnail_url', sa.String(2048), nullable=True),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('seller_username', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.CheckConstraint('credits_paid >= 0', name='ck_credits_paid_non_negative'),
    )
    op.create_index(
        'idx_purchase_records_buyer_created', 'purchase_records', ['buyer_id', 'created_at']
    )
    op.create_index('idx_purchase_records_seller', 'purchase_records', ['seller_id'])

    # ========================================================================
    # Create notifications table
    # ========================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('content_id', sa.String(128), nullable=True),
        sa.Column('content_type', sa.String(20), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'idx_notifications_user_created', 'notifications', ['user_id', 'created_at']
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_notifications_user_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('idx_purchase_records_seller', table_name='purchase_records')
    op.drop_index('idx_purchase_records_buyer_created', table_name='purchase_records')
    op.drop_table('purchase_records')
    op.drop_index('idx_content_items_created_at', table_name='content_items')
    op.drop_index('idx_content_items_remixable', table_name='content_items')
    op.drop_table('content_items')
    op.drop_table('user_accounts')
