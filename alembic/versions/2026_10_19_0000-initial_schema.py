"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create access ledger and unlock token tables."""

    # ========================================================================
    # Create users table (access ledger)
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('access_expiry', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('access_count', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_access_unlock', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tools_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_used', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('access_count >= 0', name='ck_users_access_count_non_negative'),
        sa.CheckConstraint('tools_used >= 0', name='ck_users_tools_used_non_negative'),
    )

    op.create_index('idx_users_access_expiry', 'users', ['access_expiry'])

    # ========================================================================
    # Create unlock_tokens table
    # ========================================================================
    op.create_table(
        'unlock_tokens',
        sa.Column('token', sa.String(255), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint(
            '(used = false AND used_at IS NULL) OR (used = true AND used_at IS NOT NULL)',
            name='ck_unlock_tokens_used_at_consistency',
        ),
    )

    op.create_index('idx_unlock_tokens_user_id', 'unlock_tokens', ['user_id'])
    op.create_index('idx_unlock_tokens_expires_at', 'unlock_tokens', ['expires_at'])


def downgrade() -> None:
    """Drop access ledger and unlock token tables."""
    op.drop_index('idx_unlock_tokens_expires_at', table_name='unlock_tokens')
    op.drop_index('idx_unlock_tokens_user_id', table_name='unlock_tokens')
    op.drop_table('unlock_tokens')

    op.drop_index('idx_users_access_expiry', table_name='users')
    op.drop_table('users')
