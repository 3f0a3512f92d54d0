"""add_users_entitlement_columns

Revision ID: 8e4f2d61a9c3
Revises: 3c1a9e5b7d20
Create Date: 2026-10-17 09:40:02.551870

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8e4f2d61a9c3'
down_revision: Union[str, None] = '3c1a9e5b7d20'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add entitlement columns to users table."""
    from sqlalchemy import inspect

    # Check if columns already exist (idempotent migration)
    bind = op.get_bind()
    inspector = inspect(bind)
    columns = [col['name'] for col in inspector.get_columns('users')]

    if 'is_subscribed' not in columns:
        op.add_column('users', sa.Column('is_subscribed', sa.Boolean(), nullable=False, server_default=sa.false()))

    if 'subscription_tier' not in columns:
        op.add_column('users', sa.Column('subscription_tier', sa.String(), nullable=True))

    if 'subscription_expires_at' not in columns:
        op.add_column('users', sa.Column('subscription_expires_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    """Remove entitlement columns from users table."""
    op.drop_column('users', 'subscription_expires_at')
    op.drop_column('users', 'subscription_tier')
    op.drop_column('users', 'is_subscribed')
