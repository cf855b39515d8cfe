"""add support tier fields to profiles

Revision ID: b5e81f03c6d2
Revises: 4a7d2e9c1b03
Create Date: 2026-09-20 16:40:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b5e81f03c6d2'
down_revision: Union[str, Sequence[str], None] = '4a7d2e9c1b03'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('profiles', sa.Column('support_tier', sa.String(length=64), nullable=False, server_default='none'))
    op.add_column('profiles', sa.Column('payment_customer_id', sa.String(length=128), nullable=True))
    op.create_index('idx_profiles_payment_customer', 'profiles', ['payment_customer_id'])


def downgrade() -> None:
    op.drop_index('idx_profiles_payment_customer', table_name='profiles')
    op.drop_column('profiles', 'payment_customer_id')
    op.drop_column('profiles', 'support_tier')
