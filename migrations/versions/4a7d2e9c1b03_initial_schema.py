"""initial schema: users, profiles, nuclei, memberships, activity logs

Revision ID: 4a7d2e9c1b03
Revises:
Create Date: 2026-09-02 10:05:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4a7d2e9c1b03'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='citizen'),
        sa.Column('census_registered_at', sa.DateTime(), nullable=True),
        sa.Column('region', sa.String(length=128), nullable=True),
        sa.Column('locality', sa.String(length=128), nullable=True),
        sa.Column('zip_code', sa.String(length=16), nullable=True),
        sa.Column('district_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('idx_profiles_role', 'profiles', ['role'])

    op.create_table(
        'nuclei',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=False),
        sa.Column('region', sa.String(length=128), nullable=True),
        sa.Column('lat', sa.Float(), nullable=True),
        sa.Column('lng', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['profiles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_nuclei_city', 'nuclei', ['city'])
    op.create_index('idx_nuclei_is_active', 'nuclei', ['is_active'])

    op.create_table(
        'nucleus_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('nucleus_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['nucleus_id'], ['nuclei.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'nucleus_id', name='uq_nucleus_members_user_nucleus'),
    )
    op.create_index('idx_nucleus_members_nucleus', 'nucleus_members', ['nucleus_id'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=128), nullable=True),
        sa.Column('details_json', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=False, server_default='unknown'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('idx_activity_logs_action', 'activity_logs', ['action'])


def downgrade() -> None:
    op.drop_index('idx_activity_logs_action', table_name='activity_logs')
    op.drop_index('idx_activity_logs_created_at', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_index('idx_nucleus_members_nucleus', table_name='nucleus_members')
    op.drop_table('nucleus_members')
    op.drop_index('idx_nuclei_is_active', table_name='nuclei')
    op.drop_index('idx_nuclei_city', table_name='nuclei')
    op.drop_table('nuclei')
    op.drop_index('idx_profiles_role', table_name='profiles')
    op.drop_table('profiles')
    op.drop_table('users')
