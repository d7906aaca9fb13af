"""create users, profiles and profile detail tables

Revision ID: 7b1e4c2a9f30
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = '7b1e4c2a9f30'
down_revision = None
branch_labels = None
depends_on = None

USER_STATUS = sa.Enum(
    'PENDING', 'ACTIVE', 'INACTIVE', 'SUSPENDED', 'DELETED',
    name='enum_user_status',
    create_constraint=True,
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=254), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('user_type', sa.String(length=50), nullable=False),
        sa.Column('status', USER_STATUS, nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('phone_verified', sa.Boolean(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('external_id', name='uq_users_external_id'),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_external_id', 'users', ['external_id'])

    op.create_table(
        'profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('profile_type', sa.String(length=50), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('verification_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by', sa.String(length=254), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'],
            name=op.f('fk_profiles_user_id_users'), ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_profiles')),
        sa.UniqueConstraint('user_id', name='uq_profiles_user'),
    )
    op.create_index('ix_profiles_profile_type', 'profiles', ['profile_type'])

    op.create_table(
        'profile_attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.String(length=1000), nullable=True),
        sa.ForeignKeyConstraint(
            ['profile_id'], ['profiles.id'],
            name=op.f('fk_profile_attributes_profile_id_profiles'), ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_profile_attributes')),
        sa.UniqueConstraint('profile_id', 'key', name='uq_profile_attributes_profile_key'),
    )
    op.create_index('ix_profile_attributes_profile_id', 'profile_attributes', ['profile_id'])

    op.create_table(
        'profile_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(
            ['profile_id'], ['profiles.id'],
            name=op.f('fk_profile_permissions_profile_id_profiles'), ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_profile_permissions')),
        sa.UniqueConstraint('profile_id', 'name', name='uq_profile_permissions_profile_name'),
    )
    op.create_index('ix_profile_permissions_profile_id', 'profile_permissions', ['profile_id'])


def downgrade():
    op.drop_index('ix_profile_permissions_profile_id', table_name='profile_permissions')
    op.drop_table('profile_permissions')
    op.drop_index('ix_profile_attributes_profile_id', table_name='profile_attributes')
    op.drop_table('profile_attributes')
    op.drop_index('ix_profiles_profile_type', table_name='profiles')
    op.drop_table('profiles')
    op.drop_index('ix_users_external_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    USER_STATUS.drop(op.get_bind(), checkfirst=True)
