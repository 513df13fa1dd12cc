"""Initial schema for the clinic identity core

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OWNER_CHECK = (
    "(user_id IS NOT NULL AND admin_id IS NULL) OR "
    "(user_id IS NULL AND admin_id IS NOT NULL)"
)


def _principal_columns() -> list:
    return [
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True, unique=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('telegram_chat_id', sa.String(50), nullable=True),
        sa.Column('phone_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('phone_verified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _owner_columns() -> list:
    return [
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True, unique=True),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admins.id', ondelete='CASCADE'), nullable=True, unique=True),
    ]


def upgrade() -> None:
    # Principals
    op.create_table(
        'users',
        *_principal_columns(),
        sa.Column('role', sa.String(50), nullable=False, server_default='user'),
    )
    op.create_index('ix_users_phone', 'users', ['phone'])
    op.create_index('ix_users_telegram_chat_id', 'users', ['telegram_chat_id'])
    op.create_index('ix_users_phone_telegram', 'users', ['phone', 'telegram_chat_id'])

    op.create_table(
        'admins',
        *_principal_columns(),
        sa.Column('role', sa.String(50), nullable=False, server_default='doctor'),
        sa.CheckConstraint("role IN ('doctor', 'secretary')", name='chk_admin_role'),
    )
    op.create_index('ix_admins_phone', 'admins', ['phone'])
    op.create_index('ix_admins_telegram_chat_id', 'admins', ['telegram_chat_id'])

    # Refresh tokens: one row per principal
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        *_owner_columns(),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(OWNER_CHECK, name='chk_refresh_token_user_or_admin'),
    )
    op.create_index('ix_refresh_tokens_expires_at', 'refresh_tokens', ['expires_at'])

    # Revoked access tokens
    op.create_table(
        'blacklisted_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_blacklisted_tokens_expires_at', 'blacklisted_tokens', ['expires_at'])

    # One-time passcodes: one row per principal
    op.create_table(
        'otp_codes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        *_owner_columns(),
        sa.Column('otp_code', sa.String(12), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(OWNER_CHECK, name='chk_otp_user_or_admin'),
    )
    op.create_index('ix_otp_codes_expires_at', 'otp_codes', ['expires_at'])


def downgrade() -> None:
    op.drop_index('ix_otp_codes_expires_at', table_name='otp_codes')
    op.drop_table('otp_codes')
    op.drop_index('ix_blacklisted_tokens_expires_at', table_name='blacklisted_tokens')
    op.drop_table('blacklisted_tokens')
    op.drop_index('ix_refresh_tokens_expires_at', table_name='refresh_tokens')
    op.drop_table('refresh_tokens')
    op.drop_index('ix_admins_telegram_chat_id', table_name='admins')
    op.drop_index('ix_admins_phone', table_name='admins')
    op.drop_table('admins')
    op.drop_index('ix_users_phone_telegram', table_name='users')
    op.drop_index('ix_users_telegram_chat_id', table_name='users')
    op.drop_index('ix_users_phone', table_name='users')
    op.drop_table('users')
