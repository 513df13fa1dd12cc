"""Make telegram_chat_id unique on users and admins

Revision ID: 002_unique_telegram_chat_id
Revises: 001_initial_schema
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '002_unique_telegram_chat_id'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # One Telegram chat per account; NULLs stay allowed
    for table in ('users', 'admins'):
        op.drop_index(f'ix_{table}_telegram_chat_id', table_name=table)
        op.create_index(f'ix_{table}_telegram_chat_id', table, ['telegram_chat_id'], unique=True)


def downgrade() -> None:
    for table in ('users', 'admins'):
        op.drop_index(f'ix_{table}_telegram_chat_id', table_name=table)
        op.create_index(f'ix_{table}_telegram_chat_id', table, ['telegram_chat_id'])
