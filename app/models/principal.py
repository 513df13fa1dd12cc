"""Columns shared by both kinds of principal (patients and clinic staff)."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from app.core.clock import utcnow


class PrincipalMixin:
    """
    Identity columns common to users and admins.

    `principal_kind` is not a column; it tells credential records which owner
    column (user_id or admin_id) to use.
    """

    principal_kind: str = ""

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(32), nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # External messaging link (set only after secure number matching)
    telegram_chat_id = Column(String(50), nullable=True, unique=True, index=True)
    phone_verified = Column(Boolean, nullable=False, default=False)
    phone_verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
