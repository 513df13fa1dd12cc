"""Refresh tokens and the access-token blacklist."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from app.core.clock import utcnow
from app.core.database import Base


class BlacklistedToken(Base):
    """Access tokens revoked before their natural expiry (logout)."""

    __tablename__ = "blacklisted_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_hash = Column(String(64), unique=True, nullable=False)  # SHA-256 of the access token
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Index for cleanup of expired tokens
    __table_args__ = (
        Index("ix_blacklisted_tokens_expires_at", "expires_at"),
    )


class RefreshToken(Base):
    """The single live refresh token of a user or admin."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_hash = Column(String(64), unique=True, nullable=False)  # SHA-256 hash
    # Unique per owner: issuing a new token replaces the row in place
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    admin_id = Column(Integer, ForeignKey("admins.id", ondelete="CASCADE"), nullable=True, unique=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND admin_id IS NULL) OR "
            "(user_id IS NULL AND admin_id IS NOT NULL)",
            name="chk_refresh_token_user_or_admin",
        ),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )
