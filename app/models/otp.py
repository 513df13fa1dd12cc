from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from app.core.clock import utcnow
from app.core.database import Base


class OtpCode(Base):
    """Pending one-time passcode. At most one per user or admin."""

    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    admin_id = Column(Integer, ForeignKey("admins.id", ondelete="CASCADE"), nullable=True, unique=True)
    otp_code = Column(String(12), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND admin_id IS NULL) OR "
            "(user_id IS NULL AND admin_id IS NOT NULL)",
            name="chk_otp_user_or_admin",
        ),
        Index("ix_otp_codes_expires_at", "expires_at"),
    )

    def __repr__(self):
        owner = f"user:{self.user_id}" if self.user_id is not None else f"admin:{self.admin_id}"
        return f"<OtpCode {owner}>"
