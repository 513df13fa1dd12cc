from sqlalchemy import Column, String, CheckConstraint

from app.core.database import Base
from app.models.principal import PrincipalMixin


class Admin(PrincipalMixin, Base):
    """Clinic staff account (doctor or secretary)."""

    __tablename__ = "admins"

    principal_kind = "admin"

    role = Column(String(50), nullable=False, default="doctor")

    __table_args__ = (
        CheckConstraint("role IN ('doctor', 'secretary')", name="chk_admin_role"),
    )

    def __repr__(self):
        return f"<Admin {self.id} {self.email or self.phone}>"
