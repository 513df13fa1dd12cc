from sqlalchemy import Column, String, Index

from app.core.database import Base
from app.models.principal import PrincipalMixin


class User(PrincipalMixin, Base):
    __tablename__ = "users"

    principal_kind = "user"

    role = Column(String(50), nullable=False, default="user")

    __table_args__ = (
        Index("ix_users_phone_telegram", "phone", "telegram_chat_id"),
    )

    def __repr__(self):
        return f"<User {self.id} {self.email or self.phone}>"
