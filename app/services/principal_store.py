import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidPrincipalError, StorageFailureError
from app.models import Admin, User

logger = logging.getLogger(__name__)

Principal = Union[User, Admin]


class PrincipalKind(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


PRINCIPAL_MODELS = {
    PrincipalKind.USER: User,
    PrincipalKind.ADMIN: Admin,
}


@dataclass(frozen=True)
class PrincipalRef:
    """Kind + id of a principal. Exactly one owner column applies."""

    kind: PrincipalKind
    id: int

    @classmethod
    def of(cls, principal) -> "PrincipalRef":
        if principal is None or getattr(principal, "id", None) is None:
            raise InvalidPrincipalError()
        return cls(PrincipalKind(principal.principal_kind), principal.id)

    @classmethod
    def from_owner(cls, user_id: Optional[int], admin_id: Optional[int]) -> "PrincipalRef":
        if (user_id is None) == (admin_id is None):
            raise InvalidPrincipalError("Credential must belong to exactly one user or admin")
        if user_id is not None:
            return cls(PrincipalKind.USER, user_id)
        return cls(PrincipalKind.ADMIN, admin_id)

    @classmethod
    def parse(cls, value: str) -> "PrincipalRef":
        """Inverse of str(): "user:7" -> PrincipalRef(USER, 7)."""
        kind, _, raw_id = (value or "").partition(":")
        try:
            return cls(PrincipalKind(kind), int(raw_id))
        except ValueError:
            raise InvalidPrincipalError(f"Invalid principal reference: {value!r}")

    @property
    def owner_column(self) -> str:
        return "user_id" if self.kind is PrincipalKind.USER else "admin_id"

    @property
    def owner_values(self) -> dict:
        """Both owner columns, the unused one set to None."""
        return {
            "user_id": self.id if self.kind is PrincipalKind.USER else None,
            "admin_id": self.id if self.kind is PrincipalKind.ADMIN else None,
        }

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class PrincipalStore:
    """Lookups and updates for users and admins."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, ref: PrincipalRef) -> Optional[Principal]:
        model = PRINCIPAL_MODELS[ref.kind]
        return self.db.query(model).filter(model.id == ref.id).first()

    def find_by_phone(self, phone: str, kind: PrincipalKind = PrincipalKind.USER) -> Optional[Principal]:
        model = PRINCIPAL_MODELS[kind]
        return self.db.query(model).filter(
            model.phone == phone,
            model.is_active == True,
        ).first()

    def find_by_email(self, email: str, kind: PrincipalKind = PrincipalKind.USER) -> Optional[Principal]:
        model = PRINCIPAL_MODELS[kind]
        return self.db.query(model).filter(model.email == email).first()

    def find_by_telegram_chat_id(self, chat_id: str) -> Optional[Principal]:
        """A chat links to at most one account of either kind."""
        for model in PRINCIPAL_MODELS.values():
            principal = self.db.query(model).filter(model.telegram_chat_id == str(chat_id)).first()
            if principal is not None:
                return principal
        return None

    def update(self, principal: Principal, **fields) -> Principal:
        """Set the given attributes and commit."""
        for name, value in fields.items():
            setattr(principal, name, value)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update {principal!r}: {e}")
            raise StorageFailureError() from e
        self.db.refresh(principal)
        return principal
