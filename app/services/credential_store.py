"""
Persistence for refresh tokens, blacklisted access tokens and OTP records.

Pure storage: no expiry policy beyond the cut-off instants callers pass in.
Token strings are stored as SHA-256 digests. "One live row per principal" is
enforced by a unique owner column and an INSERT ... ON CONFLICT upsert, so
two concurrent issuances cannot leave two live rows behind.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageFailureError
from app.core.security import hash_token
from app.models import BlacklistedToken, OtpCode, RefreshToken
from app.services.principal_store import PrincipalRef

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CredentialStore:
    """Create / find / delete credential records, plus expiry sweeps."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _storage(self, action: str, commit: bool = True):
        try:
            yield
            if commit:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Credential store failed to {action}: {e}")
            raise StorageFailureError() from e

    def _dialect_insert(self):
        bind = self.db.get_bind()
        return _UPSERT_DIALECTS.get(bind.dialect.name)

    def _replace_for_owner(self, model, owner: PrincipalRef, values: dict) -> None:
        """Insert a row for the owner, replacing any existing one."""
        insert = self._dialect_insert()
        if insert is not None:
            stmt = insert(model).values(**owner.owner_values, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[owner.owner_column],
                set_=values,
            )
            self.db.execute(stmt)
            return

        # Dialects without ON CONFLICT: delete + insert in one transaction
        self.db.query(model).filter_by(**{owner.owner_column: owner.id}).delete(
            synchronize_session=False
        )
        self.db.add(model(**owner.owner_values, **values))

    # Refresh tokens

    def store_refresh_token(self, owner: PrincipalRef, token: str, expires_at: datetime) -> None:
        with self._storage("store refresh token"):
            self._replace_for_owner(
                RefreshToken,
                owner,
                {"token_hash": hash_token(token), "expires_at": expires_at},
            )

    def find_refresh_token(self, token: str) -> Optional[RefreshToken]:
        with self._storage("find refresh token", commit=False):
            return self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == hash_token(token)
            ).first()

    def find_refresh_token_for(self, owner: PrincipalRef) -> Optional[RefreshToken]:
        with self._storage("find refresh token", commit=False):
            return self.db.query(RefreshToken).filter_by(
                **{owner.owner_column: owner.id}
            ).first()

    def delete_refresh_token(self, token: str) -> bool:
        with self._storage("delete refresh token"):
            deleted = self.db.query(RefreshToken).filter(
                RefreshToken.token_hash == hash_token(token)
            ).delete(synchronize_session=False)
        return deleted > 0

    def delete_refresh_tokens_for(self, owner: PrincipalRef) -> int:
        with self._storage("delete refresh tokens"):
            deleted = self.db.query(RefreshToken).filter_by(
                **{owner.owner_column: owner.id}
            ).delete(synchronize_session=False)
        return deleted

    def cleanup_expired_refresh_tokens(self, now: datetime) -> int:
        with self._storage("clean up refresh tokens"):
            deleted = self.db.query(RefreshToken).filter(
                RefreshToken.expires_at < now
            ).delete(synchronize_session=False)
        return deleted

    # Blacklist

    def blacklist_token(self, token: str, expires_at: datetime, now: datetime) -> bool:
        """Add a token to the blacklist. Returns False if it was already there."""
        values = {
            "token_hash": hash_token(token),
            "expires_at": expires_at,
            "created_at": now,
        }
        insert = self._dialect_insert()
        with self._storage("blacklist token"):
            if insert is not None:
                stmt = insert(BlacklistedToken).values(**values).on_conflict_do_nothing(
                    index_elements=["token_hash"]
                )
                return self.db.execute(stmt).rowcount > 0

            exists = self.db.query(BlacklistedToken.id).filter(
                BlacklistedToken.token_hash == values["token_hash"]
            ).first()
            if exists:
                return False
            self.db.add(BlacklistedToken(**values))
            return True

    def is_token_blacklisted(self, token: str) -> bool:
        with self._storage("check blacklist", commit=False):
            return self.db.query(BlacklistedToken.id).filter(
                BlacklistedToken.token_hash == hash_token(token)
            ).first() is not None

    def cleanup_expired_blacklisted_tokens(self, now: datetime, keep_created_after: datetime) -> int:
        """Delete expired entries, sparing those blacklisted after `keep_created_after`."""
        with self._storage("clean up blacklist"):
            deleted = self.db.query(BlacklistedToken).filter(
                BlacklistedToken.expires_at < now,
                BlacklistedToken.created_at < keep_created_after,
            ).delete(synchronize_session=False)
        return deleted

    # One-time passcodes

    def store_otp(self, owner: PrincipalRef, code: str, expires_at: datetime, now: datetime) -> None:
        with self._storage("store OTP"):
            self._replace_for_owner(
                OtpCode,
                owner,
                {"otp_code": code, "expires_at": expires_at, "created_at": now},
            )

    def find_otp(self, owner: PrincipalRef) -> Optional[OtpCode]:
        with self._storage("find OTP", commit=False):
            return self.db.query(OtpCode).filter_by(**{owner.owner_column: owner.id}).first()

    def delete_otp(self, otp: OtpCode) -> bool:
        """
        Delete this exact code. Returns False if it was already consumed or
        replaced by a newer code in the meantime.
        """
        with self._storage("delete OTP"):
            deleted = self.db.query(OtpCode).filter(
                OtpCode.id == otp.id,
                OtpCode.otp_code == otp.otp_code,
            ).delete(synchronize_session=False)
        return deleted > 0

    def delete_otp_for(self, owner: PrincipalRef) -> int:
        with self._storage("delete OTP"):
            deleted = self.db.query(OtpCode).filter_by(
                **{owner.owner_column: owner.id}
            ).delete(synchronize_session=False)
        return deleted

    def cleanup_expired_otps(self, now: datetime) -> int:
        with self._storage("clean up OTPs"):
            deleted = self.db.query(OtpCode).filter(
                OtpCode.expires_at < now
            ).delete(synchronize_session=False)
        return deleted
