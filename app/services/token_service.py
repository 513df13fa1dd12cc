import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.exceptions import (
    InvalidTokenError,
    PrincipalNotFoundError,
    TokenExpiredError,
    TokenNotFoundError,
)
from app.core.security import (
    create_access_token,
    decode_token,
    get_token_expiry,
    new_opaque_token,
)
from app.services.credential_store import CredentialStore
from app.services.principal_store import Principal, PrincipalRef, PrincipalStore

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    token_type: str = "bearer"


class SessionTokenService:
    """
    Issues, refreshes, verifies and revokes session credentials.

    Access tokens are stateless signed JWTs; refresh tokens are opaque strings
    stored (hashed) in the credential store, one per principal.
    """

    def __init__(
        self,
        store: CredentialStore,
        principals: PrincipalStore,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
        blacklist_retention: Optional[timedelta] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.principals = principals
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.blacklist_retention = blacklist_retention or timedelta(
            minutes=settings.BLACKLIST_RETENTION_MINUTES
        )
        self.clock = clock

    def _access_token_for(self, principal: Principal) -> str:
        ref = PrincipalRef.of(principal)
        token, _ = create_access_token(
            {"sub": str(ref.id), "kind": ref.kind.value, "role": principal.role},
            expires_delta=self.access_ttl,
            now=self.clock(),
        )
        return token

    def issue_tokens(self, principal: Principal) -> TokenPair:
        """Mint an access token and replace the principal's refresh token."""
        ref = PrincipalRef.of(principal)
        access_token = self._access_token_for(principal)

        refresh_token = new_opaque_token()
        self.store.store_refresh_token(ref, refresh_token, self.clock() + self.refresh_ttl)

        logger.info(f"Issued session tokens for {ref}")
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def refresh(self, refresh_token: str) -> str:
        """
        Exchange a stored refresh token for a fresh access token.
        The refresh token itself is not rotated.
        """
        record = self.store.find_refresh_token(refresh_token)
        if record is None:
            raise TokenNotFoundError()

        if record.expires_at <= self.clock():
            raise TokenExpiredError("Refresh token has expired, please log in again")

        ref = PrincipalRef.from_owner(record.user_id, record.admin_id)
        principal = self.principals.find_by_id(ref)
        if principal is None or not principal.is_active:
            raise PrincipalNotFoundError()

        return self._access_token_for(principal)

    def verify(self, access_token: str) -> dict:
        """Decode an access token. Raises TokenExpiredError or InvalidTokenError."""
        return decode_token(access_token)

    def authenticate(self, access_token: str) -> dict:
        """Verify the signature, then reject blacklisted tokens."""
        payload = self.verify(access_token)
        if self.is_revoked(access_token):
            raise InvalidTokenError("Token has been revoked")
        return payload

    def revoke(self, access_token: str, expires_at: Optional[datetime] = None) -> None:
        """Blacklist an access token. Revoking twice is a no-op."""
        if expires_at is None:
            expires_at = get_token_expiry(access_token) or self.clock() + self.access_ttl

        if self.store.blacklist_token(access_token, expires_at, now=self.clock()):
            logger.info("Access token revoked")

    def is_revoked(self, access_token: str) -> bool:
        return self.store.is_token_blacklisted(access_token)

    def logout(self, principal: Principal, access_token: str) -> None:
        """Revoke the presented access token and drop the refresh token."""
        self.revoke(access_token)
        self.delete_all_refresh_tokens(principal)

    def delete_refresh_token(self, refresh_token: str) -> bool:
        return self.store.delete_refresh_token(refresh_token)

    def delete_all_refresh_tokens(self, principal: Principal) -> int:
        return self.store.delete_refresh_tokens_for(PrincipalRef.of(principal))

    def cleanup_expired_blacklisted_tokens(self) -> int:
        """Remove expired blacklist entries older than the retention window."""
        now = self.clock()
        removed = self.store.cleanup_expired_blacklisted_tokens(
            now=now,
            keep_created_after=now - self.blacklist_retention,
        )
        logger.info(f"Cleaned up {removed} expired blacklisted tokens")
        return removed

    def cleanup_expired_refresh_tokens(self) -> int:
        removed = self.store.cleanup_expired_refresh_tokens(self.clock())
        logger.info(f"Cleaned up {removed} expired refresh tokens")
        return removed
