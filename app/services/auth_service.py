import logging
from dataclasses import dataclass
from typing import Optional

from app.core.exceptions import (
    BlockedError,
    InvalidCredentialsError,
    OtpExpiredError,
    OtpMismatchError,
)
from app.core.security import verify_password
from app.services.messaging.base import MessagingPlatform
from app.services.otp_service import OtpCheck, OtpService
from app.services.principal_store import Principal, PrincipalKind, PrincipalRef, PrincipalStore
from app.services.security_guard import SecurityGuard
from app.services.token_service import SessionTokenService, TokenPair

logger = logging.getLogger(__name__)


def otp_identifier(ref: PrincipalRef) -> str:
    """Failed-attempt key for passcode checks."""
    return f"otp:{ref}"


@dataclass
class OtpDelivery:
    sent: bool
    expires_in: int  # seconds
    channel: Optional[str] = None


class AuthService:
    """Password login, logout and one-time passcode steps for users and admins."""

    def __init__(
        self,
        principals: PrincipalStore,
        tokens: SessionTokenService,
        otps: OtpService,
        messaging: Optional[MessagingPlatform] = None,
        guard: Optional[SecurityGuard] = None,
    ):
        self.principals = principals
        self.tokens = tokens
        self.otps = otps
        self.messaging = messaging
        self.guard = guard

    def authenticate(self, email: str, password: str, kind: PrincipalKind = PrincipalKind.USER) -> Optional[Principal]:
        """Authenticate a principal by email and password."""
        principal = self.principals.find_by_email(email.lower(), kind)
        if not principal or not principal.is_active:
            return None
        if not principal.password_hash:
            return None
        if not verify_password(password, principal.password_hash):
            return None
        return principal

    def login(self, email: str, password: str, kind: PrincipalKind = PrincipalKind.USER) -> tuple[Principal, TokenPair]:
        """
        Authenticate and return the principal with a fresh token pair.
        Raises InvalidCredentialsError if authentication fails.
        """
        principal = self.authenticate(email, password, kind)
        if not principal:
            logger.info(f"Failed {kind.value} login attempt")
            raise InvalidCredentialsError()

        return principal, self.tokens.issue_tokens(principal)

    def refresh(self, refresh_token: str) -> str:
        return self.tokens.refresh(refresh_token)

    def logout(self, principal: Principal, access_token: str) -> None:
        self.tokens.logout(principal, access_token)
        logger.info(f"{PrincipalRef.of(principal)} logged out")

    def request_otp(self, principal: Principal) -> OtpDelivery:
        """Issue a passcode and deliver it over the linked messaging account, if any."""
        ref = PrincipalRef.of(principal)
        code = self.otps.issue(ref)
        expires_in = int(self.otps.ttl.total_seconds())

        if self.messaging is None or not principal.telegram_chat_id:
            return OtpDelivery(sent=False, expires_in=expires_in)

        minutes = max(1, expires_in // 60)
        sent = self.messaging.send_message(
            principal.telegram_chat_id,
            f"Your clinic verification code is {code}. It expires in {minutes} minutes.",
        )
        return OtpDelivery(sent=sent, expires_in=expires_in, channel="telegram" if sent else None)

    def verify_otp(self, principal: Principal, code: str, ip: Optional[str] = None) -> bool:
        """
        Consume a passcode. Raises OtpExpiredError or OtpMismatchError.

        With a guard, failures are counted per principal and a blocked
        principal is refused even with the right code (BlockedError).
        """
        ref = PrincipalRef.of(principal)
        identifier = otp_identifier(ref)
        if self.guard is not None and self.guard.is_blocked(identifier):
            raise BlockedError(retry_after=int(self.guard.block_duration.total_seconds()))

        result = self.otps.check(ref, code)
        if result is OtpCheck.VALID:
            if self.guard is not None:
                self.guard.clear_failed_attempts(identifier)
            return True

        if self.guard is not None:
            attempt = self.guard.record_failed_attempt(identifier, f"otp {result.value}", {"ip": ip})
            if attempt.blocked:
                self.guard.log_security_event("OTP_BLOCKED", principal=str(ref))
                raise BlockedError(retry_after=int(attempt.block_duration.total_seconds()))

        if result is OtpCheck.EXPIRED:
            raise OtpExpiredError()
        raise OtpMismatchError()
