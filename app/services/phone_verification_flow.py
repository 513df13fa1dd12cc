import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from app.core.exceptions import (
    BlockedError,
    HandleAlreadyLinkedError,
    InvalidPrincipalError,
    ServiceUnavailableError,
    ValidationError,
    VerificationPhoneMismatchError,
    VerificationTokenExpiredError,
    VerificationTokenNotFoundError,
)
from app.services.account_linking_service import AccountLinkingService, LinkResult
from app.services.messaging.base import MessagingPlatform
from app.services.phone_verification_service import PhoneVerificationService, VerificationStatus
from app.services.principal_store import Principal, PrincipalRef
from app.services.security_guard import SecurityGuard

logger = logging.getLogger(__name__)

_STATUS_ERRORS = {
    VerificationStatus.EXPIRED: VerificationTokenExpiredError,
    VerificationStatus.PHONE_MISMATCH: VerificationPhoneMismatchError,
    VerificationStatus.NOT_FOUND: VerificationTokenNotFoundError,
}


def chat_identifier(handle: str) -> str:
    """Failed-attempt key for a messaging chat."""
    return f"telegram:{handle}"


@dataclass
class VerificationStart:
    token: str
    phone_number: str
    expires_at: datetime
    instructions: str


class PhoneVerificationFlow:
    """
    Phone ownership check through the external messaging platform.

    initiate() gives an authenticated principal a short code for its own
    registered number. The code is redeemed by sending "/verify CODE" to the
    bot, so the chat id comes from the platform and never from the web
    client (complete_from_chat). The platform is then asked which number it
    verified for that chat, and the chat is linked only if that number
    matches the one the code was issued for.

    complete() re-confirms an account whose chat is already linked.
    Every negative outcome is recorded against each identifier involved.
    """

    def __init__(
        self,
        verification: PhoneVerificationService,
        linking: AccountLinkingService,
        guard: SecurityGuard,
        messaging: MessagingPlatform,
    ):
        self.verification = verification
        self.linking = linking
        self.guard = guard
        self.messaging = messaging
        self.matcher = verification.matcher

    def _raise_blocked(self) -> None:
        raise BlockedError(retry_after=int(self.guard.block_duration.total_seconds()))

    def _gate(self, identifiers: Iterable[Optional[str]]) -> None:
        if any(self.guard.is_blocked(i) for i in identifiers):
            self._raise_blocked()

    def _record_failure(
        self,
        identifiers: Iterable[Optional[str]],
        reason: str,
        phone: Optional[str] = None,
        ip: Optional[str] = None,
        ref: Optional[PrincipalRef] = None,
    ) -> None:
        """Record the failure for every identifier; raise BlockedError if any got blocked."""
        blocked = False
        for identifier in filter(None, identifiers):
            result = self.guard.record_failed_attempt(identifier, reason, {"ip": ip})
            blocked = blocked or result.blocked

        self.guard.detect_verification_abuse(
            self.matcher.normalize(phone) if phone else None,
            ip,
            str(ref) if ref else None,
        )
        if blocked:
            self._raise_blocked()

    def _check_own_number(self, principal: Principal, phone: str, identifiers: list, ip: Optional[str]) -> None:
        ref = PrincipalRef.of(principal)
        if not principal.phone or not self.matcher.compare(phone, principal.phone).match:
            self._record_failure(identifiers, "phone is not the account's number", phone, ip, ref)
            raise VerificationPhoneMismatchError(
                "This phone number is not the one registered on your account"
            )

    def initiate(self, phone: str, principal: Principal, ip: Optional[str] = None) -> VerificationStart:
        ref = PrincipalRef.of(principal)
        identifiers = [ip, self.matcher.normalize(phone), str(ref)]
        self._gate(identifiers)

        validation = self.matcher.validate_phone_number(phone)
        if not validation.valid:
            raise ValidationError(validation.reason)

        self._check_own_number(principal, validation.clean_number, identifiers, ip)

        token = self.verification.issue_verification_token(validation.clean_number, owner=str(ref))
        record = self.verification.get_record(token)
        logger.info(f"Phone verification initiated for {ref}")
        return VerificationStart(
            token=token,
            phone_number=validation.clean_number,
            expires_at=record.expires_at,
            instructions=self.verification.get_verification_instructions(token, validation.clean_number),
        )

    def complete_from_chat(self, handle: str, token: str) -> LinkResult:
        """
        Redeem a code sent to the bot from chat `handle`. The handle must come
        from the platform's own update, not from user input.
        """
        handle = str(handle)
        chat_key = chat_identifier(handle)
        self._gate([chat_key])

        record = self.verification.get_record(token)
        if record is None or not record.owner:
            self._record_failure([chat_key], "verification token not_found")
            raise VerificationTokenNotFoundError(VerificationStatus.NOT_FOUND.message)

        try:
            ref = PrincipalRef.parse(record.owner)
        except InvalidPrincipalError:
            raise VerificationTokenNotFoundError(VerificationStatus.NOT_FOUND.message)
        principal = self.linking.principals.find_by_id(ref)
        if principal is None or not principal.is_active:
            raise VerificationTokenNotFoundError(VerificationStatus.NOT_FOUND.message)

        phone = record.phone_number
        identifiers = [chat_key, self.matcher.normalize(phone), str(ref)]
        self._gate(identifiers)

        status = self.verification.validate_verification_token(token, phone)
        if status is not VerificationStatus.VALID:
            self._record_failure(identifiers, f"verification token {status.value}", phone, ref=ref)
            raise _STATUS_ERRORS[status](status.message)

        return self._redeem(ref, phone, token, handle, identifiers, ip=None)

    def complete(
        self,
        principal: Principal,
        phone: str,
        token: str,
        ip: Optional[str] = None,
    ) -> LinkResult:
        """Re-confirm the number of a principal whose chat is already linked."""
        ref = PrincipalRef.of(principal)
        identifiers = [ip, self.matcher.normalize(phone), str(ref)]
        self._gate(identifiers)

        handle = principal.telegram_chat_id
        if not handle:
            raise ValidationError(
                "No Telegram account is linked yet, send /verify with your code to the clinic bot"
            )

        self._check_own_number(principal, phone, identifiers, ip)

        record = self.verification.get_record(token)
        if record is not None and record.owner != str(ref):
            # Someone else's code; report it exactly like an unknown one
            record = None
        if record is None:
            self._record_failure(identifiers, "verification token not_found", phone, ip, ref)
            raise VerificationTokenNotFoundError(VerificationStatus.NOT_FOUND.message)

        status = self.verification.validate_verification_token(token, phone)
        if status is not VerificationStatus.VALID:
            self._record_failure(identifiers, f"verification token {status.value}", phone, ip, ref)
            raise _STATUS_ERRORS[status](status.message)

        return self._redeem(ref, phone, token, handle, identifiers, ip=ip)

    def _redeem(
        self,
        ref: PrincipalRef,
        phone: str,
        token: str,
        handle: str,
        identifiers: list,
        ip: Optional[str],
    ) -> LinkResult:
        # Fetched before anything is written
        verified_phone = self.messaging.get_verified_phone_number(handle)
        if not verified_phone:
            raise ServiceUnavailableError(
                "Telegram",
                "Could not read the phone number from your Telegram account, please share your contact with the bot and try again",
            )

        result = self.linking.process_secure_linking(ref, phone, handle, verified_phone)
        if not result.success:
            if result.match is not None and result.match.match:
                self._record_failure(identifiers, "handle linked to another account", phone, ip, ref)
                raise HandleAlreadyLinkedError(result.message)
            self._record_failure(identifiers, "phone number mismatch", phone, ip, ref)
            raise VerificationPhoneMismatchError(result.message)

        for identifier in filter(None, identifiers):
            self.guard.clear_failed_attempts(identifier)
        self.verification.remove_verification_token(token)

        if not result.already_linked:
            self.messaging.send_message(
                handle,
                "Your phone number has been verified and linked to your clinic account.",
            )
        self.guard.log_security_event(
            "PHONE_LINKED",
            principal=str(ref),
            security_level=result.security_level,
            already_linked=result.already_linked,
        )
        return result
