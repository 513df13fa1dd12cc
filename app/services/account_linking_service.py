import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.clock import Clock, utcnow
from app.core.exceptions import PrincipalNotFoundError
from app.services.number_matching import MatchResult, NumberMatcher, security_level
from app.services.principal_store import Principal, PrincipalRef, PrincipalStore

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    success: bool
    message: str
    already_linked: bool = False
    security_level: Optional[str] = None
    match: Optional[MatchResult] = None
    handle: Optional[str] = None
    linked_at: Optional[datetime] = None


@dataclass
class LinkInfo:
    is_linked: bool
    handle: Optional[str]
    phone: Optional[str]
    phone_verified: bool
    linked_at: Optional[datetime]


class AccountLinkingService:
    """
    Binds a principal to an external messaging identity once its phone number
    has been confirmed on both sides. A link is never overwritten implicitly;
    it only goes away through unlink().
    """

    def __init__(
        self,
        principals: PrincipalStore,
        matcher: Optional[NumberMatcher] = None,
        clock: Clock = utcnow,
    ):
        self.principals = principals
        self.matcher = matcher or NumberMatcher()
        self.clock = clock

    def _load(self, ref: PrincipalRef) -> Principal:
        principal = self.principals.find_by_id(ref)
        if principal is None:
            raise PrincipalNotFoundError()
        return principal

    @staticmethod
    def is_linked(principal: Principal) -> bool:
        return bool(principal.telegram_chat_id)

    def link_account(self, ref: PrincipalRef, handle: str, verified_phone: str) -> LinkResult:
        principal = self._load(ref)

        if self.is_linked(principal):
            return LinkResult(
                success=True,
                message="Account is already linked",
                already_linked=True,
                handle=principal.telegram_chat_id,
                linked_at=principal.phone_verified_at,
            )

        holder = self.principals.find_by_telegram_chat_id(handle)
        if holder is not None:
            logger.warning(f"Refused to link {ref}: handle {handle} belongs to {PrincipalRef.of(holder)}")
            return LinkResult(
                success=False,
                message="This Telegram account is already linked to another clinic account",
            )

        now = self.clock()
        self.principals.update(
            principal,
            telegram_chat_id=str(handle),
            phone_verified=True,
            phone_verified_at=now,
        )
        logger.info(f"Linked {ref} to external handle {handle}")
        return LinkResult(
            success=True,
            message="Account linked successfully",
            handle=str(handle),
            linked_at=now,
        )

    def unlink(self, ref: PrincipalRef) -> LinkResult:
        principal = self._load(ref)

        if not self.is_linked(principal):
            return LinkResult(success=True, message="Account is not linked")

        self.principals.update(
            principal,
            telegram_chat_id=None,
            phone_verified=False,
            phone_verified_at=None,
        )
        logger.info(f"Unlinked external handle from {ref}")
        return LinkResult(success=True, message="Account unlinked successfully")

    def get_link_info(self, ref: PrincipalRef) -> LinkInfo:
        principal = self._load(ref)
        return LinkInfo(
            is_linked=self.is_linked(principal),
            handle=principal.telegram_chat_id,
            phone=principal.phone,
            phone_verified=bool(principal.phone_verified),
            linked_at=principal.phone_verified_at,
        )

    def verify_secure_linking(self, claimed_phone: str, verified_phone: str) -> MatchResult:
        """Compare without persisting anything."""
        return self.matcher.compare(claimed_phone, verified_phone)

    def process_secure_linking(
        self,
        ref: PrincipalRef,
        claimed_phone: str,
        handle: str,
        verified_phone: str,
    ) -> LinkResult:
        """
        Compare the claimed and externally verified numbers, then link on a
        match. Security level: "high" when the principal was already linked
        before this call, "medium" when newly matched, "low" on no match.
        """
        match = self.verify_secure_linking(claimed_phone, verified_phone)
        if not match.match:
            logger.warning(f"Phone mismatch while linking {ref}: {match.reason}")
            return LinkResult(
                success=False,
                message="Phone numbers do not match, the account cannot be linked",
                security_level=security_level(False, False),
                match=match,
            )

        result = self.link_account(ref, handle, verified_phone)
        result.security_level = security_level(result.already_linked, result.success)
        result.match = match
        return result
