import enum
import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.services.number_matching import NumberMatcher

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 8


@dataclass
class VerificationRecord:
    phone_number: str
    created_at: datetime
    expires_at: datetime
    # Principal the code was issued to, e.g. "user:7"
    owner: Optional[str] = None


class VerificationStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    PHONE_MISMATCH = "phone_mismatch"
    NOT_FOUND = "not_found"

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES[self]


_STATUS_MESSAGES = {
    VerificationStatus.VALID: "Verification code is valid",
    VerificationStatus.EXPIRED: "Verification code has expired, please request a new one",
    VerificationStatus.PHONE_MISMATCH: "Phone number does not match the verification code, please check the number you entered",
    VerificationStatus.NOT_FOUND: "Verification code is incorrect or no longer exists",
}


class VerificationTokenStore:
    """
    Process-local map of verification token -> record.

    Keeps a secondary phone -> token index so that issuing a new token for a
    phone number drops the previous one. Not shared across processes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: Dict[str, VerificationRecord] = {}
        self._by_phone: Dict[str, str] = {}

    def put(self, token: str, phone_key: str, record: VerificationRecord) -> None:
        with self._lock:
            previous = self._by_phone.get(phone_key)
            if previous is not None:
                self._tokens.pop(previous, None)
            self._tokens[token] = record
            self._by_phone[phone_key] = token

    def get(self, token: str) -> Optional[VerificationRecord]:
        with self._lock:
            return self._tokens.get(token)

    def remove(self, token: str) -> bool:
        with self._lock:
            return self._remove_locked(token)

    def _remove_locked(self, token: str) -> bool:
        record = self._tokens.pop(token, None)
        if record is None:
            return False
        for phone_key, indexed in list(self._by_phone.items()):
            if indexed == token:
                del self._by_phone[phone_key]
        return True

    def remove_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [t for t, r in self._tokens.items() if r.expires_at <= now]
            for token in expired:
                self._remove_locked(token)
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()
            self._by_phone.clear()


class PhoneVerificationService:
    """Short-lived codes proving a caller controls a claimed phone number."""

    def __init__(
        self,
        store: VerificationTokenStore,
        matcher: Optional[NumberMatcher] = None,
        ttl: Optional[timedelta] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.matcher = matcher or NumberMatcher()
        self.ttl = ttl or timedelta(seconds=settings.PHONE_VERIFICATION_EXPIRE_SECONDS)
        self.clock = clock

    def _generate_token(self, phone_number: str, now: datetime) -> str:
        digest_input = f"{phone_number}{now.timestamp()}{secrets.token_hex(16)}"
        digest = hashlib.sha256(digest_input.encode("utf-8")).hexdigest()
        return digest[:TOKEN_LENGTH].upper()

    def issue_verification_token(self, phone_number: str, owner: Optional[str] = None) -> str:
        """Issue a token for the phone number, replacing any earlier one."""
        now = self.clock()
        token = self._generate_token(phone_number, now)
        record = VerificationRecord(
            phone_number=phone_number,
            created_at=now,
            expires_at=now + self.ttl,
            owner=owner,
        )
        self.store.put(token, self.matcher.normalize(phone_number), record)
        logger.info(f"Issued verification token (expires {record.expires_at.isoformat()})")
        return token

    def validate_verification_token(self, token: str, phone_number: str) -> VerificationStatus:
        """
        Check a token against the phone number it was issued for.

        Expiry is checked here as well as by the periodic sweep. Expired
        tokens are removed; valid ones are kept until the caller consumes
        them with remove_verification_token().
        """
        record = self.store.get((token or "").upper())
        if record is None:
            return VerificationStatus.NOT_FOUND

        if self.clock() >= record.expires_at:
            self.store.remove(token.upper())
            return VerificationStatus.EXPIRED

        if self.matcher.normalize(record.phone_number) != self.matcher.normalize(phone_number):
            return VerificationStatus.PHONE_MISMATCH

        return VerificationStatus.VALID

    def remove_verification_token(self, token: str) -> bool:
        removed = self.store.remove((token or "").upper())
        if removed:
            logger.info("Removed verification token")
        return removed

    def cleanup_expired_tokens(self) -> int:
        removed = self.store.remove_expired(self.clock())
        if removed:
            logger.info(f"Cleaned up {removed} expired verification tokens")
        return removed

    def get_record(self, token: str) -> Optional[VerificationRecord]:
        return self.store.get((token or "").upper())

    def get_token_info(self, token: str) -> Optional[dict]:
        record = self.get_record(token)
        if record is None:
            return None
        return {
            "phone_number": record.phone_number,
            "owner": record.owner,
            "created_at": record.created_at,
            "expires_at": record.expires_at,
            "is_expired": self.clock() >= record.expires_at,
        }

    def get_active_tokens_count(self) -> int:
        return len(self.store)

    def get_verification_instructions(self, token: str, phone_number: str) -> str:
        minutes = max(1, int(self.ttl.total_seconds() // 60))
        return (
            f"To verify {phone_number}, open the clinic Telegram bot and send:\n"
            f"/verify {token}\n"
            f"The code expires in {minutes} minute{'s' if minutes != 1 else ''}."
        )
