import enum
import logging
import secrets
from datetime import timedelta
from typing import Optional

from app.core.clock import Clock, utcnow
from app.core.config import settings
from app.core.security import constant_time_equals
from app.services.credential_store import CredentialStore
from app.services.principal_store import PrincipalRef

logger = logging.getLogger(__name__)


class OtpCheck(str, enum.Enum):
    VALID = "valid"
    MISMATCH = "mismatch"
    EXPIRED = "expired"


class OtpService:
    """
    Numeric one-time passcodes, one live code per principal.

    Issuing replaces the previous code. A correct, unexpired code is consumed
    on the check that accepts it; wrong codes are left in place so the owner
    can retry until expiry.
    """

    def __init__(
        self,
        store: CredentialStore,
        length: Optional[int] = None,
        ttl: Optional[timedelta] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.length = length or settings.OTP_LENGTH
        self.ttl = ttl or timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        self.clock = clock

    def generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.length):0{self.length}d}"

    def issue(self, owner: PrincipalRef) -> str:
        code = self.generate_code()
        now = self.clock()
        self.store.store_otp(owner, code, expires_at=now + self.ttl, now=now)
        logger.info(f"Issued OTP for {owner}")
        return code

    def check(self, owner: PrincipalRef, code: str) -> OtpCheck:
        if not code or not code.isdigit() or len(code) != self.length:
            return OtpCheck.MISMATCH

        record = self.store.find_otp(owner)
        if record is None:
            return OtpCheck.MISMATCH

        if record.expires_at <= self.clock():
            self.store.delete_otp(record)
            return OtpCheck.EXPIRED

        if not constant_time_equals(record.otp_code, code):
            return OtpCheck.MISMATCH

        # Single use: only the check whose delete removed the row accepts the code
        if not self.store.delete_otp(record):
            return OtpCheck.MISMATCH
        return OtpCheck.VALID

    def validate(self, owner: PrincipalRef, code: str) -> bool:
        return self.check(owner, code) is OtpCheck.VALID

    def cleanup_expired_otps(self) -> int:
        removed = self.store.cleanup_expired_otps(self.clock())
        logger.info(f"Cleaned up {removed} expired OTPs")
        return removed
