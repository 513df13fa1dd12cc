"""
Failed-attempt tracking, temporary blocking and abuse detection.

Identifiers are opaque strings: an IP address, a phone number or a
principal reference such as "user:42". The guard never rejects anything by
itself; it reports structured results and leaves the response to callers.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from app.core.clock import Clock, as_aware, utcnow
from app.core.config import settings

logger = logging.getLogger(__name__)

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"


@dataclass
class FailedAttempt:
    timestamp: datetime
    reason: str
    context: dict = field(default_factory=dict)


@dataclass
class AttemptResult:
    blocked: bool
    attempt_number: int
    remaining_attempts: int
    block_duration: Optional[timedelta] = None


@dataclass
class AbuseReport:
    abusive: bool
    indicators: List[str]
    risk_level: str


@dataclass
class RequestCheck:
    valid: bool
    blocked: bool = False
    reason: Optional[str] = None


class FailedAttemptStore:
    """Process-local failed attempts and blocked identifiers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, List[FailedAttempt]] = defaultdict(list)
        self._blocked: Set[str] = set()

    def append(self, identifier: str, attempt: FailedAttempt, keep_after: datetime) -> List[FailedAttempt]:
        """Add an attempt, drop those older than `keep_after`, return a copy."""
        with self._lock:
            recent = [a for a in self._attempts[identifier] if a.timestamp > keep_after]
            recent.append(attempt)
            self._attempts[identifier] = recent
            return list(recent)

    def attempts(self, identifier: str) -> List[FailedAttempt]:
        with self._lock:
            return list(self._attempts.get(identifier, ()))

    def clear(self, identifier: str) -> bool:
        with self._lock:
            return self._attempts.pop(identifier, None) is not None

    def prune(self, keep_after: datetime) -> int:
        """Drop attempts older than `keep_after`. Returns how many were dropped."""
        removed = 0
        with self._lock:
            for identifier in list(self._attempts):
                attempts = self._attempts[identifier]
                recent = [a for a in attempts if a.timestamp > keep_after]
                removed += len(attempts) - len(recent)
                if recent:
                    self._attempts[identifier] = recent
                else:
                    del self._attempts[identifier]
        return removed

    def block(self, identifier: str) -> bool:
        """Returns False if the identifier was already blocked."""
        with self._lock:
            if identifier in self._blocked:
                return False
            self._blocked.add(identifier)
            return True

    def unblock(self, identifier: str) -> bool:
        with self._lock:
            if identifier not in self._blocked:
                return False
            self._blocked.discard(identifier)
            return True

    def is_blocked(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._blocked

    def stats(self) -> dict:
        with self._lock:
            return {
                "total_failed_attempts": sum(len(a) for a in self._attempts.values()),
                "currently_blocked": len(self._blocked),
                "active_tracking": len(self._attempts),
            }


class SecurityGuard:
    def __init__(
        self,
        store: FailedAttemptStore,
        scheduler,
        max_attempts: Optional[int] = None,
        block_duration: Optional[timedelta] = None,
        abuse_window: Optional[timedelta] = None,
        phone_threshold: Optional[int] = None,
        ip_threshold: Optional[int] = None,
        principal_threshold: Optional[int] = None,
        record_retention: Optional[timedelta] = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.scheduler = scheduler
        self.max_attempts = max_attempts or settings.BLOCK_MAX_ATTEMPTS
        self.block_duration = block_duration or timedelta(minutes=settings.BLOCK_DURATION_MINUTES)
        self.abuse_window = abuse_window or timedelta(minutes=settings.ABUSE_WINDOW_MINUTES)
        self.phone_threshold = phone_threshold or settings.ABUSE_PHONE_THRESHOLD
        self.ip_threshold = ip_threshold or settings.ABUSE_IP_THRESHOLD
        self.principal_threshold = principal_threshold or settings.ABUSE_PRINCIPAL_THRESHOLD
        self.record_retention = record_retention or timedelta(
            hours=settings.SECURITY_RECORD_RETENTION_HOURS
        )
        self.clock = clock

    def _count_since(self, identifier: Optional[str], since: datetime) -> int:
        if not identifier:
            return 0
        return sum(1 for a in self.store.attempts(identifier) if a.timestamp > since)

    def record_failed_attempt(self, identifier: str, reason: str, context: Optional[dict] = None) -> AttemptResult:
        now = self.clock()
        # History is kept long enough for both the blocking and abuse windows
        keep_after = now - max(self.block_duration, self.abuse_window)
        attempts = self.store.append(
            identifier,
            FailedAttempt(timestamp=now, reason=reason, context=context or {}),
            keep_after=keep_after,
        )
        window_start = now - self.block_duration
        attempt_number = sum(1 for a in attempts if a.timestamp > window_start)

        logger.info(f"Failed attempt #{attempt_number} for {identifier}: {reason}")

        if attempt_number >= self.max_attempts:
            self.block_user(identifier)
            return AttemptResult(
                blocked=True,
                attempt_number=attempt_number,
                remaining_attempts=0,
                block_duration=self.block_duration,
            )

        return AttemptResult(
            blocked=False,
            attempt_number=attempt_number,
            remaining_attempts=self.max_attempts - attempt_number,
        )

    def block_user(self, identifier: str) -> None:
        """Block the identifier and schedule its release after the block duration."""
        if not self.store.block(identifier):
            return

        run_date = as_aware(self.clock() + self.block_duration)
        self.scheduler.add_job(
            self.unblock,
            "date",
            run_date=run_date,
            args=[identifier],
            id=f"unblock:{identifier}",
            replace_existing=True,
        )
        self.log_security_event("IDENTIFIER_BLOCKED", identifier=identifier, until=run_date.isoformat())

    def unblock(self, identifier: str) -> None:
        if self.store.unblock(identifier):
            logger.info(f"Identifier {identifier} unblocked")

    def is_blocked(self, identifier: Optional[str]) -> bool:
        return bool(identifier) and self.store.is_blocked(identifier)

    def clear_failed_attempts(self, identifier: Optional[str]) -> None:
        if identifier and self.store.clear(identifier):
            logger.info(f"Cleared failed attempts for {identifier}")

    def detect_verification_abuse(
        self,
        phone: Optional[str],
        ip: Optional[str],
        principal_id: Optional[str] = None,
    ) -> AbuseReport:
        since = self.clock() - self.abuse_window
        indicators = []

        if self._count_since(phone, since) > self.phone_threshold:
            indicators.append("Multiple failed attempts for the same phone number")
        if self._count_since(ip, since) > self.ip_threshold:
            indicators.append("Multiple failed attempts from the same IP address")
        if self._count_since(principal_id, since) > self.principal_threshold:
            indicators.append("Multiple phone verification attempts by the same account")

        if len(indicators) > 2:
            risk_level = RISK_HIGH
        elif indicators:
            risk_level = RISK_MEDIUM
        else:
            risk_level = RISK_LOW

        if indicators:
            self.log_security_event(
                "VERIFICATION_ABUSE_DETECTED",
                phone=phone,
                ip=ip,
                principal=principal_id,
                indicators=indicators,
            )

        return AbuseReport(abusive=bool(indicators), indicators=indicators, risk_level=risk_level)

    def check_request(self, ip: Optional[str], principal_id: Optional[str] = None) -> RequestCheck:
        """Gate used before verification endpoints."""
        if self.is_blocked(ip):
            self.log_security_event("BLOCKED_REQUEST", ip=ip, principal=principal_id, reason="ip")
            return RequestCheck(valid=False, blocked=True, reason="IP address temporarily blocked")

        if self.is_blocked(principal_id):
            self.log_security_event("BLOCKED_REQUEST", ip=ip, principal=principal_id, reason="principal")
            return RequestCheck(valid=False, blocked=True, reason="Account temporarily blocked")

        return RequestCheck(valid=True)

    def get_security_stats(self) -> dict:
        return self.store.stats()

    def cleanup_old_records(self) -> int:
        removed = self.store.prune(keep_after=self.clock() - self.record_retention)
        logger.info(f"Security records cleaned up ({removed} attempts dropped)")
        return removed

    def log_security_event(self, event_type: str, **data) -> None:
        logger.warning(f"SECURITY EVENT {event_type}: {data}")
