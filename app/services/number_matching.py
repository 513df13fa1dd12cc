"""
Phone number normalization and comparison.

Normalization is a best-effort regional heuristic, not E.164 parsing:
  - every character other than digits and "+" is dropped
  - "00" international prefix becomes "+"
  - "09..." (national trunk prefix + mobile prefix) becomes "+<cc>..."
  - "9..." (mobile prefix without trunk digit) gets "+<cc>" prepended
A partial match compares only the trailing digits, tolerating country code
and leading-zero inconsistencies between two sources.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.core.clock import utcnow
from app.core.config import settings

_STRIP_PATTERN = re.compile(r"[^\d+]")
_INTERNATIONAL_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


@dataclass
class MatchResult:
    match: bool
    exact_match: bool
    partial_match: bool
    reason: str
    normalized_a: str = ""
    normalized_b: str = ""


@dataclass
class PhoneValidation:
    valid: bool
    format: str  # "regional" | "international" | "invalid"
    clean_number: str
    reason: str


@dataclass
class SecurityReport:
    security_level: str  # "high" | "medium" | "low"
    comparison: MatchResult
    claimed: PhoneValidation
    verified: PhoneValidation
    already_linked: bool
    generated_at: datetime = field(default_factory=utcnow)


class NumberMatcher:
    """Normalizes and compares phone numbers for a default region."""

    def __init__(
        self,
        country_code: Optional[str] = None,
        partial_digits: Optional[int] = None,
    ):
        self.country_code = (country_code or settings.DEFAULT_COUNTRY_CODE).lstrip("+")
        self.partial_digits = partial_digits or settings.PARTIAL_MATCH_DIGITS
        cc = re.escape(self.country_code)
        self._regional_patterns = [
            re.compile(rf"^(\+{cc}|00{cc}|{cc})?(9[2-9]\d{{7}})$"),
            re.compile(r"^(0)?(9[2-9]\d{7})$"),
        ]

    def normalize(self, phone_number: Optional[str]) -> str:
        if not phone_number:
            return ""

        normalized = _STRIP_PATTERN.sub("", phone_number)
        if normalized.startswith("+"):
            return normalized

        if normalized.startswith("00"):
            return "+" + normalized[2:]
        if normalized.startswith("09"):
            return f"+{self.country_code}" + normalized[2:]
        if normalized.startswith("9"):
            return f"+{self.country_code}" + normalized
        return normalized

    def compare(self, a: Optional[str], b: Optional[str]) -> MatchResult:
        """Compare two numbers. The result is symmetric in its arguments."""
        normalized_a = self.normalize(a)
        normalized_b = self.normalize(b)

        digits_a = normalized_a.lstrip("+")
        digits_b = normalized_b.lstrip("+")
        if not digits_a.isdigit() or not digits_b.isdigit():
            return MatchResult(
                match=False,
                exact_match=False,
                partial_match=False,
                reason="Invalid phone number format",
                normalized_a=normalized_a,
                normalized_b=normalized_b,
            )

        exact_match = normalized_a == normalized_b
        partial_match = (
            len(digits_a) >= self.partial_digits
            and len(digits_b) >= self.partial_digits
            and digits_a[-self.partial_digits:] == digits_b[-self.partial_digits:]
        )

        if exact_match:
            reason = "Exact match"
        elif partial_match:
            reason = f"Partial match (last {self.partial_digits} digits)"
        else:
            reason = "No match"

        return MatchResult(
            match=exact_match or partial_match,
            exact_match=exact_match,
            partial_match=partial_match,
            reason=reason,
            normalized_a=normalized_a,
            normalized_b=normalized_b,
        )

    def validate_phone_number(self, phone_number: Optional[str]) -> PhoneValidation:
        if not phone_number:
            return PhoneValidation(False, "invalid", "", "Phone number is required")

        clean_number = re.sub(r"\s+", "", phone_number)
        if any(p.match(clean_number) for p in self._regional_patterns):
            return PhoneValidation(True, "regional", clean_number, "Valid phone number")
        if _INTERNATIONAL_PATTERN.match(clean_number):
            return PhoneValidation(True, "international", clean_number, "Valid phone number")
        return PhoneValidation(False, "invalid", clean_number, "Invalid phone number format")

    def generate_security_report(
        self,
        claimed_phone: Optional[str],
        verified_phone: Optional[str],
        is_linked: bool,
    ) -> SecurityReport:
        comparison = self.compare(claimed_phone, verified_phone)
        return SecurityReport(
            security_level=security_level(is_linked, comparison.match),
            comparison=comparison,
            claimed=self.validate_phone_number(claimed_phone),
            verified=self.validate_phone_number(verified_phone),
            already_linked=is_linked,
        )


def security_level(already_linked: bool, matched: bool) -> str:
    if already_linked:
        return "high"
    if matched:
        return "medium"
    return "low"
