"""Input sanitization and validation utilities."""

import re

import bleach


# Maximum lengths for different field types
MAX_LENGTHS = {
    "email": 255,
    "password": 128,
    "phone": 32,
    "token": 16,
    "default": 255,
}

# Allowed characters patterns
PATTERNS = {
    "email": re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"),
    "phone": re.compile(r"^[0-9+\-\s().]+$"),
    "verification_token": re.compile(r"^[0-9A-Fa-f]{8}$"),
}


def sanitize_string(
    value: str,
    max_length: int = MAX_LENGTHS["default"],
    strip_html: bool = True,
) -> str:
    """
    Sanitize a string input.

    - Strips leading/trailing whitespace
    - Removes HTML
    - Collapses internal whitespace
    - Truncates to max length
    """
    if not value:
        return ""

    value = value.strip()

    if strip_html:
        value = bleach.clean(value, tags=[], strip=True)

    value = " ".join(value.split())

    if len(value) > max_length:
        value = value[:max_length]

    return value


def sanitize_email(value: str) -> str:
    """Sanitize and lowercase an email."""
    return sanitize_string(value, max_length=MAX_LENGTHS["email"]).lower()


def validate_email(value: str) -> bool:
    """Validate email format."""
    if not value or len(value) > MAX_LENGTHS["email"]:
        return False
    return bool(PATTERNS["email"].match(value))


def sanitize_phone(value: str) -> str:
    return sanitize_string(value, max_length=MAX_LENGTHS["phone"])


def validate_phone_chars(value: str) -> bool:
    """Only digits, "+" and common separators. Format rules live in NumberMatcher."""
    return bool(value) and bool(PATTERNS["phone"].match(value))


def sanitize_verification_token(value: str) -> str:
    return sanitize_string(value, max_length=MAX_LENGTHS["token"]).upper()


def validate_verification_token(value: str) -> bool:
    return bool(value) and bool(PATTERNS["verification_token"].match(value))
