from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4
import hashlib
import hmac
import secrets

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.core.clock import utcnow
from app.core.exceptions import InvalidTokenError, TokenExpiredError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Token type constants
TOKEN_TYPE_ACCESS = "access"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def hash_token(token: str) -> str:
    """Create SHA-256 hash of a token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def new_opaque_token() -> str:
    """Random URL-safe string used for refresh tokens."""
    return secrets.token_urlsafe(48)


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> tuple[str, datetime]:
    """
    Create a signed JWT access token.
    Returns (token, expires_at).
    """
    to_encode = data.copy()
    issued_at = now or utcnow()

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = issued_at + expires_delta

    to_encode.update({
        "iat": issued_at,
        "exp": expire,
        "type": TOKEN_TYPE_ACCESS,
        # Unique per token, so two tokens minted in the same second differ
        "jti": str(uuid4()),
    })

    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )
    return encoded_jwt, expire


def decode_token(token: str, expected_type: Optional[str] = TOKEN_TYPE_ACCESS) -> dict:
    """
    Verify a JWT and return its payload.

    Raises TokenExpiredError when the signature is fine but the token is past
    its expiry, and InvalidTokenError for anything else (bad signature,
    malformed token, wrong token type).
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()

    if expected_type and payload.get("type") != expected_type:
        raise InvalidTokenError("Unexpected token type")

    return payload


def get_token_expiry(token: str) -> Optional[datetime]:
    """Read the exp claim without verifying the signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc).replace(tzinfo=None)
