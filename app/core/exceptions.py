"""Custom exceptions and error handling for the clinic identity API."""

from fastapi import HTTPException, status


class ClinicAuthException(HTTPException):
    """Base exception for the clinic identity API."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str | None = None,
        headers: dict | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


# Authentication Errors (401, 403)
class InvalidCredentialsError(ClinicAuthException):
    """Raised when login credentials are invalid."""

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="INVALID_CREDENTIALS",
            headers={"WWW-Authenticate": "Bearer"},
        )


class TokenExpiredError(ClinicAuthException):
    """Raised when a token has expired. Clients should refresh."""

    def __init__(self, detail: str = "Token has expired, please refresh"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenError(ClinicAuthException):
    """Raised when a token is malformed, badly signed or revoked."""

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="TOKEN_INVALID",
            headers={"WWW-Authenticate": "Bearer"},
        )


class TokenNotFoundError(ClinicAuthException):
    """Raised when a refresh token is not (or no longer) stored."""

    def __init__(self, detail: str = "Refresh token not found"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="TOKEN_NOT_FOUND",
        )


class ForbiddenError(ClinicAuthException):
    """Raised when a principal lacks permission for an action."""

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN",
        )


# Principal Errors (400, 404)
class InvalidPrincipalError(ClinicAuthException):
    """Raised when tokens are requested for a principal without an id."""

    def __init__(self, detail: str = "Principal must have an id"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="INVALID_PRINCIPAL",
        )


class PrincipalNotFoundError(ClinicAuthException):
    """Raised when a user or admin cannot be found."""

    def __init__(self, detail: str = "Account not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="PRINCIPAL_NOT_FOUND",
        )


# One-time passcode errors (400)
class OtpMismatchError(ClinicAuthException):
    """Raised when a passcode does not match the stored one."""

    def __init__(self, detail: str = "Invalid verification code"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="OTP_MISMATCH",
        )


class OtpExpiredError(ClinicAuthException):
    """Raised when a passcode has expired. A new one must be requested."""

    def __init__(self, detail: str = "Verification code has expired, please request a new one"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="OTP_EXPIRED",
        )


# Phone verification errors (400)
class VerificationTokenNotFoundError(ClinicAuthException):
    """Raised when a phone verification token is unknown."""

    def __init__(self, detail: str = "Verification token is invalid"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VERIFICATION_TOKEN_NOT_FOUND",
        )


class VerificationTokenExpiredError(ClinicAuthException):
    """Raised when a phone verification token has expired."""

    def __init__(self, detail: str = "Verification token has expired, please start again"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VERIFICATION_TOKEN_EXPIRED",
        )


class VerificationPhoneMismatchError(ClinicAuthException):
    """Raised when the phone number does not belong to the verification token."""

    def __init__(self, detail: str = "Phone number does not match, please check the number you entered"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VERIFICATION_PHONE_MISMATCH",
        )


class HandleAlreadyLinkedError(ClinicAuthException):
    """Raised when a messaging account is already linked to a different principal."""

    def __init__(self, detail: str = "This Telegram account is already linked to another clinic account"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="HANDLE_ALREADY_LINKED",
        )


# Validation Errors (400, 422)
class ValidationError(ClinicAuthException):
    """Raised when input validation fails."""

    def __init__(self, detail: str = "Invalid input"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="VALIDATION_ERROR",
        )


# Rate Limiting (429)
class RateLimitExceededError(ClinicAuthException):
    """Raised when rate limit is exceeded."""

    def __init__(self, detail: str = "Rate limit exceeded. Please try again later."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="RATE_LIMIT_EXCEEDED",
        )


class BlockedError(ClinicAuthException):
    """Raised when an identifier is temporarily blocked after repeated failures."""

    def __init__(
        self,
        detail: str = "Too many failed attempts. Please wait and try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="BLOCKED",
            headers={"Retry-After": str(retry_after)} if retry_after else None,
        )


# Server Errors (500, 503)
class StorageFailureError(ClinicAuthException):
    """Raised when the credential store fails. Not retried."""

    def __init__(self, detail: str = "A storage error occurred"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="STORAGE_FAILURE",
        )


class ServiceUnavailableError(ClinicAuthException):
    """Raised when an external service is unavailable."""

    def __init__(self, service: str = "Service", detail: str | None = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail or f"{service} is temporarily unavailable",
            error_code="SERVICE_UNAVAILABLE",
        )
