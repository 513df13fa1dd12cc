from app.services.account_linking_service import AccountLinkingService
from app.services.auth_service import AuthService
from app.services.credential_store import CredentialStore
from app.services.number_matching import NumberMatcher
from app.services.otp_service import OtpService
from app.services.phone_verification_flow import PhoneVerificationFlow
from app.services.phone_verification_service import PhoneVerificationService, VerificationTokenStore
from app.services.principal_store import PrincipalStore
from app.services.security_guard import FailedAttemptStore, SecurityGuard
from app.services.token_service import SessionTokenService

__all__ = [
    "AccountLinkingService",
    "AuthService",
    "CredentialStore",
    "NumberMatcher",
    "OtpService",
    "PhoneVerificationFlow",
    "PhoneVerificationService",
    "VerificationTokenStore",
    "PrincipalStore",
    "FailedAttemptStore",
    "SecurityGuard",
    "SessionTokenService",
]
